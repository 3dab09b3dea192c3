"""
자막 파일 내보내기 모듈입니다.

역할:
- 디코드된 SubtitlePart 목록을 SRT 포맷 파일로 저장
- 디코드된 SubtitlePart 목록을 WebVTT 포맷 파일로 저장
- 비트맵 자막 이미지를 PNG 파일로 저장

사용 예시:
    >>> exporter = SubtitleExporter()
    >>> exporter.export_srt(store.parts(), "output/subtitles/track2.srt")
    >>> exporter.export_vtt(store.parts(), "output/subtitles/track2.vtt")
    >>> exporter.export_images(store.parts(), "output/subtitles/track2_images")
"""

from __future__ import annotations

import logging
from pathlib import Path

from subdecode.subtitle import SubtitlePart

logger = logging.getLogger(__name__)


class SubtitleExporter:
    """
    자막 스냅샷을 SRT/VTT/PNG 파일로 내보내는 클래스입니다.

    텍스트가 없는 자막(비트맵 전용)은 SRT/VTT에서 제외됩니다.
    파일 저장 실패 시 OSError를 상위로 전파합니다.
    """

    def export_srt(self, parts: list[SubtitlePart], filepath: str | Path) -> int:
        """
        SubtitlePart 목록을 SRT 포맷으로 저장합니다.

        SRT 포맷:
            번호
            시작시간 --> 종료시간
            자막텍스트
            (빈 줄)

        파라미터:
            parts: 저장할 SubtitlePart 목록 (시작 시각 순 권장)
            filepath: 저장할 .srt 파일 경로

        반환값:
            int: 기록한 자막 수
        """
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        text_parts = [p for p in parts if p.plain_text.strip()]

        try:
            with open(filepath, "w", encoding="utf-8") as f:
                for index, part in enumerate(text_parts, start=1):
                    f.write(f"{index}\n")
                    f.write(f"{_sec_to_srt_time(part.start)} --> {_sec_to_srt_time(part.end)}\n")
                    f.write(f"{part.plain_text}\n")
                    f.write("\n")

            logger.info(f"SRT 파일 저장 완료: {filepath} ({len(text_parts)}개 자막)")

        except OSError as exc:
            logger.error(f"SRT 파일 저장 실패: {filepath}, 오류: {exc}")
            raise

        return len(text_parts)

    def export_vtt(self, parts: list[SubtitlePart], filepath: str | Path) -> int:
        """
        SubtitlePart 목록을 WebVTT 포맷으로 저장합니다.

        WebVTT 포맷:
            WEBVTT
            (빈 줄)
            시작시간 --> 종료시간
            자막텍스트
            (빈 줄)

        파라미터:
            parts: 저장할 SubtitlePart 목록 (시작 시각 순 권장)
            filepath: 저장할 .vtt 파일 경로

        반환값:
            int: 기록한 자막 수
        """
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        text_parts = [p for p in parts if p.plain_text.strip()]

        try:
            with open(filepath, "w", encoding="utf-8") as f:
                f.write("WEBVTT\n\n")

                for part in text_parts:
                    f.write(f"{_sec_to_vtt_time(part.start)} --> {_sec_to_vtt_time(part.end)}\n")
                    # 빈 줄은 큐 종료로 해석되므로 제거
                    body = "\n".join(line for line in part.plain_text.split("\n") if line.strip())
                    f.write(f"{body}\n")
                    f.write("\n")

            logger.info(f"VTT 파일 저장 완료: {filepath} ({len(text_parts)}개 자막)")

        except OSError as exc:
            logger.error(f"VTT 파일 저장 실패: {filepath}, 오류: {exc}")
            raise

        return len(text_parts)

    def export_images(self, parts: list[SubtitlePart], directory: str | Path) -> list[Path]:
        """
        비트맵 자막 이미지를 PNG 파일로 저장합니다.

        파일 이름: {part_id:05d}_{시작ms}-{종료ms}_{x}x{y}.png

        파라미터:
            parts: 저장할 SubtitlePart 목록 (이미지가 없는 자막은 건너뜀)
            directory: 저장할 디렉터리

        반환값:
            list[Path]: 저장한 파일 경로 목록
        """
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        written: list[Path] = []
        for part in parts:
            if part.image is None:
                continue

            x, y = part.origin or (0, 0)
            filename = (
                f"{part.part_id:05d}_{round(part.start * 1000)}-{round(part.end * 1000)}"
                f"_{x}x{y}.png"
            )
            filepath = directory / filename
            try:
                part.image.save(filepath, format="PNG")
            except OSError as exc:
                logger.error(f"자막 이미지 저장 실패: {filepath}, 오류: {exc}")
                raise
            written.append(filepath)

        logger.info(f"자막 이미지 저장 완료: {directory} ({len(written)}개)")
        return written


# =============================================================================
# 헬퍼 함수
# =============================================================================

def _sec_to_srt_time(seconds: float) -> str:
    """
    초 단위 시각을 SRT 시간 포맷으로 변환합니다.

    SRT 포맷: HH:MM:SS,mmm

    파라미터:
        seconds: 트랙 기준 시각 (초)

    반환값:
        str: SRT 시간 문자열
    """
    total_ms = max(0, round(seconds * 1000))
    ms = total_ms % 1000
    total_sec = total_ms // 1000
    sec = total_sec % 60
    total_min = total_sec // 60
    minute = total_min % 60
    hour = total_min // 60
    return f"{hour:02d}:{minute:02d}:{sec:02d},{ms:03d}"


def _sec_to_vtt_time(seconds: float) -> str:
    """
    초 단위 시각을 WebVTT 시간 포맷으로 변환합니다.

    VTT 포맷: HH:MM:SS.mmm
    """
    return _sec_to_srt_time(seconds).replace(",", ".")
