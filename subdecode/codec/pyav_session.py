"""
PyAV 기반 자막 코덱 세션 모듈입니다.

역할:
- 트랙 메타데이터(코덱 이름, extradata, 코덱 옵션)로 FFmpeg 자막 디코더 컨텍스트 생성
- Packet을 av.Packet으로 감싸 디코드
- PyAV 자막 사각형(비트맵/텍스트/ASS)을 SubtitleRect로 변환

PyAV 버전별 API 차이:
- 최신 버전: SubtitleCodecContext.decode2(packet) → SubtitleSet 또는 None
- 이전 버전: decode(packet) → SubtitleSet 목록

사용 예시:
    >>> session = PyAVCodecSession.from_track(track, {"sub_charenc": "UTF-8"})
    >>> got_event, event = session.decode(packet)
    >>> with event:
    ...     ...
    >>> session.close()
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import av

from subdecode.codec import (
    CodecDecodeError,
    CodecInitError,
    DecodedEvent,
    RectType,
    SubtitleRect,
)
from subdecode.media import AssetTrack, Packet

logger = logging.getLogger(__name__)


class PyAVCodecSession:
    """
    FFmpeg 자막 디코더 컨텍스트 하나를 감싸는 CodecSession 구현입니다.

    디코드 호출은 한 스레드에서만 수행해야 합니다.
    """

    def __init__(self, context: Any, track: AssetTrack) -> None:
        """
        파라미터:
            context: 열린 av.CodecContext (디코드 모드)
            track (AssetTrack): 디코드할 자막 트랙
        """
        self._context = context
        self._track = track
        self._closed = False

    @classmethod
    def from_track(cls, track: AssetTrack, options: Optional[dict] = None) -> "PyAVCodecSession":
        """
        트랙 메타데이터로 디코더 컨텍스트를 생성하고 엽니다.

        파라미터:
            track (AssetTrack): 자막 트랙 (codec_name, extradata 사용)
            options: FFmpeg 코덱 옵션 (문자열 딕셔너리)

        반환값:
            PyAVCodecSession: 열린 세션

        에러:
            CodecInitError: 알 수 없는 코덱이거나 컨텍스트를 열 수 없을 때
        """
        try:
            context = av.CodecContext.create(track.codec_name, "r")
            if track.extradata:
                context.extradata = track.extradata
            if options:
                context.options = {str(k): str(v) for k, v in options.items()}
            context.open()
        except (av.error.FFmpegError, ValueError, TypeError) as exc:
            raise CodecInitError(
                f"코덱 컨텍스트 생성 실패: codec={track.codec_name}, {exc}"
            ) from exc

        logger.info(
            f"PyAV 코덱 세션 생성: codec={track.codec_name}, "
            f"extradata={len(track.extradata)}B, options={sorted((options or {}).keys())}"
        )
        return cls(context, track)

    def decode(self, packet: Packet) -> tuple[bool, DecodedEvent]:
        """
        패킷 하나를 디코드합니다.

        파라미터:
            packet (Packet): 디코드할 패킷

        반환값:
            tuple[bool, DecodedEvent]: (이벤트 생성 여부, 이벤트)

        에러:
            CodecDecodeError: 코덱이 잘못된 데이터 등 오류를 보고했을 때
        """
        if self._closed:
            return False, DecodedEvent.empty()

        av_packet = av.Packet(packet.data)
        av_packet.pts = packet.position
        av_packet.dts = packet.position
        av_packet.duration = packet.duration

        try:
            subtitle_set = self._decode_set(av_packet)
        except av.error.FFmpegError as exc:
            raise CodecDecodeError(f"자막 패킷 디코드 실패: pts={packet.position}, {exc}") from exc

        if subtitle_set is None:
            return False, DecodedEvent.empty()

        rects = [rect for rect in (_convert_rect(r) for r in subtitle_set) if rect is not None]
        event = DecodedEvent(
            rects=rects,
            start_display_ms=int(getattr(subtitle_set, "start_display_time", 0) or 0),
            end_display_ms=int(getattr(subtitle_set, "end_display_time", 0) or 0),
        )
        return True, event

    def close(self) -> None:
        """디코더 컨텍스트 참조를 해제합니다. 여러 번 호출해도 안전합니다."""
        if self._closed:
            return
        self._closed = True
        context, self._context = self._context, None
        close = getattr(context, "close", None)
        if callable(close):
            close()
        logger.debug(f"PyAV 코덱 세션 종료: codec={self._track.codec_name}")

    # =========================================================================
    # 내부 메서드
    # =========================================================================

    def _decode_set(self, av_packet: Any) -> Optional[Any]:
        """버전에 맞는 디코드 API를 호출하여 SubtitleSet 하나(또는 None)를 얻습니다."""
        decode2 = getattr(self._context, "decode2", None)
        if callable(decode2):
            return decode2(av_packet)

        subtitle_sets = self._context.decode(av_packet)
        if not subtitle_sets:
            return None
        if len(subtitle_sets) > 1:
            logger.debug(f"패킷 하나에서 SubtitleSet {len(subtitle_sets)}개, 첫 번째만 사용")
        return subtitle_sets[0]


# =============================================================================
# 헬퍼 함수
# =============================================================================

def _convert_rect(rect: Any) -> Optional[SubtitleRect]:
    """
    PyAV 자막 사각형을 SubtitleRect로 변환합니다.

    파라미터:
        rect: av.subtitles.subtitle.BitmapSubtitle / TextSubtitle / AssSubtitle

    반환값:
        Optional[SubtitleRect]: 지원하지 않는 종류면 None
    """
    kind = type(rect).__name__

    if kind == "BitmapSubtitle":
        return _convert_bitmap(rect)

    if kind == "AssSubtitle":
        raw = getattr(rect, "ass", None) or getattr(rect, "dialogue", None) or b""
        return SubtitleRect(RectType.ASS, text=_to_text(raw))

    if kind == "TextSubtitle":
        return SubtitleRect(RectType.TEXT, text=_to_text(getattr(rect, "text", b"")))

    logger.debug(f"지원하지 않는 자막 사각형 종류 무시: {kind}")
    return None


def _convert_bitmap(rect: Any) -> SubtitleRect:
    """비트맵 사각형의 인덱스 평면(plane 0)과 팔레트(plane 1)를 복사합니다."""
    width = int(getattr(rect, "width", 0) or 0)
    height = int(getattr(rect, "height", 0) or 0)

    planes = list(getattr(rect, "planes", None) or ())
    pixels = bytes(planes[0]) if len(planes) > 0 else None
    palette = bytes(planes[1]) if len(planes) > 1 else None

    # PyAV는 linesize를 노출하지 않으므로 평면 크기로부터 계산
    linesize = width
    if pixels and height > 0:
        linesize = max(width, len(pixels) // height)

    return SubtitleRect(
        RectType.BITMAP,
        x=int(getattr(rect, "x", 0) or 0),
        y=int(getattr(rect, "y", 0) or 0),
        width=width,
        height=height,
        pixels=pixels,
        linesize=linesize,
        palette=palette,
    )


def _to_text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value or "")
