"""
SubtitleExporter 단위 테스트

검증 항목:
- SRT 포맷 (번호, HH:MM:SS,mmm 타임코드, 텍스트)
- WebVTT 포맷 (헤더, HH:MM:SS.mmm 타임코드, 빈 줄 제거)
- 비트맵 전용 자막 제외
- PNG 이미지 저장
- 저장 실패 시 OSError 전파
"""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from subdecode.markup import StyledText
from subdecode.subtitle import SubtitlePart
from subdecode.subtitle.subtitle_exporter import (
    SubtitleExporter,
    _sec_to_srt_time,
    _sec_to_vtt_time,
)


# =============================================================================
# 테스트 헬퍼
# =============================================================================

def _text_part(part_id: int, start: float, end: float, text: str) -> SubtitlePart:
    return SubtitlePart(part_id=part_id, start=start, end=end, text=StyledText.from_plain(text))


def _image_part(part_id: int, start: float, end: float, origin=(10, 20)) -> SubtitlePart:
    image = Image.new("RGBA", (4, 2), (255, 0, 0, 255))
    return SubtitlePart(part_id=part_id, start=start, end=end, origin=origin, image=image)


# =============================================================================
# 시간 포맷 테스트
# =============================================================================

@pytest.mark.parametrize(
    ("seconds", "expected"),
    [
        (0.0, "00:00:00,000"),
        (1.5, "00:00:01,500"),
        (61.001, "00:01:01,001"),
        (3723.25, "01:02:03,250"),
        (-1.0, "00:00:00,000"),
    ],
)
def test_srt_time_format(seconds, expected):
    assert _sec_to_srt_time(seconds) == expected


def test_vtt_time_uses_dot_separator():
    assert _sec_to_vtt_time(3723.25) == "01:02:03.250"


# =============================================================================
# SRT / VTT 저장 테스트
# =============================================================================

def test_export_srt_format(tmp_path: Path):
    exporter = SubtitleExporter()
    parts = [_text_part(0, 1.0, 2.5, "첫 번째"), _text_part(1, 3.0, 4.0, "두 번째\n둘째 줄")]
    filepath = tmp_path / "out" / "track.srt"

    count = exporter.export_srt(parts, filepath)

    assert count == 2
    assert filepath.read_text(encoding="utf-8") == (
        "1\n00:00:01,000 --> 00:00:02,500\n첫 번째\n\n"
        "2\n00:00:03,000 --> 00:00:04,000\n두 번째\n둘째 줄\n\n"
    )


def test_export_srt_skips_image_only_parts(tmp_path: Path):
    exporter = SubtitleExporter()
    parts = [_image_part(0, 0.0, 1.0), _text_part(1, 1.0, 2.0, "텍스트")]
    filepath = tmp_path / "track.srt"

    count = exporter.export_srt(parts, filepath)

    assert count == 1
    assert filepath.read_text(encoding="utf-8").startswith("1\n00:00:01,000")


def test_export_vtt_format(tmp_path: Path):
    exporter = SubtitleExporter()
    parts = [_text_part(0, 1.0, 2.0, "위\n\n아래")]
    filepath = tmp_path / "track.vtt"

    exporter.export_vtt(parts, filepath)

    assert filepath.read_text(encoding="utf-8") == (
        "WEBVTT\n\n00:00:01.000 --> 00:00:02.000\n위\n아래\n\n"
    )


def test_export_vtt_empty_writes_header_only(tmp_path: Path):
    filepath = tmp_path / "empty.vtt"

    assert SubtitleExporter().export_vtt([], filepath) == 0
    assert filepath.read_text(encoding="utf-8") == "WEBVTT\n\n"


def test_export_srt_raises_on_os_error(tmp_path: Path):
    """디렉터리 경로에 파일을 쓰려 하면 OSError가 전파됩니다."""
    target = tmp_path / "is_a_directory.srt"
    target.mkdir()

    with pytest.raises(OSError):
        SubtitleExporter().export_srt([_text_part(0, 0.0, 1.0, "x")], target)


# =============================================================================
# 이미지 저장 테스트
# =============================================================================

def test_export_images_writes_png_per_bitmap_part(tmp_path: Path):
    exporter = SubtitleExporter()
    parts = [
        _image_part(3, 1.25, 2.5, origin=(10, 20)),
        _text_part(4, 3.0, 4.0, "텍스트"),
        _image_part(5, 5.0, 6.0, origin=None),
    ]

    written = exporter.export_images(parts, tmp_path / "images")

    assert [p.name for p in written] == ["00003_1250-2500_10x20.png", "00005_5000-6000_0x0.png"]
    with Image.open(written[0]) as image:
        assert image.size == (4, 2)
        assert image.mode == "RGBA"
