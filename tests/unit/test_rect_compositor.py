"""
RectCompositor / ImageEncoder 단위 테스트

검증 항목:
- 비트맵 하나: 변환 이미지와 사각형 원점 그대로 사용
- 비트맵 여러 개: (0, 0) 기준 캔버스에 알파 합성
- 비트맵이 아닌 사각형, 잘못된 사각형 무시
- 설정 포맷별 인코딩과 디코드
"""

from __future__ import annotations

import pytest
from PIL import Image

from subdecode.codec import RectType, SubtitleRect
from subdecode.compositor.rect_compositor import ImageEncoder, RectCompositor
from subdecode.config.schema import ImageConfig

from palette_helpers import pack_palette


# =============================================================================
# 테스트 헬퍼
# =============================================================================

_PALETTE = pack_palette([
    (0, 0, 0, 0),
    (255, 0, 0, 255),
    (0, 0, 255, 128),
])


def _make_rect(x: int, y: int, width: int, height: int, index: int = 1) -> SubtitleRect:
    """단일 인덱스로 채운 비트맵 사각형을 생성합니다."""
    return SubtitleRect(
        RectType.BITMAP,
        x=x,
        y=y,
        width=width,
        height=height,
        pixels=bytes([index]) * (width * height),
        linesize=width,
        palette=_PALETTE,
    )


# =============================================================================
# 합성 테스트
# =============================================================================

def test_single_rect_keeps_its_origin():
    compositor = RectCompositor()

    origin, image = compositor.compose([_make_rect(5, 5, 10, 10)])

    assert origin == (5, 5)
    assert image.size == (10, 10)


def test_two_rects_are_layered_on_one_canvas():
    """(0,0)과 (20,0)의 10x10 사각형 → 30x10 캔버스, 원점 (0, 0)."""
    compositor = RectCompositor()

    origin, image = compositor.compose([_make_rect(0, 0, 10, 10), _make_rect(20, 0, 10, 10)])

    assert origin == (0, 0)
    assert image.size == (30, 10)
    assert image.getpixel((0, 0)) == (255, 0, 0, 255)
    assert image.getpixel((15, 5)) == (0, 0, 0, 0)
    assert image.getpixel((29, 9)) == (255, 0, 0, 255)


def test_canvas_spans_to_furthest_rect():
    compositor = RectCompositor()

    origin, image = compositor.compose([_make_rect(100, 50, 20, 10), _make_rect(10, 200, 40, 8)])

    assert origin == (0, 0)
    assert image.size == (120, 208)
    assert image.getpixel((0, 0))[3] == 0


def test_overlapping_rects_are_alpha_composited():
    compositor = RectCompositor()

    _, image = compositor.compose([_make_rect(0, 0, 4, 4, index=1), _make_rect(2, 2, 4, 4, index=2)])

    red, green, blue, alpha = image.getpixel((3, 3))
    assert alpha == 255
    assert 0 < red < 255
    assert 0 < blue < 255


def test_non_bitmap_and_degenerate_rects_are_ignored():
    compositor = RectCompositor()
    rects = [
        SubtitleRect(RectType.TEXT, text="텍스트"),
        _make_rect(0, 0, 0, 10),
        _make_rect(3, 4, 6, 2),
    ]

    origin, image = compositor.compose(rects)

    assert origin == (3, 4)
    assert image.size == (6, 2)


def test_no_bitmap_returns_none():
    compositor = RectCompositor()

    assert compositor.compose([]) == (None, None)
    assert compositor.compose([SubtitleRect(RectType.ASS, text="x")]) == (None, None)


def test_shutdown_clears_converter_cache():
    compositor = RectCompositor()
    compositor.compose([_make_rect(0, 0, 2, 2)])

    compositor.shutdown()
    compositor.shutdown()

    assert len(compositor.converter._lut_cache) == 0


# =============================================================================
# 인코딩 테스트
# =============================================================================

@pytest.mark.parametrize("image_format", ["tiff", "png"])
def test_lossless_formats_preserve_pixels(image_format):
    encoder = ImageEncoder(ImageConfig(format=image_format))
    image = Image.new("RGBA", (8, 4), (0, 0, 0, 0))
    image.putpixel((1, 1), (12, 34, 56, 200))

    decoded = ImageEncoder.decode(encoder.encode(image))

    assert decoded.mode == "RGBA"
    assert decoded.size == (8, 4)
    assert decoded.getpixel((1, 1)) == (12, 34, 56, 200)
    assert decoded.getpixel((0, 0))[3] == 0


def test_default_format_is_tiff():
    encoder = ImageEncoder()
    data = encoder.encode(Image.new("RGBA", (2, 2)))

    assert encoder.format == "tiff"
    assert data[:2] in (b"II", b"MM")


def test_webp_keeps_alpha_channel():
    encoder = ImageEncoder(ImageConfig(format="webp", quality=50))
    image = Image.new("RGBA", (16, 16), (255, 255, 255, 0))

    decoded = ImageEncoder.decode(encoder.encode(image))

    assert decoded.mode == "RGBA"
    assert decoded.getpixel((8, 8))[3] == 0


def test_non_rgba_image_is_converted_before_encoding():
    encoder = ImageEncoder(ImageConfig(format="png"))

    decoded = ImageEncoder.decode(encoder.encode(Image.new("RGB", (2, 2), (1, 2, 3))))

    assert decoded.getpixel((0, 0)) == (1, 2, 3, 255)
