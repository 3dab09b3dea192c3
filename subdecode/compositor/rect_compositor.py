"""
비트맵 사각형 합성 모듈입니다.

역할:
- 디코드 이벤트 하나에 포함된 비트맵 사각형들을 RGBA 이미지로 변환 (PaletteConverter)
- 사각형이 하나면 변환 이미지를 그대로 사용하고 원점은 사각형의 (x, y)
- 여러 개면 하나의 가상 캔버스(0, 0 기준)에 각자의 위치로 알파 합성하고 원점은 (0, 0)
- 합성 이미지를 투명도를 보존하는 포맷(TIFF/PNG/WebP)으로 인코딩 (ImageEncoder)

사용 예시:
    >>> compositor = RectCompositor()
    >>> origin, image = compositor.compose(event.rects)
    >>> encoder = ImageEncoder(config.image)
    >>> data = encoder.encode(image)
"""

from __future__ import annotations

import io
import logging
from typing import Iterable, Optional

from PIL import Image

from subdecode.codec import SubtitleRect
from subdecode.compositor import Placement
from subdecode.compositor.palette import PaletteConverter
from subdecode.config.schema import ImageConfig

logger = logging.getLogger(__name__)

# 설정 포맷 이름 → Pillow 포맷 이름
_PIL_FORMATS = {"tiff": "TIFF", "png": "PNG", "webp": "WEBP"}


class RectCompositor:
    """
    디코드 이벤트 하나의 비트맵 사각형 집합을 단일 이미지로 합성하는 클래스입니다.

    좌표는 모두 이벤트 자체의 좌표계(하나의 가상 캔버스) 기준이며
    사각형끼리의 상대 좌표가 아닙니다.
    """

    def __init__(self, converter: Optional[PaletteConverter] = None) -> None:
        """
        파라미터:
            converter: 팔레트 변환기 (None이면 새로 생성)
        """
        self._converter = converter or PaletteConverter()

    @property
    def converter(self) -> PaletteConverter:
        return self._converter

    def compose(
        self, rects: Iterable[SubtitleRect]
    ) -> tuple[Optional[tuple[int, int]], Optional[Image.Image]]:
        """
        비트맵 사각형들을 하나의 RGBA 이미지로 합성합니다.

        파라미터:
            rects: 디코드 이벤트의 사각형 목록 (비트맵이 아닌 사각형은 무시)

        반환값:
            tuple: (원점, 이미지). 유효한 비트맵이 없으면 (None, None)
        """
        placements: list[Placement] = []
        for rect in rects:
            if not rect.is_bitmap:
                continue
            image = self._converter.convert(rect)
            if image is None:
                continue
            placements.append(Placement(rect.x, rect.y, image))

        if not placements:
            return None, None

        if len(placements) == 1:
            placement = placements[0]
            return (placement.x, placement.y), placement.image

        return (0, 0), self._layer(placements)

    def shutdown(self) -> None:
        """변환기의 스크래치 버퍼를 해제합니다."""
        self._converter.shutdown()

    def _layer(self, placements: list[Placement]) -> Image.Image:
        """
        여러 이미지를 각자의 위치에 알파 합성합니다.

        캔버스는 (0, 0)부터 모든 사각형을 포함하는 최소 크기입니다.
        음수 좌표는 캔버스 밖으로 잘립니다.
        """
        canvas_width = max(p.x + p.image.width for p in placements)
        canvas_height = max(p.y + p.image.height for p in placements)
        canvas = Image.new("RGBA", (max(1, canvas_width), max(1, canvas_height)), (0, 0, 0, 0))

        for placement in placements:
            layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
            layer.paste(placement.image, (placement.x, placement.y))
            canvas = Image.alpha_composite(canvas, layer)

        logger.debug(
            f"비트맵 {len(placements)}개 합성: canvas={canvas.width}x{canvas.height}"
        )
        return canvas


class ImageEncoder:
    """
    합성 이미지를 투명도를 보존하는 포맷으로 인코딩하는 클래스입니다.

    표시 측에서 프레임마다 빠르게 디코드할 수 있도록 기본 포맷은 TIFF입니다.
    알파 채널이 없는 포맷(JPEG)은 설정 검증 단계에서 거부됩니다.
    """

    def __init__(self, config: Optional[ImageConfig] = None) -> None:
        self._config = config or ImageConfig()

    @property
    def format(self) -> str:
        return self._config.format

    def encode(self, image: Image.Image) -> bytes:
        """
        RGBA 이미지를 설정된 포맷의 바이트로 인코딩합니다.

        파라미터:
            image: 합성된 RGBA 이미지

        반환값:
            bytes: 인코딩된 이미지 데이터
        """
        if image.mode != "RGBA":
            image = image.convert("RGBA")

        pil_format = _PIL_FORMATS[self._config.format]
        save_kwargs: dict = {}
        if pil_format == "TIFF":
            save_kwargs["compression"] = self._config.tiff_compression
        elif pil_format == "WEBP":
            save_kwargs["quality"] = self._config.quality
        elif pil_format == "PNG":
            save_kwargs["compress_level"] = 1

        buffer = io.BytesIO()
        image.save(buffer, format=pil_format, **save_kwargs)
        return buffer.getvalue()

    @staticmethod
    def decode(data: bytes) -> Image.Image:
        """인코딩된 바이트를 RGBA 이미지로 되돌립니다 (픽셀 데이터까지 로드)."""
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            return image.convert("RGBA")
