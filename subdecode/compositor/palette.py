"""
팔레트 비트맵 변환 모듈입니다.

역할:
- 8비트 팔레트 인덱스 비트맵을 RGBA 이미지로 변환
- 행 간격(linesize)을 기준으로 행을 읽음 (패딩 때문에 width보다 클 수 있음)
- 팔레트 항목별 알파 값을 그대로 보존
- 팔레트 룩업 테이블(LUT)을 제한된 크기의 스크래치 캐시에 재사용

팔레트 형식:
    FFmpeg AVSubtitleRect.data[1]과 같은 리틀엔디언 uint32 0xAARRGGBB 항목 배열

사용 예시:
    >>> converter = PaletteConverter()
    >>> image = converter.convert(rect)   # PIL.Image (RGBA) 또는 None
    >>> converter.shutdown()
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Optional

import numpy as np
from PIL import Image

from subdecode.codec import SubtitleRect

logger = logging.getLogger(__name__)

# 8비트 인덱스가 가리킬 수 있는 최대 팔레트 항목 수
_MAX_PALETTE_ENTRIES = 256

# LUT 스크래치 캐시 최대 항목 수
_LUT_CACHE_SIZE = 16

class PaletteConverter:
    """
    팔레트 비트맵 사각형을 트루컬러 RGBA 이미지로 변환하는 클래스입니다.

    잘못된 사각형(크기 0, 버퍼 없음, stride < width, 버퍼 길이 부족)은
    None을 반환하여 호출자가 건너뛰도록 합니다. 예외를 던지지 않습니다.
    """

    def __init__(self) -> None:
        # 팔레트 바이트 → (256, 4) uint8 LUT
        self._lut_cache: OrderedDict[bytes, np.ndarray] = OrderedDict()
        self._converted_count: int = 0
        self._skipped_count: int = 0

    @property
    def converted_count(self) -> int:
        return self._converted_count

    @property
    def skipped_count(self) -> int:
        return self._skipped_count

    def convert(self, rect: SubtitleRect) -> Optional[Image.Image]:
        """
        팔레트 비트맵 사각형 하나를 RGBA 이미지로 변환합니다.

        파라미터:
            rect (SubtitleRect): BITMAP 종류의 사각형

        반환값:
            Optional[Image.Image]: RGBA 이미지. 변환할 수 없는 사각형이면 None
        """
        indices = self._index_plane(rect)
        if indices is None:
            self._skipped_count += 1
            return None

        lut = self._lookup_table(rect.palette)
        rgba = lut[indices]
        self._converted_count += 1
        return Image.fromarray(rgba)

    def shutdown(self) -> None:
        """스크래치 LUT 캐시를 비웁니다. 여러 번 호출해도 안전합니다."""
        if self._lut_cache:
            logger.debug(f"팔레트 LUT 캐시 해제: {len(self._lut_cache)}개")
        self._lut_cache.clear()

    # =========================================================================
    # 내부 메서드
    # =========================================================================

    def _index_plane(self, rect: SubtitleRect) -> Optional[np.ndarray]:
        """
        stride를 반영하여 (height, width) 인덱스 배열을 만듭니다.

        마지막 행은 패딩 없이 width 바이트만 있어도 허용합니다.
        """
        width, height = rect.width, rect.height
        if width <= 0 or height <= 0:
            logger.debug(f"크기 0 비트맵 사각형 건너뜀: {width}x{height}")
            return None
        if not rect.pixels or not rect.palette:
            logger.debug("픽셀 또는 팔레트 버퍼가 없는 비트맵 사각형 건너뜀")
            return None

        stride = rect.linesize or width
        if stride < width:
            logger.debug(f"linesize({stride})가 width({width})보다 작은 사각형 건너뜀")
            return None

        required = stride * (height - 1) + width
        buffer = np.frombuffer(rect.pixels, dtype=np.uint8)
        if buffer.size < required:
            logger.debug(
                f"픽셀 버퍼 길이 부족으로 사각형 건너뜀: "
                f"{buffer.size} < {required} ({width}x{height}, stride={stride})"
            )
            return None

        full_size = stride * height
        if buffer.size < full_size:
            padded = np.zeros(full_size, dtype=np.uint8)
            padded[:buffer.size] = buffer
            buffer = padded

        return buffer[:full_size].reshape(height, stride)[:, :width]

    def _lookup_table(self, palette: bytes) -> np.ndarray:
        """
        팔레트 바이트를 (256, 4) RGBA LUT로 변환합니다.

        팔레트에 없는 인덱스는 완전 투명(0, 0, 0, 0)으로 매핑됩니다.
        """
        cached = self._lut_cache.get(palette)
        if cached is not None:
            self._lut_cache.move_to_end(palette)
            return cached

        entry_count = min(len(palette) // 4, _MAX_PALETTE_ENTRIES)
        argb = np.frombuffer(palette, dtype="<u4", count=entry_count)

        lut = np.zeros((_MAX_PALETTE_ENTRIES, 4), dtype=np.uint8)
        lut[:entry_count, 0] = (argb >> 16) & 0xFF
        lut[:entry_count, 1] = (argb >> 8) & 0xFF
        lut[:entry_count, 2] = argb & 0xFF
        lut[:entry_count, 3] = (argb >> 24) & 0xFF

        self._lut_cache[palette] = lut
        if len(self._lut_cache) > _LUT_CACHE_SIZE:
            self._lut_cache.popitem(last=False)
        return lut
