"""
비트맵 컴포지터 모듈 패키지

공통 데이터 타입:
- Placement: 가상 캔버스 위에 배치할 변환 이미지
"""

from dataclasses import dataclass

from PIL import Image


@dataclass
class Placement:
    """
    가상 캔버스 위의 이미지 배치 정보입니다.

    필드:
        x: 캔버스 내 가로 위치 (픽셀)
        y: 캔버스 내 세로 위치 (픽셀)
        image: RGBA 이미지
    """
    x: int
    y: int
    image: Image.Image
