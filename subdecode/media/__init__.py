"""
미디어 모듈 패키지

디먹서가 생성하고 디코더가 소비하는 공통 데이터 타입 정의:
- Timebase: 트랙 시간 단위 → 초 변환 계수
- AssetTrack: 자막 트랙 메타데이터
- Packet: 압축된 자막 패킷
"""

from dataclasses import dataclass
from fractions import Fraction
from typing import Optional


@dataclass(frozen=True)
class Timebase:
    """
    트랙 시간 단위를 초로 변환하는 유리수 계수입니다.

    필드:
        numerator: 분자 (예: 1)
        denominator: 분모 (예: 1000 → 1 단위 = 1ms)
    """
    numerator: int = 1
    denominator: int = 1000

    @classmethod
    def from_fraction(cls, value: Optional[Fraction]) -> "Timebase":
        """PyAV 스트림의 time_base(Fraction)로부터 생성합니다. None이면 1/1000."""
        if value is None:
            return cls()
        return cls(value.numerator, value.denominator)

    def to_seconds(self, units: Optional[int]) -> float:
        """트랙 시간 단위를 초로 변환합니다. 분모가 0이거나 값이 없으면 0.0."""
        if not units or self.denominator == 0:
            return 0.0
        return units * self.numerator / self.denominator


@dataclass(frozen=True)
class AssetTrack:
    """
    자막 트랙 메타데이터입니다.

    필드:
        index: 컨테이너 내 스트림 인덱스
        codec_name: FFmpeg 코덱 이름 (예: "ass", "subrip", "hdmv_pgs_subtitle")
        timebase: 트랙 타임베이스
        start_time: 트랙 시작 시각 (초)
        extradata: 코덱 private 데이터 (예: ASS 헤더)
        width: 자막 캔버스 가로 크기 (픽셀, 0이면 미상)
        height: 자막 캔버스 세로 크기 (픽셀, 0이면 미상)
        language: 언어 태그 (예: "kor")
    """
    index: int
    codec_name: str
    timebase: Timebase = Timebase()
    start_time: float = 0.0
    extradata: bytes = b""
    width: int = 0
    height: int = 0
    language: str = ""


@dataclass(frozen=True)
class Packet:
    """
    압축된 자막 패킷입니다. 디코드 호출 동안만 빌려 사용합니다.

    필드:
        data: 압축된 패킷 바이트
        position: 표시 타임스탬프 (트랙 시간 단위)
        duration: 지속 시간 (트랙 시간 단위)
        track: 소속 트랙
    """
    data: bytes
    position: int
    duration: int
    track: AssetTrack
