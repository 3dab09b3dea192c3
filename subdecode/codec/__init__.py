"""
코덱 모듈 패키지

외부 코덱 디코더와의 경계에서 사용하는 공통 데이터 타입:
- RectType: 디코드된 사각형 종류 (텍스트 / 마크업 / 비트맵)
- SubtitleRect: 디코드된 자막 사각형 한 개
- DecodedEvent: 패킷 한 개의 디코드 결과 (사각형 목록 + 표시 오프셋)
- CodecSession: 코덱 세션 프로토콜
- CodecError / CodecInitError / CodecDecodeError: 코덱 에러 계층
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Hashable, Optional, Protocol

from subdecode.media import AssetTrack, Packet


class CodecError(Exception):
    """코덱 관련 에러의 기본 클래스입니다."""
    pass


class CodecInitError(CodecError):
    """코덱 세션 생성(컨텍스트 오픈) 실패 시 발생하는 에러입니다."""
    pass


class CodecDecodeError(CodecError):
    """패킷 디코드 중 코덱이 오류를 보고했을 때 발생하는 에러입니다."""
    pass


class RectType(str, Enum):
    """디코드된 사각형 종류입니다."""
    NONE = "none"
    BITMAP = "bitmap"
    TEXT = "text"
    ASS = "ass"


@dataclass
class SubtitleRect:
    """
    디코드된 자막 사각형 한 개입니다.

    필드:
        rect_type: 사각형 종류
        x, y: 캔버스 내 위치 (픽셀)
        width, height: 크기 (픽셀)
        text: 평문 또는 마크업 텍스트 (TEXT/ASS 전용)
        pixels: 8비트 팔레트 인덱스 버퍼 (BITMAP 전용)
        linesize: 행 간격(stride, 바이트). width보다 클 수 있음
        palette: 팔레트 (리틀엔디언 uint32 0xAARRGGBB 항목의 연속 바이트)
    """
    rect_type: RectType
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0
    text: Optional[str] = None
    pixels: Optional[bytes] = None
    linesize: int = 0
    palette: Optional[bytes] = None

    @property
    def is_bitmap(self) -> bool:
        return self.rect_type == RectType.BITMAP


@dataclass
class DecodedEvent:
    """
    외부 코덱 디코더가 채우는 패킷 단위 디코드 결과입니다.

    with 블록으로 사용하면 블록을 벗어날 때(조기 반환 포함) 항상
    release()가 호출됩니다. 호출 간에 보관하면 안 됩니다.

    필드:
        rects: 디코드된 사각형 목록
        start_display_ms: 패킷 타임스탬프 기준 표시 시작 오프셋 (ms)
        end_display_ms: 패킷 타임스탬프 기준 표시 종료 오프셋 (ms)
        token: 연속 이벤트 식별 토큰 (코덱이 제공하지 않으면 None)
        on_release: release() 시 한 번 호출되는 정리 콜백
    """
    rects: list[SubtitleRect] = field(default_factory=list)
    start_display_ms: int = 0
    end_display_ms: int = 0
    token: Optional[Hashable] = None
    on_release: Optional[Callable[[], None]] = None
    released: bool = field(default=False, init=False)

    @classmethod
    def empty(cls) -> "DecodedEvent":
        """'이벤트 없음' 결과용 빈 이벤트를 생성합니다."""
        return cls()

    def release(self) -> None:
        """사각형 버퍼를 해제하고 정리 콜백을 실행합니다. 여러 번 호출해도 안전합니다."""
        if self.released:
            return
        self.released = True
        self.rects = []
        if self.on_release is not None:
            callback, self.on_release = self.on_release, None
            callback()

    def __enter__(self) -> "DecodedEvent":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.release()


class CodecSession(Protocol):
    """
    트랙 하나에 대한 코덱 디코더 세션 프로토콜입니다.

    decode()는 (이벤트 생성 여부, 이벤트)를 반환하며 이벤트 소유권은
    호출자에게 넘어갑니다. 호출자가 반드시 release()해야 합니다.
    """

    def decode(self, packet: Packet) -> tuple[bool, DecodedEvent]:
        ...

    def close(self) -> None:
        ...


# 코덱 세션 팩토리: (트랙, 코덱 옵션) -> CodecSession
SessionFactory = Callable[[AssetTrack, dict], CodecSession]
