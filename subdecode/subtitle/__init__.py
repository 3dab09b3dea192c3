"""
자막 모듈 패키지

공통 데이터 타입:
- SubtitlePart: 표시 구간을 가진 렌더링 가능한 자막 내용 (불변 스냅샷)
- SubtitleFrame: SubtitlePart + 타임베이스/패킷 위치. 표시 계층에 전달되는 단위
"""

from dataclasses import dataclass, replace
from typing import Optional

from PIL import Image

from subdecode.markup import StyledText
from subdecode.media import Timebase


@dataclass(frozen=True)
class SubtitlePart:
    """
    렌더링 가능한 자막 내용의 불변 스냅샷입니다.

    같은 자막이 갱신(텍스트 추가, 종료 시각 보정)되면 같은 part_id에
    version을 올린 새 스냅샷이 만들어집니다. 소비자는 part_id별로
    가장 높은 version만 사용하면 됩니다.

    필드:
        part_id: 디코더 인스턴스 내에서 단조 증가하는 자막 식별자
        version: 0부터 시작, 갱신될 때마다 1 증가
        start: 표시 시작 시각 (초, 트랙 타임베이스 정규화)
        end: 표시 종료 시각 (초). start와 같으면 아직 닫히지 않은 자막
        text: 스타일 텍스트 (없으면 None)
        origin: 이미지/텍스트 원점 (x, y)
        image: 합성된 RGBA 이미지 (없으면 None)
        image_data: 인코딩된 이미지 바이트
        image_format: 인코딩 포맷 (tiff | png | webp)
    """
    part_id: int
    start: float
    end: float
    version: int = 0
    text: Optional[StyledText] = None
    origin: Optional[tuple[int, int]] = None
    image: Optional[Image.Image] = None
    image_data: Optional[bytes] = None
    image_format: Optional[str] = None

    @property
    def duration(self) -> float:
        return self.end - self.start

    @property
    def plain_text(self) -> str:
        return self.text.plain_text if self.text is not None else ""

    @property
    def is_open_ended(self) -> bool:
        """종료 시각이 아직 정해지지 않았는지 여부 (end == start)."""
        return self.end == self.start

    @property
    def has_content(self) -> bool:
        return self.text is not None or self.image is not None

    def with_text(self, text: StyledText) -> "SubtitlePart":
        """텍스트를 교체한 다음 버전의 스냅샷을 반환합니다."""
        return replace(self, text=text, version=self.version + 1)

    def with_end(self, end: float) -> "SubtitlePart":
        """종료 시각을 교체한 다음 버전의 스냅샷을 반환합니다."""
        return replace(self, end=end, version=self.version + 1)


@dataclass(frozen=True)
class SubtitleFrame:
    """
    표시 계층에 전달되는 자막 프레임입니다.

    필드:
        part: 자막 스냅샷
        timebase: 원본 트랙 타임베이스
        position: 원본 패킷 타임스탬프 (트랙 시간 단위)
        is_update: False면 새 자막, True면 이미 전달된 자막의 갱신 스냅샷
    """
    part: SubtitlePart
    timebase: Timebase
    position: int
    is_update: bool = False


@dataclass
class DecoderStats:
    """
    자막 디코더 통계입니다.

    필드:
        is_active: 코덱 세션이 살아 있는지 여부
        events_decoded: 코덱이 이벤트를 생성한 패킷 수
        frames_emitted: 새 자막 프레임 전달 수
        updates_emitted: 갱신 스냅샷 전달 수
        decode_errors: 코덱 디코드 오류 수
    """
    is_active: bool
    events_decoded: int
    frames_emitted: int
    updates_emitted: int
    decode_errors: int
