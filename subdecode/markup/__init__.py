"""
마크업 모듈 패키지

스타일 텍스트 공통 데이터 타입:
- TextStyle: 텍스트 구간 하나의 스타일 속성
- TextRun: (텍스트, 스타일) 구간
- StyledText: 구간의 불변 시퀀스
"""

from dataclasses import dataclass, field
from typing import Optional

import pysubs2


@dataclass(frozen=True)
class TextStyle:
    """
    오버라이드 태그로부터 결정되는 텍스트 스타일 속성입니다.

    필드:
        bold, italic, underline, strikeout: 글꼴 효과
        color: 주 색상 pysubs2.Color. 알파는 ASS 규칙 (0 = 불투명, 255 = 투명). None이면 기본값
        font_name: 글꼴 이름 (None이면 기본값)
        font_size: 글꼴 크기 (None이면 기본값)
        position: 절대 위치 (x, y). None이면 정렬 규칙을 따름
        alignment: 넘패드 정렬 (1~9). None이면 기본값
        style_name: 이벤트 스타일 이름
    """
    bold: bool = False
    italic: bool = False
    underline: bool = False
    strikeout: bool = False
    color: Optional[pysubs2.Color] = None
    font_name: Optional[str] = None
    font_size: Optional[float] = None
    position: Optional[tuple[float, float]] = None
    alignment: Optional[int] = None
    style_name: str = ""


@dataclass(frozen=True)
class TextRun:
    """같은 스타일을 공유하는 텍스트 구간입니다."""
    text: str
    style: TextStyle = TextStyle()


@dataclass(frozen=True)
class StyledText:
    """
    스타일 텍스트 구간의 불변 시퀀스입니다.

    병합 시 기존 객체를 변경하지 않고 joined()로 새 객체를 만듭니다.
    """
    runs: tuple[TextRun, ...] = field(default_factory=tuple)

    @classmethod
    def from_plain(cls, text: str, style: Optional[TextStyle] = None) -> "StyledText":
        """평문 텍스트 하나로 구성된 StyledText를 생성합니다."""
        return cls((TextRun(text, style or TextStyle()),))

    @property
    def plain_text(self) -> str:
        """스타일을 제거한 텍스트입니다."""
        return "".join(run.text for run in self.runs)

    def joined(self, other: "StyledText", separator: str = "\n") -> "StyledText":
        """separator를 사이에 두고 other를 이어 붙인 새 StyledText를 반환합니다."""
        runs = list(self.runs)
        if separator:
            last_style = runs[-1].style if runs else TextStyle()
            runs.append(TextRun(separator, last_style))
        runs.extend(other.runs)
        return StyledText(tuple(runs))

    def __add__(self, other: "StyledText") -> "StyledText":
        return self.joined(other, separator="")

    def __str__(self) -> str:
        return self.plain_text

    def __bool__(self) -> bool:
        return any(run.text for run in self.runs)
