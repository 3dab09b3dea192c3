"""
ASS 마크업 자막 파서 모듈입니다.

역할:
- 디코더가 돌려준 ASS 이벤트 라인에서 텍스트 필드와 스타일 이름 추출 (pysubs2)
- 트랙 헤더([V4+ Styles])의 스타일 정의 로드 (pysubs2)
- {...} 블록의 오버라이드 태그를 스타일 속성으로 변환
  - \\b, \\i, \\u, \\s, \\r, \\p: pysubs2 parse_tags
  - \\pos, \\move, \\an, \\a, \\c, \\alpha, \\fn, \\fs, \\r: 태그 패턴 테이블
- \\N, \\n, \\h 이스케이프 처리
- 드로잉 모드(\\p1 ~ \\p0) 구간의 텍스트 제거
- 알 수 없는 태그나 깨진 태그는 건너뛰고 나머지 라인은 계속 처리

사용 예시:
    >>> parser = AssParser()
    >>> styled = parser.parse(r"{\\b1}안녕{\\b0}하세요\\N반갑습니다")
    >>> styled.plain_text
    '안녕하세요\\n반갑습니다'
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Callable, Optional, Union

import pysubs2
from pysubs2.exceptions import Pysubs2Error
from pysubs2.formats.substation import parse_tags, rgba_to_color

from subdecode.markup import StyledText, TextRun, TextStyle

logger = logging.getLogger(__name__)

# 이벤트 라인 하나를 pysubs2로 읽기 위한 최소 헤더
_EVENT_HEADER = (
    "[Script Info]\n"
    "ScriptType: v4.00+\n"
    "\n"
    "[Events]\n"
    "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text\n"
)

# \alpha 만 있고 색상이 정해지지 않았을 때의 기준 색 (ASS 기본 흰색)
_DEFAULT_COLOR = pysubs2.Color(255, 255, 255, 0)


class AssTagPatterns:
    """
    pysubs2가 스타일로 다루지 않는 오버라이드 태그의 정규식 테이블입니다.

    컴파일 비용을 줄이기 위해 디코더 인스턴스당 한 번 생성하여
    모든 라인 파싱에 재사용합니다. 테이블 순서대로 fullmatch를 시도하며
    어느 항목에도 맞지 않는 태그는 무시됩니다.
    """

    def __init__(self) -> None:
        # 블록 내부의 태그 하나: \name 또는 \name(args)
        self.tag = re.compile(r"\\([^\\(]*)(\([^)]*\)?)?")

        number = r"(-?\d+(?:\.\d+)?)"
        self.table: list[tuple[str, re.Pattern]] = [
            ("pos", re.compile(rf"pos\(\s*{number}\s*,\s*{number}\s*\)")),
            ("move", re.compile(rf"move\(\s*{number}\s*,\s*{number}\s*,.*\)")),
            ("alignment", re.compile(r"an([1-9])")),
            ("legacy_alignment", re.compile(r"a(\d+)")),
            ("color", re.compile(r"1?c(?:&H([0-9A-Fa-f]{1,8})&?)?")),
            ("alpha", re.compile(r"(?:alpha|1a)(?:&H([0-9A-Fa-f]{1,2})&?)?")),
            ("font_name", re.compile(r"fn(.*)")),
            ("font_size", re.compile(r"fs(\d+(?:\.\d+)?)")),
            ("reset", re.compile(r"r(.*)")),
            # parse_tags가 처리하는 글꼴 효과/드로잉 태그
            ("flags", re.compile(r"[ibusp]\d*")),
        ]


class _ParseState:
    """라인 하나를 파싱하는 동안의 가변 상태입니다."""

    def __init__(self, base_style: TextStyle) -> None:
        self.base_style = base_style
        self.style = base_style
        self.runs: list[TextRun] = []

    def emit(self, text: str, style: TextStyle) -> None:
        if not text:
            return
        if self.runs and self.runs[-1].style == style:
            last = self.runs.pop()
            self.runs.append(TextRun(last.text + text, style))
        else:
            self.runs.append(TextRun(text, style))


class AssParser:
    """
    ASS 이벤트 라인 한 줄을 StyledText로 변환하는 관대한 파서입니다.

    파싱 실패로 라인 전체를 버리지 않습니다:
    - 알 수 없는 태그, 인자가 깨진 태그 → 해당 태그만 무시
    - 닫히지 않은 '{' → 그 이후를 버리고 앞부분 텍스트는 유지
    """

    def __init__(
        self,
        patterns: Optional[AssTagPatterns] = None,
        base_style: Optional[TextStyle] = None,
        soft_break_as_newline: bool = False,
        styles: Optional[dict[str, pysubs2.SSAStyle]] = None,
    ) -> None:
        """
        파라미터:
            patterns: 공유할 태그 패턴 테이블 (None이면 새로 생성)
            base_style: 태그가 없고 스타일 정의도 없을 때의 기본 스타일
            soft_break_as_newline: True면 \\n 을 줄바꿈으로, False면 공백으로 처리
            styles: 트랙 헤더의 스타일 정의 (load_styles() 결과)
        """
        self._patterns = patterns or AssTagPatterns()
        self._base_style = base_style or TextStyle()
        self._soft_break_as_newline = soft_break_as_newline
        self._styles: dict[str, pysubs2.SSAStyle] = dict(styles or {})

        self._handlers: dict[str, Callable[[_ParseState, re.Match], None]] = {
            "pos": self._apply_pos,
            "move": self._apply_pos,
            "alignment": self._apply_alignment,
            "legacy_alignment": self._apply_legacy_alignment,
            "color": self._apply_color,
            "alpha": self._apply_alpha,
            "font_name": self._apply_font_name,
            "font_size": self._apply_font_size,
            "reset": self._apply_reset,
            "flags": lambda state, match: None,
        }

    @property
    def patterns(self) -> AssTagPatterns:
        return self._patterns

    @property
    def styles(self) -> dict[str, pysubs2.SSAStyle]:
        return self._styles

    # =========================================================================
    # 공개 인터페이스
    # =========================================================================

    def parse(self, line: str) -> Optional[StyledText]:
        """
        ASS 이벤트 라인을 파싱합니다.

        처리 순서:
        1. 이벤트 필드에서 스타일 이름과 텍스트 추출
        2. 닫히지 않은 '{' 이후 제거
        3. parse_tags로 블록 사이 조각과 글꼴 효과(b/i/u/s/p) 계산
        4. 각 조각 앞 블록의 나머지 태그를 테이블로 적용
        5. 드로잉 조각을 제외하고 이스케이프를 풀어 구간 생성

        파라미터:
            line: "Dialogue: ..." 라인, 디코더 형식
                  (ReadOrder,Layer,Style,Name,MarginL,MarginR,MarginV,Effect,Text)
                  또는 텍스트 필드만 있는 문자열

        반환값:
            Optional[StyledText]: 추출 가능한 텍스트가 없으면 None (예: 드로잉 전용 라인)
        """
        if not line:
            return None

        style_name, text = split_event_fields(line)
        text = self._drop_unterminated_block(text)

        base_style, line_style = self._line_styles(style_name)
        state = _ParseState(base_style)

        blocks = pysubs2.SSAEvent.OVERRIDE_SEQUENCE.findall(text)
        for index, (fragment, ssa_style) in enumerate(parse_tags(text, line_style, self._styles)):
            if index > 0:
                self._apply_block(state, blocks[index - 1][1:-1])
            if ssa_style.drawing:
                continue
            style = replace(
                state.style,
                bold=bool(ssa_style.bold),
                italic=bool(ssa_style.italic),
                underline=bool(ssa_style.underline),
                strikeout=bool(ssa_style.strikeout),
            )
            state.emit(self._unescape(fragment), style)

        styled = StyledText(tuple(state.runs))
        if not styled.plain_text.strip():
            return None
        return styled

    # =========================================================================
    # 내부 메서드
    # =========================================================================

    def _line_styles(self, style_name: str) -> tuple[TextStyle, pysubs2.SSAStyle]:
        """라인의 기준 TextStyle과 parse_tags에 넘길 SSAStyle을 결정합니다."""
        known = self._styles.get(style_name) if style_name else None
        if known is not None:
            return _text_style_from_ssa(style_name, known), known

        base_style = self._base_style
        if style_name:
            base_style = replace(base_style, style_name=style_name)
        line_style = pysubs2.SSAStyle(
            bold=base_style.bold,
            italic=base_style.italic,
            underline=base_style.underline,
            strikeout=base_style.strikeout,
        )
        return base_style, line_style

    @staticmethod
    def _drop_unterminated_block(text: str) -> str:
        brace = text.rfind("{")
        if brace >= 0 and text.find("}", brace) < 0:
            logger.debug(f"닫히지 않은 태그 블록, 라인 나머지 무시: {text[brace:brace + 30]!r}")
            return text[:brace]
        return text

    def _unescape(self, text: str) -> str:
        if "\\" not in text:
            return text
        if not self._soft_break_as_newline:
            text = text.replace(r"\n", " ")
        return pysubs2.SSAEvent(text=text).plaintext

    def _apply_block(self, state: _ParseState, block: str) -> None:
        """블록 하나의 태그를 순서대로 적용합니다. 블록 내 주석 텍스트는 무시됩니다."""
        for match in self._patterns.tag.finditer(block):
            token = (match.group(1) + (match.group(2) or "")).strip()
            if not token:
                continue

            for name, pattern in self._patterns.table:
                tag_match = pattern.fullmatch(token)
                if tag_match is None:
                    continue
                try:
                    self._handlers[name](state, tag_match)
                except ValueError:
                    logger.debug(f"태그 인자 해석 실패, 무시: \\{token}")
                break
            else:
                logger.debug(f"지원하지 않는 태그 무시: \\{token}")

    def _apply_pos(self, state: _ParseState, match: re.Match) -> None:
        position = (float(match.group(1)), float(match.group(2)))
        state.style = replace(state.style, position=position)

    def _apply_alignment(self, state: _ParseState, match: re.Match) -> None:
        state.style = replace(state.style, alignment=int(match.group(1)))

    def _apply_legacy_alignment(self, state: _ParseState, match: re.Match) -> None:
        # 알 수 없는 레거시 값은 ValueError
        alignment = pysubs2.Alignment.from_ssa_alignment(int(match.group(1)))
        state.style = replace(state.style, alignment=int(alignment))

    def _apply_color(self, state: _ParseState, match: re.Match) -> None:
        value = match.group(1)
        if value is None:
            state.style = replace(state.style, color=state.base_style.color)
            return
        parsed = rgba_to_color("&H" + value)
        current = state.style.color
        alpha = current.a if current is not None else 0
        state.style = replace(state.style, color=pysubs2.Color(parsed.r, parsed.g, parsed.b, alpha))

    def _apply_alpha(self, state: _ParseState, match: re.Match) -> None:
        value = match.group(1)
        current = state.style.color or _DEFAULT_COLOR
        alpha = 0 if value is None else int(value, 16)
        state.style = replace(state.style, color=pysubs2.Color(current.r, current.g, current.b, alpha))

    def _apply_font_name(self, state: _ParseState, match: re.Match) -> None:
        name = match.group(1).strip()
        state.style = replace(state.style, font_name=name or state.base_style.font_name)

    def _apply_font_size(self, state: _ParseState, match: re.Match) -> None:
        state.style = replace(state.style, font_size=float(match.group(1)))

    def _apply_reset(self, state: _ParseState, match: re.Match) -> None:
        style_name = match.group(1).strip()
        if not style_name:
            state.style = state.base_style
            return
        # 헤더에 없는 스타일 이름은 무시 (parse_tags와 동일)
        named = self._styles.get(style_name)
        if named is not None:
            state.style = _text_style_from_ssa(style_name, named)


# =============================================================================
# 이벤트 필드 / 스타일 헤더
# =============================================================================

def split_event_fields(line: str) -> tuple[str, str]:
    """
    ASS 이벤트 라인에서 (스타일 이름, 텍스트 필드)를 분리합니다.

    지원 형식:
    - "Dialogue: Layer,Start,End,Style,Name,MarginL,MarginR,MarginV,Effect,Text"
    - "ReadOrder,Layer,Style,Name,MarginL,MarginR,MarginV,Effect,Text" (디코더 출력)
    - 그 외: 라인 전체를 텍스트로 취급

    두 이벤트 형식 모두 Dialogue 라인으로 맞춘 뒤 pysubs2로 읽습니다.
    """
    line = line.rstrip("\r\n")

    if line.startswith("Dialogue:"):
        dialogue = line
    else:
        fields = line.split(",", 2)
        if not (
            len(fields) == 3
            and fields[0].strip().isdigit()
            and fields[1].strip().lstrip("-").isdigit()
            and len(fields[2].split(",", 6)) == 7
        ):
            return "", line
        dialogue = f"Dialogue: {fields[1].strip()},0:00:00.00,0:00:00.00,{fields[2]}"

    try:
        subs = pysubs2.SSAFile.from_string(_EVENT_HEADER + dialogue + "\n", format_="ass")
    except (Pysubs2Error, ValueError, IndexError) as exc:
        logger.debug(f"이벤트 필드 해석 실패, 라인 전체를 텍스트로 사용: {exc}")
        return "", line

    if not subs.events:
        return "", line
    event = subs.events[0]
    return event.style.strip(), event.text


def load_styles(header: Union[bytes, str, None]) -> dict[str, pysubs2.SSAStyle]:
    """
    트랙 헤더(코덱 extradata)에서 ASS 스타일 정의를 읽습니다.

    파라미터:
        header: ASS 스크립트 헤더 ([Script Info], [V4+ Styles] ...)

    반환값:
        dict[str, SSAStyle]: 스타일 이름 → 정의. ASS 헤더가 아니거나 읽을 수 없으면 빈 dict
    """
    if not header:
        return {}
    if isinstance(header, bytes):
        header = header.decode("utf-8", errors="replace")
    if "[Script Info]" not in header and "[V4" not in header:
        return {}

    try:
        subs = pysubs2.SSAFile.from_string(header, format_="ass")
    except (Pysubs2Error, ValueError) as exc:
        logger.warning(f"ASS 스타일 헤더를 읽을 수 없어 기본 스타일을 사용합니다: {exc}")
        return {}

    logger.debug(f"ASS 스타일 로드: {sorted(subs.styles.keys())}")
    return dict(subs.styles)


def _text_style_from_ssa(name: str, ssa_style: pysubs2.SSAStyle) -> TextStyle:
    """헤더 스타일 정의를 TextStyle로 변환합니다. 색상은 primarycolor."""
    return TextStyle(
        bold=bool(ssa_style.bold),
        italic=bool(ssa_style.italic),
        underline=bool(ssa_style.underline),
        strikeout=bool(ssa_style.strikeout),
        color=ssa_style.primarycolor,
        font_name=ssa_style.fontname,
        font_size=float(ssa_style.fontsize),
        alignment=int(ssa_style.alignment),
        style_name=name,
    )
