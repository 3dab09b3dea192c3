"""
자막 이벤트 디코더 모듈입니다.

역할:
- 자막 트랙 하나에 대한 코덱 세션을 열고 패킷을 디코드
- 디코드된 사각형을 분류하여 텍스트(평문/ASS 마크업)와 비트맵 이미지로 변환
- 트랙 타임베이스로 표시 구간(start, end)을 계산
- 여러 패킷에 걸친 연속 이벤트를 병합하고, 닫히지 않은 자막의 종료 시각을 보정
- 결과를 SubtitleFrame으로 콜백에 전달

스레드 모델:
- 인스턴스당 디코드 호출은 한 번에 하나 (전용 디코드 스레드에서만 호출)
- 내부 잠금 없음. 전달되는 SubtitlePart는 불변 스냅샷이므로 소비자와 경합하지 않음

사용 예시:
    >>> decoder = SubtitleDecoder(track, config, PyAVCodecSession.from_track)
    >>> decoder.decode_frame(packet, frames.append)
    >>> decoder.shutdown()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Hashable, Iterable, Optional

from PIL import Image

from subdecode.codec import (
    CodecDecodeError,
    CodecInitError,
    CodecSession,
    DecodedEvent,
    RectType,
    SessionFactory,
    SubtitleRect,
)
from subdecode.compositor.rect_compositor import ImageEncoder, RectCompositor
from subdecode.config.schema import AppConfig
from subdecode.logging.structured_logger import StructuredLogger
from subdecode.markup import StyledText, TextStyle
from subdecode.markup.ass_parser import AssParser, AssTagPatterns, load_styles
from subdecode.media import AssetTrack, Packet, Timebase
from subdecode.subtitle import DecoderStats, SubtitleFrame, SubtitlePart

logger = logging.getLogger(__name__)

# 프레임 전달 콜백: SubtitleFrame 하나를 인자로 받음
CompletionHandler = Callable[[SubtitleFrame], None]


@dataclass
class _RetainedPart:
    """직전에 전달한 자막과 그 연속 키, 원본 패킷 위치입니다."""
    part: SubtitlePart
    key: Hashable
    timebase: Timebase
    position: int


class SubtitleDecoder:
    """
    자막 트랙 하나의 패킷을 SubtitleFrame으로 변환하는 디코더 클래스입니다.

    병합 정책:
    - 연속 키(코덱 토큰, 없으면 후보 자막의 (start, end))가 직전 자막과 같으면
      새 자막을 만들지 않고 직전 자막 텍스트에 줄바꿈 + 새 텍스트를 붙여 갱신 스냅샷 전달
      (직전 자막에 텍스트가 없으면 아무것도 하지 않음)
    - 키가 다르고 직전 자막이 닫히지 않았으면(end == start) 종료 시각을
      새 자막의 시작 시각으로 보정한 갱신 스냅샷을 먼저 전달
    - 그 다음 새 자막을 전달하고 직전 자막으로 보관

    에러 처리:
    - 코덱 세션 생성 실패: 에러 로깅 후 비활성 상태 (decode_frame은 아무것도 하지 않음)
    - 코덱 디코드 오류, 예기치 않은 예외: 로깅 후 해당 패킷 건너뜀 (이벤트는 항상 해제)
    - 콜백 예외: 로깅 후 다음 프레임 계속 전달
    """

    def __init__(
        self,
        track: AssetTrack,
        config: AppConfig,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        """
        SubtitleDecoder를 초기화하고 코덱 세션을 엽니다.

        파라미터:
            track (AssetTrack): 디코드할 자막 트랙
            config (AppConfig): 전체 애플리케이션 설정 객체
            session_factory: (트랙, 코덱 옵션) → CodecSession 팩토리
        """
        self._track = track
        self._log = StructuredLogger.for_track(__name__, track.index)

        self._patterns = AssTagPatterns()
        self._parser = AssParser(
            patterns=self._patterns,
            base_style=TextStyle(style_name=config.markup.default_style),
            soft_break_as_newline=config.markup.soft_break_as_newline,
            styles=load_styles(track.extradata),
        )
        self._compositor = RectCompositor()
        self._encoder = ImageEncoder(config.image)

        self._previous: Optional[_RetainedPart] = None
        self._next_part_id: int = 0
        self._shut_down: bool = False

        self._events_decoded: int = 0
        self._frames_emitted: int = 0
        self._updates_emitted: int = 0
        self._decode_errors: int = 0

        self._session: Optional[CodecSession] = self._open_session(
            session_factory, dict(config.decoder.codec_options)
        )

    # =========================================================================
    # 공개 인터페이스
    # =========================================================================

    @property
    def track(self) -> AssetTrack:
        return self._track

    @property
    def is_active(self) -> bool:
        """코덱 세션이 열려 있고 shutdown 전인지 여부."""
        return self._session is not None

    @property
    def events_decoded(self) -> int:
        return self._events_decoded

    @property
    def frames_emitted(self) -> int:
        return self._frames_emitted

    def get_stats(self) -> DecoderStats:
        """현재 디코더 통계를 반환합니다."""
        return DecoderStats(
            is_active=self.is_active,
            events_decoded=self._events_decoded,
            frames_emitted=self._frames_emitted,
            updates_emitted=self._updates_emitted,
            decode_errors=self._decode_errors,
        )

    def decode_frame(self, packet: Packet, completion_handler: CompletionHandler) -> None:
        """
        패킷 하나를 디코드하여 0개 이상의 SubtitleFrame을 콜백으로 전달합니다.

        처리 순서:
        1. 코덱 세션으로 디코드 (이벤트가 없으면 종료)
        2. 사각형 분류 → 원점, 텍스트, 합성 이미지
        3. 표시 구간 계산
        4. 병합/보정 후 프레임 전달

        파라미터:
            packet (Packet): 디코드할 패킷 (호출 동안만 유효)
            completion_handler: SubtitleFrame을 받는 콜백
        """
        if self._session is None:
            return

        try:
            got_event, event = self._session.decode(packet)
        except CodecDecodeError as exc:
            self._decode_errors += 1
            self._log.debug(f"패킷 디코드 오류, 건너뜀: pts={packet.position}, {exc}")
            return
        except Exception as exc:
            self._decode_errors += 1
            self._log.error(f"패킷 디코드 중 예기치 않은 오류: pts={packet.position}, {exc}", exc_info=True)
            return

        with event:
            if not got_event:
                return
            self._events_decoded += 1
            try:
                frames = self._build_frames(packet, event)
            except Exception as exc:
                self._decode_errors += 1
                self._log.error(f"자막 프레임 생성 실패, 건너뜀: pts={packet.position}, {exc}", exc_info=True)
                return

        for frame in frames:
            self._deliver(frame, completion_handler)

    def flush(self) -> None:
        """보관 중인 직전 자막을 전달하지 않고 버립니다 (탐색 직후 등)."""
        if self._previous is not None:
            self._log.debug(f"직전 자막 폐기: part_id={self._previous.part.part_id}")
        self._previous = None

    def reset(self) -> None:
        """flush()와 같습니다."""
        self.flush()

    def shutdown(self) -> None:
        """
        코덱 세션을 닫고 스크래치 버퍼를 해제합니다.

        여러 번 호출해도 안전하며, 이후 decode_frame은 아무것도 하지 않습니다.
        """
        if self._shut_down:
            return
        self._shut_down = True
        self._previous = None
        self._compositor.shutdown()

        session, self._session = self._session, None
        if session is not None:
            try:
                session.close()
            except Exception as exc:
                self._log.warning(f"코덱 세션 종료 중 오류: {exc}")

        self._log.info(
            f"SubtitleDecoder 종료: events={self._events_decoded}, "
            f"frames={self._frames_emitted}, updates={self._updates_emitted}, "
            f"errors={self._decode_errors}"
        )

    # =========================================================================
    # 내부 메서드
    # =========================================================================

    def _open_session(
        self, session_factory: Optional[SessionFactory], options: dict
    ) -> Optional[CodecSession]:
        """코덱 세션을 생성합니다. 실패하면 None을 반환합니다."""
        track = self._track
        if session_factory is None:
            self._log.error("코덱 세션 팩토리가 없어 디코더를 비활성화합니다")
            return None

        try:
            session = session_factory(track, options)
        except CodecInitError as exc:
            self._log.error(f"코덱 세션 생성 실패: codec={track.codec_name}, {exc}")
            return None
        except Exception as exc:
            self._log.error(
                f"코덱 세션 생성 중 예기치 않은 오류: codec={track.codec_name}, {exc}",
                exc_info=True,
            )
            return None

        self._log.info(
            f"SubtitleDecoder 초기화: codec={track.codec_name}, "
            f"timebase={track.timebase.numerator}/{track.timebase.denominator}, "
            f"start_time={track.start_time:.3f}s, image_format={self._encoder.format}"
        )
        return session

    def _build_frames(self, packet: Packet, event: DecodedEvent) -> list[SubtitleFrame]:
        """디코드 이벤트 하나로부터 전달할 프레임 목록을 만듭니다."""
        origin, text, image = self._classify(event.rects)

        image_data: Optional[bytes] = None
        if image is not None:
            image, image_data = self._encode_image(image)

        timebase = packet.track.timebase
        start = timebase.to_seconds(packet.position) + event.start_display_ms / 1000.0
        # 결과가 음수가 되면 트랙 시작 시각을 빼지 않음
        if start >= self._track.start_time:
            start -= self._track.start_time

        duration = (event.end_display_ms - event.start_display_ms) / 1000.0
        if duration == 0:
            duration = timebase.to_seconds(packet.duration)
        end = start + duration

        key: Hashable = event.token if event.token is not None else (start, end)
        previous = self._previous
        frames: list[SubtitleFrame] = []

        if previous is not None and previous.key == key:
            # 텍스트가 없는 직전 자막(비트맵 전용)에는 이어 붙이지 않음
            if text is not None and previous.part.text is not None:
                previous.part = previous.part.with_text(previous.part.text.joined(text))
                frames.append(self._frame(previous, is_update=True))
            return frames

        if previous is not None and previous.part.is_open_ended:
            previous.part = previous.part.with_end(start)
            frames.append(self._frame(previous, is_update=True))

        part = SubtitlePart(
            part_id=self._next_part_id,
            start=start,
            end=end,
            text=text,
            origin=origin,
            image=image,
            image_data=image_data,
            image_format=self._encoder.format if image_data is not None else None,
        )
        self._next_part_id += 1
        self._previous = _RetainedPart(part, key, timebase, packet.position)
        frames.append(self._frame(self._previous, is_update=False))
        return frames

    def _classify(
        self, rects: Iterable[SubtitleRect]
    ) -> tuple[Optional[tuple[int, int]], Optional[StyledText], Optional[Image.Image]]:
        """
        사각형 목록을 (원점, 텍스트, 합성 이미지)로 분류합니다.

        원점은 첫 사각형의 (x, y)이며 (사각형이 없으면 (0, 0)),
        비트맵이 합성되면 합성 결과의 원점을 사용합니다.
        텍스트 사각형이 여러 개면 순서대로 이어 붙입니다.
        """
        rects = list(rects)
        origin: tuple[int, int] = (rects[0].x, rects[0].y) if rects else (0, 0)
        text: Optional[StyledText] = None

        for rect in rects:
            if not rect.text:
                continue
            if rect.rect_type == RectType.TEXT:
                piece: Optional[StyledText] = StyledText.from_plain(rect.text)
            elif rect.rect_type == RectType.ASS:
                piece = self._parser.parse(rect.text)
            else:
                continue
            if piece is None:
                continue
            text = piece if text is None else text + piece

        image_origin, image = self._compositor.compose(rects)
        if image is not None:
            origin = image_origin

        return origin, text, image

    def _encode_image(
        self, image: Image.Image
    ) -> tuple[Optional[Image.Image], Optional[bytes]]:
        """합성 이미지를 설정 포맷으로 인코딩하고 디코드된 이미지와 함께 반환합니다."""
        try:
            data = self._encoder.encode(image)
            return ImageEncoder.decode(data), data
        except (OSError, ValueError) as exc:
            self._log.warning(f"자막 이미지 인코딩 실패, 이미지 제외: {exc}")
            return None, None

    def _frame(self, retained: _RetainedPart, is_update: bool) -> SubtitleFrame:
        return SubtitleFrame(
            part=retained.part,
            timebase=retained.timebase,
            position=retained.position,
            is_update=is_update,
        )

    def _deliver(self, frame: SubtitleFrame, completion_handler: CompletionHandler) -> None:
        if frame.is_update:
            self._updates_emitted += 1
        else:
            self._frames_emitted += 1
        try:
            completion_handler(frame)
        except Exception as exc:
            self._log.error(
                f"자막 프레임 콜백 오류: part_id={frame.part.part_id}, {exc}",
                exc_info=True,
            )
