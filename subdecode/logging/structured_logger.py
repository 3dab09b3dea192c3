"""
subdecode 로그 설정 모듈입니다.

출력:
- 콘솔 (stderr)
- log_dir/subdecode.log (10MB 단위 순환, 5개 보존)

포맷:
- json: python-json-logger 한 줄 JSON, session_id / module / level 필드 포함
- text: "시각 [세션ID 앞 8자리] 레벨 로거: 메시지"

디코더 로그는 StructuredLogger.for_track()으로 트랙 인덱스를 덧붙입니다.

사용 예시:
    >>> setup_logging(config)
    >>> log = StructuredLogger.for_track("subdecode.subtitle.subtitle_decoder", 2)
    >>> log.info("코덱 세션 생성")
"""

from __future__ import annotations

import logging
import logging.handlers
import uuid
from pathlib import Path
from typing import Optional

from pythonjsonlogger import jsonlogger

from subdecode.config.schema import AppConfig

LOG_FILENAME = "subdecode.log"
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

# FFmpeg 내부 로그는 PyAV가 이 이름의 로거로 전달
_FFMPEG_LOGGER = "libav"

_SESSION_ID: str = ""


def setup_logging(config: AppConfig, session_id: Optional[str] = None) -> None:
    """
    root 로거에 콘솔/파일 핸들러를 설치합니다. 다시 호출하면 기존 핸들러를 교체합니다.

    파라미터:
        config: AppConfig (system.log_level / log_format / log_dir / session_id 사용)
        session_id: 세션 식별자. 없으면 config.system.session_id, 그것도 없으면 UUID4
    """
    global _SESSION_ID
    _SESSION_ID = session_id or config.system.session_id or str(uuid.uuid4())

    system_cfg = config.system
    level = logging.getLevelName(system_cfg.log_level)
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    root.setLevel(level)

    formatter = _make_formatter(system_cfg.log_format, _SESSION_ID)
    for handler in _build_handlers(Path(system_cfg.log_dir)):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    logging.getLogger(_FFMPEG_LOGGER).setLevel(max(level, logging.WARNING))

    logging.getLogger(__name__).info(
        f"로깅 초기화: level={system_cfg.log_level}, format={system_cfg.log_format}, "
        f"dir={system_cfg.log_dir}, session={_SESSION_ID}"
    )


def _build_handlers(log_dir: Path) -> list[logging.Handler]:
    """콘솔 핸들러와 순환 파일 핸들러를 만듭니다. 로그 디렉터리를 만들 수 없으면 콘솔만."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                filename=log_dir / LOG_FILENAME,
                maxBytes=LOG_MAX_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
        )
    except OSError as exc:
        logging.getLogger(__name__).warning(f"로그 파일을 열 수 없어 콘솔만 사용합니다: {log_dir}, {exc}")
    return handlers


def _make_formatter(log_format: str, session_id: str) -> logging.Formatter:
    if log_format == "json":
        return _JsonFormatter(session_id=session_id)
    return _TextFormatter(session_id=session_id)


class _JsonFormatter(jsonlogger.JsonFormatter):
    """레코드마다 session_id, module(로거 이름), level을 추가하는 JSON 포맷터입니다."""

    def __init__(self, session_id: str = "") -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
        self._session_id = session_id

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record.update(
            session_id=self._session_id,
            module=record.name,
            level=record.levelname,
        )


class _TextFormatter(logging.Formatter):
    """세션 ID 앞 8자리를 붙이는 사람용 포맷터입니다."""

    def __init__(self, session_id: str = "") -> None:
        prefix = session_id[:8] or "no-sid"
        super().__init__(
            fmt=f"%(asctime)s [{prefix}] %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


class StructuredLogger:
    """모듈 로거 / 트랙 로거 팩토리입니다."""

    @staticmethod
    def get(name: str) -> logging.Logger:
        return logging.getLogger(name)

    @staticmethod
    def for_track(name: str, track_index: int) -> "TrackLoggerAdapter":
        """
        자막 트랙 인덱스를 모든 레코드에 덧붙이는 로거 어댑터를 반환합니다.

        JSON 포맷에서는 track_index 필드로, 메시지에는 "[track N]" 접두어로 남습니다.
        """
        return TrackLoggerAdapter(logging.getLogger(name), track_index)

    @staticmethod
    def get_session_id() -> str:
        return _SESSION_ID


class TrackLoggerAdapter(logging.LoggerAdapter):
    """트랙 단위 디코더 로그용 어댑터입니다. 호출자가 넘긴 extra는 유지합니다."""

    def __init__(self, logger: logging.Logger, track_index: int) -> None:
        super().__init__(logger, {"track_index": track_index})

    @property
    def track_index(self) -> int:
        return self.extra["track_index"]

    def process(self, msg, kwargs):
        kwargs["extra"] = {"track_index": self.track_index, **(kwargs.get("extra") or {})}
        return f"[track {self.track_index}] {msg}", kwargs
