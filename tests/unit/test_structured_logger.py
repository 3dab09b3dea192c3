"""
구조화 로깅 모듈 단위 테스트

검증 조건:
- JSON 포맷 로그에 session_id, level, module 필드 포함
- RotatingFileHandler로 subdecode.log 파일 생성
- text 포맷 정상 동작
- 트랙 로거 어댑터가 track_index 필드와 메시지 접두어를 추가
"""

from __future__ import annotations

import json
import logging
import logging.handlers
from io import StringIO

import pytest

from subdecode.config.schema import AppConfig
from subdecode.logging import StructuredLogger, TrackLoggerAdapter, setup_logging
from subdecode.logging.structured_logger import _JsonFormatter, _TextFormatter


# =========================================================================
# 픽스처
# =========================================================================

@pytest.fixture(autouse=True)
def reset_root_logger():
    """각 테스트 후 root logger 핸들러 초기화."""
    yield
    root = logging.getLogger()
    for h in root.handlers[:]:
        root.removeHandler(h)
        h.close()


def _make_config(tmp_path, log_format: str = "json", session_id: str = "test-session-001") -> AppConfig:
    return AppConfig(**{
        "system": {
            "log_level": "DEBUG",
            "log_format": log_format,
            "log_dir": str(tmp_path / "logs"),
            "session_id": session_id,
        },
    })


def _capture(formatter: logging.Formatter, name: str):
    """메모리 스트림 핸들러를 붙인 로거와 스트림을 반환합니다."""
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    logger = logging.getLogger(name)
    logger.handlers = [handler]
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger, stream


def _rotating_handler():
    return next(
        (h for h in logging.getLogger().handlers
         if isinstance(h, logging.handlers.RotatingFileHandler)),
        None,
    )


# =========================================================================
# setup_logging 테스트
# =========================================================================

class TestSetupLogging:
    def test_log_file_created(self, tmp_path):
        setup_logging(_make_config(tmp_path))
        log_file = tmp_path / "logs" / "subdecode.log"
        assert log_file.exists()
        assert log_file.read_text(encoding="utf-8")

    def test_session_id_argument_wins(self, tmp_path):
        setup_logging(_make_config(tmp_path), session_id="custom-sid")
        assert StructuredLogger.get_session_id() == "custom-sid"

    def test_session_id_from_config(self, tmp_path):
        setup_logging(_make_config(tmp_path))
        assert StructuredLogger.get_session_id() == "test-session-001"

    def test_session_id_auto_uuid_when_empty(self, tmp_path):
        setup_logging(_make_config(tmp_path, session_id=""))
        sid = StructuredLogger.get_session_id()
        assert len(sid) == 36
        assert sid.count("-") == 4

    def test_log_level_applied(self, tmp_path):
        config = _make_config(tmp_path)
        config.system.log_level = "WARNING"
        setup_logging(config)
        assert logging.getLogger().level == logging.WARNING

    def test_duplicate_setup_does_not_add_extra_handlers(self, tmp_path):
        config = _make_config(tmp_path)
        setup_logging(config)
        handler_count = len(logging.getLogger().handlers)
        setup_logging(config)
        assert len(logging.getLogger().handlers) == handler_count

    def test_rotating_handler_limits(self, tmp_path):
        setup_logging(_make_config(tmp_path))
        rotating = _rotating_handler()
        assert rotating is not None
        assert rotating.maxBytes == 10 * 1024 * 1024
        assert rotating.backupCount == 5

    def test_text_format_uses_text_formatter(self, tmp_path):
        setup_logging(_make_config(tmp_path, log_format="text"))
        formatters = {type(h.formatter) for h in logging.getLogger().handlers}
        assert formatters == {_TextFormatter}


# =========================================================================
# 포맷터 테스트
# =========================================================================

class TestFormatters:
    def test_json_contains_common_fields(self):
        logger, stream = _capture(_JsonFormatter(session_id="sid-1"), "subdecode.test.json")
        logger.info("메시지 확인")

        data = json.loads(stream.getvalue().strip())
        assert data["session_id"] == "sid-1"
        assert data["level"] == "INFO"
        assert data["module"] == "subdecode.test.json"
        assert data["message"] == "메시지 확인"

    def test_json_extra_fields_included(self):
        logger, stream = _capture(_JsonFormatter(session_id="sid"), "subdecode.test.extra")
        logger.info("추가 필드", extra={"part_id": 42})

        data = json.loads(stream.getvalue().strip())
        assert data["part_id"] == 42

    def test_text_format_includes_session_prefix_and_level(self):
        logger, stream = _capture(_TextFormatter(session_id="text-session-002"), "subdecode.test.text")
        logger.error("텍스트 로그 테스트")

        output = stream.getvalue()
        assert "[text-ses]" in output
        assert "ERROR" in output
        assert "텍스트 로그 테스트" in output


# =========================================================================
# StructuredLogger / TrackLoggerAdapter 테스트
# =========================================================================

class TestStructuredLogger:
    def test_get_returns_named_logger(self):
        logger = StructuredLogger.get("subdecode.subtitle")
        assert isinstance(logger, logging.Logger)
        assert logger is StructuredLogger.get("subdecode.subtitle")

    def test_for_track_returns_adapter(self):
        adapter = StructuredLogger.for_track("subdecode.subtitle", 3)
        assert isinstance(adapter, TrackLoggerAdapter)
        assert adapter.track_index == 3

    def test_track_adapter_adds_field_and_prefix(self):
        _, stream = _capture(_JsonFormatter(session_id="sid"), "subdecode.test.track")
        adapter = StructuredLogger.for_track("subdecode.test.track", 7)

        adapter.warning("디코드 오류")

        data = json.loads(stream.getvalue().strip())
        assert data["track_index"] == 7
        assert data["message"] == "[track 7] 디코드 오류"

    def test_track_adapter_keeps_caller_extra(self):
        _, stream = _capture(_JsonFormatter(session_id="sid"), "subdecode.test.track_extra")
        adapter = StructuredLogger.for_track("subdecode.test.track_extra", 1)

        adapter.info("프레임", extra={"part_id": 5})

        data = json.loads(stream.getvalue().strip())
        assert data["part_id"] == 5
        assert data["track_index"] == 1
