"""
로깅 패키지

- setup_logging: 프로세스 시작 시 한 번 호출
- StructuredLogger.get / for_track: 모듈 로거, 트랙 로거
"""

from subdecode.logging.structured_logger import StructuredLogger, TrackLoggerAdapter, setup_logging

__all__ = ["StructuredLogger", "TrackLoggerAdapter", "setup_logging"]
