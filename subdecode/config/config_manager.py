"""
subdecode 설정 로더 모듈입니다.

설정 우선순위 (낮음 → 높음):
1. schema.py 기본값
2. YAML 설정 파일
3. SUBDEC_<SECTION>_<FIELD> 환경변수
4. 커맨드라인 인자 (main.py에서 적용)

사용 예시:
    >>> manager = ConfigManager()
    >>> config = manager.load("config.yaml")
    >>> manager.get("image.format")
    'tiff'
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from pydantic import BaseModel, ValidationError

from subdecode.config.schema import AppConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "SUBDEC_"

_MISSING = object()


class ConfigLoadError(Exception):
    """설정을 읽거나 해석하지 못했을 때 발생하는 에러입니다."""
    pass


class ConfigValidationError(ConfigLoadError):
    """읽은 설정이 AppConfig 스키마를 통과하지 못했을 때 발생하는 에러입니다."""
    pass


class ConfigFileNotFoundError(ConfigLoadError):
    """지정한 설정 파일 경로가 존재하지 않을 때 발생하는 에러입니다."""
    pass


class ConfigManager:
    """
    YAML 파일과 환경변수로부터 AppConfig를 만드는 클래스입니다.

    설정은 시작 시 한 번 로드하며 이후 읽기 전용으로 사용합니다.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        """
        파라미터:
            environ: 오버라이드를 읽을 환경변수 매핑 (기본: os.environ)
        """
        self._environ = environ
        self._config: Optional[AppConfig] = None
        self._source: Optional[Path] = None

    @property
    def config(self) -> Optional[AppConfig]:
        """마지막으로 로드한 설정 (로드 전에는 None)."""
        return self._config

    @property
    def source(self) -> Optional[Path]:
        """마지막으로 로드한 설정 파일 경로입니다."""
        return self._source

    def load(self, filepath: str | Path) -> AppConfig:
        """
        설정 파일을 읽고 환경변수 오버라이드를 적용한 뒤 검증합니다.

        파라미터:
            filepath (str | Path): YAML 설정 파일 경로

        반환값:
            AppConfig: 검증된 설정

        에러:
            ConfigFileNotFoundError: 파일이 없을 때
            ConfigLoadError: YAML 문법 오류, 최상위가 매핑이 아닐 때, 읽기 실패
            ConfigValidationError: 스키마 검증 실패
        """
        path = Path(filepath)
        if not path.is_file():
            message = f"설정 파일이 없습니다: {path}"
            logger.error(message)
            raise ConfigFileNotFoundError(message)

        sections = _read_yaml(path)
        applied = _merge_env_overrides(sections, self._environ if self._environ is not None else os.environ)
        config = self._build(sections)

        self._config = config
        self._source = path
        logger.info(
            f"설정 로드 완료: {path.name} (env 오버라이드 {applied}건), "
            f"track_index={config.decoder.track_index}, image={config.image.format}, "
            f"export={config.export.format if config.export.enabled else 'off'}"
        )
        return config

    def get(self, key: str, default: Any = None) -> Any:
        """
        "section.field" 형식 키로 설정값을 조회합니다.

        파라미터:
            key (str): 점으로 구분한 키 (예: "decoder.codec_options")
            default: 키가 없을 때 반환할 값

        에러:
            RuntimeError: load() 전에 호출했을 때
        """
        if self._config is None:
            raise RuntimeError("설정이 로드되지 않았습니다. load()를 먼저 호출하세요.")

        node: Any = self._config
        for name in key.split("."):
            if isinstance(node, BaseModel):
                node = getattr(node, name, _MISSING)
            elif isinstance(node, Mapping):
                node = node.get(name, _MISSING)
            else:
                node = _MISSING
            if node is _MISSING:
                return default
        return node

    def validate_schema(self, raw_config: dict) -> bool:
        """딕셔너리가 AppConfig로 변환 가능한지 확인합니다. 실패 원인은 warning으로 남깁니다."""
        try:
            AppConfig(**raw_config)
        except ValidationError as exc:
            logger.warning(f"스키마 검증 실패: {_describe_errors(exc)}")
            return False
        return True

    # =========================================================================
    # 내부 메서드
    # =========================================================================

    def _build(self, sections: dict) -> AppConfig:
        try:
            return AppConfig(**sections)
        except ValidationError as exc:
            detail = _describe_errors(exc)
            logger.error(f"설정 검증 실패: {detail}")
            raise ConfigValidationError(f"설정 검증 실패 ({exc.error_count()}건): {detail}") from exc


# =============================================================================
# 헬퍼 함수
# =============================================================================

def _read_yaml(path: Path) -> dict:
    """YAML 파일을 섹션 딕셔너리로 읽습니다. 빈 파일은 빈 딕셔너리입니다."""
    try:
        text = path.read_text(encoding="utf-8")
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigLoadError(f"YAML 문법 오류: {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"설정 파일 읽기 실패: {path}: {exc}") from exc

    if data is None:
        logger.warning(f"설정 파일이 비어 있어 기본값을 사용합니다: {path}")
        return {}
    if not isinstance(data, dict):
        raise ConfigLoadError(f"설정 파일 최상위는 매핑이어야 합니다: {type(data).__name__}")
    return data


def _merge_env_overrides(sections: dict, environ: Mapping[str, str]) -> int:
    """
    SUBDEC_ 환경변수를 섹션 딕셔너리에 덮어씁니다.

    접두사 뒤 첫 번째 '_'가 섹션과 필드의 경계입니다.
    예: SUBDEC_IMAGE_TIFF_COMPRESSION → image.tiff_compression

    반환값:
        int: 적용한 오버라이드 수
    """
    applied = 0
    for env_key in sorted(environ):
        if not env_key.startswith(ENV_PREFIX):
            continue

        section_name, sep, field_name = env_key[len(ENV_PREFIX):].lower().partition("_")
        if not sep or not field_name:
            logger.debug(f"환경변수 무시 (필드 없음): {env_key}")
            continue
        if section_name not in AppConfig.model_fields:
            logger.debug(f"환경변수 무시 (알 수 없는 섹션 '{section_name}'): {env_key}")
            continue

        section = sections.setdefault(section_name, {})
        if not isinstance(section, dict):
            logger.warning(f"환경변수 무시 ('{section_name}' 섹션이 매핑이 아님): {env_key}")
            continue

        section[field_name] = _coerce_env_value(environ[env_key])
        logger.info(f"환경변수 오버라이드: {section_name}.{field_name} ← {env_key}")
        applied += 1
    return applied


def _coerce_env_value(value: str) -> Any:
    """환경변수 문자열을 bool/int/float로 변환해 봅니다. 어느 것도 아니면 문자열 그대로."""
    lowered = value.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    return value


def _describe_errors(exc: ValidationError) -> str:
    """ValidationError를 '필드: 메시지' 목록 문자열로 요약합니다."""
    return "; ".join(
        f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )
