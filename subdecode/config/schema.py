"""
config.yaml 구조를 정의하는 Pydantic 모델 모듈입니다.

섹션:
- system: 로그 레벨/포맷/디렉터리, 세션 ID
- decoder: 코덱 옵션, 트랙 선택, 프레임 큐 크기
- markup: ASS 마크업 해석 여부
- image: 비트맵 자막 이미지 인코딩
- export: SRT/VTT/PNG 내보내기

누락된 섹션과 필드는 모두 기본값으로 채워집니다.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("json", "text")


# =============================================================================
# system 섹션
# =============================================================================

class SystemConfig(BaseModel):
    """로그 출력과 세션 식별 설정입니다."""
    # 대소문자 무관, 검증 후 대문자로 저장
    log_level: str = Field(default="INFO", description="root 로거 레벨")
    log_format: str = Field(default="json", description="json | text")
    log_dir: str = Field(default="output/logs", description="subdecode.log 저장 위치")
    # 비어 있으면 setup_logging()이 UUID4를 발급
    session_id: str = Field(default="", description="로그 세션 ID")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"지원하지 않는 log_level '{value}' (허용: {', '.join(LOG_LEVELS)})")
        return level

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, value: str) -> str:
        log_format = value.strip().lower()
        if log_format not in LOG_FORMATS:
            raise ValueError(f"지원하지 않는 log_format '{value}' (허용: {', '.join(LOG_FORMATS)})")
        return log_format


# =============================================================================
# decoder 섹션: 코덱 세션 및 디코드 스레드 설정
# =============================================================================

class DecoderConfig(BaseModel):
    """
    자막 코덱 세션 생성 및 디코드 동작 설정입니다.

    역할:
    - 코덱 컨텍스트에 전달할 옵션 지정
    - 자막 트랙 선택 (-1이면 첫 번째 자막 트랙)
    - 패킷 큐 크기 제한
    """
    # 코덱 컨텍스트 옵션 (FFmpeg AVOption 이름 → 값)
    codec_options: dict[str, str] = Field(default_factory=dict, description="코덱 옵션")
    # 디코드할 자막 트랙의 스트림 인덱스 (-1 = 자동 선택)
    track_index: int = Field(default=-1, description="자막 트랙 인덱스 (-1 = 첫 번째 자막 트랙)")
    # 디코드 결과 프레임 큐 최대 크기
    frame_queue_size: int = Field(default=64, description="프레임 큐 최대 크기")

    @field_validator("frame_queue_size")
    @classmethod
    def validate_frame_queue_size(cls, value: int) -> int:
        """큐 크기가 양수인지 검증합니다."""
        if value <= 0:
            error_message = f"frame_queue_size는 1 이상이어야 합니다. 입력값: {value}"
            raise ValueError(error_message)
        return value

    @field_validator("codec_options", mode="before")
    @classmethod
    def stringify_codec_options(cls, value: Any) -> Any:
        """YAML에서 숫자로 읽힌 옵션 값을 문자열로 정규화합니다."""
        if isinstance(value, dict):
            return {str(key): str(option) for key, option in value.items()}
        return value


# =============================================================================
# markup 섹션: 마크업(ASS) 파서 기본 스타일
# =============================================================================

class MarkupConfig(BaseModel):
    """
    마크업 자막 파서의 기본 스타일 설정입니다.

    역할:
    - 오버라이드 태그가 없을 때 적용할 기본 스타일 이름 지정
    - \\n(소프트 줄바꿈) 처리 방식 지정
    """
    # 기본 스타일 이름
    default_style: str = Field(default="Default", description="기본 스타일 이름")
    # \n 을 줄바꿈으로 처리할지 여부 (False면 공백)
    soft_break_as_newline: bool = Field(default=False, description="\\n 을 줄바꿈으로 처리")


# =============================================================================
# image 섹션: 합성 이미지 인코딩 설정
# =============================================================================

class ImageConfig(BaseModel):
    """
    합성된 비트맵 자막 이미지의 인코딩 설정입니다.

    역할:
    - 투명도를 보존하는 이미지 포맷 선택 (tiff | png | webp)
    - 손실 압축 품질 및 TIFF 압축 방식 지정

    JPEG은 알파 채널이 없어 허용하지 않습니다.
    """
    # 인코딩 포맷
    format: str = Field(default="tiff", description="이미지 포맷 (tiff | png | webp)")
    # webp 손실 압축 품질 (1~100)
    quality: int = Field(default=20, description="손실 압축 품질 (1~100, webp 전용)")
    # TIFF 압축 방식
    tiff_compression: str = Field(default="tiff_lzw", description="TIFF 압축 (raw | tiff_lzw | tiff_deflate | packbits)")

    @field_validator("format")
    @classmethod
    def validate_format(cls, value: str) -> str:
        """이미지 포맷이 알파 채널을 지원하는 형식인지 검증합니다."""
        allowed_formats = ("tiff", "png", "webp")
        lower_value = value.lower()
        if lower_value not in allowed_formats:
            error_message = f"image.format은 {allowed_formats} 중 하나여야 합니다. 입력값: '{value}'"
            raise ValueError(error_message)
        return lower_value

    @field_validator("quality")
    @classmethod
    def validate_quality(cls, value: int) -> int:
        """품질 값이 1~100 범위인지 검증합니다."""
        if not 1 <= value <= 100:
            error_message = f"quality는 1~100 범위여야 합니다. 입력값: {value}"
            raise ValueError(error_message)
        return value

    @field_validator("tiff_compression")
    @classmethod
    def validate_tiff_compression(cls, value: str) -> str:
        """TIFF 압축 방식이 Pillow에서 지원하는 값인지 검증합니다."""
        allowed = ("raw", "tiff_lzw", "tiff_deflate", "tiff_adobe_deflate", "packbits")
        if value not in allowed:
            error_message = f"tiff_compression은 {allowed} 중 하나여야 합니다. 입력값: '{value}'"
            raise ValueError(error_message)
        return value


# =============================================================================
# export 섹션: 디코드 결과 내보내기 설정
# =============================================================================

class ExportConfig(BaseModel):
    """
    디코드된 자막 프레임 내보내기 설정입니다.

    역할:
    - SRT/VTT 형식 자막 파일 저장 활성화
    - 비트맵 자막 이미지(PNG) 저장 여부
    - 출력 디렉토리 지정
    """
    # 내보내기 활성화 여부
    enabled: bool = Field(default=True, description="내보내기 활성화")
    # 저장할 텍스트 포맷 목록
    format: list[str] = Field(default=["srt", "vtt"], description="저장 포맷 목록")
    # 비트맵 자막 이미지 저장 여부
    save_images: bool = Field(default=True, description="비트맵 자막 이미지 저장")
    # 출력 디렉토리
    output_dir: str = Field(default="output/subtitles", description="출력 디렉토리")

    @field_validator("format")
    @classmethod
    def validate_format(cls, value: list[str]) -> list[str]:
        """내보내기 포맷이 지원되는 형식인지 검증합니다."""
        allowed_formats = ("srt", "vtt")
        for fmt in value:
            if fmt not in allowed_formats:
                error_message = f"export.format은 {allowed_formats} 중에서 선택해야 합니다. 입력값: '{fmt}'"
                raise ValueError(error_message)
        return value


# =============================================================================
# 루트 모델
# =============================================================================

class AppConfig(BaseModel):
    """
    config.yaml 루트 모델입니다. ConfigManager.load()가 생성합니다.

    사용 예시:
        >>> config = AppConfig(**{"image": {"format": "png"}})
        >>> config.image.format, config.decoder.track_index
        ('png', -1)
    """
    system: SystemConfig = Field(default_factory=SystemConfig)
    decoder: DecoderConfig = Field(default_factory=DecoderConfig)
    markup: MarkupConfig = Field(default_factory=MarkupConfig)
    image: ImageConfig = Field(default_factory=ImageConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
