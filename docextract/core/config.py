from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..types import ConfigurationError, OcrOutputType, PdfOcrStrategy


class OcrSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    language: str = "eng"
    path: Optional[str] = None  # tesseract executable or the directory holding it
    data_path: Optional[str] = None  # tessdata directory
    output_type: Optional[OcrOutputType] = None
    pdf_strategy: PdfOcrStrategy = PdfOcrStrategy.OCR_AND_TEXT
    timeout: int = Field(default=120, gt=0)


class ExtractionSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="DOCEXTRACT_",
        env_nested_delimiter="__",
        case_sensitive=False,
        frozen=True,
    )

    ocr: OcrSettings = Field(default_factory=OcrSettings)

    # Extraction
    indexed_chars: int = 100000  # negative means no limit
    lang_detect: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        if value not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return value

    @classmethod
    def from_yaml(cls, config_path: Union[str, Path]) -> "ExtractionSettings":
        """
        Load settings from a YAML file.

        Accepts the settings at the top level or nested under an ``fs`` key.
        """
        config_path = Path(config_path)
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigurationError(f"Cannot read settings file {config_path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file {config_path} must hold a mapping")
        if isinstance(data.get("fs"), dict):
            data = data["fs"]

        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid settings in {config_path}: {e}") from e


@lru_cache()
def get_settings() -> ExtractionSettings:
    return ExtractionSettings()
