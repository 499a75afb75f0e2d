"""
docextract: text and language extraction from document streams.

The module level helpers run against one default engine per process:

    from docextract import extract_text
    from docextract.core.config import get_settings

    with open("scan.pdf", "rb") as f:
        text = extract_text(get_settings(), False, 10000, f)
"""

from typing import BinaryIO, Optional

from .core.config import ExtractionSettings, OcrSettings, get_settings
from .engine import ExtractionEngine
from .language import LanguageDetectorCache
from .pipeline import ParserRegistry, PipelineBuilder
from .types import (
    ExtractionError,
    ExtractionOutcome,
    ExtractionResult,
    Metadata,
    OcrCapability,
    PdfOcrStrategy,
    StructuralParseError,
)

__version__ = "0.1.0"

_default_engine = ExtractionEngine()


def default_engine() -> ExtractionEngine:
    return _default_engine


def extract_text(
    settings: ExtractionSettings,
    force_pdf_ocr: bool,
    max_chars: Optional[int],
    stream: BinaryIO,
    metadata: Optional[Metadata] = None,
) -> str:
    return _default_engine.extract_text(settings, force_pdf_ocr, max_chars, stream, metadata)


def reload() -> None:
    """Forget the default engine's parsers and language models."""
    _default_engine.reset()


def lang_detector():
    return _default_engine.language_detector()


__all__ = [
    "ExtractionEngine",
    "ExtractionSettings",
    "OcrSettings",
    "get_settings",
    "LanguageDetectorCache",
    "ParserRegistry",
    "PipelineBuilder",
    "ExtractionError",
    "ExtractionOutcome",
    "ExtractionResult",
    "Metadata",
    "OcrCapability",
    "PdfOcrStrategy",
    "StructuralParseError",
    "default_engine",
    "extract_text",
    "reload",
    "lang_detector",
]
