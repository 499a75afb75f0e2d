from dataclasses import dataclass

from ..core.config import ExtractionSettings
from ..parsers.base import Parser
from ..types import OcrCapability, ParseContext


@dataclass(frozen=True)
class ParserRegistry:
    """
    The pipelines built from one settings snapshot.

    Published once by the engine and shared read-only by every extraction
    call until the engine is reset.
    """
    regular: Parser
    full_ocr: Parser
    context: ParseContext
    ocr_capability: OcrCapability
    settings: ExtractionSettings
    generation: int = 0

    @property
    def ocr_enabled(self) -> bool:
        """Effective OCR state, possibly downgraded from the settings."""
        return self.ocr_capability.is_active

    def pipeline(self, full_ocr: bool = False) -> Parser:
        return self.full_ocr if full_ocr else self.regular
