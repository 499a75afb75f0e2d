"""
Pipeline builder.

Turns one settings snapshot into the two extraction pipelines:

- regular: PDF pages read with the configured OCR strategy, inline images
  extracted so embedded rasters reach the OCR parser
- full OCR: the same composition with the PDF parser forced to OCR only

Both pipelines dispatch on the detected media type. The generic
dispatcher leaves out the parsers configured here, and the geospatial
raster parser never sees ordinary photographic images.
"""

from typing import Callable, Optional, Sequence, Tuple, Type

import structlog

from ..core.config import ExtractionSettings
from ..media import ORDINARY_RASTER_TYPES
from ..ocr.probe import OcrCapabilityProbe
from ..parsers.base import AutoDetectParser, DefaultParser, Parser, ParserDecorator
from ..parsers.ocr import TesseractConfig, TesseractOcrParser
from ..parsers.pdf import PdfParser, PdfParserConfig
from ..parsers.raster import GeoRasterParser
from ..types import OcrCapability, OcrOutputType, ParseContext, PdfOcrStrategy
from .registry import ParserRegistry


logger = structlog.get_logger(__name__)

ProbeFactory = Callable[..., OcrCapabilityProbe]


class PipelineBuilder:
    """Builds a ``ParserRegistry``; runs the OCR capability probe once per build."""

    def __init__(
        self,
        probe_factory: Optional[ProbeFactory] = None,
        parser_classes: Optional[Sequence[Type[Parser]]] = None,
    ):
        self.probe_factory = probe_factory or OcrCapabilityProbe
        self.parser_classes = parser_classes
        self.logger = logger.bind(component="PipelineBuilder")

    def resolve_capability(self, settings: ExtractionSettings) -> OcrCapability:
        ocr = settings.ocr
        if not ocr.enabled:
            return OcrCapability.DISABLED

        probe = self.probe_factory(path=ocr.path, data_path=ocr.data_path, language=ocr.language)
        if probe.is_available():
            return OcrCapability.ACTIVE

        self.logger.debug("OCR requested but Tesseract is unusable, falling back to no_ocr",
                          path=ocr.path,
                          data_path=ocr.data_path,
                          error=str(probe.last_error) if probe.last_error else None)
        return OcrCapability.DOWNGRADED

    def build(self, settings: ExtractionSettings, generation: int = 0) -> ParserRegistry:
        capability = self.resolve_capability(settings)
        ocr = settings.ocr

        ocr_parser: Optional[TesseractOcrParser] = None
        if capability.is_active:
            self.logger.info("OCR is enabled. This might slow down the process.",
                             language=ocr.language,
                             strategy=ocr.pdf_strategy.value)
            ocr_parser = TesseractOcrParser(ocr.path)
            strategy = ocr.pdf_strategy
        else:
            self.logger.info("OCR is disabled.", ocr_capability=capability.value)
            strategy = PdfOcrStrategy.NO_OCR

        pdf_config = PdfParserConfig(
            ocr_strategy=strategy,
            extract_inline_images=True,
            extract_bookmarks_text=False,
        )
        regular = self._compose(PdfParser(pdf_config), capability)
        full_ocr = self._compose(PdfParser(pdf_config.with_strategy(PdfOcrStrategy.OCR_ONLY)),
                                 capability)

        context = ParseContext()
        context.set(TesseractConfig, self._tesseract_config(settings, capability))
        context.set(Parser, regular)
        context.set(TesseractOcrParser, ocr_parser)

        return ParserRegistry(
            regular=regular,
            full_ocr=full_ocr,
            context=context,
            ocr_capability=capability,
            settings=settings,
            generation=generation,
        )

    def _compose(self, pdf_parser: PdfParser, capability: OcrCapability) -> AutoDetectParser:
        # Later parsers win on a shared media type
        default = DefaultParser(exclude=self.excluded_parsers(capability),
                                parser_classes=self.parser_classes)
        raster = ParserDecorator.without_types(GeoRasterParser(), ORDINARY_RASTER_TYPES)
        return AutoDetectParser(default, pdf_parser, raster)

    @staticmethod
    def excluded_parsers(capability: OcrCapability) -> Tuple[Type[Parser], ...]:
        """Parser classes the generic dispatcher must not register itself."""
        if capability.is_active:
            return (PdfParser, GeoRasterParser)
        return (PdfParser, GeoRasterParser, TesseractOcrParser)

    @staticmethod
    def _tesseract_config(settings: ExtractionSettings, capability: OcrCapability) -> TesseractConfig:
        ocr = settings.ocr
        return TesseractConfig(
            language=ocr.language,
            output_type=ocr.output_type or OcrOutputType.TXT,
            tessdata_path=ocr.data_path,
            timeout=ocr.timeout,
            skip_ocr=not capability.is_active,
        )
