"""
Unit tests for the pipeline builder.
"""

from unittest.mock import Mock

import pytest
from structlog.testing import capture_logs

from conftest import make_settings
from docextract.parsers.base import EMPTY_PARSER, AutoDetectParser, DefaultParser, Parser, ParserDecorator
from docextract.parsers.ocr import TesseractConfig, TesseractOcrParser
from docextract.parsers.pdf import PdfParser
from docextract.parsers.raster import GeoRasterParser
from docextract.pipeline.builder import PipelineBuilder
from docextract.types import OcrCapability, OcrOutputType, PdfOcrStrategy


def probe_factory(available: bool) -> Mock:
    probe = Mock()
    probe.is_available.return_value = available
    probe.last_error = None if available else FileNotFoundError("tesseract")
    return Mock(return_value=probe)


def parts(pipeline: AutoDetectParser):
    default, pdf, raster = pipeline.parsers
    return default, pdf, raster


class TestCapabilityResolution:
    """Test OCR capability resolution order."""

    def test_disabled_skips_probe(self):
        """Test disabled OCR never runs the probe."""
        factory = probe_factory(True)
        builder = PipelineBuilder(probe_factory=factory)

        registry = builder.build(make_settings(ocr_enabled=False))

        assert registry.ocr_capability is OcrCapability.DISABLED
        factory.assert_not_called()

    def test_unusable_engine_downgrades(self):
        """Test a negative probe downgrades OCR to no_ocr."""
        builder = PipelineBuilder(probe_factory=probe_factory(False))

        with capture_logs() as logs:
            registry = builder.build(make_settings(ocr_enabled=True))

        assert registry.ocr_capability is OcrCapability.DOWNGRADED
        assert not registry.ocr_enabled
        _, pdf, _ = parts(registry.regular)
        assert pdf.ocr_strategy is PdfOcrStrategy.NO_OCR
        downgrade = [e for e in logs if e["event"].startswith("OCR requested")]
        assert downgrade and downgrade[0]["log_level"] == "debug"

    def test_usable_engine_is_active(self):
        """Test a positive probe keeps the requested strategy."""
        settings = make_settings(ocr_enabled=True, ocr={"pdf_strategy": "auto"})
        builder = PipelineBuilder(probe_factory=probe_factory(True))

        registry = builder.build(settings)

        assert registry.ocr_capability is OcrCapability.ACTIVE
        _, pdf, _ = parts(registry.regular)
        assert pdf.ocr_strategy is PdfOcrStrategy.AUTO

    def test_probe_runs_once_per_build(self):
        """Test both pipelines share one probe verdict."""
        factory = probe_factory(True)
        settings = make_settings(ocr_enabled=True,
                                 ocr={"path": "/opt/tesseract", "data_path": "/opt/tessdata",
                                      "language": "deu"})
        builder = PipelineBuilder(probe_factory=factory)

        builder.build(settings)

        factory.assert_called_once_with(path="/opt/tesseract", data_path="/opt/tessdata",
                                        language="deu")

    @pytest.mark.parametrize("enabled, available, message", [
        (True, True, "OCR is enabled. This might slow down the process."),
        (True, False, "OCR is disabled."),
        (False, True, "OCR is disabled."),
    ])
    def test_build_logs_ocr_state(self, enabled, available, message):
        """Test the effective OCR state is logged at info level."""
        builder = PipelineBuilder(probe_factory=probe_factory(available))

        with capture_logs() as logs:
            builder.build(make_settings(ocr_enabled=enabled))

        entry = next(e for e in logs if e["event"] == message)
        assert entry["log_level"] == "info"


class TestPipelineComposition:
    """Test the shape of the built pipelines."""

    def test_pdf_parser_variants(self):
        """Test regular and full OCR pipelines differ only by PDF strategy."""
        settings = make_settings(ocr_enabled=True, ocr={"pdf_strategy": "ocr_and_text"})
        registry = PipelineBuilder(probe_factory=probe_factory(True)).build(settings)

        _, regular_pdf, _ = parts(registry.regular)
        _, full_pdf, _ = parts(registry.full_ocr)

        assert regular_pdf.ocr_strategy is PdfOcrStrategy.OCR_AND_TEXT
        assert full_pdf.ocr_strategy is PdfOcrStrategy.OCR_ONLY
        for pdf in (regular_pdf, full_pdf):
            assert isinstance(pdf, PdfParser)
            assert pdf.config.extract_inline_images
            assert not pdf.config.extract_bookmarks_text
        assert registry.regular is not registry.full_ocr

    def test_full_ocr_pipeline_built_when_disabled(self):
        """Test the full OCR pipeline exists even with OCR off."""
        registry = PipelineBuilder().build(make_settings(ocr_enabled=False))

        _, full_pdf, _ = parts(registry.full_ocr)
        assert full_pdf.ocr_strategy is PdfOcrStrategy.OCR_ONLY
        assert registry.pipeline(full_ocr=True) is registry.full_ocr
        assert registry.pipeline() is registry.regular

    def test_raster_parser_hides_ordinary_images(self):
        """Test the geospatial parser never claims photographic formats."""
        registry = PipelineBuilder().build(make_settings(ocr_enabled=False))
        _, _, raster = parts(registry.regular)

        assert isinstance(raster, ParserDecorator)
        assert raster.wrapped_type is GeoRasterParser
        types = raster.supported_types(registry.context)
        assert "image/tiff" in types
        for hidden in ("image/png", "image/jpeg", "image/bmp", "image/gif"):
            assert hidden not in types

    @pytest.mark.parametrize("available, excluded", [
        (True, {PdfParser, GeoRasterParser}),
        (False, {PdfParser, GeoRasterParser, TesseractOcrParser}),
    ])
    def test_default_parser_exclusions(self, available, excluded):
        """Test special-cased parsers are left out of the generic dispatcher."""
        builder = PipelineBuilder(probe_factory=probe_factory(available))
        registry = builder.build(make_settings(ocr_enabled=True))
        default, _, _ = parts(registry.regular)

        assert isinstance(default, DefaultParser)
        assert set(default.excluded) == excluded
        registered = {type(p) for p in default.parsers}
        assert not registered & excluded

    def test_dispatch_with_ocr_disabled(self):
        """Test media types route to the special-cased parsers."""
        registry = PipelineBuilder().build(make_settings(ocr_enabled=False))
        pipeline, context = registry.regular, registry.context

        assert isinstance(pipeline.parser_for("application/pdf", context), PdfParser)
        assert isinstance(pipeline.parser_for("image/tiff", context), ParserDecorator)
        assert pipeline.parser_for("image/png", context) is EMPTY_PARSER

    def test_dispatch_with_ocr_active(self):
        """Test photographic images reach the OCR parser when OCR is active."""
        registry = PipelineBuilder(probe_factory=probe_factory(True)).build(
            make_settings(ocr_enabled=True))

        parser = registry.regular.parser_for("image/png", registry.context)
        assert isinstance(parser, TesseractOcrParser)
        # TIFF is routed to the raster parser, which hands plain scans to OCR
        assert isinstance(registry.regular.parser_for("image/tiff", registry.context),
                          ParserDecorator)


class TestSharedContext:
    """Test the parse context shared by the pipelines."""

    def test_context_with_ocr_disabled(self):
        """Test OCR is skipped through the context when not active."""
        registry = PipelineBuilder().build(make_settings(ocr_enabled=False))
        config = registry.context.get(TesseractConfig)

        assert config.skip_ocr
        assert TesseractOcrParser not in registry.context
        assert registry.context.get(Parser) is registry.regular

    def test_context_with_ocr_active(self):
        """Test the OCR configuration carries the settings."""
        settings = make_settings(ocr_enabled=True,
                                 ocr={"language": "fra+eng", "data_path": "/opt/tessdata",
                                      "output_type": "hocr", "timeout": 30})
        registry = PipelineBuilder(probe_factory=probe_factory(True)).build(settings, generation=3)
        config = registry.context.get(TesseractConfig)

        assert not config.skip_ocr
        assert config.language == "fra+eng"
        assert config.tessdata_path == "/opt/tessdata"
        assert config.output_type is OcrOutputType.HOCR
        assert config.timeout == 30
        assert isinstance(registry.context.get(TesseractOcrParser), TesseractOcrParser)
        assert registry.generation == 3
        assert registry.settings is settings
