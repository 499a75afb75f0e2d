import io
import time
from typing import Optional

import fitz
import pytesseract
import pytest
import structlog
from PIL import Image

from docextract.core.config import ExtractionSettings, OcrSettings
from docextract.parsers.base import Parser
from docextract.pipeline.registry import ParserRegistry
from docextract.types import Metadata, OcrCapability, ParseContext, ZeroByteInputError


@pytest.fixture(autouse=True)
def reset_structlog():
    """Start every test from structlog's default configuration."""
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture(autouse=True)
def restore_tesseract_cmd(monkeypatch):
    """Undo tesseract_cmd changes made by probes and OCR parsers."""
    monkeypatch.setattr(pytesseract.pytesseract, "tesseract_cmd",
                        pytesseract.pytesseract.tesseract_cmd)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep DOCEXTRACT_* variables of the host out of the settings."""
    import os

    for name in list(os.environ):
        if name.upper().startswith("DOCEXTRACT_"):
            monkeypatch.delenv(name, raising=False)


def make_settings(ocr_enabled: bool = True, **kwargs) -> ExtractionSettings:
    ocr_kwargs = kwargs.pop("ocr", {})
    return ExtractionSettings(ocr=OcrSettings(enabled=ocr_enabled, **ocr_kwargs), **kwargs)


@pytest.fixture
def settings() -> ExtractionSettings:
    """Settings with OCR disabled, so no Tesseract binary is needed."""
    return make_settings(ocr_enabled=False)


@pytest.fixture
def ocr_settings() -> ExtractionSettings:
    return make_settings(ocr_enabled=True)


def make_pdf(pages=("Hello PDF world",), title: Optional[str] = "Sample document",
             image: Optional[bytes] = None, toc=None, **save_options) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
        if image is not None:
            page.insert_image(fitz.Rect(72, 100, 172, 150), stream=image)
    if title:
        doc.set_metadata({"title": title, "author": "Test Author"})
    if toc:
        doc.set_toc(toc)
    data = doc.tobytes(**save_options)
    doc.close()
    return data


@pytest.fixture
def pdf_bytes() -> bytes:
    return make_pdf()


def make_image(fmt: str = "PNG", size=(40, 20), color="white") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_image("PNG")


@pytest.fixture
def tiff_bytes() -> bytes:
    return make_image("TIFF", size=(64, 32))


# ─── Test doubles ─────────────────────────────────────

class TaggingPipeline(Parser):
    """Pipeline double: reads the stream, tags the metadata, echoes the text."""

    parser_id = "tagging"

    def __init__(self, tag: str, text: Optional[str] = None, error: Optional[Exception] = None):
        self.tag = tag
        self.text = text
        self.error = error
        self.calls = 0

    def supported_types(self, context):
        return frozenset()

    def parse(self, stream, handler, metadata, context) -> None:
        self.calls += 1
        data = stream.read()
        if not data:
            raise ZeroByteInputError("InputStream must have > 0 bytes")
        metadata.set("test:pipeline", self.tag)
        if self.error is not None:
            raise self.error
        handler.characters(self.text if self.text is not None else data.decode("utf-8"))


class CountingBuilder:
    """Builder double counting how many registries it was asked to build."""

    def __init__(self, capability: OcrCapability = OcrCapability.ACTIVE, delay: float = 0.0,
                 failures: int = 0, regular: Optional[Parser] = None,
                 full_ocr: Optional[Parser] = None):
        self.capability = capability
        self.delay = delay
        self.failures = failures
        self.regular = regular or TaggingPipeline("regular")
        self.full_ocr = full_ocr or TaggingPipeline("full_ocr")
        self.calls = 0

    def build(self, settings: ExtractionSettings, generation: int = 0) -> ParserRegistry:
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.failures:
            self.failures -= 1
            raise RuntimeError("parser construction failed")
        return ParserRegistry(
            regular=self.regular,
            full_ocr=self.full_ocr,
            context=ParseContext(),
            ocr_capability=self.capability,
            settings=settings,
            generation=generation,
        )


def metadata_for(name: str) -> Metadata:
    return Metadata({Metadata.RESOURCE_NAME: name})
