"""
PDF parser built on PyMuPDF.

Text comes from the embedded text layer, from OCR of the rendered page,
or both, depending on the configured ``PdfOcrStrategy``. Inline images
can be handed to the embedded-resource parser of the parse context so
that raster content inside the PDF reaches the OCR parser.
"""

import dataclasses
import io
from dataclasses import dataclass
from typing import FrozenSet, Optional, Set

import fitz  # PyMuPDF
import structlog
from PIL import Image

from ..handlers import ContentHandler
from ..types import (
    EncryptedDocumentError,
    Metadata,
    ParseContext,
    ParserError,
    PdfOcrStrategy,
    ZeroByteInputError,
)
from .base import Parser
from .ocr import DEFAULT_CONFIG, TesseractConfig, TesseractOcrParser


logger = structlog.get_logger(__name__)

PDF = "application/pdf"

_METADATA_FIELDS = {
    "title": Metadata.TITLE,
    "author": Metadata.CREATOR,
    "subject": Metadata.SUBJECT,
    "keywords": "meta:keyword",
    "creator": "xmp:CreatorTool",
    "producer": "pdf:producer",
    "creationDate": "dcterms:created",
    "modDate": "dcterms:modified",
    "format": "pdf:PDFVersion",
}


@dataclass(frozen=True)
class PdfParserConfig:
    """Options of one PdfParser instance."""
    ocr_strategy: PdfOcrStrategy = PdfOcrStrategy.AUTO
    extract_inline_images: bool = False
    extract_unique_inline_images_only: bool = True
    extract_bookmarks_text: bool = True
    auto_min_characters: int = 10  # below this a page counts as image-only in AUTO

    def with_strategy(self, strategy: PdfOcrStrategy) -> "PdfParserConfig":
        return dataclasses.replace(self, ocr_strategy=strategy)


class PdfParser(Parser):
    """Reads PDF documents page by page."""

    parser_id = "pdf"

    def __init__(self, config: Optional[PdfParserConfig] = None):
        self.config = config or PdfParserConfig()
        self.logger = logger.bind(component="PdfParser")

    @property
    def ocr_strategy(self) -> PdfOcrStrategy:
        return self.config.ocr_strategy

    def supported_types(self, context: ParseContext) -> FrozenSet[str]:
        return frozenset({PDF})

    def parse(self, stream, handler, metadata, context) -> None:
        resource_name = metadata.get(Metadata.RESOURCE_NAME)
        data = stream.read()
        if not data:
            raise ZeroByteInputError("Empty PDF stream", resource_name)

        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except RuntimeError as e:
            raise ParserError(f"Cannot open PDF: {e}", resource_name) from e

        try:
            if doc.needs_pass:
                metadata.set(Metadata.PDF_ENCRYPTED, "true")
                raise EncryptedDocumentError("Unable to process: document is encrypted", resource_name)
            metadata.set(Metadata.PDF_ENCRYPTED, str(bool(doc.is_encrypted)).lower())

            self._read_metadata(doc, metadata)
            metadata.set(Metadata.PDF_OCR_STRATEGY, self.ocr_strategy.value)

            ocr_parser = self._ocr_parser(context)
            ocr_config = context.get(TesseractConfig, DEFAULT_CONFIG)
            seen_images: Set[int] = set()

            for page in doc:
                self._parse_page(doc, page, handler, metadata, context,
                                 ocr_parser, ocr_config, seen_images)

            if self.config.extract_bookmarks_text:
                for _level, title, _page in doc.get_toc():
                    if title.strip():
                        handler.characters(title.strip() + "\n")
        finally:
            doc.close()

    def _ocr_parser(self, context: ParseContext) -> Optional[TesseractOcrParser]:
        if self.ocr_strategy is PdfOcrStrategy.NO_OCR:
            return None
        config = context.get(TesseractConfig, DEFAULT_CONFIG)
        ocr_parser = context.get(TesseractOcrParser)
        if config.skip_ocr or ocr_parser is None:
            self.logger.debug("OCR strategy requested but no usable OCR parser",
                              strategy=self.ocr_strategy.value)
            return None
        return ocr_parser

    def _read_metadata(self, doc: fitz.Document, metadata: Metadata) -> None:
        for key, name in _METADATA_FIELDS.items():
            value = (doc.metadata or {}).get(key)
            if value:
                metadata.set(name, value)
        metadata.set(Metadata.PAGE_COUNT, doc.page_count)

    def _parse_page(
        self,
        doc: fitz.Document,
        page: fitz.Page,
        handler: ContentHandler,
        metadata: Metadata,
        context: ParseContext,
        ocr_parser: Optional[TesseractOcrParser],
        ocr_config: TesseractConfig,
        seen_images: Set[int],
    ) -> None:
        strategy = self.ocr_strategy
        text = ""

        if strategy is not PdfOcrStrategy.OCR_ONLY or ocr_parser is None:
            text = page.get_text()
            if text.strip():
                handler.characters(text.rstrip() + "\n")
            if self.config.extract_inline_images:
                self._parse_inline_images(doc, page, handler, metadata, context, seen_images)

        if ocr_parser is None:
            return

        needs_ocr = (
            strategy in (PdfOcrStrategy.OCR_ONLY, PdfOcrStrategy.OCR_AND_TEXT)
            or (strategy is PdfOcrStrategy.AUTO
                and len(text.strip()) < self.config.auto_min_characters)
        )
        if needs_ocr:
            pixmap = page.get_pixmap(dpi=ocr_config.dpi)
            with Image.open(io.BytesIO(pixmap.tobytes("png"))) as image:
                recognized = ocr_parser.recognize(
                    image, ocr_config, metadata.get(Metadata.RESOURCE_NAME)
                )
            if recognized.strip():
                handler.characters(recognized.strip() + "\n")

    def _parse_inline_images(
        self,
        doc: fitz.Document,
        page: fitz.Page,
        handler: ContentHandler,
        metadata: Metadata,
        context: ParseContext,
        seen_images: Set[int],
    ) -> None:
        embedded_parser = context.get(Parser)
        if embedded_parser is None:
            return

        for image_info in page.get_images(full=True):
            xref = image_info[0]
            if self.config.extract_unique_inline_images_only:
                if xref in seen_images:
                    continue
                seen_images.add(xref)

            extracted = doc.extract_image(xref)
            if not extracted or not extracted.get("image"):
                continue

            child = Metadata({
                Metadata.RESOURCE_NAME: f"image{xref}.{extracted.get('ext', 'bin')}",
                Metadata.EMBEDDED_RESOURCE_TYPE: "INLINE",
            })
            try:
                embedded_parser.parse(io.BytesIO(extracted["image"]), handler, child, context)
            except (ParserError, ZeroByteInputError) as e:
                self.logger.debug("Skipping unreadable inline image",
                                  resource_name=metadata.get(Metadata.RESOURCE_NAME),
                                  xref=xref, error=str(e))
                metadata.add("X-Embedded-Exception", f"{child.get(Metadata.RESOURCE_NAME)}: {e}")
