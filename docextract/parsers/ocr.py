"""
Tesseract OCR parser for raster images.
"""

import io
from dataclasses import dataclass
from typing import FrozenSet, List, Optional
from xml.etree import ElementTree as ET

import pytesseract
import structlog
from PIL import Image, ImageSequence, UnidentifiedImageError

from ..media import IMAGE_BMP, IMAGE_GIF, IMAGE_JPEG, IMAGE_PNG, IMAGE_TIFF
from ..ocr.probe import resolve_tesseract_cmd, tessdata_option
from ..types import Metadata, OcrOutputType, ParseContext, ParserError
from .base import Parser


logger = structlog.get_logger(__name__)

_HOCR_LINE_CLASSES = {"ocr_line", "ocr_header", "ocr_caption", "ocr_textfloat"}


@dataclass(frozen=True)
class TesseractConfig:
    """Recognition options shared through the parse context."""
    language: str = "eng"
    output_type: OcrOutputType = OcrOutputType.TXT
    tessdata_path: Optional[str] = None
    page_segmentation_mode: int = 1
    timeout: int = 120
    dpi: int = 300
    skip_ocr: bool = False

    def command_line_options(self) -> str:
        options = [f"--psm {self.page_segmentation_mode}"]
        tessdata = tessdata_option(self.tessdata_path)
        if tessdata:
            options.append(tessdata)
        return " ".join(options)


DEFAULT_CONFIG = TesseractConfig()


def hocr_to_text(hocr: bytes) -> str:
    """Flatten tesseract hOCR output to one line of words per ocr_line."""
    root = ET.fromstring(hocr)
    lines: List[str] = []
    for element in root.iter():
        if element.get("class") not in _HOCR_LINE_CLASSES:
            continue
        words = [
            "".join(word.itertext()).strip()
            for word in element.iter()
            if word.get("class") == "ocrx_word"
        ]
        line = " ".join(word for word in words if word)
        if line:
            lines.append(line)
    return "\n".join(lines)


class TesseractOcrParser(Parser):
    """
    Recognizes text in images with Tesseract.

    Options come from the ``TesseractConfig`` found in the parse context;
    ``skip_ocr`` turns the parser into a no-op.
    """

    parser_id = "tesseract"

    SUPPORTED_TYPES = frozenset({
        IMAGE_PNG,
        IMAGE_JPEG,
        IMAGE_TIFF,
        IMAGE_BMP,
        IMAGE_GIF,
        "image/webp",
    })

    def __init__(self, tesseract_path: Optional[str] = None):
        self.tesseract_cmd = resolve_tesseract_cmd(tesseract_path)
        if self.tesseract_cmd is not None:
            pytesseract.pytesseract.tesseract_cmd = self.tesseract_cmd
        self.logger = logger.bind(component="TesseractOcrParser")

    def supported_types(self, context: ParseContext) -> FrozenSet[str]:
        return self.SUPPORTED_TYPES

    def parse(self, stream, handler, metadata, context) -> None:
        config = context.get(TesseractConfig, DEFAULT_CONFIG)
        resource_name = metadata.get(Metadata.RESOURCE_NAME)
        if config.skip_ocr:
            self.logger.debug("OCR skipped by configuration", resource_name=resource_name)
            return

        try:
            image = Image.open(io.BytesIO(stream.read()))
        except (UnidentifiedImageError, OSError) as e:
            raise ParserError(f"Unreadable image: {e}", resource_name) from e

        with image:
            for frame in ImageSequence.Iterator(image):
                text = self.recognize(frame, config, resource_name)
                if text.strip():
                    handler.characters(text.strip() + "\n")

    def recognize(
        self,
        image: Image.Image,
        config: TesseractConfig = DEFAULT_CONFIG,
        resource_name: Optional[str] = None,
    ) -> str:
        """Run Tesseract on one image and return plain text."""
        if image.mode not in ("RGB", "L"):
            image = image.convert("RGB")

        options = dict(
            lang=config.language,
            config=config.command_line_options(),
            timeout=config.timeout,
        )
        try:
            if config.output_type is OcrOutputType.HOCR:
                return hocr_to_text(
                    pytesseract.image_to_pdf_or_hocr(image, extension="hocr", **options)
                )
            return pytesseract.image_to_string(image, **options)
        except pytesseract.TesseractError as e:
            raise ParserError(f"Tesseract failed: {e}", resource_name) from e
        except ET.ParseError as e:
            raise ParserError(f"Unreadable hOCR output: {e}", resource_name) from e
        except RuntimeError as e:
            # pytesseract signals a timeout with a bare RuntimeError
            raise ParserError(f"Tesseract did not finish: {e}", resource_name) from e
