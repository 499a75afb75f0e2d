"""
Format parsers and their composition.

Adapters over external capability providers:
  - PdfParser: PyMuPDF, with optional OCR of rendered pages
  - TesseractOcrParser: pytesseract over Pillow images
  - GeoRasterParser: raster summary and GeoTIFF georeferencing
  - OfficeOpenXmlParser, TextParser, XmlParser, HtmlParser

Composition:
  - CompositeParser / AutoDetectParser: media type dispatch
  - ParserDecorator: hide media types from a parser
  - DefaultParser: every known parser, minus explicit exclusions
"""

from .base import (
    AutoDetectParser,
    CompositeParser,
    DefaultParser,
    EmptyParser,
    Parser,
    ParserDecorator,
    builtin_parser_classes,
)
from .ocr import TesseractConfig, TesseractOcrParser
from .office import OfficeOpenXmlParser
from .pdf import PdfParser, PdfParserConfig
from .raster import GeoRasterParser
from .text import HtmlParser, TextParser, XmlParser

__all__ = [
    "Parser",
    "EmptyParser",
    "CompositeParser",
    "AutoDetectParser",
    "DefaultParser",
    "ParserDecorator",
    "builtin_parser_classes",
    "TesseractConfig",
    "TesseractOcrParser",
    "PdfParser",
    "PdfParserConfig",
    "GeoRasterParser",
    "OfficeOpenXmlParser",
    "TextParser",
    "XmlParser",
    "HtmlParser",
]
