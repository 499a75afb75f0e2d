"""
Unit tests for parser composition and the text-like parsers.
"""

import io
from unittest.mock import patch

import pytest

from docextract.handlers import BoundedTextSink
from docextract.parsers.base import (
    EMPTY_PARSER,
    AutoDetectParser,
    CompositeParser,
    DefaultParser,
    Parser,
    ParserDecorator,
    builtin_parser_classes,
)
from docextract.parsers.ocr import TesseractOcrParser
from docextract.parsers.pdf import PdfParser
from docextract.parsers.text import HtmlParser, TextParser, XmlParser, decode_text
from docextract.types import Metadata, ParseContext, ParserError, ZeroByteInputError


class EchoParser(Parser):
    """Writes its own id; used to see which parser got the document."""

    def __init__(self, parser_id, types):
        self.parser_id = parser_id
        self.types = frozenset(types)

    def supported_types(self, context):
        return self.types

    def parse(self, stream, handler, metadata, context):
        stream.read()
        handler.characters(self.parser_id)


def run(parser: Parser, data: bytes, metadata: Metadata = None) -> tuple:
    sink = BoundedTextSink()
    metadata = metadata if metadata is not None else Metadata()
    parser.parse(io.BytesIO(data), sink, metadata, ParseContext())
    return str(sink), metadata


class TestCompositeParser:
    """Test media type dispatch."""

    def test_later_parser_wins(self):
        """Test overlapping types go to the parser given last."""
        first = EchoParser("first", {"image/png", "image/tiff"})
        second = EchoParser("second", {"image/tiff"})
        composite = CompositeParser([first, second])

        assert composite.parser_for("image/tiff", ParseContext()) is second
        assert composite.parser_for("image/png", ParseContext()) is first

    def test_unknown_type_goes_to_fallback(self):
        """Test unsupported types are handled by the empty parser."""
        composite = CompositeParser([EchoParser("only", {"text/plain"})])

        assert composite.parser_for("application/x-unknown", ParseContext()) is EMPTY_PARSER
        assert composite.parser_for(None, ParseContext()) is EMPTY_PARSER

    def test_parsed_by(self):
        """Test the dispatching records the parser class."""
        composite = CompositeParser([EchoParser("echo", {"text/plain"})])
        metadata = Metadata({Metadata.CONTENT_TYPE: "text/plain; charset=utf-8"})

        text, metadata = run(composite, b"x", metadata)

        assert text == "echo"
        assert metadata.get(Metadata.PARSED_BY) == "EchoParser"

    def test_parsed_by_names_decorated_parser(self):
        """Test a decorated parser is recorded by its wrapped class."""
        decorated = ParserDecorator(EchoParser("echo", {"image/tiff"}))
        composite = CompositeParser([decorated])

        _, metadata = run(composite, b"x", Metadata({Metadata.CONTENT_TYPE: "image/tiff"}))

        assert metadata.get(Metadata.PARSED_BY) == "EchoParser"


class TestParserDecorator:
    """Test supported type filtering."""

    def test_without_types(self):
        """Test excluded types disappear from the supported set."""
        parser = EchoParser("raster", {"image/png", "image/tiff", "image/jpeg"})
        decorated = ParserDecorator.without_types(parser, ["image/PNG", "image/jpeg"])

        assert decorated.supported_types(ParseContext()) == frozenset({"image/tiff"})
        assert decorated.wrapped_type is EchoParser
        assert decorated.parser_id == "raster"


class TestAutoDetectParser:
    """Test detection before dispatch."""

    def test_zero_bytes(self):
        """Test an empty stream is reported as zero-byte input."""
        parser = AutoDetectParser(EchoParser("text", {"text/plain"}))

        with pytest.raises(ZeroByteInputError, match="> 0 bytes"):
            run(parser, b"", Metadata({Metadata.RESOURCE_NAME: "empty.txt"}))

    def test_detects_and_dispatches(self):
        """Test the detected type is recorded and used for dispatch."""
        parser = AutoDetectParser(EchoParser("text", {"text/plain"}))

        text, metadata = run(parser, b"plain words", Metadata({Metadata.RESOURCE_NAME: "a.txt"}))

        assert text == "text"
        assert metadata.get(Metadata.CONTENT_TYPE) == "text/plain"


class TestDefaultParser:
    """Test the generic dispatcher."""

    def test_builtin_classes(self):
        """Test the shipped parsers are all known."""
        classes = builtin_parser_classes()
        assert {TextParser, XmlParser, HtmlParser, PdfParser, TesseractOcrParser} <= set(classes)

    @patch("docextract.parsers.base.discovered_parser_classes", return_value=[])
    def test_exclusions(self, mock_discovered):
        """Test excluded classes are not instantiated."""
        parser = DefaultParser(exclude=(PdfParser, TesseractOcrParser))
        registered = {type(p) for p in parser.parsers}

        assert PdfParser not in registered
        assert TesseractOcrParser not in registered
        assert TextParser in registered
        mock_discovered.assert_called_once()

    def test_explicit_classes(self):
        """Test an explicit class list bypasses discovery."""
        parser = DefaultParser(parser_classes=[TextParser, XmlParser], exclude=(XmlParser,))
        assert [type(p) for p in parser.parsers] == [TextParser]


class TestTextParsers:
    """Test plain text, XML and HTML parsers."""

    def test_decode_text(self):
        """Test encoding fallbacks."""
        assert decode_text("héllo".encode("utf-8")) == ("héllo", "utf-8")
        assert decode_text(b"\xef\xbb\xbfbom") == ("bom", "utf-8")
        assert decode_text("café €".encode("cp1252")) == ("café €", "cp1252")

    def test_text_parser(self):
        """Test plain text and its encoding."""
        text, metadata = run(TextParser(), "line one\nline two".encode("utf-8"))

        assert text == "line one\nline two"
        assert metadata.get(Metadata.CONTENT_ENCODING) == "utf-8"

    def test_xml_parser(self):
        """Test XML character content."""
        text, _ = run(XmlParser(), b"<doc><title>Report</title><p>Body text</p></doc>")
        assert text == "Report\nBody text\n"

    def test_invalid_xml(self):
        """Test malformed XML is a parser error."""
        with pytest.raises(ParserError, match="Invalid XML"):
            run(XmlParser(), b"<doc><unclosed></doc>")

    def test_html_parser(self):
        """Test visible HTML text and title."""
        html = (b"<html><head><title>Page title</title><style>p {color: red}</style></head>"
                b"<body><h1>Heading</h1><p>Visible text</p><script>var hidden = 1;</script>"
                b"</body></html>")

        text, metadata = run(HtmlParser(), html)

        assert "Heading" in text
        assert "Visible text" in text
        assert "hidden" not in text
        assert "color" not in text
        assert "Page title" not in text
        assert metadata.get(Metadata.TITLE) == "Page title"
