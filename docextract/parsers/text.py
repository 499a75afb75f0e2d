"""
Parsers for plain text, XML and HTML documents.
"""

import codecs
from html.parser import HTMLParser
from typing import FrozenSet, List, Optional, Tuple
from xml.etree import ElementTree as ET

import structlog

from ..handlers import ContentHandler
from ..types import Metadata, ParseContext, ParserError
from .base import Parser


logger = structlog.get_logger(__name__)

_BOMS = (
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF16_LE, "utf-16"),
    (codecs.BOM_UTF16_BE, "utf-16"),
)


def decode_text(data: bytes) -> Tuple[str, str]:
    """Decode bytes, returning (text, encoding). BOM first, then UTF-8, then cp1252."""
    for bom, encoding in _BOMS:
        if data.startswith(bom):
            return data.decode(encoding), encoding.replace("-sig", "")
    for encoding in ("utf-8", "cp1252"):
        try:
            return data.decode(encoding), encoding
        except UnicodeDecodeError:
            continue
    return data.decode("latin-1"), "latin-1"


class TextParser(Parser):
    """Plain text and text-like formats."""

    parser_id = "text"

    SUPPORTED_TYPES = frozenset({
        "text/plain",
        "text/csv",
        "text/tab-separated-values",
        "text/markdown",
        "text/x-markdown",
        "text/x-log",
    })

    def supported_types(self, context: ParseContext) -> FrozenSet[str]:
        return self.SUPPORTED_TYPES

    def parse(self, stream, handler, metadata, context) -> None:
        text, encoding = decode_text(stream.read())
        metadata.set(Metadata.CONTENT_ENCODING, encoding)
        handler.characters(text)


class XmlParser(Parser):
    """Character content of generic XML documents."""

    parser_id = "xml"

    SUPPORTED_TYPES = frozenset({"application/xml", "image/svg+xml"})

    def supported_types(self, context: ParseContext) -> FrozenSet[str]:
        return self.SUPPORTED_TYPES

    def parse(self, stream, handler, metadata, context) -> None:
        try:
            root = ET.fromstring(stream.read())
        except ET.ParseError as e:
            raise ParserError(f"Invalid XML document: {e}",
                              metadata.get(Metadata.RESOURCE_NAME)) from e

        for chunk in root.itertext():
            chunk = chunk.strip()
            if chunk:
                handler.characters(chunk + "\n")


class _HtmlTextCollector(HTMLParser):
    """Streams visible HTML text into a content handler."""

    SKIPPED_TAGS = {"script", "style", "noscript", "template"}
    BLOCK_TAGS = {
        "p", "div", "br", "li", "tr", "table", "section", "article",
        "h1", "h2", "h3", "h4", "h5", "h6", "blockquote", "pre",
    }

    def __init__(self, handler: ContentHandler):
        super().__init__(convert_charrefs=True)
        self.handler = handler
        self.title_parts: List[str] = []
        self._stack: List[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag, attrs):
        if tag in self.SKIPPED_TAGS:
            self._skip_depth += 1
        self._stack.append(tag)

    def handle_endtag(self, tag):
        if tag in self.SKIPPED_TAGS and self._skip_depth:
            self._skip_depth -= 1
        if self._stack and self._stack[-1] == tag:
            self._stack.pop()
        if tag in self.BLOCK_TAGS and not self._skip_depth:
            self.handler.characters("\n")

    def handle_data(self, data):
        if self._skip_depth:
            return
        if self._stack and self._stack[-1] == "title":
            self.title_parts.append(data)
            return
        if data.strip():
            self.handler.characters(data)

    @property
    def title(self) -> Optional[str]:
        title = "".join(self.title_parts).strip()
        return title or None


class HtmlParser(Parser):
    """Visible text of HTML pages; ``<title>`` goes to metadata."""

    parser_id = "html"

    SUPPORTED_TYPES = frozenset({"text/html", "application/xhtml+xml"})

    def supported_types(self, context: ParseContext) -> FrozenSet[str]:
        return self.SUPPORTED_TYPES

    def parse(self, stream, handler, metadata, context) -> None:
        text, encoding = decode_text(stream.read())
        metadata.set(Metadata.CONTENT_ENCODING, encoding)

        collector = _HtmlTextCollector(handler)
        collector.feed(text)
        collector.close()
        if collector.title:
            metadata.set(Metadata.TITLE, collector.title)
