"""
Office Open XML (docx, xlsx, pptx) text extraction.
"""

import re
import zipfile
from typing import FrozenSet, Iterator, List
from xml.etree import ElementTree as ET

import structlog

from ..handlers import ContentHandler
from ..media import DOCX, PPTX, XLSX
from ..types import Metadata, ParseContext, ParserError
from .base import Parser


logger = structlog.get_logger(__name__)

W_NS = "{http://schemas.openxmlformats.org/wordprocessingml/2006/main}"
S_NS = "{http://schemas.openxmlformats.org/spreadsheetml/2006/main}"
A_NS = "{http://schemas.openxmlformats.org/drawingml/2006/main}"

CORE_PROPERTIES = "docProps/core.xml"
CORE_FIELDS = {
    "{http://purl.org/dc/elements/1.1/}title": Metadata.TITLE,
    "{http://purl.org/dc/elements/1.1/}creator": Metadata.CREATOR,
    "{http://purl.org/dc/elements/1.1/}subject": Metadata.SUBJECT,
    "{http://purl.org/dc/elements/1.1/}language": Metadata.LANGUAGE,
}

_SLIDE_NAME = re.compile(r"^ppt/slides/slide(\d+)\.xml$")


class OfficeOpenXmlParser(Parser):
    """Reads the text parts of OOXML packages."""

    parser_id = "ooxml"

    def supported_types(self, context: ParseContext) -> FrozenSet[str]:
        return frozenset({DOCX, XLSX, PPTX})

    def parse(self, stream, handler, metadata, context) -> None:
        resource_name = metadata.get(Metadata.RESOURCE_NAME)
        try:
            archive = zipfile.ZipFile(stream)
        except zipfile.BadZipFile as e:
            raise ParserError(f"Not a valid Office Open XML package: {e}", resource_name) from e

        with archive:
            self._read_core_properties(archive, metadata)
            content_type = metadata.get(Metadata.CONTENT_TYPE)
            try:
                if content_type == DOCX:
                    self._emit(handler, self._docx_paragraphs(archive))
                elif content_type == XLSX:
                    self._emit(handler, self._xlsx_strings(archive))
                elif content_type == PPTX:
                    self._emit(handler, self._pptx_runs(archive))
            except (KeyError, ET.ParseError) as e:
                raise ParserError(f"Broken Office Open XML part: {e}", resource_name) from e

    @staticmethod
    def _emit(handler: ContentHandler, chunks: Iterator[str]) -> None:
        for chunk in chunks:
            if chunk:
                handler.characters(chunk + "\n")

    @staticmethod
    def _read_core_properties(archive: zipfile.ZipFile, metadata: Metadata) -> None:
        if CORE_PROPERTIES not in archive.namelist():
            return
        try:
            root = ET.fromstring(archive.read(CORE_PROPERTIES))
        except ET.ParseError:
            logger.debug("Ignoring unreadable core properties",
                         resource_name=metadata.get(Metadata.RESOURCE_NAME))
            return
        for element in root:
            key = CORE_FIELDS.get(element.tag)
            if key and element.text and element.text.strip():
                metadata.set(key, element.text.strip())

    @staticmethod
    def _docx_paragraphs(archive: zipfile.ZipFile) -> Iterator[str]:
        root = ET.fromstring(archive.read("word/document.xml"))
        for paragraph in root.iter(f"{W_NS}p"):
            yield "".join(node.text or "" for node in paragraph.iter(f"{W_NS}t"))

    @staticmethod
    def _xlsx_strings(archive: zipfile.ZipFile) -> Iterator[str]:
        if "xl/sharedStrings.xml" not in archive.namelist():
            return
        root = ET.fromstring(archive.read("xl/sharedStrings.xml"))
        for item in root.iter(f"{S_NS}si"):
            yield "".join(node.text or "" for node in item.iter(f"{S_NS}t"))

    @staticmethod
    def _pptx_runs(archive: zipfile.ZipFile) -> Iterator[str]:
        slides: List[tuple] = []
        for name in archive.namelist():
            match = _SLIDE_NAME.match(name)
            if match:
                slides.append((int(match.group(1)), name))

        for _, name in sorted(slides):
            root = ET.fromstring(archive.read(name))
            for paragraph in root.iter(f"{A_NS}p"):
                yield "".join(node.text or "" for node in paragraph.iter(f"{A_NS}t"))
