"""
Parser abstractions and composition.

Every format adapter subclasses ``Parser``. Pipelines are assembled from
them with ``CompositeParser`` (media type dispatch), ``ParserDecorator``
(supported type filtering) and ``AutoDetectParser`` (detection first).
"""

import io
from abc import ABC, abstractmethod
from importlib.metadata import entry_points
from typing import BinaryIO, Dict, FrozenSet, Iterable, List, Optional, Sequence, Type

import structlog

from ..handlers import ContentHandler
from ..media import MediaTypeDetector, normalize
from ..types import Metadata, ParseContext, ZeroByteInputError


logger = structlog.get_logger(__name__)

ENTRY_POINT_GROUP = "docextract.parsers"


class Parser(ABC):
    """
    Format parser.

    Subclasses:
    1. set ``parser_id``
    2. implement ``supported_types()``: media types they can read
    3. implement ``parse()``: write text into the handler, enrich metadata
    """

    parser_id: str = ""

    @abstractmethod
    def supported_types(self, context: ParseContext) -> FrozenSet[str]:
        raise NotImplementedError

    @abstractmethod
    def parse(
        self,
        stream: BinaryIO,
        handler: ContentHandler,
        metadata: Metadata,
        context: ParseContext,
    ) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.parser_id!r})"


class EmptyParser(Parser):
    """Fallback for unsupported media types: emits nothing."""

    parser_id = "empty"

    def supported_types(self, context: ParseContext) -> FrozenSet[str]:
        return frozenset()

    def parse(self, stream, handler, metadata, context) -> None:
        logger.debug("No parser for media type",
                     content_type=metadata.get(Metadata.CONTENT_TYPE),
                     resource_name=metadata.get(Metadata.RESOURCE_NAME))


EMPTY_PARSER = EmptyParser()


class ParserDecorator(Parser):
    """Wraps a parser, hiding some of its supported media types."""

    def __init__(self, parser: Parser, excluded_types: Iterable[str] = ()):
        self.parser = parser
        self.excluded_types = frozenset(normalize(t) for t in excluded_types)
        self.parser_id = parser.parser_id

    @classmethod
    def without_types(cls, parser: Parser, excluded_types: Iterable[str]) -> "ParserDecorator":
        return cls(parser, excluded_types)

    @property
    def wrapped_type(self) -> Type[Parser]:
        return type(self.parser)

    def supported_types(self, context: ParseContext) -> FrozenSet[str]:
        return self.parser.supported_types(context) - self.excluded_types

    def parse(self, stream, handler, metadata, context) -> None:
        self.parser.parse(stream, handler, metadata, context)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.parser!r}, excluded={sorted(self.excluded_types)})"


class CompositeParser(Parser):
    """
    Dispatches to the sub-parser registered for the document media type.

    Parsers given later override earlier ones for an overlapping type.
    """

    parser_id = "composite"

    def __init__(self, parsers: Sequence[Parser], fallback: Parser = EMPTY_PARSER):
        self.parsers: List[Parser] = list(parsers)
        self.fallback = fallback

    def parsers_by_type(self, context: ParseContext) -> Dict[str, Parser]:
        mapping: Dict[str, Parser] = {}
        for parser in self.parsers:
            for media_type in parser.supported_types(context):
                mapping[media_type] = parser
        return mapping

    def supported_types(self, context: ParseContext) -> FrozenSet[str]:
        return frozenset(self.parsers_by_type(context))

    def parser_for(self, media_type: Optional[str], context: ParseContext) -> Parser:
        media_type = normalize(media_type)
        if media_type is None:
            return self.fallback
        return self.parsers_by_type(context).get(media_type, self.fallback)

    def parse(self, stream, handler, metadata, context) -> None:
        parser = self.parser_for(metadata.get(Metadata.CONTENT_TYPE), context)
        if parser is not self.fallback:
            parsed_by = parser.wrapped_type if isinstance(parser, ParserDecorator) else type(parser)
            metadata.add(Metadata.PARSED_BY, parsed_by.__name__)
        parser.parse(stream, handler, metadata, context)


class AutoDetectParser(CompositeParser):
    """
    Composite parser that detects the media type before dispatching.

    Reads the stream once; an empty stream raises ``ZeroByteInputError``.
    """

    parser_id = "auto"

    def __init__(self, *parsers: Parser, detector: Optional[MediaTypeDetector] = None):
        super().__init__(parsers)
        self.detector = detector or MediaTypeDetector()

    def parse(self, stream, handler, metadata, context) -> None:
        data = stream.read()
        if not data:
            raise ZeroByteInputError("InputStream must have > 0 bytes",
                                     metadata.get(Metadata.RESOURCE_NAME))

        metadata.set(Metadata.CONTENT_TYPE, self.detector.detect(data, metadata))
        handler.start_document()
        super().parse(io.BytesIO(data), handler, metadata, context)
        handler.end_document()


def builtin_parser_classes() -> List[Type[Parser]]:
    """The parser classes shipped with this package."""
    from .ocr import TesseractOcrParser
    from .office import OfficeOpenXmlParser
    from .pdf import PdfParser
    from .raster import GeoRasterParser
    from .text import HtmlParser, TextParser, XmlParser

    return [
        TextParser,
        XmlParser,
        HtmlParser,
        OfficeOpenXmlParser,
        TesseractOcrParser,
        PdfParser,
        GeoRasterParser,
    ]


def discovered_parser_classes() -> List[Type[Parser]]:
    """Parser classes registered by other distributions under the entry point group."""
    classes: List[Type[Parser]] = []
    for entry_point in entry_points(group=ENTRY_POINT_GROUP):
        try:
            loaded = entry_point.load()
        except Exception as e:
            logger.warning("Could not load parser entry point",
                           entry_point=entry_point.name, error=str(e))
            continue
        if isinstance(loaded, type) and issubclass(loaded, Parser):
            classes.append(loaded)
        else:
            logger.warning("Entry point is not a Parser subclass",
                           entry_point=entry_point.name)
    return classes


class DefaultParser(CompositeParser):
    """
    Generic dispatcher over every known parser class.

    Classes listed in ``exclude`` are left out so that a pipeline can
    register its own configured instance instead.
    """

    parser_id = "default"

    def __init__(
        self,
        exclude: Iterable[Type[Parser]] = (),
        parser_classes: Optional[Sequence[Type[Parser]]] = None,
    ):
        excluded = tuple(exclude)
        if parser_classes is None:
            parser_classes = builtin_parser_classes() + discovered_parser_classes()

        parsers = [
            parser_class()
            for parser_class in parser_classes
            if not issubclass(parser_class, excluded)
        ]
        super().__init__(parsers)
        self.excluded = excluded
        logger.debug("Default parser assembled",
                     parsers=[type(p).__name__ for p in parsers],
                     excluded=[c.__name__ for c in excluded])
