"""
Type definitions shared by the extraction engine, the pipelines and the parsers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Type, TypeVar


T = TypeVar("T")


class PdfOcrStrategy(str, Enum):
    """Policy governing whether OCR runs on PDF pages relative to the text layer."""
    NO_OCR = "no_ocr"
    OCR_ONLY = "ocr_only"
    OCR_AND_TEXT = "ocr_and_text"
    AUTO = "auto"


class OcrOutputType(str, Enum):
    """Output format requested from the OCR engine."""
    TXT = "txt"
    HOCR = "hocr"


class OcrCapability(Enum):
    """Effective OCR state of a parser registry."""
    DISABLED = "disabled"          # OCR not requested in settings
    REQUESTED = "requested"        # requested, probe not run yet
    DOWNGRADED = "downgraded"      # requested, engine unusable
    ACTIVE = "active"

    @property
    def is_active(self) -> bool:
        return self is OcrCapability.ACTIVE


class ExtractionOutcome(Enum):
    """How a single extraction call ended."""
    COMPLETED = "completed"
    TRUNCATED = "truncated"
    EMPTY = "empty"
    FAILED = "failed"


# ─── Errors ───────────────────────────────────────────

class ExtractionError(Exception):
    """Base exception for text extraction errors."""

    def __init__(self, message: str, resource_name: Optional[str] = None):
        self.resource_name = resource_name
        super().__init__(message)


class ParserError(ExtractionError):
    """A sub-parser could not read the document (malformed or unsupported content)."""
    pass


class EncryptedDocumentError(ParserError):
    """The document is password protected."""
    pass


class ZeroByteInputError(ExtractionError):
    """The input stream held no bytes."""
    pass


class ContentHandlerError(ExtractionError):
    """A content handler refused or failed to consume parser output."""
    pass


class WriteLimitReached(ContentHandlerError):
    """Raised by a bounded sink once its character budget is used up."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Your document contained more than {limit} characters")


class StructuralParseError(ExtractionError):
    """Hard extraction failure caused by a content handling fault."""
    pass


class ConfigurationError(ExtractionError):
    """Settings could not be loaded or validated."""
    pass


class OcrConfigurationError(ExtractionError):
    """The OCR engine is present but not correctly set up."""
    pass


# ─── Metadata ─────────────────────────────────────────

class Metadata:
    """
    Multi-valued, string keyed document attributes.

    Filled by the caller (at least the resource name) and enriched by the
    parsers with whatever they discover while reading the document.
    """

    RESOURCE_NAME = "resourceName"
    CONTENT_TYPE = "Content-Type"
    CONTENT_ENCODING = "Content-Encoding"
    TITLE = "dc:title"
    CREATOR = "dc:creator"
    SUBJECT = "dc:subject"
    LANGUAGE = "dc:language"
    PAGE_COUNT = "xmpTPg:NPages"
    PARSED_BY = "X-Parsed-By"
    PDF_OCR_STRATEGY = "pdf:ocrStrategy"
    PDF_ENCRYPTED = "pdf:encrypted"
    EMBEDDED_RESOURCE_TYPE = "embeddedResourceType"

    def __init__(self, values: Optional[Dict[str, Any]] = None):
        self._values: Dict[str, List[str]] = {}
        for name, value in (values or {}).items():
            if isinstance(value, (list, tuple)):
                for item in value:
                    self.add(name, item)
            else:
                self.set(name, value)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        values = self._values.get(name)
        return values[0] if values else default

    def get_values(self, name: str) -> List[str]:
        return list(self._values.get(name, []))

    def set(self, name: str, value: Any) -> None:
        if value is None:
            self._values.pop(name, None)
        else:
            self._values[name] = [str(value)]

    def add(self, name: str, value: Any) -> None:
        if value is not None:
            self._values.setdefault(name, []).append(str(value))

    def remove(self, name: str) -> None:
        self._values.pop(name, None)

    def names(self) -> List[str]:
        return list(self._values)

    def to_dict(self) -> Dict[str, Any]:
        """Single values as strings, repeated values as lists."""
        return {
            name: values[0] if len(values) == 1 else list(values)
            for name, values in self._values.items()
        }

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Metadata({self.to_dict()!r})"


class ParseContext:
    """
    Typed bag of objects shared by every parser of a registry.

    Entries are keyed by class, e.g. ``context.get(TesseractConfig)``.
    Populated once while the registry is built and read-only afterwards.
    """

    def __init__(self):
        self._entries: Dict[type, Any] = {}

    def set(self, key: Type[T], value: Optional[T]) -> None:
        if value is None:
            self._entries.pop(key, None)
        else:
            self._entries[key] = value

    def get(self, key: Type[T], default: Optional[T] = None) -> Optional[T]:
        return self._entries.get(key, default)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


@dataclass
class ExtractionResult:
    """Outcome of one extraction call."""
    text: str
    metadata: Metadata
    outcome: ExtractionOutcome
    ocr_capability: OcrCapability
    pipeline: str = "regular"
    language: Optional[str] = None
    cause: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.outcome is not ExtractionOutcome.FAILED

    @property
    def truncated(self) -> bool:
        return self.outcome is ExtractionOutcome.TRUNCATED

    def get_summary(self) -> Dict[str, Any]:
        """Summary for logging."""
        return {
            "outcome": self.outcome.value,
            "pipeline": self.pipeline,
            "ocr_capability": self.ocr_capability.value,
            "characters": len(self.text),
            "language": self.language,
            "content_type": self.metadata.get(Metadata.CONTENT_TYPE),
        }
