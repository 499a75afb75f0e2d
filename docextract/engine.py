"""
Extraction engine.

Owns the parser registry of one process (or one test) and runs extraction
requests against it:

1. build the registry on first use, once, under a lock
2. pick the regular or the full OCR pipeline
3. parse into a bounded text sink
4. classify how the call ended (completed, truncated, empty, failed)

Registries are immutable once published. ``reset()`` drops the current one
so that the next call builds a fresh registry.
"""

import threading
from contextlib import closing
from typing import BinaryIO, Optional, Tuple

import structlog

from .core.config import ExtractionSettings
from .core.logging import bind_resource, clear_resource
from .handlers import BoundedTextSink
from .language import LanguageDetectorCache
from .parsers.base import Parser
from .pipeline.builder import PipelineBuilder
from .pipeline.registry import ParserRegistry
from .types import (
    ContentHandlerError,
    ExtractionError,
    ExtractionOutcome,
    ExtractionResult,
    Metadata,
    OcrCapability,
    StructuralParseError,
    WriteLimitReached,
    ZeroByteInputError,
)


logger = structlog.get_logger(__name__)

REGULAR_PIPELINE = "regular"
FULL_OCR_PIPELINE = "full_ocr"


class _CountingReader:
    """Binary stream wrapper remembering how many bytes were read."""

    def __init__(self, stream: BinaryIO):
        self._stream = stream
        self.bytes_read = 0

    def read(self, size: int = -1) -> bytes:
        data = self._stream.read(size)
        self.bytes_read += len(data)
        return data

    def close(self) -> None:
        self._stream.close()

    def __getattr__(self, name):
        return getattr(self._stream, name)


class ExtractionEngine:
    """
    Turns document streams into text.

    Usage:
        engine = ExtractionEngine()
        result = engine.extract(settings, False, 10000, open(path, "rb"),
                                Metadata({Metadata.RESOURCE_NAME: path}))
        print(result.outcome, result.text)
    """

    def __init__(
        self,
        builder: Optional[PipelineBuilder] = None,
        language_cache: Optional[LanguageDetectorCache] = None,
    ):
        self.builder = builder or PipelineBuilder()
        self.language_cache = language_cache or LanguageDetectorCache()
        self._lock = threading.Lock()
        self._registry: Optional[ParserRegistry] = None
        self._build_count = 0
        self._generation = 0
        self._settings_warned = False
        self.logger = logger.bind(component="ExtractionEngine")

    # ─── Registry lifecycle ────────────────────────────

    @property
    def build_count(self) -> int:
        """Number of registries built by this engine."""
        return self._build_count

    @property
    def generation(self) -> int:
        """Incremented by every reset."""
        return self._generation

    @property
    def ocr_capability(self) -> OcrCapability:
        """Effective OCR state; REQUESTED until the first registry is built."""
        registry = self._registry
        return registry.ocr_capability if registry is not None else OcrCapability.REQUESTED

    @property
    def initialized(self) -> bool:
        return self._registry is not None

    def registry(self, settings: ExtractionSettings) -> ParserRegistry:
        """
        Return the published registry, building it first if needed.

        A failed build publishes nothing: the next call tries again.
        """
        registry = self._registry
        if registry is None:
            with self._lock:
                registry = self._registry
                if registry is None:
                    registry = self.builder.build(settings, generation=self._generation)
                    self._build_count += 1
                    self._registry = registry
                    self.logger.debug("Parser registry built",
                                      generation=registry.generation,
                                      build_count=self._build_count,
                                      ocr_capability=registry.ocr_capability.value)

        if registry.settings != settings:
            with self._lock:
                warn = not self._settings_warned
                self._settings_warned = True
            if warn:
                self.logger.warning("Settings differ from the ones the parsers were built with; "
                                    "call reset() to apply them",
                                    generation=registry.generation)
        return registry

    def reset(self) -> None:
        """Drop the registry and the language models; the next call rebuilds them."""
        with self._lock:
            self._registry = None
            self._generation += 1
            self._settings_warned = False
        self.language_cache.reset()
        self.logger.debug("Extraction engine reset", generation=self._generation)

    # ─── Extraction ────────────────────────────────────

    def extract(
        self,
        settings: ExtractionSettings,
        force_pdf_ocr: bool,
        max_chars: Optional[int],
        stream: BinaryIO,
        metadata: Optional[Metadata] = None,
    ) -> ExtractionResult:
        """
        Extract the text of one document.

        The stream is read once and always closed. ``max_chars`` bounds the
        returned text (None: ``settings.indexed_chars``, negative: no bound).
        Parser faults other than content handling failures propagate.
        """
        metadata = metadata if metadata is not None else Metadata()
        resource_name = metadata.get(Metadata.RESOURCE_NAME)
        limit = settings.indexed_chars if max_chars is None else max_chars

        bind_resource(resource_name)
        try:
            with closing(stream):
                registry = self.registry(settings)
                pipeline_name, pipeline = self._select_pipeline(registry, force_pdf_ocr)

                reader = _CountingReader(stream)
                sink = BoundedTextSink(limit)
                error: Optional[ExtractionError] = None
                try:
                    pipeline.parse(reader, sink, metadata, registry.context)
                except ExtractionError as e:
                    error = e

                outcome = self._classify(sink, reader, error)
                if outcome is None:
                    raise error

            cause = None
            if outcome is ExtractionOutcome.TRUNCATED:
                self.logger.debug("Text extraction limit reached, text truncated",
                                  limit=limit, characters=sink.written)
            elif outcome is ExtractionOutcome.EMPTY:
                self.logger.debug("Empty input, nothing to extract")
            elif outcome is ExtractionOutcome.FAILED:
                cause = StructuralParseError("Unexpected content handling failure", resource_name)
                cause.__cause__ = error
                self.logger.warning("Text extraction failed", error=str(error))

            text = str(sink)
            result = ExtractionResult(
                text=text,
                metadata=metadata,
                outcome=outcome,
                ocr_capability=registry.ocr_capability,
                pipeline=pipeline_name,
                cause=cause,
            )
            if settings.lang_detect and outcome is not ExtractionOutcome.FAILED:
                result.language = self.detect_language(text)
                metadata.set(Metadata.LANGUAGE, result.language)

            self.logger.debug("Text extracted", **result.get_summary())
            return result
        finally:
            clear_resource()

    def extract_text(
        self,
        settings: ExtractionSettings,
        force_pdf_ocr: bool,
        max_chars: Optional[int],
        stream: BinaryIO,
        metadata: Optional[Metadata] = None,
    ) -> str:
        """Like ``extract()`` but returns the text and raises on a failed extraction."""
        result = self.extract(settings, force_pdf_ocr, max_chars, stream, metadata)
        if result.outcome is ExtractionOutcome.FAILED:
            raise result.cause
        return result.text

    def _select_pipeline(self, registry: ParserRegistry, force_pdf_ocr: bool) -> Tuple[str, Parser]:
        if not force_pdf_ocr:
            return REGULAR_PIPELINE, registry.regular
        if registry.ocr_capability.is_active:
            return FULL_OCR_PIPELINE, registry.full_ocr

        self.logger.warning("Full OCR requested while OCR is not active, using the regular pipeline",
                            ocr_capability=registry.ocr_capability.value)
        return REGULAR_PIPELINE, registry.regular

    @staticmethod
    def _classify(
        sink: BoundedTextSink,
        reader: _CountingReader,
        error: Optional[ExtractionError],
    ) -> Optional[ExtractionOutcome]:
        """Outcome of a parse, or None when the error must propagate."""
        if sink.limit_reached and (error is None or isinstance(error, WriteLimitReached)):
            return ExtractionOutcome.TRUNCATED
        if reader.bytes_read == 0 and (error is None or isinstance(error, ZeroByteInputError)):
            return ExtractionOutcome.EMPTY
        if error is None:
            return ExtractionOutcome.COMPLETED
        if isinstance(error, ContentHandlerError):
            return ExtractionOutcome.FAILED
        return None

    # ─── Language detection ────────────────────────────

    def language_detector(self):
        """The loaded langdetect ``DetectorFactory``, or None if the models failed to load."""
        return self.language_cache.detector()

    def detect_language(self, text: str) -> Optional[str]:
        return self.language_cache.detect(text)
