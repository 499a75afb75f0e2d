"""
Lazily loaded language detection models.

The langdetect profiles are loaded on first use, once. A load failure is
logged and remembered: the cache then answers ``None`` until ``reset()``.
"""

import threading
from typing import Optional

import structlog
from langdetect import DetectorFactory, PROFILES_DIRECTORY
from langdetect.lang_detect_exception import LangDetectException


logger = structlog.get_logger(__name__)

UNKNOWN_LANGUAGE = "unknown"


class LanguageDetectorCache:
    """Holds one loaded ``DetectorFactory`` (or nothing after a failed load)."""

    def __init__(self, profiles_directory: Optional[str] = None, seed: int = 0):
        self.profiles_directory = profiles_directory or PROFILES_DIRECTORY
        self.seed = seed
        self._lock = threading.Lock()
        self._factory: Optional[DetectorFactory] = None
        self._attempted = False
        self.logger = logger.bind(component="LanguageDetectorCache")

    @property
    def attempted(self) -> bool:
        return self._attempted

    def detector(self) -> Optional[DetectorFactory]:
        """The loaded detector factory, or None when the models could not be loaded."""
        if self._attempted:
            return self._factory
        with self._lock:
            if not self._attempted:
                self._factory = self._load()
                self._attempted = True
        return self._factory

    def _load(self) -> Optional[DetectorFactory]:
        factory = DetectorFactory()
        factory.set_seed(self.seed)
        try:
            factory.load_profile(self.profiles_directory)
        except (LangDetectException, OSError) as e:
            self.logger.warning("Unable to load language detection models",
                                profiles_directory=self.profiles_directory,
                                error=str(e))
            return None
        self.logger.debug("Language detection models loaded",
                          languages=len(factory.get_lang_list()))
        return factory

    def detect(self, text: str) -> Optional[str]:
        """ISO 639-1 code of the text language, None when it cannot be told."""
        if not text or not text.strip():
            return None
        factory = self.detector()
        if factory is None:
            return None
        try:
            detector = factory.create()
            detector.append(text)
            language = detector.detect()
        except LangDetectException:
            return None
        return None if language == UNKNOWN_LANGUAGE else language

    def reset(self) -> None:
        with self._lock:
            self._factory = None
            self._attempted = False
