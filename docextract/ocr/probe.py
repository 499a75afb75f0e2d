"""
Capability probe for the Tesseract OCR engine.

Answers one question before the pipelines are built: can Tesseract be
invoked with the configured binary, data directory and language? A
missing binary is a normal negative answer, not a fault. A broken setup
(bad data directory, language pack missing) is reported through
``last_error`` and also answers no.
"""

import os
import sys
from pathlib import Path
from typing import List, Optional

import pytesseract
import structlog

from ..types import OcrConfigurationError


logger = structlog.get_logger(__name__)

TESSERACT_EXECUTABLE = "tesseract.exe" if sys.platform.startswith("win") else "tesseract"


def resolve_tesseract_cmd(path: Optional[str]) -> Optional[str]:
    """
    Turn the configured path into a tesseract command.

    The setting may point at the executable itself or at the directory
    holding it. None means "use whatever is on PATH".
    """
    if not path:
        return None
    candidate = Path(path).expanduser()
    if candidate.is_dir():
        candidate = candidate / TESSERACT_EXECUTABLE
    return str(candidate)


def tessdata_option(data_path: Optional[str]) -> str:
    """Command line option pointing tesseract at a tessdata directory."""
    if not data_path:
        return ""
    return f'--tessdata-dir "{Path(data_path).expanduser()}"'


class OcrCapabilityProbe:
    """
    Checks whether Tesseract is installed and usable.

    Usage:
        probe = OcrCapabilityProbe(path="/usr/bin", data_path=None, language="eng")
        if probe.is_available():
            ...
    """

    def __init__(
        self,
        path: Optional[str] = None,
        data_path: Optional[str] = None,
        language: str = "eng",
    ):
        self.path = path
        self.data_path = data_path
        self.language = language
        self.version: Optional[str] = None
        self.last_error: Optional[Exception] = None
        self.logger = logger.bind(component="OcrCapabilityProbe")

    def is_available(self) -> bool:
        """Probe the engine. Never raises for a missing or misconfigured engine."""
        self.last_error = None
        try:
            self._check()
        except pytesseract.TesseractNotFoundError as e:
            self.logger.debug("Tesseract is not installed", path=self.path)
            self.last_error = e
            return False
        except OcrConfigurationError as e:
            self.logger.debug("Tesseract is not correctly set up", error=str(e))
            self.last_error = e
            return False
        except (OSError, pytesseract.TesseractError) as e:
            self.logger.debug("Tesseract could not be invoked", error=str(e), exc_info=True)
            self.last_error = e
            return False
        return True

    def _check(self) -> None:
        cmd = resolve_tesseract_cmd(self.path)
        if cmd is not None:
            if not os.path.exists(cmd):
                raise pytesseract.TesseractNotFoundError()
            self.logger.debug("Tesseract path set", tesseract_cmd=cmd)
            pytesseract.pytesseract.tesseract_cmd = cmd

        if self.data_path and not Path(self.data_path).expanduser().is_dir():
            raise OcrConfigurationError(f"Tesseract data path [{self.data_path}] is not a directory")

        self.version = str(pytesseract.get_tesseract_version())
        languages = self._installed_languages()
        missing = [lang for lang in self.language.split("+") if lang and lang not in languages]
        if missing:
            raise OcrConfigurationError(
                f"Tesseract language(s) {missing} not installed (available: {sorted(languages)})"
            )
        self.logger.debug("Tesseract found", version=self.version, language=self.language)

    def _installed_languages(self) -> List[str]:
        return pytesseract.get_languages(config=tessdata_option(self.data_path))
