"""
OCR capability detection.
"""

from .probe import OcrCapabilityProbe, resolve_tesseract_cmd, tessdata_option

__all__ = [
    "OcrCapabilityProbe",
    "resolve_tesseract_cmd",
    "tessdata_option",
]
