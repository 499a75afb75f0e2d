from .config import ExtractionSettings, OcrSettings, get_settings
from .logging import bind_resource, clear_resource, configure_logging, get_logger

__all__ = [
    "ExtractionSettings",
    "OcrSettings",
    "get_settings",
    "configure_logging",
    "get_logger",
    "bind_resource",
    "clear_resource",
]
