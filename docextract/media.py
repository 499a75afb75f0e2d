"""
Media type detection from magic bytes, container listing and resource name.
"""

import codecs
import io
import mimetypes
import zipfile
from typing import FrozenSet, Optional

import puremagic
import structlog

from .types import Metadata


logger = structlog.get_logger(__name__)

OCTET_STREAM = "application/octet-stream"
TEXT_PLAIN = "text/plain"
ZIP = "application/zip"
ZIP_SIGNATURE = b"PK\x03\x04"

IMAGE_PNG = "image/png"
IMAGE_JPEG = "image/jpeg"
IMAGE_BMP = "image/bmp"
IMAGE_GIF = "image/gif"
IMAGE_TIFF = "image/tiff"

# Photographic raster types the geospatial parser must not claim
ORDINARY_RASTER_TYPES: FrozenSet[str] = frozenset({IMAGE_PNG, IMAGE_JPEG, IMAGE_BMP, IMAGE_GIF})

DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PPTX = "application/vnd.openxmlformats-officedocument.presentationml.presentation"

# Aliases seen from magic databases and OS mime tables
_ALIASES = {
    "image/x-ms-bmp": IMAGE_BMP,
    "image/x-bmp": IMAGE_BMP,
    "image/pjpeg": IMAGE_JPEG,
    "image/jpg": IMAGE_JPEG,
    "application/x-pdf": "application/pdf",
    "text/xml": "application/xml",
    "application/x-zip-compressed": ZIP,
}

# Types too generic to win over a more specific guess
_GENERIC_TYPES = frozenset({OCTET_STREAM, ZIP, TEXT_PLAIN, "application/xml"})

# Control bytes never found in plain text (tab, LF, FF, CR and ESC are allowed)
_BINARY_BYTES = frozenset(range(32)) - {9, 10, 12, 13, 27}

_OOXML_MARKERS = (
    ("word/", DOCX),
    ("xl/", XLSX),
    ("ppt/", PPTX),
)


def normalize(media_type: Optional[str]) -> Optional[str]:
    """Lower-case a media type and strip its parameters."""
    if not media_type:
        return None
    base = media_type.split(";", 1)[0].strip().lower()
    if not base or "/" not in base:
        return None
    return _ALIASES.get(base, base)


class MediaTypeDetector:
    """
    Detects the media type of a document.

    Order of evidence: magic bytes (puremagic), zip container listing for
    Office Open XML, resource name extension, declared Content-Type.
    Content that decodes as text with no control bytes is plain text.
    """

    def __init__(self, header_size: int = 8192):
        self.header_size = header_size
        self.logger = logger.bind(component="MediaTypeDetector")

    def detect(self, data: bytes, metadata: Metadata) -> str:
        resource_name = metadata.get(Metadata.RESOURCE_NAME)
        magic_type = self._from_magic(data)

        if magic_type in (None, ZIP) and data.startswith(ZIP_SIGNATURE):
            magic_type = self._from_zip_listing(data) or magic_type or ZIP

        name_type = self._from_name(resource_name)
        declared = normalize(metadata.get(Metadata.CONTENT_TYPE))

        for candidate in (magic_type, name_type, declared):
            if candidate and candidate not in _GENERIC_TYPES:
                return candidate

        detected = magic_type or name_type or declared
        if detected in (None, OCTET_STREAM):
            detected = TEXT_PLAIN if self._looks_like_text(data[:self.header_size]) else OCTET_STREAM
        self.logger.debug("Falling back to generic media type",
                          resource_name=resource_name, media_type=detected)
        return detected

    def _from_magic(self, data: bytes) -> Optional[str]:
        if not data:
            return None
        try:
            return normalize(puremagic.from_string(data[:self.header_size], mime=True))
        except (puremagic.PureError, ValueError):
            return None

    def _from_zip_listing(self, data: bytes) -> Optional[str]:
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                names = archive.namelist()
        except zipfile.BadZipFile:
            return None

        if "[Content_Types].xml" not in names:
            return None
        for prefix, media_type in _OOXML_MARKERS:
            if any(name.startswith(prefix) for name in names):
                return media_type
        return None

    @staticmethod
    def _from_name(resource_name: Optional[str]) -> Optional[str]:
        if not resource_name:
            return None
        guessed, _ = mimetypes.guess_type(resource_name, strict=False)
        return normalize(guessed)

    @staticmethod
    def _looks_like_text(sample: bytes) -> bool:
        if not sample or any(byte in _BINARY_BYTES for byte in sample):
            return False
        try:
            # Not final: the sample may end inside a multi-byte sequence
            codecs.getincrementaldecoder("utf-8")().decode(sample, final=False)
            return True
        except UnicodeDecodeError:
            pass
        try:
            sample.decode("cp1252")
            return True
        except UnicodeDecodeError:
            return False
