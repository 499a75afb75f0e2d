"""
Geospatial raster parser.

Summarizes raster files (GeoTIFF, JPEG 2000 and friends) the way a
``gdalinfo`` listing does: size, bands, georeferencing. Pillow reads the
image header and the GeoTIFF tags; no pixels are recognized here.
"""

import io
from typing import Any, FrozenSet, List, Optional

import structlog
from PIL import Image, UnidentifiedImageError

from ..media import IMAGE_BMP, IMAGE_GIF, IMAGE_JPEG, IMAGE_PNG, IMAGE_TIFF
from ..types import Metadata, ParseContext, ParserError
from .base import Parser
from .ocr import DEFAULT_CONFIG, TesseractConfig, TesseractOcrParser


logger = structlog.get_logger(__name__)

# GeoTIFF tags
MODEL_PIXEL_SCALE = 33550
MODEL_TIEPOINT = 33922
MODEL_TRANSFORMATION = 34264
GEO_KEY_DIRECTORY = 34735
GEO_ASCII_PARAMS = 34737
GDAL_NODATA = 42113

# Any of these makes a TIFF a GeoTIFF
GEO_TAGS = (MODEL_PIXEL_SCALE, MODEL_TIEPOINT, MODEL_TRANSFORMATION, GEO_KEY_DIRECTORY)

# GeoKey ids holding an EPSG code
_EPSG_KEYS = {
    3072: "projected",    # ProjectedCSTypeGeoKey
    2048: "geographic",   # GeographicTypeGeoKey
}


def is_georeferenced(image: Image.Image) -> bool:
    tags = getattr(image, "tag_v2", None)
    return bool(tags) and any(tag in tags for tag in GEO_TAGS)


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (tuple, list)):
        return list(value)
    return [value]


def _geo_keys(directory: List[int]) -> dict:
    """Decode the GeoKeyDirectory header + entries into {key_id: value}."""
    keys = {}
    if len(directory) < 4:
        return keys
    count = directory[3]
    for index in range(count):
        entry = directory[4 + index * 4: 8 + index * 4]
        if len(entry) < 4:
            break
        key_id, location, _count, value = entry
        if location == 0:
            keys[key_id] = value
    return keys


class GeoRasterParser(Parser):
    """Raster summary and georeferencing metadata."""

    parser_id = "georaster"

    SUPPORTED_TYPES = frozenset({
        IMAGE_TIFF,
        "image/jp2",
        "image/x-geotiff",
        IMAGE_PNG,
        IMAGE_JPEG,
        IMAGE_BMP,
        IMAGE_GIF,
    })

    def __init__(self):
        self.logger = logger.bind(component="GeoRasterParser")

    def supported_types(self, context: ParseContext) -> FrozenSet[str]:
        return self.SUPPORTED_TYPES

    def parse(self, stream, handler, metadata, context) -> None:
        resource_name = metadata.get(Metadata.RESOURCE_NAME)
        data = stream.read()
        try:
            image = Image.open(io.BytesIO(data))
        except (UnidentifiedImageError, OSError) as e:
            raise ParserError(f"Unreadable raster: {e}", resource_name) from e

        # A TIFF without GeoTIFF tags is a scan: recognize it when OCR is on
        ocr_parser = self._ocr_parser(context)
        if ocr_parser is not None and image.format == "TIFF" and not is_georeferenced(image):
            image.close()
            self.logger.debug("Plain TIFF handed to OCR", resource_name=resource_name)
            ocr_parser.parse(io.BytesIO(data), handler, metadata, context)
            return

        with image:
            lines = [
                f"Driver: {image.format}",
                f"Size is {image.width}, {image.height}",
            ]
            bands = len(image.getbands())
            metadata.set("tiff:ImageWidth", image.width)
            metadata.set("tiff:ImageLength", image.height)
            metadata.set("raster:bands", bands)

            lines.extend(self._georeferencing(image, metadata))
            lines.append(f"Band count: {bands} ({image.mode})")

        for line in lines:
            handler.characters(line + "\n")

    @staticmethod
    def _ocr_parser(context: ParseContext) -> Optional[Parser]:
        if context.get(TesseractConfig, DEFAULT_CONFIG).skip_ocr:
            return None
        return context.get(TesseractOcrParser)

    def _georeferencing(self, image: Image.Image, metadata: Metadata) -> List[str]:
        tags = getattr(image, "tag_v2", None)
        if not tags:
            return []

        lines: List[str] = []
        citation = self._citation(tags.get(GEO_ASCII_PARAMS))
        if citation:
            metadata.set("geo:crs", citation)
            lines.append(f"Coordinate System is: {citation}")

        keys = _geo_keys([int(v) for v in _as_list(tags.get(GEO_KEY_DIRECTORY))])
        for key_id, kind in _EPSG_KEYS.items():
            code = keys.get(key_id)
            if code and code != 32767:  # user-defined
                metadata.set("geo:epsg", code)
                lines.append(f"EPSG ({kind}): {code}")
                break

        tiepoint = _as_list(tags.get(MODEL_TIEPOINT))
        if len(tiepoint) >= 6:
            origin = (float(tiepoint[3]), float(tiepoint[4]))
            metadata.set("geo:origin", f"{origin[0]},{origin[1]}")
            lines.append(f"Origin = ({origin[0]:.15f},{origin[1]:.15f})")

        scale = _as_list(tags.get(MODEL_PIXEL_SCALE))
        if len(scale) >= 2:
            pixel_size = (float(scale[0]), -float(scale[1]))
            metadata.set("geo:pixelSize", f"{pixel_size[0]},{pixel_size[1]}")
            lines.append(f"Pixel Size = ({pixel_size[0]:.15f},{pixel_size[1]:.15f})")

        nodata = tags.get(GDAL_NODATA)
        if nodata:
            lines.append(f"NoData Value={str(nodata).strip()}")
        return lines

    @staticmethod
    def _citation(value: Optional[Any]) -> Optional[str]:
        if not value:
            return None
        if isinstance(value, bytes):
            value = value.decode("ascii", errors="replace")
        citation = str(value).split("|")[0].strip()
        return citation or None
