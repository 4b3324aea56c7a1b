"""Rendering of PDF pages and decoding of raster images for recognition."""
from __future__ import annotations

import io
import logging
from typing import Optional

import fitz  # PyMuPDF
from PIL import Image, ImageOps, UnidentifiedImageError

from ..errors import ExtractionError

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_DIMENSION = 2000
DEFAULT_MAX_SCALE = 2.0


def compute_scale(width: float, height: float, max_dimension: int = DEFAULT_MAX_DIMENSION, max_scale: float = DEFAULT_MAX_SCALE) -> float:
    """Scale that fits a page into ``max_dimension`` without exceeding ``max_scale``."""

    if width <= 0 or height <= 0:
        return max_scale
    return min(max_dimension / width, max_dimension / height, max_scale)


class RasterDocument:
    """An open PDF whose pages can be rendered one at a time."""

    def __init__(self, document: "fitz.Document", max_dimension: int, max_scale: float) -> None:
        self._document = document
        self.max_dimension = max_dimension
        self.max_scale = max_scale

    @property
    def page_count(self) -> int:
        return self._document.page_count

    def render(self, page_number: int) -> Image.Image:
        """Render the 1-based ``page_number`` into an RGB image."""

        page = self._document.load_page(page_number - 1)
        scale = compute_scale(page.rect.width, page.rect.height, self.max_dimension, self.max_scale)
        pixmap = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
        return Image.frombytes("RGB", (pixmap.width, pixmap.height), pixmap.samples)

    def close(self) -> None:
        self._document.close()

    def __enter__(self) -> "RasterDocument":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class PdfRasterizer:
    def __init__(self, max_dimension: int = DEFAULT_MAX_DIMENSION, max_scale: float = DEFAULT_MAX_SCALE) -> None:
        self.max_dimension = max_dimension
        self.max_scale = max_scale

    def open(self, data: bytes) -> RasterDocument:
        try:
            document = fitz.open(stream=data, filetype="pdf")
        except (RuntimeError, ValueError) as error:
            raise ExtractionError(f"Failed to open PDF: {error}", cause=error) from error
        return RasterDocument(document, self.max_dimension, self.max_scale)


def load_image(data: bytes, max_dimension: Optional[int] = DEFAULT_MAX_DIMENSION) -> Image.Image:
    """Decode an uploaded image, apply EXIF orientation and downscale it to fit."""

    try:
        with Image.open(io.BytesIO(data)) as source:
            image = ImageOps.exif_transpose(source).convert("RGB")
    except (UnidentifiedImageError, OSError) as error:
        raise ExtractionError(f"Failed to decode image: {error}", cause=error) from error

    if max_dimension and max(image.size) > max_dimension:
        original = image.size
        image.thumbnail((max_dimension, max_dimension))
        LOGGER.debug("Downscaled image from %s to %s", original, image.size)
    return image
