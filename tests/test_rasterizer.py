from __future__ import annotations

import io

import pytest
from PIL import Image

from conftest import build_pdf
from lesson_ingest.errors import ExtractionError
from lesson_ingest.ingest.rasterizer import PdfRasterizer, compute_scale, load_image


def test_compute_scale_caps_small_pages_at_max_scale() -> None:
    assert compute_scale(612, 792) == 2.0


def test_compute_scale_fits_large_pages_into_max_dimension() -> None:
    assert compute_scale(4000, 1000) == pytest.approx(0.5)
    assert compute_scale(1000, 5000, max_dimension=1000) == pytest.approx(0.2)


def test_rasterizer_renders_pages_within_bounds() -> None:
    rasterizer = PdfRasterizer(max_dimension=800, max_scale=2.0)

    with rasterizer.open(build_pdf(["Page one", "Page two"])) as document:
        assert document.page_count == 2
        image = document.render(2)

    assert image.mode == "RGB"
    assert abs(max(image.size) - 800) <= 1


def test_rasterizer_rejects_corrupt_pdf() -> None:
    with pytest.raises(ExtractionError):
        PdfRasterizer().open(b"this is not a pdf document")


def test_load_image_downscales_and_converts_to_rgb() -> None:
    buffer = io.BytesIO()
    Image.new("RGBA", (3000, 600), (255, 0, 0, 128)).save(buffer, format="PNG")

    image = load_image(buffer.getvalue(), max_dimension=1500)

    assert image.mode == "RGB"
    assert image.size == (1500, 300)


def test_load_image_rejects_undecodable_bytes() -> None:
    with pytest.raises(ExtractionError, match="Failed to decode image"):
        load_image(b"not an image")
