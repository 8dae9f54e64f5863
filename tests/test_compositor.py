"""Tests for orientation-aware compositing."""

from __future__ import annotations

import pytest
from PIL import Image

from normalizex.imaging.compositor import composite_oriented
from normalizex.imaging.raster import RenderPlan, oriented_size

RED = (255, 0, 0)
GREEN = (0, 255, 0)
BLUE = (0, 0, 255)
YELLOW = (255, 255, 0)
WHITE = (255, 255, 255)

# Displayed (top-left, top-right, bottom-left, bottom-right) for a raw image
# whose corners are (tl, tr, bl, br) = (RED, GREEN, BLUE, YELLOW).
EXPECTED_CORNERS: dict[int, tuple[tuple[int, int, int], ...]] = {
    1: (RED, GREEN, BLUE, YELLOW),
    2: (GREEN, RED, YELLOW, BLUE),
    3: (YELLOW, BLUE, GREEN, RED),
    4: (BLUE, YELLOW, RED, GREEN),
    5: (RED, BLUE, GREEN, YELLOW),
    6: (BLUE, RED, YELLOW, GREEN),
    7: (YELLOW, GREEN, BLUE, RED),
    8: (GREEN, YELLOW, RED, BLUE),
}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _quadrants(width: int = 80, height: int = 40, mode: str = "RGB") -> Image.Image:
    image = Image.new(mode, (width, height))
    half_w, half_h = width // 2, height // 2
    image.paste(RED, (0, 0, half_w, half_h))
    image.paste(GREEN, (half_w, 0, width, half_h))
    image.paste(BLUE, (0, half_h, half_w, height))
    image.paste(YELLOW, (half_w, half_h, width, height))
    return image


def _corner_colors(image: Image.Image) -> tuple[tuple[int, int, int], ...]:
    width, height = image.size
    points = [
        (width // 4, height // 4),
        (3 * width // 4, height // 4),
        (width // 4, 3 * height // 4),
        (3 * width // 4, 3 * height // 4),
    ]
    return tuple(image.getpixel(point)[:3] for point in points)


def _close(actual: tuple[int, ...], expected: tuple[int, ...], tolerance: int = 8) -> bool:
    return all(abs(a - e) <= tolerance for a, e in zip(actual, expected, strict=True))


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


class TestOrientedSize:
    @pytest.mark.parametrize("orientation", [1, 2, 3, 4])
    def test_keeps_axes(self, orientation: int) -> None:
        assert oriented_size((400, 300), orientation) == (400, 300)

    @pytest.mark.parametrize("orientation", [5, 6, 7, 8])
    def test_swaps_axes(self, orientation: int) -> None:
        assert oriented_size((400, 300), orientation) == (300, 400)


class TestRenderPlan:
    def test_rounds_half_up(self) -> None:
        plan = RenderPlan.for_scale((5, 3), 0.5)
        assert plan.size == (3, 2)

    def test_never_below_one_pixel(self) -> None:
        plan = RenderPlan.for_scale((1000, 1), 0.01)
        assert plan.size == (10, 1)


# ---------------------------------------------------------------------------
# Compositing
# ---------------------------------------------------------------------------


class TestCompositeOriented:
    @pytest.mark.parametrize("orientation", range(1, 9))
    def test_output_has_exact_oriented_size(self, orientation: int) -> None:
        source = _quadrants()
        size = oriented_size(source.size, orientation)
        with composite_oriented(source, orientation, size) as canvas:
            assert canvas.size == size
            assert canvas.mode == "RGB"

    @pytest.mark.parametrize("orientation", range(1, 9))
    def test_corners_land_where_exif_says(self, orientation: int) -> None:
        source = _quadrants()
        size = oriented_size(source.size, orientation)
        with composite_oriented(source, orientation, size) as canvas:
            assert _corner_colors(canvas) == EXPECTED_CORNERS[orientation]

    @pytest.mark.parametrize("orientation", range(1, 9))
    def test_corners_survive_downscaling(self, orientation: int) -> None:
        source = _quadrants(160, 80)
        width, height = oriented_size(source.size, orientation)
        with composite_oriented(source, orientation, (width // 2, height // 2)) as canvas:
            assert canvas.size == (width // 2, height // 2)
            for actual, expected in zip(_corner_colors(canvas), EXPECTED_CORNERS[orientation], strict=True):
                assert _close(actual, expected)

    def test_rotate_90_puts_raw_top_left_at_top_right(self) -> None:
        source = _quadrants(80, 40)
        with composite_oriented(source, 6, (40, 80)) as canvas:
            assert canvas.getpixel((35, 5)) == RED
            assert canvas.getpixel((5, 5)) == BLUE

    def test_transparent_pixels_become_white(self) -> None:
        source = Image.new("RGBA", (20, 10), (0, 0, 0, 0))
        source.paste((10, 20, 30, 255), (10, 0, 20, 10))
        with composite_oriented(source, 1, (20, 10)) as canvas:
            assert canvas.mode == "RGB"
            assert canvas.getpixel((2, 5)) == WHITE
            assert canvas.getpixel((15, 5)) == (10, 20, 30)

    def test_half_transparent_pixels_blend_with_white(self) -> None:
        source = Image.new("RGBA", (4, 4), (0, 0, 0, 128))
        with composite_oriented(source, 1, (4, 4)) as canvas:
            value = canvas.getpixel((1, 1))
            assert all(120 <= channel <= 135 for channel in value)

    def test_palette_transparency_becomes_white(self) -> None:
        source = Image.new("P", (8, 8), 0)
        source.putpalette([0, 0, 0, 255, 0, 0] + [0] * 762)
        source.paste(1, (4, 0, 8, 8))
        source.info["transparency"] = 0
        with composite_oriented(source, 1, (8, 8)) as canvas:
            assert canvas.getpixel((1, 4)) == WHITE
            assert canvas.getpixel((6, 4)) == RED

    def test_grayscale_source_is_converted(self) -> None:
        source = Image.new("L", (6, 6), 100)
        with composite_oriented(source, 3, (6, 6)) as canvas:
            assert canvas.getpixel((3, 3)) == (100, 100, 100)

    def test_source_is_left_open_and_unchanged(self) -> None:
        source = _quadrants()
        with composite_oriented(source, 6, (40, 80)):
            pass
        assert source.size == (80, 40)
        assert source.getpixel((0, 0)) == RED
