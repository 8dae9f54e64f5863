"""Orientation-aware rendering onto an opaque white canvas."""

from __future__ import annotations

from contextlib import closing

from PIL import Image

from normalizex.imaging.raster import Orientation, swaps_axes

BACKGROUND = (255, 255, 255)

# Pillow rotations are counter-clockwise, so "rotate 90" (clockwise) is ROTATE_270.
_TRANSPOSE_FOR_ORIENTATION: dict[int, Image.Transpose] = {
    Orientation.MIRROR_HORIZONTAL: Image.Transpose.FLIP_LEFT_RIGHT,
    Orientation.ROTATE_180: Image.Transpose.ROTATE_180,
    Orientation.MIRROR_VERTICAL: Image.Transpose.FLIP_TOP_BOTTOM,
    Orientation.MIRROR_HORIZONTAL_ROTATE_270: Image.Transpose.TRANSPOSE,
    Orientation.ROTATE_90: Image.Transpose.ROTATE_270,
    Orientation.MIRROR_HORIZONTAL_ROTATE_90: Image.Transpose.TRANSVERSE,
    Orientation.ROTATE_270: Image.Transpose.ROTATE_90,
}


def composite_oriented(source: Image.Image, orientation: int, size: tuple[int, int]) -> Image.Image:
    """Render ``source`` upright into an RGB image of exactly ``size``.

    ``size`` is the oriented output size. For orientations that swap axes the
    source is resampled to the transposed size first, so the transform lands
    on the requested dimensions. Transparent areas become white.
    """
    out_w, out_h = size
    draw_size = (out_h, out_w) if swaps_axes(orientation) else (out_w, out_h)

    prepared = _flatten_mode(source)
    try:
        if prepared.size == draw_size:
            resized = prepared.copy()
        else:
            resized = prepared.resize(draw_size, Image.Resampling.LANCZOS)
    finally:
        prepared.close()

    transpose = _TRANSPOSE_FOR_ORIENTATION.get(orientation)
    if transpose is not None:
        try:
            upright = resized.transpose(transpose)
        finally:
            resized.close()
        resized = upright

    canvas = Image.new("RGB", size, BACKGROUND)
    with closing(resized):
        if resized.mode == "RGBA":
            with closing(resized.getchannel("A")) as alpha:
                canvas.paste(resized, (0, 0), mask=alpha)
        else:
            canvas.paste(resized, (0, 0))
    return canvas


def _has_alpha(image: Image.Image) -> bool:
    if image.mode in ("RGBA", "LA", "PA", "RGBa", "La"):
        return True
    return image.mode == "P" and "transparency" in image.info


def _flatten_mode(image: Image.Image) -> Image.Image:
    """Return a new RGB or RGBA copy of ``image`` that the caller owns."""
    if _has_alpha(image):
        return image.convert("RGBA")
    return image.convert("RGB")
