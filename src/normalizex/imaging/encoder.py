"""Size-constrained JPEG encoding.

The search runs two bounded loops: resize passes on the outside, quality
steps on the inside. Quality is exhausted at a given scale before the canvas
is shrunk, because re-encoding is cheaper than re-rendering. When neither
knob gets the output under the byte budget, a best-effort result at the last
scale and the minimum quality is returned and flagged as over the limit.
"""

from __future__ import annotations

import io
import logging
import math
from contextlib import closing
from dataclasses import dataclass
from typing import TYPE_CHECKING

from normalizex.imaging.compositor import composite_oriented
from normalizex.imaging.raster import RenderPlan, oriented_size

if TYPE_CHECKING:
    from PIL import Image

    from normalizex.pipeline.limits import RuntimeLimits

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncodeAttempt:
    """One encoded JPEG together with the knobs that produced it."""

    data: bytes
    width: int
    height: int
    quality: float
    scale: float
    pass_index: int
    iteration: int
    best_effort_over_limit: bool = False

    @property
    def size_bytes(self) -> int:
        return len(self.data)


def pillow_quality(quality: float) -> int:
    """Map a 0-1 quality fraction onto Pillow's 1-100 JPEG scale."""
    return max(1, min(100, round(quality * 100)))


def encode_jpeg(image: Image.Image, quality: float) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=pillow_quality(quality))
    return buffer.getvalue()


def next_quality(quality: float, limits: RuntimeLimits) -> float:
    """Step quality down, never below the configured floor."""
    # Rounding keeps repeated float subtraction from drifting past the floor.
    return max(limits.jpeg_min_quality, round(quality - limits.jpeg_quality_step, 6))


def initial_scale(oriented: tuple[int, int], max_long_side_px: float) -> float:
    long_side = max(oriented)
    if long_side <= max_long_side_px:
        return 1.0
    return max_long_side_px / long_side


def encode_within_budget(image: Image.Image, orientation: int, limits: RuntimeLimits) -> EncodeAttempt:
    """Encode ``image`` upright as a JPEG that fits ``limits.target_max_bytes``.

    Args:
        image: Decoded source raster, in its stored (not yet oriented) layout.
        orientation: EXIF orientation still to be applied (1-8).
        limits: Long-side, byte-size and search limits.

    Returns:
        The first attempt under the byte budget, or a best-effort attempt with
        ``best_effort_over_limit`` set once every pass is exhausted.

    Raises:
        ValueError: If the long-side or byte limit is not a positive finite number.
    """
    target = limits.target_max_bytes
    if not _is_positive_finite(limits.max_long_side_px):
        raise ValueError("Invalid max_long_side_px")
    if target is None or not _is_positive_finite(target):
        raise ValueError("Invalid target_max_bytes")

    oriented = oriented_size(image.size, orientation)
    scale = initial_scale(oriented, limits.max_long_side_px)

    for pass_index in range(limits.max_resize_passes):
        plan = RenderPlan.for_scale(oriented, scale)
        with closing(composite_oriented(image, orientation, plan.size)) as canvas:
            quality = limits.jpeg_quality_start
            for iteration in range(limits.max_quality_iters):
                data = encode_jpeg(canvas, quality)
                logger.debug(
                    "pass=%d iter=%d %dx%d quality=%.2f -> %d bytes",
                    pass_index,
                    iteration,
                    plan.width,
                    plan.height,
                    quality,
                    len(data),
                )
                if len(data) <= target:
                    return EncodeAttempt(
                        data=data,
                        width=plan.width,
                        height=plan.height,
                        quality=quality,
                        scale=scale,
                        pass_index=pass_index,
                        iteration=iteration,
                    )

                lowered = next_quality(quality, limits)
                if lowered == quality:
                    break
                quality = lowered

        scale *= limits.resize_down_factor

    plan = RenderPlan.for_scale(oriented, scale)
    with closing(composite_oriented(image, orientation, plan.size)) as canvas:
        data = encode_jpeg(canvas, limits.jpeg_min_quality)

    over_limit = len(data) > target
    if over_limit:
        logger.warning(
            "Byte budget not met after %d passes: %d bytes > %d (%dx%d)",
            limits.max_resize_passes,
            len(data),
            int(target),
            plan.width,
            plan.height,
        )
    return EncodeAttempt(
        data=data,
        width=plan.width,
        height=plan.height,
        quality=limits.jpeg_min_quality,
        scale=scale,
        pass_index=limits.max_resize_passes,
        iteration=limits.max_quality_iters,
        best_effort_over_limit=over_limit,
    )


def _is_positive_finite(value: float) -> bool:
    return math.isfinite(value) and value > 0
