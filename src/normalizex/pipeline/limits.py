"""Runtime limits resolved once per worker initialization."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from normalizex.api.schemas import InitializeRequest

DEFAULT_MAX_LONG_SIDE_PX: float = 2560

MISSING_TARGET_WARNING = (
    "Missing target_max_bytes in configuration; processing will fail until it is provided."
)

INVALID_LONG_SIDE_WARNING = "Ignoring max_long_side_px={value}; it must be positive. Using {default} instead."


@dataclass(frozen=True)
class RuntimeLimits:
    """Immutable output constraints and search tuning.

    ``target_max_bytes`` is None when no byte budget was configured; the
    worker refuses to process in that state.
    """

    max_long_side_px: float = DEFAULT_MAX_LONG_SIDE_PX
    target_max_bytes: float | None = None
    jpeg_quality_start: float = 0.95
    jpeg_min_quality: float = 0.65
    jpeg_quality_step: float = 0.05
    max_quality_iters: int = 8
    max_resize_passes: int = 4
    resize_down_factor: float = 0.9


def _finite(value: float | None) -> bool:
    return value is not None and math.isfinite(value)


def _positive(value: float | None) -> bool:
    return _finite(value) and value > 0  # type: ignore[operator]


def resolve_limits(request: InitializeRequest) -> tuple[RuntimeLimits, list[str]]:
    """Build limits from an init request and collect non-fatal warnings.

    A missing long side falls back to the default; a missing byte budget is
    kept as None and reported as a warning. Non-positive values of either are
    treated as missing and reported.
    """
    max_long_side = request.max_long_side_px
    target = request.target_max_bytes

    limits = RuntimeLimits(
        max_long_side_px=max_long_side if _positive(max_long_side) else DEFAULT_MAX_LONG_SIDE_PX,
        target_max_bytes=target if _positive(target) else None,
    )

    if request.overrides is not None:
        tuning = {
            name: value
            for name, value in request.overrides.model_dump(exclude_none=True).items()
            if _finite(value)
        }
        limits = replace(limits, **tuning)

    warnings: list[str] = []
    if _finite(max_long_side) and not _positive(max_long_side):
        warnings.append(INVALID_LONG_SIDE_WARNING.format(value=max_long_side, default=DEFAULT_MAX_LONG_SIDE_PX))
    if limits.target_max_bytes is None:
        warnings.append(MISSING_TARGET_WARNING)
    return limits, warnings
