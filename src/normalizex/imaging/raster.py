"""Raster data model shared by the decoders, the compositor and the encoder."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum, StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types import TracebackType

    from PIL import Image


class Orientation(IntEnum):
    """EXIF orientation tag values."""

    NORMAL = 1
    MIRROR_HORIZONTAL = 2
    ROTATE_180 = 3
    MIRROR_VERTICAL = 4
    MIRROR_HORIZONTAL_ROTATE_270 = 5
    ROTATE_90 = 6
    MIRROR_HORIZONTAL_ROTATE_90 = 7
    ROTATE_270 = 8


_SWAPPING_ORIENTATIONS = frozenset(
    {
        Orientation.MIRROR_HORIZONTAL_ROTATE_270,
        Orientation.ROTATE_90,
        Orientation.MIRROR_HORIZONTAL_ROTATE_90,
        Orientation.ROTATE_270,
    }
)


def is_valid_orientation(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 8


def swaps_axes(orientation: int) -> bool:
    """True for tags 5-8, whose transform exchanges width and height."""
    return orientation in _SWAPPING_ORIENTATIONS


def oriented_size(size: tuple[int, int], orientation: int) -> tuple[int, int]:
    """Return the (width, height) of a raster after its orientation is applied."""
    width, height = size
    if swaps_axes(orientation):
        return height, width
    return width, height


class DecodeProvenance(StrEnum):
    NATIVE_AUTO_ORIENT = "native-auto-orient"
    MANUAL_EXIF = "manual-exif-or-unknown"
    PLATFORM_CODEC = "platform-codec"
    EXTERNAL_PLUGIN = "external-plugin-decode"


@dataclass
class DecodedRaster:
    """A decoded image plus the orientation still to be applied to it.

    The raster owns its Pillow image; use it as a context manager so the
    pixel buffer is released once the request is done with it.
    """

    image: Image.Image
    orientation: int
    provenance: DecodeProvenance

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def oriented_size(self) -> tuple[int, int]:
        return oriented_size(self.image.size, self.orientation)

    def close(self) -> None:
        self.image.close()

    def __enter__(self) -> DecodedRaster:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


@dataclass(frozen=True)
class RenderPlan:
    """Output canvas dimensions for a given scale of the oriented raster."""

    scale: float
    width: int
    height: int

    @classmethod
    def for_scale(cls, oriented: tuple[int, int], scale: float) -> RenderPlan:
        width, height = oriented
        return cls(
            scale=scale,
            width=max(1, _round_half_up(width * scale)),
            height=max(1, _round_half_up(height * scale)),
        )

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height


def _round_half_up(value: float) -> int:
    return int(value + 0.5)
