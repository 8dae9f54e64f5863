"""Decode strategies: a chain of capabilities tried in order.

Non-HEIC formats go through Pillow, first with EXIF orientation applied by
``ImageOps.exif_transpose`` and, if that fails, as a plain decode paired with
the manual EXIF reader. HEIC/HEIF goes through pillow-heif when the platform
codec is enabled, then an injected external decoder.
"""

from __future__ import annotations

import io
import logging
from contextlib import closing
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import pillow_heif
from PIL import Image, ImageOps, UnidentifiedImageError

from normalizex.errors import HeicDecoderMalfunctionError, HeicUnavailableError, ImageDecodeError
from normalizex.imaging.exif import read_jpeg_orientation
from normalizex.imaging.mime import JPEG_MIME, is_heic_like
from normalizex.imaging.raster import DecodedRaster, DecodeProvenance, Orientation, is_valid_orientation

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# External HEIC decoder contract
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HeicDecodeResult:
    """RGBA pixels produced by an external HEIC decoder."""

    width: int
    height: int
    rgba: bytes | bytearray | memoryview | None
    orientation: int | None = None


class HeicDecoder(Protocol):
    """Collaborator that turns raw HEIC/HEIF bytes into RGBA pixels."""

    def decode_to_rgba(self, data: bytes) -> HeicDecodeResult:
        """Decode ``data`` into a width x height x 4 RGBA buffer."""
        ...


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------


class DecodeCapability(Protocol):
    """A single way of turning bytes into a raster."""

    @property
    def provenance(self) -> DecodeProvenance:
        """Label recorded on rasters this capability produces."""
        ...

    def accepts(self, mime: str) -> bool:
        """Whether this capability should be tried for ``mime``."""
        ...

    def attempt(self, data: bytes, mime: str) -> DecodedRaster | None:
        """Decode ``data``, or return None when this path is unavailable."""
        ...


class NativeAutoOrientDecoder:
    """Pillow decode with the embedded orientation applied during decode."""

    provenance = DecodeProvenance.NATIVE_AUTO_ORIENT

    def accepts(self, mime: str) -> bool:
        return not is_heic_like(mime)

    def attempt(self, data: bytes, mime: str) -> DecodedRaster | None:
        try:
            with closing(Image.open(io.BytesIO(data))) as image:
                image.load()
                upright = ImageOps.exif_transpose(image)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Auto-orient decode unavailable for %r: %s", mime, exc)
            return None
        return DecodedRaster(image=upright, orientation=Orientation.NORMAL, provenance=self.provenance)


class GenericDecoder:
    """Plain Pillow decode; orientation comes from the manual EXIF reader."""

    provenance = DecodeProvenance.MANUAL_EXIF

    def accepts(self, mime: str) -> bool:
        return not is_heic_like(mime)

    def attempt(self, data: bytes, mime: str) -> DecodedRaster | None:
        orientation = read_jpeg_orientation(data) if mime == JPEG_MIME else Orientation.NORMAL
        try:
            image = Image.open(io.BytesIO(data))
        except UnidentifiedImageError as exc:
            logger.info("Pillow cannot identify %r input: %s", mime or "undeclared", exc)
            return None
        image.load()
        return DecodedRaster(image=image, orientation=orientation, provenance=self.provenance)


class PlatformHeifDecoder:
    """libheif via pillow-heif. Only the first image of a sequence is used."""

    provenance = DecodeProvenance.PLATFORM_CODEC

    def accepts(self, mime: str) -> bool:
        return is_heic_like(mime)

    def attempt(self, data: bytes, mime: str) -> DecodedRaster | None:
        try:
            heif_file = pillow_heif.open_heif(io.BytesIO(data))
            frame = heif_file[0]
            image = Image.frombytes(frame.mode, frame.size, frame.data, "raw", frame.mode, frame.stride)
        except Exception as exc:  # noqa: BLE001
            logger.info("Platform HEIF codec failed for %r, falling through: %s", mime, exc)
            return None
        # libheif applies the container's rotation/mirror transforms itself.
        return DecodedRaster(image=image, orientation=Orientation.NORMAL, provenance=self.provenance)


class ExternalHeicDecoder:
    """Adapter that validates an injected ``HeicDecoder`` and wraps its pixels."""

    provenance = DecodeProvenance.EXTERNAL_PLUGIN

    def __init__(self, decoder: HeicDecoder) -> None:
        self._decoder = decoder

    def accepts(self, mime: str) -> bool:
        return is_heic_like(mime)

    def attempt(self, data: bytes, mime: str) -> DecodedRaster:
        decoded = self._decoder.decode_to_rgba(data)
        rgba = self._validate(decoded)
        image = Image.frombytes("RGBA", (decoded.width, decoded.height), rgba)
        orientation = decoded.orientation if decoded.orientation is not None else Orientation.NORMAL
        return DecodedRaster(image=image, orientation=orientation, provenance=self.provenance)

    @staticmethod
    def _validate(decoded: HeicDecodeResult | None) -> bytes:
        if decoded is None or not decoded.width or not decoded.height or not decoded.rgba:
            raise HeicDecoderMalfunctionError(detail="HEIC decoder returned invalid payload")
        if decoded.width < 0 or decoded.height < 0:
            raise HeicDecoderMalfunctionError(detail="HEIC decoder returned negative dimensions")
        expected = decoded.width * decoded.height * 4
        if len(decoded.rgba) != expected:
            raise HeicDecoderMalfunctionError(
                detail=f"HEIC decoder returned {len(decoded.rgba)} RGBA bytes, expected {expected}"
            )
        if decoded.orientation is not None and not is_valid_orientation(decoded.orientation):
            raise HeicDecoderMalfunctionError(
                detail=f"HEIC decoder returned invalid orientation {decoded.orientation!r}"
            )
        return bytes(decoded.rgba)


# ---------------------------------------------------------------------------
# Chain
# ---------------------------------------------------------------------------


class DecoderChain:
    """Tries each accepting capability in order until one yields a raster."""

    def __init__(self, capabilities: Sequence[DecodeCapability]) -> None:
        self._capabilities = tuple(capabilities)

    @property
    def capabilities(self) -> tuple[DecodeCapability, ...]:
        return self._capabilities

    def decode(self, data: bytes, mime: str) -> DecodedRaster:
        for capability in self._capabilities:
            if not capability.accepts(mime):
                continue
            raster = capability.attempt(data, mime)
            if raster is not None:
                logger.debug("Decoded %r via %s (%dx%d)", mime, raster.provenance, raster.width, raster.height)
                return raster

        if is_heic_like(mime):
            raise HeicUnavailableError(
                detail="HEIC decode not available (no platform HEIF codec and no external decoder provided)"
            )
        raise ImageDecodeError(detail=f"No decoder available for {mime or 'unknown format'}")


def build_decoder_chain(*, platform_heif: bool = True, heic_decoder: HeicDecoder | None = None) -> DecoderChain:
    """Assemble the standard capability order."""
    capabilities: list[DecodeCapability] = [NativeAutoOrientDecoder(), GenericDecoder()]
    if platform_heif:
        capabilities.append(PlatformHeifDecoder())
    if heic_decoder is not None:
        capabilities.append(ExternalHeicDecoder(heic_decoder))
    return DecoderChain(capabilities)
