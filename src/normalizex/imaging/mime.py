"""Format sniffing from declared content type and file name."""

from __future__ import annotations

JPEG_MIME = "image/jpeg"

_SUFFIX_MIME: tuple[tuple[tuple[str, ...], str], ...] = (
    ((".heic",), "image/heic"),
    ((".heif",), "image/heif"),
    ((".jpg", ".jpeg"), JPEG_MIME),
    ((".png",), "image/png"),
    ((".webp",), "image/webp"),
)

HEIC_LIKE_MIMES = frozenset(
    {
        "image/heic",
        "image/heif",
        "image/heic-sequence",
        "image/heif-sequence",
    }
)


def sniff_mime(declared_type: str | None, filename: str | None) -> str:
    """Return a lower-cased mime string, or "" when the format is unknown.

    A non-empty declared type always wins over the file name.
    """
    declared = (declared_type or "").strip()
    if declared:
        return declared.lower()

    name = (filename or "").lower()
    for suffixes, mime in _SUFFIX_MIME:
        if name.endswith(suffixes):
            return mime
    return ""


def is_heic_like(mime: str) -> bool:
    return mime in HEIC_LIKE_MIMES
