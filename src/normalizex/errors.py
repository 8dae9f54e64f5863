"""Error taxonomy for the normalization pipeline.

Every failure that leaves the worker is one of these codes. Anything not
raised as a ``PipelineError`` is reported as ``E_WORKER_EXCEPTION``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from normalizex.api.schemas import ErrorResponse


class ErrorCode(StrEnum):
    NOT_INITIALIZED = "E_NOT_INITIALIZED"
    TARGET_MAX_BYTES_MISSING = "E_CONFIG_TARGET_MAX_BYTES_MISSING"
    NO_FILE = "E_NO_FILE"
    HEIC_CONVERT_FAILED = "E_HEIC_CONVERT_FAILED"
    UNKNOWN_MESSAGE = "E_UNKNOWN_MESSAGE"
    WORKER_EXCEPTION = "E_WORKER_EXCEPTION"


class PipelineError(Exception):
    """Base class for failures with a stable error code."""

    code: ErrorCode = ErrorCode.WORKER_EXCEPTION
    default_message: str = "Unhandled worker exception"
    response_type: str = "process_err"

    def __init__(self, message: str | None = None, *, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)

    def to_response(self, request_id: str | None = None) -> ErrorResponse:
        from normalizex.api.schemas import ErrorDetail, ErrorResponse

        return ErrorResponse(
            type=self.response_type,
            request_id=request_id,
            error=ErrorDetail(code=self.code.value, message=self.message, detail=self.detail),
        )


class NotInitializedError(PipelineError):
    code = ErrorCode.NOT_INITIALIZED
    default_message = "Worker is not initialized. Call init() first."


class MissingSizeBudgetError(PipelineError):
    code = ErrorCode.TARGET_MAX_BYTES_MISSING
    default_message = (
        "Configuration is missing target_max_bytes. Add this parameter, "
        "otherwise the size of the normalized JPEG cannot be guaranteed."
    )


class NoFileProvidedError(PipelineError):
    code = ErrorCode.NO_FILE
    default_message = "No file provided"


class HeicUnavailableError(PipelineError):
    code = ErrorCode.HEIC_CONVERT_FAILED
    default_message = "Could not convert HEIC/HEIF offline. Please choose a photo in JPEG or PNG format."


class HeicDecoderMalfunctionError(HeicUnavailableError):
    """The external HEIC decoder returned a payload that violates its contract."""


class ImageDecodeError(PipelineError):
    """No decode capability accepted the format. Reported as an internal failure."""


class UnknownMessageError(PipelineError):
    code = ErrorCode.UNKNOWN_MESSAGE
    default_message = "Unknown message type"
    response_type = "unknown_err"


def internal_failure(exc: BaseException, request_id: str | None = None) -> ErrorResponse:
    """Wrap an unclassified exception, keeping its text as the detail."""
    error = PipelineError(detail=str(exc) or type(exc).__name__)
    return error.to_response(request_id)
