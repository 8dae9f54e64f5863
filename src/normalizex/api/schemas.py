"""Pydantic message and response schemas for the NormalizeX worker and API.

Byte fields are carried as base64 strings in JSON.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class _BinaryModel(BaseModel):
    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")


# ---------------------------------------------------------------------------
# Initialize
# ---------------------------------------------------------------------------


class TuningOverrides(BaseModel):
    """Optional search tuning; unset or non-finite values keep the defaults."""

    jpeg_quality_start: float | None = Field(default=None, gt=0.0, le=1.0)
    jpeg_min_quality: float | None = Field(default=None, gt=0.0, le=1.0)
    jpeg_quality_step: float | None = Field(default=None, gt=0.0, le=1.0)
    max_quality_iters: int | None = Field(default=None, ge=1)
    max_resize_passes: int | None = Field(default=None, ge=1)
    resize_down_factor: float | None = Field(default=None, gt=0.0, lt=1.0)


class InitializeRequest(BaseModel):
    type: Literal["init"] = "init"
    max_long_side_px: float | None = None
    target_max_bytes: float | None = None
    overrides: TuningOverrides | None = None


class RuntimeInfo(BaseModel):
    """Resolved limits and decoder capabilities."""

    max_long_side_px: float
    target_max_bytes: float | None
    jpeg_quality_start: float
    jpeg_min_quality: float
    jpeg_quality_step: float
    max_quality_iters: int
    max_resize_passes: int
    resize_down_factor: float
    has_external_heic_decoder: bool
    has_platform_heic_codec: bool


class InitializeResponse(BaseModel):
    ok: Literal[True] = True
    type: Literal["init_ok"] = "init_ok"
    runtime: RuntimeInfo
    warnings: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Process
# ---------------------------------------------------------------------------


class FilePayload(_BinaryModel):
    """Raw upload bytes plus the caller-declared content type and name."""

    data: bytes
    type: str = ""
    name: str = ""


class ProcessRequest(_BinaryModel):
    type: Literal["process"] = "process"
    request_id: str = ""
    file: FilePayload | None = None


class OriginalArtifact(_BinaryModel):
    data: bytes
    mime: str
    size_bytes: int


class NormalizedArtifact(_BinaryModel):
    data: bytes
    mime: Literal["image/jpeg"] = "image/jpeg"
    size_bytes: int
    width: int
    height: int


class InputTrace(BaseModel):
    mime: str
    size_bytes: int
    name: str


class DecodeTrace(BaseModel):
    orientation: int = Field(ge=1, le=8)
    provenance: str
    source_width: int
    source_height: int


class OutputTrace(BaseModel):
    mime: Literal["image/jpeg"] = "image/jpeg"
    size_bytes: int
    width: int
    height: int
    quality: float
    scale: float
    pass_index: int
    iteration: int
    best_effort_over_limit: bool


class LimitsTrace(BaseModel):
    max_long_side_px: float
    target_max_bytes: float


class DiagnosticTrace(BaseModel):
    input: InputTrace
    decode: DecodeTrace
    output: OutputTrace
    limits: LimitsTrace


class ProcessResponse(_BinaryModel):
    ok: Literal[True] = True
    type: Literal["process_ok"] = "process_ok"
    request_id: str
    original: OriginalArtifact
    normalized: NormalizedArtifact
    debug: DiagnosticTrace


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: str | None = None


class ErrorResponse(BaseModel):
    """Standard error payload."""

    ok: Literal[False] = False
    type: str = "process_err"
    request_id: str | None = None
    error: ErrorDetail


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    initialized: bool
    runtime: RuntimeInfo | None
    warnings: list[str]
    active_requests: int
    queue_depth: int
