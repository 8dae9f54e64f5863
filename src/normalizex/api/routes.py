"""API route definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Form, Request, UploadFile, status
from fastapi.responses import JSONResponse

from normalizex.api.schemas import (
    ErrorResponse,
    FilePayload,
    HealthResponse,
    ProcessRequest,
    ProcessResponse,
)
from normalizex.errors import ErrorCode

if TYPE_CHECKING:
    from pydantic import BaseModel

    from normalizex.imaging.decoders import HeicDecoder
    from normalizex.pipeline.worker import NormalizationWorker

router = APIRouter(prefix="/api/v1")

_STATUS_FOR_CODE: dict[str, int] = {
    ErrorCode.NOT_INITIALIZED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.TARGET_MAX_BYTES_MISSING: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.NO_FILE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.HEIC_CONVERT_FAILED: status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    ErrorCode.UNKNOWN_MESSAGE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.WORKER_EXCEPTION: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

# Multipart clients send this when they do not know the type; let the file name decide.
_UNDECLARED_CONTENT_TYPE = "application/octet-stream"


def _get_worker(request: Request) -> NormalizationWorker:
    worker: NormalizationWorker = request.app.state.worker
    return worker


def _get_heic_decoder(request: Request) -> HeicDecoder | None:
    decoder: HeicDecoder | None = request.app.state.heic_decoder
    return decoder


def _respond(payload: BaseModel) -> JSONResponse:
    status_code = status.HTTP_200_OK
    if isinstance(payload, ErrorResponse):
        status_code = _STATUS_FOR_CODE.get(payload.error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    return JSONResponse(status_code=status_code, content=payload.model_dump(mode="json"))


@router.post(
    "/normalize",
    response_model=ProcessResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_415_UNSUPPORTED_MEDIA_TYPE: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Normalize an uploaded photo",
)
async def normalize(
    request: Request,
    file: UploadFile | None = None,
    request_id: Annotated[str, Form()] = "",
) -> JSONResponse:
    """Return the original upload and a size-bounded, upright JPEG derived from it."""
    payload = None
    if file is not None:
        content_type = file.content_type or ""
        payload = FilePayload(
            data=await file.read(),
            type="" if content_type == _UNDECLARED_CONTENT_TYPE else content_type,
            name=file.filename or "",
        )
    result = await _get_worker(request).process(ProcessRequest(request_id=request_id, file=payload))
    return _respond(result)


@router.post(
    "/messages",
    response_model=None,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_415_UNSUPPORTED_MEDIA_TYPE: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Send a raw worker message",
)
async def messages(request: Request) -> JSONResponse:
    """Route an ``init`` or ``process`` JSON message to the worker (file bytes base64 encoded)."""
    body = await request.body()
    result = await _get_worker(request).handle(body, heic_decoder=_get_heic_decoder(request))
    return _respond(result)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return worker state, resolved limits and capabilities."""
    worker = _get_worker(request)
    return HealthResponse(
        status="ok" if worker.initialized and not worker.warnings else "degraded",
        initialized=worker.initialized,
        runtime=worker.runtime,
        warnings=worker.warnings,
        active_requests=worker.executor.active_count,
        queue_depth=worker.executor.queue_depth,
    )
