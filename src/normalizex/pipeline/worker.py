"""Pipeline orchestrator: initialize once, then normalize one file per request.

Every request ends in either a ``ProcessResponse`` or an ``ErrorResponse``;
exceptions never leave ``process`` or ``handle``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import asdict
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import ValidationError

from normalizex.api.schemas import (
    DecodeTrace,
    DiagnosticTrace,
    ErrorResponse,
    InitializeRequest,
    InitializeResponse,
    InputTrace,
    LimitsTrace,
    NormalizedArtifact,
    OriginalArtifact,
    OutputTrace,
    ProcessRequest,
    ProcessResponse,
    RuntimeInfo,
)
from normalizex.errors import (
    HeicUnavailableError,
    MissingSizeBudgetError,
    NoFileProvidedError,
    NotInitializedError,
    PipelineError,
    UnknownMessageError,
    internal_failure,
)
from normalizex.imaging.decoders import build_decoder_chain
from normalizex.imaging.encoder import encode_within_budget
from normalizex.imaging.mime import is_heic_like, sniff_mime
from normalizex.pipeline.executor import PipelineExecutor
from normalizex.pipeline.limits import resolve_limits

if TYPE_CHECKING:
    from normalizex.imaging.decoders import DecoderChain, HeicDecoder
    from normalizex.imaging.encoder import EncodeAttempt
    from normalizex.imaging.raster import DecodedRaster
    from normalizex.pipeline.limits import RuntimeLimits

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", InitializeRequest, ProcessRequest)


class NormalizationWorker:
    """Turns uploaded photos into an original + size-bounded JPEG pair."""

    def __init__(self, executor: PipelineExecutor | None = None, *, platform_heif: bool = True) -> None:
        self._executor = executor or PipelineExecutor()
        self._platform_heif = platform_heif
        self._limits: RuntimeLimits | None = None
        self._runtime: RuntimeInfo | None = None
        self._warnings: list[str] = []
        self._chain: DecoderChain | None = None

    # -- Public API ---------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._limits is not None

    @property
    def runtime(self) -> RuntimeInfo | None:
        return self._runtime

    @property
    def warnings(self) -> list[str]:
        return list(self._warnings)

    @property
    def executor(self) -> PipelineExecutor:
        return self._executor

    def initialize(self, request: InitializeRequest, heic_decoder: HeicDecoder | None = None) -> InitializeResponse:
        """Resolve limits and decoder capabilities for all following requests."""
        limits, warnings = resolve_limits(request)
        self._chain = build_decoder_chain(platform_heif=self._platform_heif, heic_decoder=heic_decoder)
        self._runtime = RuntimeInfo(
            **asdict(limits),
            has_external_heic_decoder=heic_decoder is not None,
            has_platform_heic_codec=self._platform_heif,
        )
        self._warnings = warnings
        self._limits = limits

        for warning in warnings:
            logger.warning(warning)
        logger.info(
            "Worker initialized (max_long_side_px=%s, target_max_bytes=%s, external_heic=%s, platform_heic=%s)",
            limits.max_long_side_px,
            limits.target_max_bytes,
            heic_decoder is not None,
            self._platform_heif,
        )
        return InitializeResponse(runtime=self._runtime, warnings=warnings)

    async def process(self, request: ProcessRequest) -> ProcessResponse | ErrorResponse:
        """Normalize the file in ``request``, mapping every failure to an error payload."""
        try:
            async with self._executor.exclusive():
                return await self._process(request)
        except PipelineError as exc:
            logger.info("Request %r failed: %s (%s)", request.request_id, exc.code, exc.detail or exc.message)
            return exc.to_response(request.request_id)
        except Exception as exc:
            logger.exception("Unhandled failure while processing request %r", request.request_id)
            return internal_failure(exc, request.request_id)

    async def handle(
        self,
        message: Mapping[str, Any] | str | bytes,
        heic_decoder: HeicDecoder | None = None,
    ) -> InitializeResponse | ProcessResponse | ErrorResponse:
        """Dispatch a ``{"type": "init" | "process", ...}`` message.

        ``message`` is either an already-parsed mapping (bytes fields as raw
        bytes) or a JSON document (bytes fields base64 encoded).
        """
        raw = message if isinstance(message, (str, bytes)) else None
        envelope: object = message if raw is None else None
        try:
            if raw is not None:
                envelope = json.loads(raw)
            kind = envelope.get("type") if isinstance(envelope, Mapping) else None
            if kind == "init":
                init = _validate(InitializeRequest, envelope, raw)
                return self.initialize(init, heic_decoder)
            if kind != "process":
                raise UnknownMessageError(f"Unknown message type: {kind}")
            request = _validate(ProcessRequest, envelope, raw)
        except UnknownMessageError as exc:
            return exc.to_response(_request_id(envelope))
        except (ValueError, ValidationError) as exc:
            logger.info("Rejected malformed message: %s", exc)
            return internal_failure(exc, _request_id(envelope))
        return await self.process(request)

    def shutdown(self) -> None:
        self._executor.shutdown()

    # -- Internal -----------------------------------------------------------

    async def _process(self, request: ProcessRequest) -> ProcessResponse:
        limits = self._limits
        chain = self._chain
        if limits is None or chain is None:
            raise NotInitializedError
        if limits.target_max_bytes is None:
            raise MissingSizeBudgetError

        upload = request.file
        if upload is None or not upload.data:
            raise NoFileProvidedError

        mime = sniff_mime(upload.type, upload.name)
        raster = await self._decode(chain, upload.data, mime)
        with raster:
            source_width, source_height = raster.width, raster.height
            attempt: EncodeAttempt = await self._executor.run(
                encode_within_budget, raster.image, raster.orientation, limits
            )

        logger.info(
            "Normalized %r (%s, %d bytes) via %s: %dx%d q=%.2f scale=%.3f %d bytes%s",
            upload.name,
            mime or "unknown",
            len(upload.data),
            raster.provenance,
            attempt.width,
            attempt.height,
            attempt.quality,
            attempt.scale,
            attempt.size_bytes,
            " (over limit)" if attempt.best_effort_over_limit else "",
        )

        return ProcessResponse(
            request_id=request.request_id,
            original=OriginalArtifact(data=upload.data, mime=mime, size_bytes=len(upload.data)),
            normalized=NormalizedArtifact(
                data=attempt.data,
                size_bytes=attempt.size_bytes,
                width=attempt.width,
                height=attempt.height,
            ),
            debug=DiagnosticTrace(
                input=InputTrace(mime=mime, size_bytes=len(upload.data), name=upload.name),
                decode=DecodeTrace(
                    orientation=int(raster.orientation),
                    provenance=raster.provenance.value,
                    source_width=source_width,
                    source_height=source_height,
                ),
                output=OutputTrace(
                    size_bytes=attempt.size_bytes,
                    width=attempt.width,
                    height=attempt.height,
                    quality=attempt.quality,
                    scale=attempt.scale,
                    pass_index=attempt.pass_index,
                    iteration=attempt.iteration,
                    best_effort_over_limit=attempt.best_effort_over_limit,
                ),
                limits=LimitsTrace(
                    max_long_side_px=limits.max_long_side_px,
                    target_max_bytes=limits.target_max_bytes,
                ),
            ),
        )

    async def _decode(self, chain: DecoderChain, data: bytes, mime: str) -> DecodedRaster:
        try:
            return await self._executor.run(chain.decode, data, mime)
        except PipelineError:
            raise
        except Exception as exc:
            if is_heic_like(mime):
                raise HeicUnavailableError(detail=str(exc)) from exc
            raise


def _request_id(envelope: object) -> str | None:
    if isinstance(envelope, Mapping) and envelope.get("request_id") is not None:
        return str(envelope["request_id"])
    return None


def _validate(model: type[ModelT], envelope: object, raw: str | bytes | None) -> ModelT:
    if raw is not None:
        return model.model_validate_json(raw)
    return model.model_validate(envelope)
