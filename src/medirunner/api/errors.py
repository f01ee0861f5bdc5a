"""Translate face gate errors into HTTP responses."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import Request, status
from fastapi.responses import JSONResponse

from medirunner.api.schemas import ErrorResponse
from medirunner.face.errors import (
    CaptureError,
    DescriptorValidationError,
    DimensionMismatchError,
    FaceGateError,
    IdentityNotFoundError,
    StorageError,
)
from medirunner.ml.capture import PoolSaturatedError

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

# Checked in order; subclasses first.
_STATUS_BY_ERROR: list[tuple[type[FaceGateError], int]] = [
    (DescriptorValidationError, status.HTTP_400_BAD_REQUEST),
    (IdentityNotFoundError, status.HTTP_404_NOT_FOUND),
    (CaptureError, status.HTTP_422_UNPROCESSABLE_CONTENT),
    (DimensionMismatchError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (StorageError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_for(exc: FaceGateError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def face_gate_error_handler(request: Request, exc: FaceGateError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind, exc)
    body = ErrorResponse(error=str(exc), kind=exc.kind, reason=exc.reason)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", by_alias=True))


async def pool_saturated_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.warning("%s %s: capture pool saturated", request.method, request.url.path)
    body = ErrorResponse(error="Face capture is busy, try again", kind="unavailable")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body.model_dump(mode="json", by_alias=True),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(FaceGateError, face_gate_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(PoolSaturatedError, pool_saturated_handler)
