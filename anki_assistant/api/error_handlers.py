from __future__ import annotations

import logging

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from anki_assistant.core.errors import AuthError, MissingCredential, StorageFailure

logger = logging.getLogger(__name__)


def auth_error_response(exc: AuthError) -> JSONResponse:
    content: dict[str, str] = {"detail": exc.detail}
    if exc.code:
        content["code"] = exc.code

    headers = None
    if isinstance(exc, MissingCredential):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    if isinstance(exc, StorageFailure):
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc.detail)
    return auth_error_response(exc)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )
