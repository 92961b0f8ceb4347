import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from focusapi.config import settings

from .exceptions import (
    BaseAPIException,
    CollaboratorUnavailableError,
    InternalServerError,
    TransientConflictError,
)

logger = logging.getLogger("focusapi")


def _request_line(request: Request) -> str:
    client = request.client.host if request.client else "-"
    user_id = request.headers.get(settings.INTERNAL_USER_HEADER.lower(), "-")
    return f"{request.method} {request.url.path} user={user_id} client={client}"


def _error_body(
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    retryable: bool = False,
) -> Dict[str, Any]:
    return jsonable_encoder(
        {
            "success": False,
            "error": {
                "code": code,
                "message": message,
                "details": details or {},
                "retryable": retryable,
            },
        }
    )


async def handle_base_api_exception(request: Request, exc: BaseAPIException):
    line = _request_line(request)

    if isinstance(exc, CollaboratorUnavailableError):
        logger.error(
            f"[Upstream] {line} -> {exc.status_code} {exc.error_code}: "
            f"{exc.collaborator} unavailable ({exc.message})"
        )
    elif isinstance(exc, TransientConflictError):
        logger.warning(
            f"[Conflict] {line} -> {exc.status_code} {exc.error_code}: {exc.details}"
        )
    elif exc.status_code >= 500:
        logger.error(f"[APIError] {line} -> {exc.status_code} {exc.error_code}: {exc.message}")
    else:
        # 잔액 부족 등 정책 거부는 정상 흐름
        logger.info(f"[APIError] {line} -> {exc.status_code} {exc.error_code}: {exc.message}")

    headers = None
    if exc.retry_after is not None:
        headers = {"Retry-After": str(exc.retry_after)}

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(
            exc.error_code,
            exc.message,
            exc.details,
            retryable=exc.retry_after is not None,
        ),
        headers=headers,
    )


async def handle_http_exception(request: Request, exc):
    """라우팅 오류 (404, 405 등) 및 BaseAPIException이 아닌 HTTPException"""
    logger.warning(f"[HTTPException] {_request_line(request)} -> {exc.status_code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body("HTTP_ERROR", str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def handle_validation_error(request: Request, exc):
    errors = exc.errors()
    logger.warning(f"[ValidationError] {_request_line(request)} -> 422: {errors}")
    return JSONResponse(
        status_code=422,
        content=_error_body("VALIDATION_001", "Validation failed", {"errors": errors}),
    )


async def handle_unexpected_error(request: Request, exc: Exception):
    tb_str = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.error(
        f"[Unhandled] {_request_line(request)} -> {type(exc).__name__}: {str(exc)}\n{tb_str}"
    )

    internal = InternalServerError()
    return JSONResponse(
        status_code=internal.status_code,
        content=_error_body(internal.error_code, internal.message),
    )
