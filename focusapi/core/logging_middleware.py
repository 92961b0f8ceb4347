import logging
import time
from fastapi import Request, Response
from fastapi import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from focusapi.config import settings

logger = logging.getLogger("focusapi")


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.time()
        method = request.method
        path = request.url.path
        client = request.client.host if request.client else "-"
        user = request.headers.get(settings.INTERNAL_USER_HEADER.lower(), "-")

        logger.info(f"[Request] {method} {path} user={user} from {client}")
        try:
            response = await call_next(request)
        except HTTPException as http_exc:
            if http_exc.status_code >= 500:
                logger.error(
                    f"[HTTPException] {method} {path} user={user} -> {http_exc.status_code}: {http_exc.detail}"
                )
            else:
                logger.warning(
                    f"[HTTPException] {method} {path} user={user} -> {http_exc.status_code}: {http_exc.detail}"
                )
            raise
        except Exception:
            logger.exception(f"[Unhandled Error] {method} {path} user={user} from {client}")
            raise

        duration_ms = (time.time() - start) * 1000
        summary = f"[Response] {method} {path} user={user} -> {response.status_code} in {duration_ms:.1f}ms"
        if response.status_code >= 500:
            logger.error(summary)
        elif response.status_code >= 400:
            logger.warning(summary)
        else:
            logger.info(summary)
        return response
