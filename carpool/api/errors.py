"""Maps domain errors to JSON responses ``{"detail", "code"}``."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from carpool.domain.errors import CarpoolError

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CarpoolError)
    async def carpool_error_handler(request: Request, exc: CarpoolError) -> JSONResponse:  # type: ignore[override]
        if exc.status_code >= 500:
            logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.code},
        )
