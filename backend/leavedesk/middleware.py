from __future__ import annotations

import logging
import time
import uuid
from typing import TYPE_CHECKING

from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response
    from starlette.middleware.base import RequestResponseEndpoint

    from leavedesk.config import Settings

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"


async def log_requests(request: Request, call_next: RequestResponseEndpoint) -> Response:
    """Tag every request with an ID, echoed back in the response, and log one access line.

    A caller-supplied ID is kept so a leave action can be traced across services.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000

    response.headers[REQUEST_ID_HEADER] = request_id
    logger.info(
        "%s %s -> %d in %.1fms (request=%s actor=%s)",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
        request_id,
        request.headers.get("X-User-Id", "-"),
    )
    return response


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure application middleware. CORS is added last so it wraps the access log."""
    app.add_middleware(BaseHTTPMiddleware, dispatch=log_requests)
    app.add_middleware(
        CORSMiddleware,  # ty: ignore[invalid-argument-type]
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )
