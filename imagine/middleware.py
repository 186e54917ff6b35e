"""Request correlation middleware for the imagine API."""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from imagine import logging_conf

REQUEST_ID_HEADER = "X-Request-ID"

logger = logging.getLogger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id and log how long it took.

    Generation requests wait for the whole queued job, so the logged
    duration includes time spent behind other jobs.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = (request.headers.get(REQUEST_ID_HEADER) or "").strip() or uuid.uuid4().hex
        logging_conf.set_request_id(request_id)
        started = time.perf_counter()

        try:
            response = await call_next(request)
            logger.info(
                "%s %s -> %d (%.0f ms)",
                request.method,
                request.url.path,
                response.status_code,
                (time.perf_counter() - started) * 1000,
            )
        finally:
            logging_conf.set_request_id(None)
            logging_conf.set_job_context(None, None)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def current_request_id() -> str | None:
    return logging_conf.get_log_context().get("request_id")
