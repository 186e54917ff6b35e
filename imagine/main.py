"""FastAPI entrypoint for the imagine backend."""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from zoneinfo import ZoneInfo

from imagine.config import settings
from imagine.logging_conf import configure_logging
from imagine.middleware import RequestContextMiddleware, current_request_id
from imagine.models.dto import (
    GenerationErrorResponse,
    GenerationResponse,
    HealthResponse,
    ImagineRequest,
    StatusResponse,
)
from imagine.models.result import GenerationSuccess
from imagine.queue import JobQueue
from imagine.services.browser import BrowserSession
from imagine.services.cookie_store import CookieStore
from imagine.services.generation_worker import GenerationWorker

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

browser_session = BrowserSession(settings)
worker = GenerationWorker(browser_session, CookieStore(settings.cookies_path), settings)
job_queue = JobQueue(worker.generate)

_STARTED_AT = time.monotonic()

app = FastAPI(
    title="Imagine Backend",
    version="0.1.0",
    docs_url="/docs",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Queue-Position"],
)
app.add_middleware(RequestContextMiddleware)


@app.on_event("startup")
async def on_startup() -> None:
    """Emit an informative startup banner."""

    logger.info(
        "%s v%s (env=%s, target=%s, retries=%d, python=%s)",
        app.title,
        app.version,
        settings.app_env,
        settings.target_url,
        settings.max_retries,
        sys.version.split()[0],
    )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    """Drop queued jobs and release the browser."""

    await job_queue.shutdown()
    await browser_session.close()
    logger.info("application shutdown")


def _jsonable_errors(errors: list) -> list[dict]:
    """Keep only the JSON-safe parts of pydantic error entries."""

    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in errors
    ]


def _with_request_id(response: JSONResponse, request_id: str | None) -> JSONResponse:
    if request_id:
        response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return a JSON error when request validation fails."""

    request_id = current_request_id()
    errors = exc.errors()
    logger.warning(
        "validation error on %s (%d issue(s))", request.url.path, len(errors)
    )
    response = JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": "invalid request",
            "detail": _jsonable_errors(errors),
            "request_id": request_id,
        },
    )
    return _with_request_id(response, request_id)


@app.exception_handler(Exception)
async def generic_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Catch-all handler that returns a 500 JSON response."""

    request_id = current_request_id()
    logger.error(
        "unhandled error on %s [%s] %s",
        request.url.path,
        exc.__class__.__name__,
        exc,
        exc_info=True,
    )
    response = JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal Server Error", "request_id": request_id},
    )
    return _with_request_id(response, request_id)


async def _generate(prompt: str) -> JSONResponse:
    ahead = job_queue.pending + (1 if job_queue.busy else 0)
    logger.info("new request (prompt_length=%d, jobs_ahead=%d)", len(prompt), ahead)

    # Shielded so a client disconnect does not cancel the queued job's handle.
    result = await asyncio.shield(job_queue.submit(prompt))

    if isinstance(result, GenerationSuccess):
        body = GenerationResponse(
            images=result.images, prompt=result.prompt, count=len(result.images)
        )
        response = JSONResponse(status_code=200, content=body.model_dump())
    else:
        body = GenerationErrorResponse(error=result.message, retry=result.retryable)
        response = JSONResponse(status_code=500, content=body.model_dump())
    response.headers["X-Queue-Position"] = str(ahead)
    return response


@app.post("/imagine", response_model=GenerationResponse)
async def imagine(body: ImagineRequest | None = None) -> JSONResponse:
    """Queue a prompt and wait for its images."""

    if body is None:
        body = ImagineRequest()
    return await _generate(body.prompt)


@app.get("/generate", response_model=GenerationResponse)
async def generate(prompt: str | None = Query(default=None)) -> JSONResponse:
    """Query-string variant of ``/imagine``."""

    if prompt is None:
        prompt = settings.default_prompt
    try:
        request = ImagineRequest(prompt=prompt)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc
    return await _generate(request.prompt)


@app.get("/status", response_model=StatusResponse)
async def status() -> StatusResponse:
    """Report whether a job is running and how many are waiting."""

    snapshot = job_queue.status()
    return StatusResponse(
        running=True,
        busy=snapshot.busy,
        queue_length=snapshot.queue_length,
        processed=snapshot.processed,
        uptime=round(time.monotonic() - _STARTED_AT, 3),
    )


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Return basic service health information."""

    return HealthResponse(
        status="ok",
        env=settings.app_env,
        tz=settings.tz,
        now_utc=datetime.now(timezone.utc).isoformat(),
        now_local=datetime.now(ZoneInfo(settings.tz)).isoformat(),
        queue_length=job_queue.pending,
    )


def run() -> None:
    uvicorn.run("imagine.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()

# Run locally: `uvicorn imagine.main:app --port 4000`
# Try it: `curl -X POST localhost:4000/imagine -H 'content-type: application/json' -d '{"prompt": "a red fox"}'`
