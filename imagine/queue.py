"""Strictly serial in-memory job queue for image generation requests."""

from __future__ import annotations

import asyncio
import itertools
import logging
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable

from imagine import logging_conf
from imagine.models.result import GenerationFailure, GenerationResult


logger = logging.getLogger(__name__)

Worker = Callable[[str], Awaitable[GenerationResult]]


@dataclass
class Job:
    job_id: str
    prompt: str
    sequence: int
    future: asyncio.Future[GenerationResult]
    request_id: str | None = None


@dataclass(frozen=True)
class QueueStatus:
    busy: bool
    queue_length: int
    processed: int


class JobQueue:
    """Run generation jobs one at a time in arrival order.

    ``busy`` is true exactly while a job is in flight. Dispatch is a
    synchronous check-and-set, so it never interleaves with another dispatch
    on the same event loop. A job's future is always completed with a
    :class:`GenerationResult`, including when the worker raises, and the
    queue then moves on to the next pending job.
    """

    def __init__(self, worker: Worker) -> None:
        self._worker = worker
        self._pending: deque[Job] = deque()
        self._busy = False
        self._current: asyncio.Task[None] | None = None
        self._sequence = itertools.count(1)
        self._processed = 0

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def pending(self) -> int:
        return len(self._pending)

    def status(self) -> QueueStatus:
        """Return a snapshot of the queue state."""

        return QueueStatus(
            busy=self._busy,
            queue_length=len(self._pending),
            processed=self._processed,
        )

    def submit(self, prompt: str) -> asyncio.Future[GenerationResult]:
        """Append a job for ``prompt`` and return its completion handle."""

        loop = asyncio.get_running_loop()
        job = Job(
            job_id=str(uuid.uuid4()),
            prompt=prompt,
            sequence=next(self._sequence),
            future=loop.create_future(),
            request_id=logging_conf.get_log_context().get("request_id"),
        )
        self._pending.append(job)
        logger.info(
            "job %s enqueued (sequence=%d, pending=%d, busy=%s)",
            job.job_id,
            job.sequence,
            len(self._pending),
            self._busy,
        )
        self._dispatch_next()
        return job.future

    def _dispatch_next(self) -> None:
        if self._busy or not self._pending:
            return

        job = self._pending.popleft()
        self._busy = True
        self._current = asyncio.get_running_loop().create_task(
            self._run(job), name=f"generation-{job.sequence}"
        )

    async def _run(self, job: Job) -> None:
        # Tasks copy the dispatcher's context; restore the submitter's request id.
        logging_conf.set_request_id(job.request_id)
        logging_conf.set_job_context(job.job_id, None)
        logger.info("job started (sequence=%d, remaining=%d)", job.sequence, len(self._pending))
        try:
            try:
                result = await self._worker(job.prompt)
            except asyncio.CancelledError:
                job.future.cancel()
                raise
            except Exception as exc:  # noqa: BLE001 - a crashing worker must not stall the queue
                logger.error(
                    "worker raised %s: %s", exc.__class__.__name__, exc, exc_info=True
                )
                result = GenerationFailure(message=str(exc) or exc.__class__.__name__, retryable=False)

            if not job.future.done():
                job.future.set_result(result)
            logger.info("job finished (success=%s)", result.success)
        finally:
            self._processed += 1
            self._busy = False
            self._current = None
            logging_conf.set_job_context(None, None)
            self._dispatch_next()

    async def shutdown(self) -> None:
        """Drop pending jobs and cancel the in-flight one."""

        dropped = len(self._pending)
        while self._pending:
            job = self._pending.popleft()
            if not job.future.done():
                job.future.cancel()

        current = self._current
        if current is not None and not current.done():
            current.cancel()
            try:
                await current
            except asyncio.CancelledError:
                pass
        logger.info("queue shut down (dropped=%d)", dropped)
