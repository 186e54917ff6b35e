from __future__ import annotations

import asyncio

import pytest

from imagine import logging_conf
from imagine.models.result import GenerationFailure, GenerationResult, GenerationSuccess
from imagine.queue import JobQueue


def _succeed(prompt: str) -> GenerationSuccess:
    return GenerationSuccess(prompt=prompt, images=[f"https://cdn.test/{prompt}.png"])


class TestOrdering:
    def test_results_arrive_in_submission_order(self) -> None:
        finished: list[str] = []
        pending_seen: list[int] = []

        async def scenario() -> list[GenerationResult]:
            queue: JobQueue

            async def worker(prompt: str) -> GenerationResult:
                pending_seen.append(queue.pending)
                await asyncio.sleep(0)
                finished.append(prompt)
                return _succeed(prompt)

            queue = JobQueue(worker)
            futures = [queue.submit(prompt) for prompt in ("a", "b", "c")]
            return await asyncio.gather(*futures)

        results = asyncio.run(scenario())

        assert finished == ["a", "b", "c"]
        assert [result.prompt for result in results] == ["a", "b", "c"]
        assert pending_seen == [2, 1, 0]

    def test_many_jobs_complete_fifo(self) -> None:
        completion: list[int] = []

        async def scenario() -> None:
            async def worker(prompt: str) -> GenerationResult:
                # Later prompts finish faster; order must still hold.
                await asyncio.sleep(0.001 * (20 - int(prompt)))
                return _succeed(prompt)

            queue = JobQueue(worker)
            futures = [queue.submit(str(i)) for i in range(20)]
            for future in futures:
                future.add_done_callback(lambda f: completion.append(int(f.result().prompt)))
            await asyncio.gather(*futures)

        asyncio.run(scenario())

        assert completion == list(range(20))


class TestSingleActiveWorker:
    def test_at_most_one_job_in_flight(self) -> None:
        active = 0
        max_active = 0
        busy_during_run: list[bool] = []

        async def scenario() -> JobQueue:
            queue: JobQueue

            async def worker(prompt: str) -> GenerationResult:
                nonlocal active, max_active
                active += 1
                max_active = max(max_active, active)
                busy_during_run.append(queue.busy)
                await asyncio.sleep(0.005)
                active -= 1
                return _succeed(prompt)

            queue = JobQueue(worker)
            await asyncio.gather(*(queue.submit(f"p{i}") for i in range(5)))
            return queue

        queue = asyncio.run(scenario())

        assert max_active == 1
        assert busy_during_run == [True] * 5
        assert queue.busy is False
        assert queue.status().processed == 5

    def test_repeated_dispatch_while_busy_does_not_double_process(self) -> None:
        started: list[str] = []

        async def scenario() -> tuple[int, bool]:
            release = asyncio.Event()

            async def worker(prompt: str) -> GenerationResult:
                started.append(prompt)
                await release.wait()
                return _succeed(prompt)

            queue = JobQueue(worker)
            first = queue.submit("head")
            second = queue.submit("next")
            await asyncio.sleep(0)

            for _ in range(3):
                queue._dispatch_next()
            await asyncio.sleep(0)
            snapshot = (queue.pending, queue.busy)

            release.set()
            await asyncio.gather(first, second)
            return snapshot

        pending, busy = asyncio.run(scenario())

        assert (pending, busy) == (1, True)
        assert started == ["head", "next"]

    def test_idle_queue_with_nothing_pending(self) -> None:
        async def scenario() -> JobQueue:
            async def worker(prompt: str) -> GenerationResult:
                return _succeed(prompt)

            queue = JobQueue(worker)
            queue._dispatch_next()
            return queue

        queue = asyncio.run(scenario())

        status = queue.status()
        assert status.busy is False
        assert status.queue_length == 0
        assert status.processed == 0


class TestFailures:
    def test_failed_job_completes_once_and_does_not_block(self) -> None:
        async def scenario() -> list[GenerationResult]:
            async def worker(prompt: str) -> GenerationResult:
                if prompt == "bad":
                    return GenerationFailure(message="selector missing")
                return _succeed(prompt)

            queue = JobQueue(worker)
            futures = [queue.submit(p) for p in ("bad", "good")]
            return await asyncio.gather(*futures)

        bad, good = asyncio.run(scenario())

        assert bad == GenerationFailure(message="selector missing")
        assert isinstance(good, GenerationSuccess)

    def test_raising_worker_becomes_non_retryable_failure(self) -> None:
        async def scenario() -> list[GenerationResult]:
            async def worker(prompt: str) -> GenerationResult:
                if prompt == "crash":
                    raise KeyError("missing")
                return _succeed(prompt)

            queue = JobQueue(worker)
            results = await asyncio.gather(queue.submit("crash"), queue.submit("after"))
            assert queue.busy is False
            return results

        crashed, after = asyncio.run(scenario())

        assert isinstance(crashed, GenerationFailure)
        assert crashed.retryable is False
        assert "missing" in crashed.message
        assert isinstance(after, GenerationSuccess)


class TestLogContext:
    def test_each_job_logs_under_its_submitters_request_id(self) -> None:
        seen: dict[str, str | None] = {}

        async def scenario() -> None:
            release = asyncio.Event()

            async def worker(prompt: str) -> GenerationResult:
                seen[prompt] = logging_conf.get_log_context()["request_id"]
                if prompt == "first":
                    await release.wait()
                return _succeed(prompt)

            queue = JobQueue(worker)
            futures: list[asyncio.Future[GenerationResult]] = []

            async def submit_as(request_id: str, prompt: str) -> None:
                logging_conf.set_request_id(request_id)
                futures.append(queue.submit(prompt))

            await asyncio.create_task(submit_as("req-1", "first"))
            await asyncio.create_task(submit_as("req-2", "second"))
            await asyncio.sleep(0)
            release.set()
            await asyncio.gather(*futures)

        asyncio.run(scenario())

        assert seen == {"first": "req-1", "second": "req-2"}


class TestShutdown:
    def test_shutdown_cancels_pending_and_in_flight(self) -> None:
        async def scenario() -> tuple[bool, bool, int]:
            async def worker(prompt: str) -> GenerationResult:
                await asyncio.Event().wait()
                return _succeed(prompt)

            queue = JobQueue(worker)
            running = queue.submit("running")
            waiting = queue.submit("waiting")
            await asyncio.sleep(0)

            await queue.shutdown()
            return running.cancelled(), waiting.cancelled(), queue.pending

        running_cancelled, waiting_cancelled, pending = asyncio.run(scenario())

        assert running_cancelled
        assert waiting_cancelled
        assert pending == 0


def test_submit_requires_running_loop() -> None:
    async def worker(prompt: str) -> GenerationResult:
        return _succeed(prompt)

    with pytest.raises(RuntimeError):
        JobQueue(worker).submit("outside")
