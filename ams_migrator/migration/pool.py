"""Bounded worker pool used by every export sub-lookup and import upsert.

Jobs are queued up front, ``workers`` tasks drain the queue, and each job's
blocking handler runs in a thread via :func:`asyncio.to_thread` so the shared
``requests`` session and the transport backoff sleeps never block the loop.
``queue.join()`` is the join barrier: :meth:`WorkerPool.run` returns only
after every job has produced exactly one :class:`Outcome`.
"""

import asyncio
import logging
from typing import Callable, Generic, List, Optional, Sequence, TypeVar

from ..utils.exceptions import ConfigurationError, MigratorError
from .results import Outcome, OutcomeStatus

logger = logging.getLogger(__name__)

J = TypeVar("J")

DEFAULT_WORKERS = 1


class WorkerPool(Generic[J]):
    def __init__(self, workers: int = DEFAULT_WORKERS) -> None:
        if workers < 1:
            raise ConfigurationError(
                f"Worker count must be at least 1, got {workers}",
                config_key="migration.workers",
            )
        self._workers = workers
        self._on_outcome: Optional[Callable[[Outcome], None]] = None

    @property
    def workers(self) -> int:
        return self._workers

    def set_progress_callback(self, callback: Callable[[Outcome], None]) -> None:
        self._on_outcome = callback

    def _notify(self, outcome: Outcome) -> None:
        if not self._on_outcome:
            return
        try:
            self._on_outcome(outcome)
        except Exception:
            logger.exception("Progress callback failed for %s", outcome.name)

    async def _execute(
        self,
        job: J,
        handler: Callable[[J], Outcome],
        describe: Callable[[J], str],
    ) -> Outcome:
        try:
            return await asyncio.to_thread(handler, job)
        except MigratorError as e:
            logger.error("%s failed: %s", describe(job), e)
            return Outcome.failed(describe(job), str(e))
        except Exception as e:
            logger.exception("Unexpected error while processing %s", describe(job))
            return Outcome.failed(describe(job), f"{type(e).__name__}: {e}")

    async def run(
        self,
        jobs: Sequence[J],
        handler: Callable[[J], Outcome],
        describe: Callable[[J], str] = str,
    ) -> List[Outcome]:
        """Run ``handler`` once per job and return every outcome.

        Outcomes are grouped succeeded, skipped, failed; within a group the
        order is completion order.
        """
        queue: "asyncio.Queue[J]" = asyncio.Queue()
        for job in jobs:
            queue.put_nowait(job)

        succeeded: List[Outcome] = []
        skipped: List[Outcome] = []
        failed: List[Outcome] = []
        collectors = {
            OutcomeStatus.SUCCEEDED: succeeded,
            OutcomeStatus.SKIPPED: skipped,
            OutcomeStatus.FAILED: failed,
        }

        async def worker() -> None:
            while True:
                try:
                    job = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    outcome = await self._execute(job, handler, describe)
                    collectors[outcome.status].append(outcome)
                    self._notify(outcome)
                finally:
                    queue.task_done()

        size = min(self._workers, len(jobs))
        logger.debug("Starting %d worker(s) for %d job(s)", size, len(jobs))
        tasks = [asyncio.create_task(worker()) for _ in range(size)]

        try:
            await queue.join()
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        await asyncio.gather(*tasks)
        return succeeded + skipped + failed
