"""Bounded worker pool that streams batch results in completion order."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait

from agent_batch.orchestrator.models import BatchGroup, ExecutionResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 3

ExecuteFn = Callable[[BatchGroup], ExecutionResult | None]
WorkerErrorFn = Callable[[BatchGroup, BaseException], ExecutionResult]


class ParallelExecutionManager:
    """Dispatches batches to a fixed-size thread pool.

    At most ``max_workers`` batches are in flight. The next queued batch is
    submitted only after the consumer has taken the previous result, so a
    consumer that stops iterating (for example on bail-out) drains nothing
    further: queued batches are dropped and ``cancel_inflight`` is called to
    kill running children.
    """

    def __init__(self, max_workers: int = DEFAULT_MAX_WORKERS) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1.")
        self.max_workers = max_workers

    def run(
        self,
        groups: Iterable[BatchGroup],
        execute: ExecuteFn,
        *,
        on_worker_error: WorkerErrorFn,
        cancel_inflight: Callable[[], None] | None = None,
    ) -> Iterator[tuple[BatchGroup, ExecutionResult | None]]:
        """Yield ``(group, result)`` pairs as workers finish."""

        queue = deque(groups)
        in_flight: dict[Future[ExecutionResult | None], BatchGroup] = {}
        finished = False
        executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix="agent-batch-worker",
        )

        def _submit_next() -> None:
            group = queue.popleft()
            in_flight[executor.submit(execute, group)] = group

        try:
            while queue and len(in_flight) < self.max_workers:
                _submit_next()

            while in_flight:
                done, _ = wait(tuple(in_flight), return_when=FIRST_COMPLETED)
                for future in done:
                    group = in_flight.pop(future)
                    try:
                        result = future.result()
                    except Exception as error:  # noqa: BLE001
                        logger.exception("Worker crashed while running %s", group.identifier)
                        result = on_worker_error(group, error)
                    yield group, result
                    if queue:
                        _submit_next()
            finished = True
        finally:
            if not finished:
                dropped = len(queue)
                queue.clear()
                for future in in_flight:
                    future.cancel()
                if in_flight and cancel_inflight is not None:
                    cancel_inflight()
                logger.warning(
                    "Parallel run stopped: %d running batch(es) cancelled, %d queued dropped",
                    len(in_flight),
                    dropped,
                )
            executor.shutdown(wait=True, cancel_futures=True)
