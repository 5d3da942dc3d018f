"""Concurrency planning and job dispatch.

:func:`plan` picks one of three dispatch strategies once per batch:

``sequential``      jobs run one after another in the calling thread, on the
                    caller's own connections.  Forced by ``debug``,
                    ``in_batches`` and ``defer_constraints``.
``threaded``        a ``ThreadPoolExecutor``; used where the platform cannot
                    fork worker processes.
``process-pooled``  a ``ProcessPoolExecutor``.

Every strategy exposes
``dispatch(jobs, worker_fn, cancel, on_start, on_error)``, which yields
``(job, result)`` pairs in completion order.  Submission is bounded by the
strategy width, so once *cancel* is set no further job is started; jobs
already running are allowed to finish and their results are still yielded.
If a pool worker dies, its job and every job the broken pool can no longer
run are reported through *on_error*.
"""

from __future__ import annotations

import enum
import logging
import multiprocessing
import os
import threading
from concurrent.futures import (
    FIRST_COMPLETED,
    BrokenExecutor,
    Executor,
    Future,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    wait,
)
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple, TypeVar

from ._constants import DEFAULT_THREADS
from .config import EffectiveOptions

logger = logging.getLogger(__name__)

J = TypeVar("J")
R = TypeVar("R")

StartCallback = Callable[[J], None]
ErrorCallback = Callable[[J, BaseException], R]

_DONE = object()


class DispatchMode(str, enum.Enum):
    SEQUENTIAL = "sequential"
    THREADED = "threaded"
    PROCESS_POOLED = "process-pooled"


def can_fork() -> bool:
    """``True`` when this platform can fork worker processes."""
    return "fork" in multiprocessing.get_all_start_methods()


@dataclass(frozen=True)
class ConcurrencyPlan:
    mode: DispatchMode
    width: Optional[int] = None

    @property
    def isolated(self) -> bool:
        """``True`` when workers must open their own connections."""
        return self.mode is not DispatchMode.SEQUENTIAL

    def strategy(self) -> "Strategy":
        if self.mode is DispatchMode.SEQUENTIAL:
            return SequentialStrategy()
        if self.mode is DispatchMode.THREADED:
            return ThreadedStrategy(self.width or DEFAULT_THREADS)
        return ProcessPooledStrategy(self.width)


def plan(options: EffectiveOptions, *, fork_supported: Optional[bool] = None) -> ConcurrencyPlan:
    """Choose the dispatch strategy for *options* (first matching rule wins)."""
    if options.debug or options.in_batches or options.defer_constraints:
        if options.jobs is not None:
            logger.warning("--jobs ignored")
        return ConcurrencyPlan(DispatchMode.SEQUENTIAL, 1)

    if fork_supported is None:
        fork_supported = can_fork()
    if not fork_supported:
        return ConcurrencyPlan(DispatchMode.THREADED, options.jobs or DEFAULT_THREADS)

    return ConcurrencyPlan(DispatchMode.PROCESS_POOLED, options.jobs or None)


# -- strategies -----------------------------------------------------------------


class Strategy:
    width: int = 1

    def dispatch(
        self,
        jobs: Iterable[J],
        worker_fn: Callable[[J], R],
        cancel: Optional[threading.Event] = None,
        on_start: Optional[StartCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Iterator[Tuple[J, R]]:
        """Yield ``(job, result)`` for each job started.

        With *on_error*, an exception escaping *worker_fn* (or the worker
        itself dying) becomes ``on_error(job, exc)`` instead of propagating.
        """
        raise NotImplementedError


class SequentialStrategy(Strategy):
    def dispatch(self, jobs, worker_fn, cancel=None, on_start=None, on_error=None):
        for job in jobs:
            if cancel is not None and cancel.is_set():
                break
            if on_start is not None:
                on_start(job)
            try:
                result = worker_fn(job)
            except Exception as exc:
                if on_error is None:
                    raise
                logger.error("Worker for %s failed: %s", job, exc)
                result = on_error(job, exc)
            yield job, result


class _PoolStrategy(Strategy):
    def __init__(self, width: Optional[int]) -> None:
        self.width = max(1, width or os.cpu_count() or 1)

    def _executor(self) -> Executor:
        raise NotImplementedError

    def dispatch(self, jobs, worker_fn, cancel=None, on_start=None, on_error=None):
        pending_jobs = iter(jobs)
        in_flight: Dict[Future, object] = {}
        stranded: List[object] = []
        broken: Optional[BaseException] = None

        def cancelled() -> bool:
            return cancel is not None and cancel.is_set()

        def submit_next(pool: Executor) -> bool:
            nonlocal broken
            if broken is not None or cancelled():
                return False
            job = next(pending_jobs, _DONE)
            if job is _DONE:
                return False
            if on_start is not None:
                on_start(job)
            try:
                in_flight[pool.submit(worker_fn, job)] = job
            except BrokenExecutor as exc:
                if on_error is None:
                    raise
                broken = exc
                stranded.append(job)
                return False
            return True

        with self._executor() as pool:
            while len(in_flight) < self.width and submit_next(pool):
                pass
            while in_flight:
                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    job = in_flight.pop(future)
                    exc = future.exception()
                    if exc is None:
                        yield job, future.result()
                        continue
                    if on_error is None:
                        future.result()
                    if isinstance(exc, BrokenExecutor):
                        broken = exc
                    logger.error("Worker for %s failed: %s", job, exc)
                    yield job, on_error(job, exc)
                while len(in_flight) < self.width and submit_next(pool):
                    pass

        if broken is None:
            return
        # the pool is unusable; jobs it never ran still get a result
        for job in stranded:
            yield job, on_error(job, broken)
        if cancelled():
            return
        remaining = list(pending_jobs)
        if remaining:
            logger.warning(
                "Worker pool terminated; %d table(s) not started", len(remaining),
            )
        for job in remaining:
            yield job, on_error(job, broken)


class ThreadedStrategy(_PoolStrategy):
    def _executor(self) -> Executor:
        logger.debug("Dispatching with %d thread(s)", self.width)
        return ThreadPoolExecutor(max_workers=self.width)


class ProcessPooledStrategy(_PoolStrategy):
    def _executor(self) -> Executor:
        logger.debug("Dispatching with %d process(es)", self.width)
        return ProcessPoolExecutor(max_workers=self.width)
