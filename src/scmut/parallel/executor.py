"""Local parallel execution of per-region work.

Gene regions are independent until the global multiple-testing correction,
so each region is processed as one task. The executor runs the tasks on a
serial, thread or process backend and always hands results back in task
order, which keeps the pooled candidate set identical whatever the backend
or worker count.

Features:
    - Multiple execution backends (serial, threads, processes)
    - Progress callbacks (used to drive a rich progress bar)
    - Per-task timing and execution statistics
    - Abort on the first failed task

Example:
    >>> from scmut.parallel.executor import ParallelExecutor
    >>> executor = ParallelExecutor(n_workers=8, backend="processes")
    >>> results, stats = executor.map_items(process_region, tasks)
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import (
    Future,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    as_completed,
)
from enum import Enum
from typing import Any, Callable, TypeVar

import attrs

from scmut.errors import RegionProcessingError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


# =============================================================================
# Enums
# =============================================================================


class ExecutorBackend(Enum):
    """Available execution backends."""

    SERIAL = "serial"
    THREADS = "threads"
    PROCESSES = "processes"


# =============================================================================
# Data Structures
# =============================================================================


@attrs.define(slots=True)
class TaskResult:
    """Result from a parallel task."""

    task_id: str
    success: bool
    result: Any | None = None
    error: str | None = None
    duration_seconds: float = 0.0


@attrs.define(slots=True)
class ExecutionStats:
    """Statistics from parallel execution."""

    total_tasks: int
    successful: int
    failed: int
    total_duration: float
    mean_task_duration: float
    max_task_duration: float

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "total_tasks": self.total_tasks,
            "successful": self.successful,
            "failed": self.failed,
            "total_duration": round(self.total_duration, 3),
            "mean_task_duration": round(self.mean_task_duration, 3),
            "max_task_duration": round(self.max_task_duration, 3),
        }


def _task_id(item: Any, index: int) -> str:
    return str(getattr(item, "task_id", f"task_{index:06d}"))


def _run_task(func: Callable[[T], R], item: T, task_id: str) -> TaskResult:
    """Run one task, capturing its result or error with timing.

    Module level so the process backend can pickle it.
    """
    start_time = time.time()
    try:
        result = func(item)
    except Exception as e:
        return TaskResult(
            task_id=task_id,
            success=False,
            error=f"{type(e).__name__}: {e}",
            duration_seconds=time.time() - start_time,
        )
    return TaskResult(
        task_id=task_id,
        success=True,
        result=result,
        duration_seconds=time.time() - start_time,
    )


# =============================================================================
# Parallel Executor
# =============================================================================


class ParallelExecutor:
    """Execute independent tasks in parallel.

    Example:
        >>> executor = ParallelExecutor(n_workers=4, backend="threads")
        >>> results, stats = executor.map_items(process_region, tasks)
        >>> print(f"Processed {stats.successful}/{stats.total_tasks} regions")
    """

    def __init__(
        self,
        n_workers: int = 1,
        backend: ExecutorBackend | str = ExecutorBackend.THREADS,
        progress_callback: Callable[[int, int, str], None] | None = None,
    ) -> None:
        """Initialize executor.

        Args:
            n_workers: Number of parallel workers (1 = serial).
            backend: Execution backend.
            progress_callback: Called with (completed, total, task_id).
        """
        self.n_workers = max(1, n_workers)
        self.backend = ExecutorBackend(backend) if isinstance(backend, str) else backend
        self.progress_callback = progress_callback

        # Auto-select serial if n_workers=1
        if self.n_workers == 1:
            self.backend = ExecutorBackend.SERIAL

    def map_items(
        self,
        func: Callable[[T], R],
        items: list[T],
    ) -> tuple[list[TaskResult], ExecutionStats]:
        """Apply a function to each item.

        Items exposing a ``task_id`` attribute are reported under that name.
        For the process backend, ``func`` and the items must be picklable.

        Args:
            func: Function to apply to each item.
            items: Items to process.

        Returns:
            Tuple of (results in item order, execution stats).

        Raises:
            RegionProcessingError: A task failed; remaining tasks are cancelled.
        """
        if not items:
            return [], ExecutionStats(
                total_tasks=0,
                successful=0,
                failed=0,
                total_duration=0.0,
                mean_task_duration=0.0,
                max_task_duration=0.0,
            )

        logger.info(
            f"Processing {len(items)} tasks with {self.n_workers} workers "
            f"(backend={self.backend.value})"
        )

        start_time = time.time()
        if self.backend == ExecutorBackend.SERIAL:
            results = self._execute_serial(func, items)
        else:
            results = self._execute_pool(func, items)

        total_duration = time.time() - start_time
        successful = sum(1 for r in results if r.success)
        failed = len(results) - successful
        durations = [r.duration_seconds for r in results]

        stats = ExecutionStats(
            total_tasks=len(results),
            successful=successful,
            failed=failed,
            total_duration=total_duration,
            mean_task_duration=sum(durations) / len(durations) if durations else 0.0,
            max_task_duration=max(durations) if durations else 0.0,
        )

        logger.info(
            f"Completed: {successful}/{len(items)} tasks, duration={total_duration:.1f}s"
        )
        return results, stats

    def _execute_serial(
        self,
        func: Callable,
        items: list,
    ) -> list[TaskResult]:
        """Serial execution with progress tracking."""
        results = []
        total = len(items)

        for i, item in enumerate(items):
            task_result = _run_task(func, item, _task_id(item, i))
            results.append(task_result)

            if self.progress_callback:
                self.progress_callback(i + 1, total, task_result.task_id)

            if not task_result.success:
                self._handle_failure(task_result)

        return results

    def _execute_pool(
        self,
        func: Callable,
        items: list,
    ) -> list[TaskResult]:
        """Thread or process pool execution; results are reordered to item order."""
        pool_class = (
            ThreadPoolExecutor if self.backend == ExecutorBackend.THREADS else ProcessPoolExecutor
        )
        results: list[TaskResult | None] = [None] * len(items)
        total = len(items)
        completed = 0

        with pool_class(max_workers=self.n_workers) as executor:
            futures: dict[Future, int] = {}
            for i, item in enumerate(items):
                future = executor.submit(_run_task, func, item, _task_id(item, i))
                futures[future] = i

            for future in as_completed(futures):
                completed += 1
                task_result = future.result()
                results[futures[future]] = task_result

                if self.progress_callback:
                    self.progress_callback(completed, total, task_result.task_id)

                if not task_result.success:
                    executor.shutdown(wait=False, cancel_futures=True)
                    self._handle_failure(task_result)

        return [r for r in results if r is not None]

    @staticmethod
    def _handle_failure(task_result: TaskResult) -> None:
        logger.error(f"Task {task_result.task_id} failed: {task_result.error}")
        raise RegionProcessingError(task_result.task_id, task_result.error or "unknown error")


# =============================================================================
# Utility Functions
# =============================================================================


def create_progress_bar() -> Any:
    """Create a rich progress bar for region processing."""
    from rich.progress import (
        BarColumn,
        MofNCompleteColumn,
        Progress,
        SpinnerColumn,
        TextColumn,
        TimeRemainingColumn,
    )

    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeRemainingColumn(),
        transient=True,
    )
