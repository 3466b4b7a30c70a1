"""Parallel execution of per-region work.

Example:
    >>> from scmut.parallel import ParallelExecutor
    >>> executor = ParallelExecutor(n_workers=4, backend="threads")
    >>> results, stats = executor.map_items(process_region, tasks)
"""

from scmut.parallel.executor import (
    ExecutionStats,
    ExecutorBackend,
    ParallelExecutor,
    TaskResult,
)

__all__ = [
    "ExecutionStats",
    "ExecutorBackend",
    "ParallelExecutor",
    "TaskResult",
]
