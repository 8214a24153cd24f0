"""Wall-clock timing of a single deferred computation."""

from __future__ import annotations

import time
from typing import Callable, Tuple, TypeVar

T = TypeVar("T")


def timed(fn: Callable[[], T]) -> Tuple[T, float]:
    """Run ``fn`` once and return ``(value, elapsed_ms)``.

    Uses the monotonic ``perf_counter`` clock. Exceptions propagate unchanged.
    """
    start = time.perf_counter()
    value = fn()
    elapsed_ms = (time.perf_counter() - start) * 1000
    return value, elapsed_ms


def benchmark_ms(fn: Callable[[], object]) -> float:
    """Run ``fn`` once and return the elapsed time in milliseconds."""
    _, elapsed_ms = timed(fn)
    return elapsed_ms
