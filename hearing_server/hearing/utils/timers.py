# hearing/utils/timers.py
# -*- coding: utf-8 -*-
"""
Hearing Server — timing utilities
---------------------------------
A turn is the sum of up to three generation calls run under one
`generation_timeout_s`, so these helpers exist to see which tier (and which
step) eats that budget.

- Stopwatch    : context manager around one call.
- log_duration : decorator for whole GenerationService methods.

Both log at `level` normally, and at WARNING once a call runs longer than
`slow_s`. Failures are logged with the elapsed time too, then re-raised.
"""

from __future__ import annotations

import functools
import logging
import time
from contextlib import ContextDecorator
from typing import Any, Callable, Optional, TypeVar

F = TypeVar("F", bound=Callable[..., Any])


def _report(
    logger: logging.Logger,
    level: int,
    label: str,
    elapsed: float,
    failed: bool,
    slow_s: Optional[float],
) -> None:
    outcome = "failed" if failed else "ok"
    if slow_s is not None and elapsed > slow_s:
        logger.warning("%s slow: %.3f s (> %.1f s, %s)", label, elapsed, slow_s, outcome)
    else:
        logger.log(level, "%s took %.3f s (%s)", label, elapsed, outcome)


class Stopwatch(ContextDecorator):
    """
    Time one block.

    Example:
        with Stopwatch("[generate:ack] Tier1 openai/gpt-4o-mini", logger, slow_s=5):
            call_tier1_model(...)

    `elapsed` holds the measured seconds once the block exits.
    """

    def __init__(
        self,
        label: str,
        logger: Optional[logging.Logger] = None,
        level: int = logging.INFO,
        slow_s: Optional[float] = None,
    ) -> None:
        self.label = label
        self.logger = logger or logging.getLogger(__name__)
        self.level = level
        self.slow_s = slow_s
        self.elapsed: float = 0.0
        self._start: float = 0.0

    def __enter__(self) -> "Stopwatch":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:  # type: ignore[override]
        self.elapsed = time.perf_counter() - self._start
        _report(self.logger, self.level, self.label, self.elapsed, exc_type is not None, self.slow_s)


def log_duration(
    label: str,
    logger: Optional[logging.Logger] = None,
    level: int = logging.INFO,
    slow_s: Optional[float] = None,
) -> Callable[[F], F]:
    """
    Decorator version of Stopwatch.

        @log_duration("extract_slots", logger, logging.DEBUG)
        def extract_slots(...):
            ...
    """
    log = logger or logging.getLogger(__name__)

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with Stopwatch(label, log, level, slow_s):
                return func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator
