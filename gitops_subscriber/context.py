"""Utilities for tracing reconciliation cycles and their phases."""

import contextvars
from contextlib import contextmanager
from dataclasses import dataclass
import logging
from time import perf_counter
from typing import Generator


_LOGGER = logging.getLogger(__name__)

# No public API
__all__: list[str] = []


@dataclass(frozen=True)
class CycleInfo:
    """Identity of the reconciliation cycle currently running."""

    subscription: str
    cycle: int

    def __str__(self) -> str:
        return f"{self.subscription}#{self.cycle}"


current_cycle: contextvars.ContextVar[CycleInfo | None] = contextvars.ContextVar(
    "current_cycle", default=None
)
trace: contextvars.ContextVar[list[str]] = contextvars.ContextVar("trace")


@contextmanager
def cycle_context(subscription: str, cycle: int) -> Generator[CycleInfo, None, None]:
    """Mark the enclosed code as one reconciliation cycle of a subscription."""
    info = CycleInfo(subscription=subscription, cycle=cycle)
    token = current_cycle.set(info)
    t1 = perf_counter()
    _LOGGER.debug("[Cycle] > %s", info)
    try:
        yield info
    finally:
        current_cycle.reset(token)
        _LOGGER.debug("[Cycle] < %s (%0.2fs)", info, perf_counter() - t1)


@contextmanager
def trace_context(name: str) -> Generator[None, None, None]:
    """Log entry, exit and duration of a named phase of the current cycle."""
    stack = trace.get([])
    token = trace.set(stack + [name])
    label = " > ".join(stack + [name])
    if (info := current_cycle.get()) is not None:
        label = f"{info}: {label}"
    t1 = perf_counter()
    _LOGGER.debug("[Trace] > %s", label)
    try:
        yield
    finally:
        trace.reset(token)
        _LOGGER.debug("[Trace] < %s (%0.2fs)", label, perf_counter() - t1)
