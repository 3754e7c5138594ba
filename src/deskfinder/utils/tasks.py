"""Supervised calls with a deadline.

Third-party parsers can hang or blow up on corrupt input. ``run_with_deadline``
runs the call on a daemon worker thread and reports a tagged result instead of
raising. A call that misses its deadline is abandoned: the worker is left to
finish on its own and its result is discarded.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Generic, Literal, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

Status = Literal["ok", "timeout", "error"]


@dataclass(slots=True)
class TaskResult(Generic[T]):
    status: Status
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


def supervised(func: Callable[..., T], *args: Any, **kwargs: Any) -> TaskResult[T]:
    """Run ``func`` in the current thread, converting exceptions to a result."""
    try:
        return TaskResult("ok", value=func(*args, **kwargs))
    except Exception as exc:
        return TaskResult("error", error=exc)


def run_with_deadline(
    func: Callable[..., T], *args: Any, deadline: float, **kwargs: Any
) -> TaskResult[T]:
    """Run ``func`` on a worker thread and wait at most ``deadline`` seconds."""
    if deadline <= 0:
        raise ValueError("deadline must be positive")

    outcome: list[TaskResult[T]] = []
    done = threading.Event()

    def _target() -> None:
        outcome.append(supervised(func, *args, **kwargs))
        done.set()

    worker = threading.Thread(target=_target, name="deskfinder-task", daemon=True)
    worker.start()

    if not done.wait(deadline):
        LOGGER.debug("Task %r missed its %.1fs deadline", getattr(func, "__name__", func), deadline)
        return TaskResult("timeout")
    return outcome[0]
