"""Per-invocation context for time-bounded pipeline steps.

A fresh :class:`InvocationContext` is built for every HTTP action or CLI call
and thrown away afterwards.  It carries the invocation id, the clock used for
the wall-clock guard, the moment the invocation started and its time budget,
and binds ``invocation_id``/``action`` into structlog's context variables so
every log line emitted during the step is tagged.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog


@dataclass
class InvocationContext:
    """Clock, budget and log binding for one invocation.

    Parameters
    ----------
    action:
        Name of the action being served (``process_batch``, ``query``, ...).
    budget_seconds:
        Wall-clock budget for the whole invocation.
    clock:
        Monotonic clock returning seconds; injectable for tests.
    """

    action: str
    budget_seconds: float = 240.0
    clock: Callable[[], float] = time.monotonic
    invocation_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: float = field(init=False)

    def __post_init__(self) -> None:
        self.started_at = self.clock()
        self.logger = structlog.get_logger(logger_name="metrocircuit.invocation").bind(
            invocation_id=self.invocation_id,
            action=self.action,
        )

    def elapsed(self) -> float:
        return self.clock() - self.started_at

    def remaining(self) -> float:
        return max(0.0, self.budget_seconds - self.elapsed())

    def out_of_time(self) -> bool:
        """True once the elapsed time reaches the budget."""
        return self.elapsed() >= self.budget_seconds

    def __enter__(self) -> InvocationContext:
        structlog.contextvars.bind_contextvars(
            invocation_id=self.invocation_id,
            action=self.action,
        )
        return self

    def __exit__(self, *exc_info: object) -> None:
        structlog.contextvars.unbind_contextvars("invocation_id", "action")
