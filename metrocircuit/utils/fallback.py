"""Generic "first success wins" runner for ordered fallback chains.

Text extraction strategies, Gemini model/API-version combinations, embedding
providers and chained LLM providers are each expressed as an ordered list of
:class:`Attempt` objects.  :func:`first_success` runs them in order and
returns the first result that both completes without raising and passes the
optional ``accept`` predicate.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog

from metrocircuit.utils.errors import AllAttemptsFailedError

logger = structlog.get_logger(logger_name=__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Attempt(Generic[T]):
    """One named strategy in a fallback chain."""

    name: str
    run: Callable[[], Awaitable[T]]


@dataclass(frozen=True)
class FallbackResult(Generic[T]):
    """The winning attempt's value, its name and the attempts rejected before it."""

    value: T
    attempt_name: str
    failures: dict[str, str]


async def first_success(
    attempts: Sequence[Attempt[T]],
    *,
    accept: Callable[[T], bool] | None = None,
    label: str = "fallback",
) -> FallbackResult[T]:
    """Run *attempts* in order and return the first accepted result.

    Parameters
    ----------
    attempts:
        Ordered strategies.  An attempt fails by raising any ``Exception``
        or by returning a value rejected by *accept*.
    accept:
        Optional predicate applied to each returned value.
    label:
        Chain name used in log events and the exhaustion error.

    Returns
    -------
    FallbackResult
        The accepted value plus a record of earlier failures.

    Raises
    ------
    AllAttemptsFailedError
        When every attempt failed or *attempts* is empty.
    """
    failures: dict[str, str] = {}
    for attempt in attempts:
        try:
            value = await attempt.run()
        except Exception as exc:
            failures[attempt.name] = str(exc) or type(exc).__name__
            logger.warning("fallback_attempt_failed", chain=label, attempt=attempt.name, error=str(exc))
            continue

        if accept is not None and not accept(value):
            failures[attempt.name] = "result rejected"
            logger.info("fallback_attempt_rejected", chain=label, attempt=attempt.name)
            continue

        if failures:
            logger.info(
                "fallback_recovered",
                chain=label,
                attempt=attempt.name,
                failed_attempts=list(failures),
            )
        return FallbackResult(value=value, attempt_name=attempt.name, failures=failures)

    raise AllAttemptsFailedError(label, failures)
