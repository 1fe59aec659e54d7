"""Fan-out/join primitive: run independent tasks, collect every outcome.

Distinct from a first-success race. One task failing never cancels the
others and the join waits for all of them.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Generic, Hashable, Iterable, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)


@dataclass(frozen=True)
class TaskOutcome(Generic[K]):
    """Outcome of one fanned-out task."""
    key: K
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def gather_outcomes(tasks: Iterable[Tuple[K, Awaitable[Any]]]) -> List[TaskOutcome]:
    """Await all tasks concurrently and return their outcomes in input order.

    Args:
        tasks: (key, awaitable) pairs

    Returns:
        One TaskOutcome per task, carrying either its value or its exception
    """
    pairs = list(tasks)
    if not pairs:
        return []

    results = await asyncio.gather(
        *(awaitable for _, awaitable in pairs),
        return_exceptions=True,
    )

    outcomes: List[TaskOutcome] = []
    for (key, _), result in zip(pairs, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            logger.warning(
                "FANOUT_TASK_FAILED",
                extra={
                    "task_key": str(key),
                    "error": str(result),
                    "error_type": type(result).__name__,
                }
            )
            outcomes.append(TaskOutcome(key=key, error=result))
        else:
            outcomes.append(TaskOutcome(key=key, value=result))

    return outcomes


async def resolve_optional(awaitable: Awaitable[Any], label: str) -> Any:
    """Await an independent read and degrade any failure to None."""
    try:
        return await awaitable
    except Exception as e:
        logger.warning(
            "OPTIONAL_RESOLUTION_FAILED",
            extra={"label": label, "error": str(e), "error_type": type(e).__name__}
        )
        return None
