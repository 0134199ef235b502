import asyncio
import logging
from typing import Awaitable, Callable, List, Sequence, TypeVar

from .errors import NoImageDataError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AnyOfN:
    """Succeed when at least one attempt succeeded; otherwise raise the last-settled failure."""

    name = "any_of_n"

    def aggregate(self, results: List[T], failures: List[Exception]) -> List[T]:
        if results:
            return results
        if failures:
            raise failures[-1]
        raise NoImageDataError()


class BestEffort:
    """Return whatever succeeded, possibly nothing. Never raises for attempt failures."""

    name = "best_effort"

    def aggregate(self, results: List[T], failures: List[Exception]) -> List[T]:
        return results


async def fan_out(factories: Sequence[Callable[[], Awaitable[T]]], policy) -> List[T]:
    """
    Start every attempt at once, wait until all of them have settled, then let
    `policy` decide the outcome. Results are in completion order.
    """
    tasks = [asyncio.ensure_future(factory()) for factory in factories]
    results: List[T] = []
    failures: List[Exception] = []

    for settled in asyncio.as_completed(tasks):
        try:
            results.append(await settled)
        except Exception as e:
            logger.warning(f"Attempt failed ({policy.name}): {type(e).__name__}: {e}")
            failures.append(e)

    logger.info(f"Fan-out settled: {len(results)} succeeded, {len(failures)} failed ({policy.name})")
    return policy.aggregate(results, failures)
