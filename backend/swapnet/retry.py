import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from .errors import TransientBackendError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_STATUS_MARKERS = ("500", "503")
TRANSIENT_KEYWORDS = ("overloaded", "deadline expired", "internal error")


def is_transient(error: BaseException) -> bool:
    """True when the failure is likely to succeed on retry (overload, timeout, internal fault)."""
    if isinstance(error, TransientBackendError):
        return True
    message = str(error) or ""
    if any(code in message for code in TRANSIENT_STATUS_MARKERS):
        return True
    lowered = message.lower()
    return any(k in lowered for k in TRANSIENT_KEYWORDS)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 2.0,
) -> T:
    """
    Run `operation` (a zero-argument coroutine factory) with exponential backoff.

    Only transient failures are retried. The wait before retry k is
    base_delay * 2**(k-1) seconds, with no jitter. Non-transient errors and the
    error from the final attempt propagate unchanged.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not is_transient(e) or attempt == max_attempts:
                raise
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                f"Transient failure on attempt {attempt}/{max_attempts}: {e}. Retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)

    # Unreachable: the loop either returns or raises.
    raise RuntimeError("with_retry exhausted without result")
