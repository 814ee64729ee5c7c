# tracking/persistence.py
import asyncio
import logging
from dataclasses import dataclass

from core.errors import ServiceUnavailable, TransientStoreFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    timeout: float = 5.0
    attempts: int = 3
    backoff: float = 0.2
    backoff_cap: float = 2.0

    def delay(self, attempt: int) -> float:
        return min(self.backoff_cap, self.backoff * (2 ** attempt))


async def call_store(policy: RetryPolicy, op: str, call, *args):
    """
    Await ``call(*args)`` with a timeout, retrying transient failures.

    ``call`` is invoked again for every attempt, so it must be a coroutine
    function and not an already created coroutine. A timed-out write is not
    cancelled in the store; it may still land.
    """
    last_error = None
    for attempt in range(policy.attempts):
        try:
            return await asyncio.wait_for(call(*args), timeout=policy.timeout)
        except asyncio.TimeoutError as exc:
            last_error = TransientStoreFailure(f"{op} timed out after {policy.timeout}s")
            last_error.__cause__ = exc
        except TransientStoreFailure as exc:
            last_error = exc
        if attempt + 1 < policy.attempts:
            wait = policy.delay(attempt)
            logger.warning("Store call %s failed (%s), retry %d in %.2fs",
                           op, last_error, attempt + 1, wait)
            await asyncio.sleep(wait)
    logger.error("Store call %s failed after %d attempts: %s", op, policy.attempts, last_error)
    raise ServiceUnavailable(f"{op}: {last_error}") from last_error
