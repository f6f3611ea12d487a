from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from app.core.config import Settings
from app.core.errors import RecordNotFoundError, StoreError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

NON_RETRYABLE = (RecordNotFoundError, ValidationError)


def linear_backoff(step_seconds: float = 1.0) -> Callable[[int], float]:
    def backoff(attempt: int) -> float:
        return attempt * step_seconds

    return backoff


def is_retryable(exc: BaseException) -> bool:
    return not isinstance(exc, NON_RETRYABLE)


@dataclass
class RetryPolicy:
    """
    Bounded retry around a store call. After failed attempt n the policy
    sleeps backoff(n) seconds; once max_attempts is reached a StoreError
    carrying the attempt count and the last error is raised.
    """

    max_attempts: int = 3
    backoff: Callable[[int], float] = field(default_factory=linear_backoff)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    retryable: Callable[[BaseException], bool] = is_retryable

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, settings.store_retry_attempts),
            backoff=linear_backoff(settings.store_retry_backoff_seconds),
        )

    async def run(self, operation: Callable[[], Awaitable[T]], entity: str) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as exc:  # noqa: BLE001
                if not self.retryable(exc):
                    raise
                logger.error("Store error (%s), attempt %d/%d: %s", entity, attempt, self.max_attempts, exc)
                if attempt >= self.max_attempts:
                    raise StoreError(entity=entity, attempts=attempt, last_error=exc) from exc
                await self.sleep(self.backoff(attempt))
