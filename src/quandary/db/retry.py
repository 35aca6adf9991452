"""Retry policy for transient storage failures.

Services that own a ``db`` session decorate their unit-of-work methods with
:func:`store_retry`. A timeout or dropped connection rolls the session back
and re-runs the whole unit of work with exponential backoff; once the attempts
are exhausted the failure surfaces as :class:`TransientStoreError`.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from quandary.core.errors import TransientStoreError
from quandary.core.settings import settings

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (OperationalError, PoolTimeoutError)

F = TypeVar("F", bound=Callable[..., Any])


def store_retry(func: F) -> F:
    """Retry a session-bound method on transient storage errors."""

    @functools.wraps(func)
    def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
        def _rollback(retry_state: RetryCallState) -> None:
            self.db.rollback()
            logger.warning(
                "Transient store error in %s (attempt %d): %s",
                func.__qualname__,
                retry_state.attempt_number,
                retry_state.outcome.exception() if retry_state.outcome else None,
            )

        retrying = Retrying(
            stop=stop_after_attempt(max(1, settings.store_retry_attempts)),
            wait=wait_exponential(multiplier=settings.store_retry_backoff_seconds, max=2.0),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            before_sleep=_rollback,
            reraise=True,
        )
        try:
            return retrying(func, self, *args, **kwargs)
        except TRANSIENT_ERRORS as err:
            self.db.rollback()
            logger.error("Giving up on %s after retries: %s", func.__qualname__, err)
            raise TransientStoreError("Storage is temporarily unavailable") from err

    return wrapper  # type: ignore[return-value]
