"""Retry policy for provider calls."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from gcp_provisioner.engine.errors import ProviderError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and exc.transient


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    sleep = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.warning(
        "Transient provider error (attempt %d), retrying in %.1fs: %s",
        retry_state.attempt_number,
        sleep,
        exc,
    )


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff for transient provider errors.

    Only ``ProviderError``s with ``transient=True`` are retried; anything
    else propagates on the first attempt. After ``attempts`` tries the last
    error is re-raised.
    """

    attempts: int = 5
    initial_delay: float = 1.0
    max_delay: float = 30.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)

    def call(
        self,
        fn: Callable[..., T],
        *args: Any,
        on_attempt: Callable[[], None] | None = None,
    ) -> T:
        """Call ``fn(*args)`` under this policy; *on_attempt* runs before every try."""
        retrying = Retrying(
            retry=retry_if_exception(is_transient),
            stop=stop_after_attempt(max(1, self.attempts)),
            wait=wait_exponential(multiplier=self.initial_delay, max=self.max_delay),
            sleep=self.sleep,
            before_sleep=_log_retry,
            reraise=True,
        )

        def _attempt() -> T:
            if on_attempt is not None:
                on_attempt()
            return fn(*args)

        return retrying(_attempt)


NO_RETRY = RetryPolicy(attempts=1)
