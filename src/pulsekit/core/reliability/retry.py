# src/pulsekit/core/reliability/retry.py
"""RetryManager: exponential backoff with tenacity.

Used for non-critical delivery paths (streaming) where a transient failure
is worth a few more attempts before giving up.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from pulsekit.contracts.errors import MaxRetriesExceeded, TelemetryError

if TYPE_CHECKING:
    from pulsekit.core.config import RetrySettings

T = TypeVar("T")


def is_retryable(error: BaseException) -> bool:
    """TelemetryErrors declare retryability; other exceptions are retried."""
    if isinstance(error, TelemetryError):
        return error.retryable
    return isinstance(error, Exception)


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    max_attempts is the TOTAL number of tries, not the number of retries.
    """

    max_attempts: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    jitter: float = 0.1  # seconds
    exponential_base: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def no_retry(cls) -> "RetryConfig":
        return cls(max_attempts=1)

    @classmethod
    def from_settings(cls, settings: "RetrySettings") -> "RetryConfig":
        return cls(
            max_attempts=settings.max_retries,
            base_delay=settings.backoff_seconds,
            max_delay=settings.max_backoff_seconds,
        )


class RetryManager:
    """Runs an operation with retries.

    Example:
        manager = RetryManager(RetryConfig(max_attempts=3))
        manager.execute_with_retry(lambda: streamer.stream(event))
    """

    def __init__(self, config: RetryConfig) -> None:
        self._config = config

    @property
    def config(self) -> RetryConfig:
        return self._config

    def execute_with_retry(
        self,
        operation: Callable[[], T],
        *,
        retryable: Callable[[BaseException], bool] = is_retryable,
        on_retry: Callable[[int, BaseException], None] | None = None,
    ) -> T:
        """Execute operation with retry logic.

        Raises:
            MaxRetriesExceeded: If all attempts failed with retryable errors
            Exception: The original error if it is not retryable
        """
        attempt = 0
        last_error: BaseException | None = None

        try:
            for attempt_state in Retrying(
                stop=stop_after_attempt(self._config.max_attempts),
                wait=wait_exponential_jitter(
                    initial=self._config.base_delay,
                    max=self._config.max_delay,
                    exp_base=self._config.exponential_base,
                    jitter=self._config.jitter,
                ),
                retry=retry_if_exception(retryable),
                reraise=False,
            ):
                with attempt_state:
                    attempt = attempt_state.retry_state.attempt_number
                    try:
                        return operation()
                    except Exception as e:
                        last_error = e
                        if on_retry is not None and retryable(e) and attempt < self._config.max_attempts:
                            on_retry(attempt, e)
                        raise

        except RetryError as e:
            final_error = last_error or e.last_attempt.exception()
            assert final_error is not None, "RetryError without exception is impossible"
            raise MaxRetriesExceeded(attempt, final_error) from e

        raise RuntimeError("Unexpected state in retry loop")  # pragma: no cover
