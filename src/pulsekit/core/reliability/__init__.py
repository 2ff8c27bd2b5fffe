"""Reliability mechanisms: rate limiting, circuit breaking, retry, error tracking."""

from pulsekit.core.reliability.circuit_breaker import CircuitBreaker
from pulsekit.core.reliability.errors import ErrorRecord, ErrorTracker
from pulsekit.core.reliability.manager import ReliabilityManager, rate_limit_key
from pulsekit.core.reliability.rate_limit import KeyedBucketFactory, RateLimitRegistry
from pulsekit.core.reliability.retry import RetryConfig, RetryManager

__all__ = [
    "CircuitBreaker",
    "ErrorRecord",
    "ErrorTracker",
    "KeyedBucketFactory",
    "RateLimitRegistry",
    "ReliabilityManager",
    "RetryConfig",
    "RetryManager",
    "rate_limit_key",
]
