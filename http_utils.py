from __future__ import annotations

from dataclasses import dataclass, field
import random

DEFAULT_RETRY_STATUSES = {429, 500, 502, 503, 504}
DEFAULT_USER_AGENT = "Mozilla/5.0 (workshop-downloader)"
_DNS_ERROR_TOKENS = (
    "name or service not known",
    "nodename nor servname provided",
    "temporary failure in name resolution",
    "failed to resolve",
    "getaddrinfo failed",
    "no address associated with hostname",
)


@dataclass
class RetryPolicy:
    retries: int = 0
    backoff: float = 0.0
    retry_statuses: set[int] = field(default_factory=lambda: set(DEFAULT_RETRY_STATUSES))

    def __post_init__(self) -> None:
        self.retries = max(0, int(self.retries))
        self.backoff = max(0.0, float(self.backoff))
        if not self.retry_statuses:
            self.retry_statuses = set(DEFAULT_RETRY_STATUSES)

    @property
    def attempts(self) -> int:
        return self.retries + 1

    def delay_for_attempt(self, attempt: int) -> float:
        if self.backoff <= 0:
            return 0.0
        delay = self.backoff * (2 ** (attempt - 1))
        delay += random.uniform(0.0, self.backoff)
        return delay


def is_dns_error(exc: Exception) -> bool:
    message = str(exc).lower()
    return any(token in message for token in _DNS_ERROR_TOKENS)


def describe_request_error(exc: Exception) -> str:
    if is_dns_error(exc):
        return f"DNS lookup failed ({exc})"
    return f"{type(exc).__name__}: {exc}"
