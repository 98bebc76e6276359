"""Error taxonomy for the provider gateway.

Every error carries an HTTP-like ``status_code`` and an ``is_retryable``
flag so callers can decide whether to try again later:

    GatewayError
    ├── ConfigError          (500, not retryable)
    ├── RateLimitError       (429, retryable)
    ├── ServerError          (5xx, retryable)
    ├── GatewayTimeoutError  (408, retryable)
    ├── ClientError          (4xx, not retryable)
    └── CircuitOpenError     (503, retryable)
"""

from typing import Optional


class GatewayError(Exception):
    """Base class for all gateway errors."""

    default_status_code = 500
    retryable = False

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code if status_code is not None else self.default_status_code
        self.provider = provider

    @property
    def is_retryable(self) -> bool:
        """Whether the caller may retry the request later."""
        return self.retryable

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.message!r}, status_code={self.status_code}, "
            f"provider={self.provider!r})"
        )


class ConfigError(GatewayError):
    """Gateway is misconfigured (e.g. missing API key). Raised before any network call."""


class RateLimitError(GatewayError):
    """Provider kept returning 429 after the retry budget was exhausted."""

    default_status_code = 429
    retryable = True

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        provider: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, status_code, provider)
        self.retry_after = retry_after


class ServerError(GatewayError):
    """Provider kept returning 500/503/529 after the retry budget was exhausted."""

    default_status_code = 503
    retryable = True


class GatewayTimeoutError(GatewayError):
    """Every attempt timed out or failed at the network layer."""

    default_status_code = 408
    retryable = True


class ClientError(GatewayError):
    """Provider rejected the request (4xx other than 429)."""

    default_status_code = 400

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        provider: Optional[str] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message, status_code, provider)
        self.body = body


class CircuitOpenError(GatewayError):
    """Circuit breaker is open; the request was not sent."""

    default_status_code = 503
    retryable = True
