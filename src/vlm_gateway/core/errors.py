"""
Gateway error types.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Machine-readable error kinds."""
    NOT_CONFIGURED = "NOT_CONFIGURED"
    UNKNOWN_PROVIDER = "UNKNOWN_PROVIDER"
    CAPABILITY_ERROR = "CAPABILITY_ERROR"
    TRANSFORM_ERROR = "TRANSFORM_ERROR"
    API_ERROR = "API_ERROR"
    STREAM_ERROR = "STREAM_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"


# Raised before anything reaches the network; retrying cannot help.
NON_RETRYABLE_CODES = frozenset({
    ErrorCode.NOT_CONFIGURED,
    ErrorCode.UNKNOWN_PROVIDER,
    ErrorCode.CAPABILITY_ERROR,
    ErrorCode.TRANSFORM_ERROR,
})


class GatewayError(Exception):
    """Base exception for gateway errors."""

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        raw: Any = None,
    ):
        self.message = message
        self.code = ErrorCode(code)
        self.provider = provider
        self.status_code = status_code
        self.raw = raw
        super().__init__(message)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(code={self.code.value!r}, "
            f"provider={self.provider!r}, status_code={self.status_code!r}, "
            f"message={self.message!r})"
        )


class ProviderNotFoundError(GatewayError):
    """Raised when no adapter is registered for a provider id."""

    def __init__(self, provider: str):
        super().__init__(f"Unknown provider: {provider}", ErrorCode.UNKNOWN_PROVIDER, provider)
        self.requested_provider = provider


class ProviderNotConfiguredError(GatewayError):
    """Raised when a provider has no credential."""

    def __init__(self, message: str, provider: str):
        super().__init__(message, ErrorCode.NOT_CONFIGURED, provider)


class CapabilityError(GatewayError):
    """Raised when request content exceeds the model's capabilities."""

    def __init__(
        self,
        message: str,
        required_capability: str,
        model: str,
        provider: Optional[str] = None,
    ):
        super().__init__(message, ErrorCode.CAPABILITY_ERROR, provider)
        self.required_capability = required_capability
        self.model = model


class TransformError(GatewayError):
    """Raised when content cannot be expressed in a provider's wire format."""

    def __init__(self, message: str, provider: Optional[str] = None, raw: Any = None):
        super().__init__(message, ErrorCode.TRANSFORM_ERROR, provider, raw=raw)


class ProviderAPIError(GatewayError):
    """Raised on a non-2xx response from the provider."""

    def __init__(self, message: str, provider: str, status_code: int, raw: Any = None):
        super().__init__(message, ErrorCode.API_ERROR, provider, status_code, raw)


class StreamError(GatewayError):
    """Raised when a stream has no body or ends without a terminal event."""

    def __init__(self, message: str, provider: Optional[str] = None, raw: Any = None):
        super().__init__(message, ErrorCode.STREAM_ERROR, provider, raw=raw)


class ProviderConnectionError(GatewayError):
    """Raised when the HTTP request fails below the HTTP layer (DNS, reset, timeout)."""

    def __init__(self, message: str, provider: str):
        super().__init__(message, ErrorCode.NETWORK_ERROR, provider)


def is_retryable(error: BaseException) -> bool:
    """
    Decide whether the gateway may retry after ``error``.

    Client-side 4xx responses and errors raised before any network call
    are final. Everything else, including 5xx, transport failures and
    non-gateway exceptions, is retried.
    """
    if not isinstance(error, GatewayError):
        return True
    if error.code in NON_RETRYABLE_CODES:
        return False
    if error.status_code is not None and 400 <= error.status_code < 500:
        return False
    return True
