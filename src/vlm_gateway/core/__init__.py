"""
Core gateway components.
"""

from .interface import ProviderAdapter
from .registry import ProviderRegistry
from .stream import ResponseStream
from .config import GatewayConfig, ProviderConfig, RetryConfig, load_config
from .errors import (
    ErrorCode,
    GatewayError,
    ProviderNotFoundError,
    ProviderNotConfiguredError,
    CapabilityError,
    TransformError,
    ProviderAPIError,
    StreamError,
    ProviderConnectionError,
    is_retryable,
)

__all__ = [
    "ProviderAdapter",
    "ProviderRegistry",
    "ResponseStream",
    "GatewayConfig",
    "ProviderConfig",
    "RetryConfig",
    "load_config",
    "ErrorCode",
    "GatewayError",
    "ProviderNotFoundError",
    "ProviderNotConfiguredError",
    "CapabilityError",
    "TransformError",
    "ProviderAPIError",
    "StreamError",
    "ProviderConnectionError",
    "is_retryable",
]
