"""
VLM Gateway

A unified gateway for vision-language models across providers:
- One canonical request/response format for text, images and PDFs
- Per-model capability gating before any network call
- Buffered and streamed calls with uniform error semantics
- Retry with exponential backoff and capability-based provider discovery
"""

from .gateway import VLMGateway, Route, ValidationResult
from .core.interface import ProviderAdapter
from .core.stream import ResponseStream
from .core.config import GatewayConfig, ProviderConfig, RetryConfig, load_config
from .core.errors import (
    ErrorCode,
    GatewayError,
    CapabilityError,
    TransformError,
)
from .adapters import AnthropicAdapter, OpenAIAdapter
from .models import (
    ContentPart,
    TextPart,
    ImagePart,
    PDFPart,
    AudioPart,
    VideoPart,
    PageCapture,
    Message,
    GatewayRequest,
    GatewayResponse,
    StreamChunk,
    StopReason,
    Usage,
    ModelCapabilities,
    ProviderCapabilities,
)

__all__ = [
    "VLMGateway",
    "Route",
    "ValidationResult",
    "ProviderAdapter",
    "ResponseStream",
    "GatewayConfig",
    "ProviderConfig",
    "RetryConfig",
    "load_config",
    "ErrorCode",
    "GatewayError",
    "CapabilityError",
    "TransformError",
    "AnthropicAdapter",
    "OpenAIAdapter",
    "ContentPart",
    "TextPart",
    "ImagePart",
    "PDFPart",
    "AudioPart",
    "VideoPart",
    "PageCapture",
    "Message",
    "GatewayRequest",
    "GatewayResponse",
    "StreamChunk",
    "StopReason",
    "Usage",
    "ModelCapabilities",
    "ProviderCapabilities",
]
