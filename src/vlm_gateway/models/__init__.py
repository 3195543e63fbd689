"""
Canonical gateway data models.
"""

from .content import (
    ContentPart,
    TextPart,
    ImagePart,
    ImageSource,
    PDFPart,
    PageRange,
    AudioPart,
    VideoPart,
    PageCapture,
    content_parts_from_pages,
)
from .request import GatewayRequest, Message
from .response import GatewayResponse, StreamChunk, StopReason, Usage, Timing
from .capabilities import (
    ModelCapabilities,
    ProviderCapabilities,
    ContentOrdering,
    CapabilityLimits,
    CONTENT_CAPABILITY,
)

__all__ = [
    "ContentPart",
    "TextPart",
    "ImagePart",
    "ImageSource",
    "PDFPart",
    "PageRange",
    "AudioPart",
    "VideoPart",
    "PageCapture",
    "content_parts_from_pages",
    "GatewayRequest",
    "Message",
    "GatewayResponse",
    "StreamChunk",
    "StopReason",
    "Usage",
    "Timing",
    "ModelCapabilities",
    "ProviderCapabilities",
    "ContentOrdering",
    "CapabilityLimits",
    "CONTENT_CAPABILITY",
]
