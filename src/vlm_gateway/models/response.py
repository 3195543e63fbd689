"""
Canonical response models for the gateway.
"""

from typing import Optional, List, Any, Literal
from pydantic import BaseModel, Field
from enum import Enum

from .content import ContentPart, TextPart


class StopReason(str, Enum):
    """Reasons for generation ending, normalized across providers."""
    END_TURN = "end_turn"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"
    TOOL_USE = "tool_use"
    ERROR = "error"


class Usage(BaseModel):
    """Token usage information."""
    input_tokens: int = 0
    output_tokens: int = 0


class Timing(BaseModel):
    """Wall-clock timing of a provider call, in epoch milliseconds."""
    start_time: int
    end_time: int
    duration_ms: int

    @classmethod
    def between(cls, start_time: int, end_time: int) -> "Timing":
        return cls(
            start_time=start_time,
            end_time=end_time,
            duration_ms=end_time - start_time,
        )


class GatewayResponse(BaseModel):
    """
    Unified response.

    ``raw`` keeps the unmodified provider payload for diagnostics; the
    gateway itself never reads it.
    """
    id: str = Field(default="")
    provider: str
    model: str = Field(default="")
    content: List[ContentPart] = Field(default_factory=list)
    stop_reason: StopReason = StopReason.END_TURN
    usage: Usage = Field(default_factory=Usage)
    timing: Timing
    raw: Optional[Any] = None

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(p.text for p in self.content if isinstance(p, TextPart))


class StreamChunk(BaseModel):
    """
    One incremental event of a streamed response.

    ``text`` is set on ``text_delta`` chunks, ``error`` on ``error``
    chunks, and ``usage`` may be set on ``message_stop``.
    """
    type: Literal[
        "message_start",
        "content_block_start",
        "text_delta",
        "content_block_stop",
        "message_stop",
        "error",
    ]
    text: Optional[str] = None
    error: Optional[str] = None
    usage: Optional[Usage] = None

    @classmethod
    def text_delta(cls, text: str) -> "StreamChunk":
        return cls(type="text_delta", text=text)

    @classmethod
    def failure(cls, error: str) -> "StreamChunk":
        return cls(type="error", error=error)
