"""
Canonical request models for the gateway.
"""

from typing import Optional, List, Dict, Any, Union, Literal
from pydantic import BaseModel, ConfigDict, Field

from .content import ContentPart, TextPart


class Message(BaseModel):
    """
    Unified message format.

    Content is either a plain string (shorthand for a single text part)
    or a list of typed content parts.
    """
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant", "system"]
    content: Union[str, List[ContentPart]]

    def parts(self) -> List[ContentPart]:
        """Content as a list of parts, expanding string shorthand."""
        if isinstance(self.content, str):
            return [TextPart(text=self.content)]
        return list(self.content)


class GatewayRequest(BaseModel):
    """
    Provider-agnostic request.

    ``provider`` and ``model`` together select one adapter and one
    capability entry. An empty ``model`` resolves to the adapter's
    default model.
    """
    model_config = ConfigDict(frozen=True)

    # Routing
    provider: str = Field(..., description="Provider id, e.g. 'anthropic'")
    model: str = Field(default="", description="Model identifier")
    messages: List[Message] = Field(..., description="Conversation messages")

    # Optional parameters
    system: Optional[str] = None
    max_tokens: Optional[int] = Field(default=None, ge=1)
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    stream: Optional[bool] = None
    metadata: Optional[Dict[str, Any]] = None

    def content_types(self) -> List[str]:
        """Distinct content-part types used by this request, in first-seen order."""
        seen: List[str] = []
        for message in self.messages:
            for part in message.parts():
                if part.type not in seen:
                    seen.append(part.type)
        return seen
