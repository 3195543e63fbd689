"""
Anthropic Messages API adapter.

Transforms canonical gateway requests to/from Anthropic's Messages API.
Supports Claude 3+ vision models with image and native PDF input.
"""

import logging
import os
from types import MappingProxyType
from typing import Optional, List, Dict, Any, AsyncIterator

import httpx

from ..core.errors import (
    ProviderConnectionError,
    ProviderNotConfiguredError,
    StreamError,
    TransformError,
)
from ..core.interface import ProviderAdapter, json_object, json_str, now_ms, token_count
from ..core.stream import ResponseStream, StreamEvent
from ..models.capabilities import (
    CapabilityLimits,
    ContentOrdering,
    ModelCapabilities,
    ProviderCapabilities,
)
from ..models.content import ContentPart, TextPart
from ..models.request import GatewayRequest, Message
from ..models.response import GatewayResponse, StopReason, StreamChunk, Timing, Usage

logger = logging.getLogger(__name__)


CLAUDE_3_CAPABILITIES = ModelCapabilities(
    vision=True,
    pdf=True,
    audio=False,
    video=False,
    tools=True,
    streaming=True,
    max_context_tokens=200_000,
    max_output_tokens=8192,
    content_ordering=ContentOrdering(images_first=False, separate_system=True),
    limits=CapabilityLimits(
        max_image_size=20 * 1024 * 1024,
        max_images_per_message=20,
        max_pdf_pages=100,
        supported_image_formats=["image/jpeg", "image/png", "image/gif", "image/webp"],
    ),
)

CLAUDE_OPUS_CAPABILITIES = CLAUDE_3_CAPABILITIES.model_copy(update={"max_output_tokens": 16384})

# Claude 3 (pre-3.5) models have no native PDF support.
_CLAUDE_3_NO_PDF = CLAUDE_3_CAPABILITIES.model_copy(update={"pdf": False})

MODEL_CAPABILITIES = MappingProxyType({
    # Claude 4
    "claude-opus-4-20250514": CLAUDE_OPUS_CAPABILITIES,
    "claude-sonnet-4-20250514": CLAUDE_3_CAPABILITIES,
    # Claude 3.7 / 3.5
    "claude-3-7-sonnet-20250219": CLAUDE_3_CAPABILITIES,
    "claude-3-7-sonnet-latest": CLAUDE_3_CAPABILITIES,
    "claude-3-5-sonnet-20241022": CLAUDE_3_CAPABILITIES,
    "claude-3-5-sonnet-latest": CLAUDE_3_CAPABILITIES,
    "claude-3-5-sonnet-20240620": CLAUDE_3_CAPABILITIES,
    "claude-3-5-haiku-20241022": CLAUDE_3_CAPABILITIES,
    "claude-3-5-haiku-latest": CLAUDE_3_CAPABILITIES,
    # Claude 3
    "claude-3-opus-20240229": _CLAUDE_3_NO_PDF,
    "claude-3-opus-latest": _CLAUDE_3_NO_PDF,
    "claude-3-sonnet-20240229": _CLAUDE_3_NO_PDF,
    "claude-3-haiku-20240307": _CLAUDE_3_NO_PDF.model_copy(update={"max_output_tokens": 4096}),
})

STOP_REASONS = MappingProxyType({
    "end_turn": StopReason.END_TURN,
    "max_tokens": StopReason.MAX_TOKENS,
    "stop_sequence": StopReason.STOP_SEQUENCE,
    "tool_use": StopReason.TOOL_USE,
})


class AnthropicAdapter(ProviderAdapter):
    """
    Direct Anthropic API adapter.

    The system prompt is lifted out of the message list into the
    top-level ``system`` field.
    """

    ANTHROPIC_BASE_URL = "https://api.anthropic.com"
    ANTHROPIC_VERSION = "2023-06-01"
    DEFAULT_MODEL = "claude-sonnet-4-20250514"
    MESSAGES_PATH = "/v1/messages"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        default_model: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Anthropic adapter.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY)
            base_url: API URL (defaults to ANTHROPIC_BASE_URL or api.anthropic.com)
            default_model: Model used when a request names none
            timeout: Request timeout in seconds
            transport: Optional httpx transport
        """
        super().__init__(
            api_key=api_key or os.environ.get("ANTHROPIC_API_KEY"),
            base_url=base_url or os.environ.get("ANTHROPIC_BASE_URL") or self.ANTHROPIC_BASE_URL,
            default_model=default_model or self.DEFAULT_MODEL,
            timeout=timeout,
            transport=transport,
        )

    @property
    def id(self) -> str:
        return "anthropic"

    @property
    def name(self) -> str:
        return "Anthropic"

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self._api_key,
            "anthropic-version": self.ANTHROPIC_VERSION,
        }

    def get_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            id=self.id,
            name=self.name,
            models=dict(MODEL_CAPABILITIES),
            default_model=self._default_model,
            base_url=self._base_url,
        )

    def get_model_capabilities(self, model: str) -> ModelCapabilities:
        if model in MODEL_CAPABILITIES:
            return MODEL_CAPABILITIES[model]

        # Aliases and newly released ids
        if "opus" in model:
            return CLAUDE_OPUS_CAPABILITIES
        return CLAUDE_3_CAPABILITIES

    # ------------------------------------------------------------------
    # Transforms

    def transform_request(self, request: GatewayRequest) -> Dict[str, Any]:
        model = self.resolve_model(request.model)
        capabilities = self.get_model_capabilities(model)
        messages = []
        system = request.system

        for message in request.messages:
            if message.role == "system":
                text = self._system_text(message)
                system = f"{system}\n\n{text}" if system else text
                continue
            messages.append(self._transform_message(message, capabilities))

        data: Dict[str, Any] = {
            "model": model,
            "max_tokens": request.max_tokens or capabilities.max_output_tokens,
            "messages": messages,
        }

        if system:
            data["system"] = system

        if request.temperature is not None:
            data["temperature"] = request.temperature

        if request.stream is not None:
            data["stream"] = request.stream

        return data

    def _system_text(self, message: Message) -> str:
        texts = []
        for part in message.parts():
            if not isinstance(part, TextPart):
                raise TransformError(
                    f"System messages may only contain text, got {part.type}",
                    self.id,
                )
            texts.append(part.text)
        return "\n\n".join(texts)

    def _transform_message(
        self,
        message: Message,
        capabilities: ModelCapabilities,
    ) -> Dict[str, Any]:
        if isinstance(message.content, str):
            return {"role": message.role, "content": message.content}

        blocks = [self.transform_content_part(p, capabilities) for p in message.content]

        # A lone text block collapses to plain string content
        if len(blocks) == 1 and blocks[0]["type"] == "text":
            return {"role": message.role, "content": blocks[0]["text"]}

        return {"role": message.role, "content": blocks}

    def transform_content_part(
        self,
        part: ContentPart,
        capabilities: ModelCapabilities,
    ) -> Dict[str, Any]:
        """Map one canonical part to an Anthropic content block."""
        if part.type == "text":
            return {"type": "text", "text": part.text}

        if part.type == "image":
            if not capabilities.vision:
                raise TransformError("Model does not support vision/image input", self.id)
            return {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": part.media_type,
                    "data": part.data,
                },
            }

        if part.type == "pdf":
            if not capabilities.pdf:
                raise TransformError(
                    "Model does not support native PDF input. Convert to images first.",
                    self.id,
                )
            return {
                "type": "document",
                "source": {
                    "type": "base64",
                    "media_type": "application/pdf",
                    "data": part.data,
                },
            }

        if part.type == "audio":
            raise TransformError("Anthropic does not support audio input", self.id)

        if part.type == "video":
            raise TransformError("Anthropic does not support video input", self.id)

        raise TransformError(f"Unknown content part type: {part.type}", self.id)

    def transform_response(
        self,
        response: Dict[str, Any],
        request: GatewayRequest,
        start_time: int,
        end_time: int,
    ) -> GatewayResponse:
        if not isinstance(response, dict):
            raise self._unexpected_shape(response)

        blocks = response.get("content") or []
        if not isinstance(blocks, list):
            raise self._unexpected_shape(response)

        content: List[ContentPart] = []
        for block in blocks:
            if not isinstance(block, dict):
                raise self._unexpected_shape(response)
            if block.get("type") == "text":
                text = block.get("text", "")
                if not isinstance(text, str):
                    raise self._unexpected_shape(response)
                content.append(TextPart(text=text))
            else:
                content.append(TextPart(text=f"[Unsupported block type: {block.get('type')}]"))

        usage = json_object(response.get("usage"))

        return GatewayResponse(
            id=json_str(response.get("id")) or "",
            provider=self.id,
            model=json_str(response.get("model")) or self.resolve_model(request.model),
            content=content,
            stop_reason=STOP_REASONS.get(json_str(response.get("stop_reason")), StopReason.END_TURN),
            usage=Usage(
                input_tokens=token_count(usage.get("input_tokens")),
                output_tokens=token_count(usage.get("output_tokens")),
            ),
            timing=Timing.between(start_time, end_time),
            raw=response,
        )

    # ------------------------------------------------------------------
    # Calls

    def _require_configured(self) -> None:
        if not self.is_configured():
            raise ProviderNotConfiguredError("Anthropic API key not configured", self.id)

    async def send(self, request: GatewayRequest) -> GatewayResponse:
        """Create a message via the Anthropic API."""
        self._require_configured()

        start_time = now_ms()
        body = self.transform_request(request.model_copy(update={"stream": False}))
        response = await self._post(self.MESSAGES_PATH, body)
        end_time = now_ms()

        self._raise_for_status(response)
        return self.transform_response(self._decode_json(response), request, start_time, end_time)

    def send_stream(self, request: GatewayRequest) -> ResponseStream:
        """Create a streaming message via the Anthropic API."""
        return ResponseStream(self._stream_events(request), provider=self.id)

    async def _stream_events(self, request: GatewayRequest) -> AsyncIterator[StreamEvent]:
        self._require_configured()

        start_time = now_ms()
        body = self.transform_request(request.model_copy(update={"stream": True}))

        message: Dict[str, Any] = {}
        texts: List[str] = []
        input_tokens = 0
        output_tokens = 0
        stop_reason: Optional[str] = None
        stopped = False

        try:
            async with self._get_client().stream("POST", self.MESSAGES_PATH, json=body) as response:
                if not response.is_success:
                    await response.aread()
                    self._raise_for_status(response)

                async for data in self._iter_sse_data(response):
                    event = self._parse_event(data)
                    if event is None:
                        continue

                    event_type = event.get("type")

                    if event_type == "message_start":
                        message = json_object(event.get("message"))
                        usage = json_object(message.get("usage"))
                        input_tokens = token_count(usage.get("input_tokens")) or input_tokens
                        output_tokens = token_count(usage.get("output_tokens")) or output_tokens
                        yield StreamChunk(type="message_start")

                    elif event_type == "content_block_start":
                        yield StreamChunk(type="content_block_start")

                    elif event_type == "content_block_delta":
                        delta = json_object(event.get("delta"))
                        text = json_str(delta.get("text"))
                        if text is None:
                            logger.debug(f"Skipping non-text Anthropic delta: {str(event)[:200]!r}")
                        elif delta.get("type") == "text_delta":
                            texts.append(text)
                            yield StreamChunk.text_delta(text)

                    elif event_type == "content_block_stop":
                        yield StreamChunk(type="content_block_stop")

                    elif event_type == "message_delta":
                        usage = json_object(event.get("usage"))
                        input_tokens = token_count(usage.get("input_tokens")) or input_tokens
                        output_tokens = token_count(usage.get("output_tokens")) or output_tokens
                        stop_reason = json_str(json_object(event.get("delta")).get("stop_reason")) or stop_reason

                    elif event_type == "message_stop":
                        stopped = True
                        yield StreamChunk(
                            type="message_stop",
                            usage=Usage(input_tokens=input_tokens, output_tokens=output_tokens),
                        )
                        break

                    elif event_type == "error":
                        error = event.get("error")
                        message_text = error.get("message") if isinstance(error, dict) else error
                        raise StreamError(
                            str(message_text) if message_text else "Anthropic stream error",
                            self.id,
                            raw=event,
                        )

        except httpx.RequestError as e:
            raise ProviderConnectionError(f"Anthropic stream failed: {e}", self.id) from e

        if not stopped:
            raise StreamError("Stream ended without complete response", self.id)

        end_time = now_ms()
        yield self.transform_response(
            self._synthesize_message(message, texts, stop_reason, input_tokens, output_tokens),
            request,
            start_time,
            end_time,
        )

    @staticmethod
    def _synthesize_message(
        message: Dict[str, Any],
        texts: List[str],
        stop_reason: Optional[str],
        input_tokens: int,
        output_tokens: int,
    ) -> Dict[str, Any]:
        """Rebuild a Messages API response from accumulated stream state."""
        content: List[Dict[str, Any]] = []
        if texts:
            content.append({"type": "text", "text": "".join(texts)})
        return {
            **message,
            "content": content,
            "stop_reason": stop_reason or message.get("stop_reason"),
            "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
        }
