"""
OpenAI Chat Completions adapter.

Transforms canonical gateway requests to/from OpenAI's Chat Completions
API. Images are sent as data URLs; native PDF, audio and video input are
not supported.
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


GPT4_VISION_CAPABILITIES = ModelCapabilities(
    vision=True,
    pdf=False,
    audio=False,  # audio goes through a different API
    video=False,
    tools=True,
    streaming=True,
    max_context_tokens=128_000,
    max_output_tokens=4096,
    content_ordering=ContentOrdering(images_first=False, separate_system=False),
    limits=CapabilityLimits(
        max_image_size=20 * 1024 * 1024,
        max_images_per_message=10,
        supported_image_formats=["image/jpeg", "image/png", "image/gif", "image/webp"],
    ),
)

GPT4O_CAPABILITIES = GPT4_VISION_CAPABILITIES.model_copy(update={"max_output_tokens": 16384})

GPT4O_MINI_CAPABILITIES = GPT4_VISION_CAPABILITIES.model_copy(update={
    "max_context_tokens": 128_000,
    "max_output_tokens": 16384,
})

MODEL_CAPABILITIES = MappingProxyType({
    # GPT-4o
    "gpt-4o": GPT4O_CAPABILITIES,
    "gpt-4o-2024-11-20": GPT4O_CAPABILITIES,
    "gpt-4o-2024-08-06": GPT4O_CAPABILITIES,
    "gpt-4o-2024-05-13": GPT4O_CAPABILITIES,
    # GPT-4o mini
    "gpt-4o-mini": GPT4O_MINI_CAPABILITIES,
    "gpt-4o-mini-2024-07-18": GPT4O_MINI_CAPABILITIES,
    # GPT-4 Turbo
    "gpt-4-turbo": GPT4_VISION_CAPABILITIES,
    "gpt-4-turbo-2024-04-09": GPT4_VISION_CAPABILITIES,
    "gpt-4-vision-preview": GPT4_VISION_CAPABILITIES,
    # o1
    "o1": GPT4O_CAPABILITIES.model_copy(update={
        "max_output_tokens": 100_000,
        "max_context_tokens": 200_000,
    }),
    "o1-preview": GPT4O_CAPABILITIES.model_copy(update={"max_output_tokens": 32768}),
    "o1-mini": GPT4O_MINI_CAPABILITIES.model_copy(update={"vision": False}),
})

FINISH_REASONS = MappingProxyType({
    "stop": StopReason.END_TURN,
    "length": StopReason.MAX_TOKENS,
    "tool_calls": StopReason.TOOL_USE,
    "function_call": StopReason.TOOL_USE,
    "content_filter": StopReason.END_TURN,
})


class OpenAIAdapter(ProviderAdapter):
    """
    Direct OpenAI API adapter.

    The system prompt travels as a ``system`` role message.
    """

    OPENAI_BASE_URL = "https://api.openai.com"
    DEFAULT_MODEL = "gpt-4o-mini"
    CHAT_PATH = "/v1/chat/completions"
    IMAGE_DETAIL = "auto"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        default_model: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize OpenAI adapter.

        Args:
            api_key: OpenAI API key (defaults to OPENAI_API_KEY)
            base_url: API URL (defaults to OPENAI_BASE_URL or api.openai.com)
            default_model: Model used when a request names none
            timeout: Request timeout in seconds
            transport: Optional httpx transport
        """
        super().__init__(
            api_key=api_key or os.environ.get("OPENAI_API_KEY"),
            base_url=base_url or os.environ.get("OPENAI_BASE_URL") or self.OPENAI_BASE_URL,
            default_model=default_model or self.DEFAULT_MODEL,
            timeout=timeout,
            transport=transport,
        )

    @property
    def id(self) -> str:
        return "openai"

    @property
    def name(self) -> str:
        return "OpenAI"

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
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

        # Dated snapshots and new ids within a known family
        if model.startswith("gpt-4o-mini"):
            return GPT4O_MINI_CAPABILITIES
        if model.startswith(("gpt-4o", "gpt-4-turbo", "o1")):
            return GPT4O_CAPABILITIES

        return GPT4_VISION_CAPABILITIES

    # ------------------------------------------------------------------
    # Transforms

    def transform_request(self, request: GatewayRequest) -> Dict[str, Any]:
        model = self.resolve_model(request.model)
        capabilities = self.get_model_capabilities(model)
        messages = []

        if request.system:
            messages.append({"role": "system", "content": request.system})

        for message in request.messages:
            messages.append(self._transform_message(message, capabilities))

        data: Dict[str, Any] = {
            "model": model,
            "messages": messages,
        }

        if request.max_tokens:
            data["max_tokens"] = request.max_tokens

        if request.temperature is not None:
            data["temperature"] = request.temperature

        if request.stream is not None:
            data["stream"] = request.stream

        return data

    def _transform_message(
        self,
        message: Message,
        capabilities: ModelCapabilities,
    ) -> Dict[str, Any]:
        if isinstance(message.content, str):
            return {"role": message.role, "content": message.content}

        parts = [self.transform_content_part(p, capabilities) for p in message.content]

        if len(parts) == 1 and parts[0]["type"] == "text":
            return {"role": message.role, "content": parts[0]["text"]}

        return {"role": message.role, "content": parts}

    def transform_content_part(
        self,
        part: ContentPart,
        capabilities: ModelCapabilities,
    ) -> Dict[str, Any]:
        """Map one canonical part to an OpenAI content part."""
        if part.type == "text":
            return {"type": "text", "text": part.text}

        if part.type == "image":
            if not capabilities.vision:
                raise TransformError("Model does not support vision/image input", self.id)
            return {
                "type": "image_url",
                "image_url": {
                    "url": f"data:{part.media_type};base64,{part.data}",
                    "detail": self.IMAGE_DETAIL,
                },
            }

        if part.type == "pdf":
            raise TransformError(
                "OpenAI does not support native PDF input. Convert to images first.",
                self.id,
            )

        if part.type == "audio":
            raise TransformError("OpenAI Chat API does not support audio input", self.id)

        if part.type == "video":
            raise TransformError("OpenAI does not support video input", self.id)

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

        choices = response.get("choices") or [{}]
        if not isinstance(choices, list) or not isinstance(choices[0], dict):
            raise self._unexpected_shape(response)
        choice = choices[0]

        message = choice.get("message") or {}
        if not isinstance(message, dict):
            raise self._unexpected_shape(response)
        text = message.get("content")
        if text is not None and not isinstance(text, str):
            raise self._unexpected_shape(response)

        usage = json_object(response.get("usage"))

        return GatewayResponse(
            id=json_str(response.get("id")) or "",
            provider=self.id,
            model=json_str(response.get("model")) or self.resolve_model(request.model),
            content=[TextPart(text=text or "")],
            stop_reason=FINISH_REASONS.get(json_str(choice.get("finish_reason")), StopReason.END_TURN),
            usage=Usage(
                input_tokens=token_count(usage.get("prompt_tokens")),
                output_tokens=token_count(usage.get("completion_tokens")),
            ),
            timing=Timing.between(start_time, end_time),
            raw=response,
        )

    # ------------------------------------------------------------------
    # Calls

    def _require_configured(self) -> None:
        if not self.is_configured():
            raise ProviderNotConfiguredError("OpenAI API key not configured", self.id)

    async def send(self, request: GatewayRequest) -> GatewayResponse:
        """Create a chat completion via the OpenAI API."""
        self._require_configured()

        start_time = now_ms()
        body = self.transform_request(request.model_copy(update={"stream": False}))
        response = await self._post(self.CHAT_PATH, body)
        end_time = now_ms()

        self._raise_for_status(response)
        return self.transform_response(self._decode_json(response), request, start_time, end_time)

    def send_stream(self, request: GatewayRequest) -> ResponseStream:
        """Create a streaming chat completion via the OpenAI API."""
        return ResponseStream(self._stream_events(request), provider=self.id)

    async def _stream_events(self, request: GatewayRequest) -> AsyncIterator[StreamEvent]:
        self._require_configured()

        start_time = now_ms()
        body = self.transform_request(request.model_copy(update={"stream": True}))

        response_id = f"stream-{start_time}"
        model = self.resolve_model(request.model)
        texts: List[str] = []
        finish_reason: Optional[str] = None
        usage: Optional[Dict[str, Any]] = None
        done = False

        try:
            async with self._get_client().stream("POST", self.CHAT_PATH, json=body) as response:
                if not response.is_success:
                    await response.aread()
                    self._raise_for_status(response)

                yield StreamChunk(type="message_start")

                async for data in self._iter_sse_data(response):
                    if data == "[DONE]":
                        done = True
                        break

                    chunk = self._parse_event(data)
                    if chunk is None:
                        continue

                    error = chunk.get("error")
                    if error:
                        message = error.get("message") if isinstance(error, dict) else error
                        raise StreamError(
                            str(message) if message else "OpenAI stream error",
                            self.id,
                            raw=chunk,
                        )

                    response_id = json_str(chunk.get("id")) or response_id
                    model = json_str(chunk.get("model")) or model
                    usage = json_object(chunk.get("usage")) or usage

                    choices = chunk.get("choices")
                    if not isinstance(choices, list) or not choices:
                        continue

                    choice = json_object(choices[0])
                    if not choice:
                        logger.debug(f"Skipping malformed OpenAI choice: {str(chunk)[:200]!r}")
                        continue

                    content = json_str(json_object(choice.get("delta")).get("content"))
                    if content:
                        texts.append(content)
                        yield StreamChunk.text_delta(content)

                    finish_reason = json_str(choice.get("finish_reason")) or finish_reason

        except httpx.RequestError as e:
            raise ProviderConnectionError(f"OpenAI stream failed: {e}", self.id) from e

        # Servers that omit the [DONE] sentinel still report a finish reason.
        if not done and finish_reason is None:
            raise StreamError("Stream ended without complete response", self.id)

        final_usage = None
        if usage:
            final_usage = Usage(
                input_tokens=token_count(usage.get("prompt_tokens")),
                output_tokens=token_count(usage.get("completion_tokens")),
            )
        yield StreamChunk(type="message_stop", usage=final_usage)

        end_time = now_ms()
        yield self.transform_response(
            {
                "id": response_id,
                "object": "chat.completion",
                "created": start_time // 1000,
                "model": model,
                "choices": [{
                    "index": 0,
                    "message": {"role": "assistant", "content": "".join(texts)},
                    "finish_reason": finish_reason or "stop",
                }],
                "usage": usage or {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0},
            },
            request,
            start_time,
            end_time,
        )
