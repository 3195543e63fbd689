"""
VLM Gateway

Single entry point for multimodal requests across providers. Handles
routing, capability validation, retries and capability-based discovery.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union

from .adapters.anthropic_adapter import AnthropicAdapter
from .adapters.openai_adapter import OpenAIAdapter
from .models.capabilities import CONTENT_CAPABILITY, ModelCapabilities, ProviderCapabilities
from .models.content import ContentPart, ImagePart, PageCapture, PageRange, PDFPart, TextPart
from .models.content import content_parts_from_pages
from .models.request import GatewayRequest, Message
from .models.response import GatewayResponse
from .core.config import GatewayConfig, load_config
from .core.errors import CapabilityError, ProviderNotConfiguredError, is_retryable
from .core.interface import ProviderAdapter
from .core.registry import ProviderRegistry
from .core.stream import ResponseStream

logger = logging.getLogger(__name__)


_VIOLATION_MESSAGES = {
    "image": "does not support image input",
    "pdf": "does not support native PDF input",
    "audio": "does not support audio input",
    "video": "does not support video input",
}


@dataclass
class ValidationResult:
    """Outcome of checking a request against model capabilities."""
    valid: bool
    errors: List[str] = field(default_factory=list)
    # Capability flag behind each error, in the same order
    capabilities: List[str] = field(default_factory=list)


class Route(NamedTuple):
    provider: str
    model: str


async def _backoff_sleep(delay_ms: float) -> None:
    await asyncio.sleep(delay_ms / 1000)


class VLMGateway:
    """
    Unified gateway for vision-language models.

    Holds one adapter per provider. Requests are validated against the
    target model's capabilities before any network call; buffered sends
    are retried with exponential backoff, streams never are.
    """

    BUILTIN_ADAPTERS = {
        "anthropic": AnthropicAdapter,
        "openai": OpenAIAdapter,
    }

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        adapters: Optional[Iterable[ProviderAdapter]] = None,
    ):
        """
        Initialize the gateway.

        Args:
            config: Gateway configuration (defaults apply when omitted)
            adapters: Adapters to register instead of the built-in ones
        """
        self._config = config or GatewayConfig()
        self._registry = ProviderRegistry()

        if adapters is None:
            adapters = self._builtin_adapters()
        for adapter in adapters:
            self._registry.register(adapter)

    @classmethod
    def from_config_file(cls, config_path: Optional[str] = None) -> "VLMGateway":
        return cls(load_config(config_path))

    def _builtin_adapters(self) -> List[ProviderAdapter]:
        adapters = []
        for provider_id, adapter_class in self.BUILTIN_ADAPTERS.items():
            provider_config = self._config.provider(provider_id)
            if not provider_config.enabled:
                continue
            adapters.append(adapter_class(
                api_key=provider_config.api_key,
                base_url=provider_config.base_url,
                default_model=provider_config.default_model,
                timeout=provider_config.timeout,
            ))
        return adapters

    @property
    def config(self) -> GatewayConfig:
        return self._config

    def _log(self, message: str) -> None:
        if self._config.debug:
            logger.info(message)
        else:
            logger.debug(message)

    # ------------------------------------------------------------------
    # Providers and capabilities

    def register_adapter(self, adapter: ProviderAdapter) -> None:
        """Add or replace a provider adapter."""
        self._registry.register(adapter)

    def get_adapter(self, provider_id: str) -> Optional[ProviderAdapter]:
        if provider_id in self._registry:
            return self._registry.get(provider_id)
        return None

    def list_providers(self) -> List[str]:
        return self._registry.list_providers()

    def list_configured_providers(self) -> List[str]:
        return self._registry.list_configured()

    def get_provider_capabilities(self, provider_id: str) -> ProviderCapabilities:
        return self._registry.get_capabilities(provider_id)

    def get_model_capabilities(self, provider_id: str, model: str) -> ModelCapabilities:
        adapter = self._registry.get(provider_id)
        return adapter.get_model_capabilities(adapter.resolve_model(model))

    # ------------------------------------------------------------------
    # Validation and discovery

    def validate_request(self, request: GatewayRequest) -> ValidationResult:
        """
        Check every content part against the resolved model's capabilities.

        All violations are reported, not only the first. No network I/O.

        Raises:
            ProviderNotFoundError: If the request names an unknown provider
        """
        capabilities = self.get_model_capabilities(request.provider, request.model)
        model = self._registry.get(request.provider).resolve_model(request.model)
        result = ValidationResult(valid=True)

        for message in request.messages:
            if isinstance(message.content, str):
                continue
            for part in message.content:
                if capabilities.supports_content(part.type):
                    continue
                reason = _VIOLATION_MESSAGES.get(part.type, f"does not support {part.type} input")
                result.errors.append(f"Model {model} {reason}")
                result.capabilities.append(CONTENT_CAPABILITY.get(part.type, part.type))

        result.valid = not result.errors
        return result

    def find_capable_provider(
        self,
        content_types: Sequence[str],
        preferred_provider: Optional[str] = None,
    ) -> Optional[Route]:
        """
        Find a configured provider/model able to take all ``content_types``.

        The preferred provider is tried first, then every other configured
        provider in registration order. Within a provider the first model
        in its capability table wins.

        Returns:
            Route, or None if no configured provider qualifies
        """
        providers = self.list_configured_providers()

        if preferred_provider and preferred_provider in providers:
            providers.remove(preferred_provider)
            providers.insert(0, preferred_provider)

        for provider_id in providers:
            model = self._find_capable_model(provider_id, content_types)
            if model is not None:
                return Route(provider_id, model)

        return None

    def _find_capable_model(self, provider_id: str, content_types: Sequence[str]) -> Optional[str]:
        capabilities = self.get_provider_capabilities(provider_id)
        for model_id, model_caps in capabilities.models.items():
            if all(model_caps.supports_content(t) for t in content_types):
                return model_id
        return None

    # ------------------------------------------------------------------
    # Sending

    def _prepare(self, request: GatewayRequest) -> ProviderAdapter:
        """Reject a request that must not reach the network."""
        adapter = self._registry.get(request.provider)

        if not adapter.is_configured():
            raise ProviderNotConfiguredError(
                f"Provider {request.provider} is not configured",
                request.provider,
            )

        validation = self.validate_request(request)
        if not validation.valid:
            raise CapabilityError(
                "; ".join(validation.errors),
                required_capability=validation.capabilities[0],
                model=adapter.resolve_model(request.model),
                provider=request.provider,
            )

        return adapter

    async def send(self, request: GatewayRequest) -> GatewayResponse:
        """
        Send a buffered request, retrying transient failures.

        4xx responses and pre-flight errors are raised immediately. After
        the retry budget is spent the last error is re-raised unchanged.
        """
        adapter = self._prepare(request)
        model = adapter.resolve_model(request.model)
        self._log(f"Sending request to {request.provider}/{model}")

        retry = self._config.retry
        last_error: Optional[Exception] = None

        for attempt in range(retry.max_retries + 1):
            try:
                response = await adapter.send(request)
            except Exception as e:
                last_error = e
                if not is_retryable(e):
                    raise

                if attempt < retry.max_retries:
                    delay = retry.delay_ms(attempt)
                    logger.warning(
                        f"Request to {request.provider}/{model} failed ({e}); "
                        f"retry {attempt + 1}/{retry.max_retries} after {delay:.0f}ms"
                    )
                    await _backoff_sleep(delay)
                continue

            self._log(
                f"Response from {request.provider} in {response.timing.duration_ms}ms, "
                f"tokens: {response.usage.input_tokens} in / {response.usage.output_tokens} out"
            )
            return response

        raise last_error

    def send_stream(self, request: GatewayRequest) -> ResponseStream:
        """
        Start a streamed request.

        Pre-flight errors raise here. Once iteration begins, any failure is
        final: it is delivered as an ``error`` chunk and then raised, never
        retried.
        """
        adapter = self._prepare(request)
        self._log(f"Starting stream to {request.provider}/{adapter.resolve_model(request.model)}")

        stream = adapter.send_stream(request)
        stream.add_done_callback(self._stream_completed)
        return stream

    def _stream_completed(self, response: GatewayResponse) -> None:
        self._log(f"Stream from {response.provider} completed in {response.timing.duration_ms}ms")

    # ------------------------------------------------------------------
    # Request helpers

    def _request(
        self,
        content: Union[str, List[ContentPart]],
        provider: Optional[str],
        model: Optional[str],
        system: Optional[str],
        max_tokens: Optional[int],
        temperature: Optional[float] = None,
    ) -> GatewayRequest:
        return GatewayRequest(
            provider=provider or self._config.default_provider,
            model=model or "",
            messages=[Message(role="user", content=content)],
            system=system,
            max_tokens=max_tokens,
            temperature=temperature,
        )

    def create_text_request(
        self,
        prompt: str,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> GatewayRequest:
        """Create a plain-text request."""
        return self._request(prompt, provider, model, system, max_tokens, temperature)

    def create_vision_request(
        self,
        prompt: str,
        images: Sequence[Union[ImagePart, Dict[str, str]]],
        provider: Optional[str] = None,
        model: Optional[str] = None,
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> GatewayRequest:
        """
        Create a vision request: the images, then the prompt.

        Images may be ``ImagePart`` objects or ``{"data", "media_type"}`` dicts.
        """
        content: List[ContentPart] = [
            img if isinstance(img, ImagePart) else ImagePart(**img) for img in images
        ]
        content.append(TextPart(text=prompt))
        return self._request(content, provider, model, system, max_tokens)

    def create_pdf_request(
        self,
        prompt: str,
        data: str,
        filename: Optional[str] = None,
        page_range: Optional[Tuple[int, int]] = None,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> GatewayRequest:
        """Create a PDF-analysis request: the document, then the prompt."""
        pdf = PDFPart(
            data=data,
            filename=filename,
            page_range=PageRange(start=page_range[0], end=page_range[1]) if page_range else None,
        )
        return self._request([pdf, TextPart(text=prompt)], provider, model, system, max_tokens)

    def create_pages_request(
        self,
        prompt: str,
        pages: Iterable[PageCapture],
        include_text: bool = True,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> GatewayRequest:
        """
        Create a request from pre-rendered PDF pages.

        This is the path for models without native PDF support.
        """
        content: List[ContentPart] = list(content_parts_from_pages(pages, include_text=include_text))
        content.append(TextPart(text=prompt))
        return self._request(content, provider, model, system, max_tokens)

    # ------------------------------------------------------------------
    # Lifecycle

    async def aclose(self) -> None:
        await self._registry.close_all()

    async def __aenter__(self) -> "VLMGateway":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
