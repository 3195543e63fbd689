"""
Provider adapter interface definition.

Defines the contract every provider adapter implements, plus the HTTP
plumbing adapters share (client lifecycle, error mapping, SSE framing).
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..models.capabilities import ModelCapabilities, ProviderCapabilities
from ..models.request import GatewayRequest
from ..models.response import GatewayResponse
from .errors import ProviderAPIError, ProviderConnectionError, TransformError
from .stream import ResponseStream

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def json_object(value: Any) -> Dict[str, Any]:
    """``value`` if it is a JSON object, else an empty one."""
    return value if isinstance(value, dict) else {}


def json_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def token_count(value: Any) -> int:
    """A usage counter; anything but a non-negative integer counts as 0."""
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    return 0


class ProviderAdapter(ABC):
    """
    Abstract base class for provider adapters.

    An adapter translates between the canonical gateway format and one
    vendor's wire protocol. It never retries or recovers from errors;
    every failure is raised to the gateway.
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str,
        default_model: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize shared adapter state.

        Args:
            api_key: Provider credential; adapter is unconfigured without it
            base_url: API root, without the versioned path
            default_model: Model used when a request leaves ``model`` empty
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used to stub the network)
        """
        self._api_key = api_key or ""
        self._base_url = base_url.rstrip("/")
        self._default_model = default_model
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    @abstractmethod
    def id(self) -> str:
        """Unique provider identifier (e.g. "anthropic")."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name."""
        pass

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def default_model(self) -> str:
        return self._default_model

    def resolve_model(self, model: str) -> str:
        """Model id to use for a request, falling back to the default."""
        return model or self._default_model

    def is_configured(self) -> bool:
        """True iff a credential is present. Never touches the network."""
        return bool(self._api_key)

    @abstractmethod
    def get_capabilities(self) -> ProviderCapabilities:
        """Declared capabilities of this provider and all its known models."""
        pass

    @abstractmethod
    def get_model_capabilities(self, model: str) -> ModelCapabilities:
        """
        Capabilities of one model.

        Never fails: unknown ids resolve by name pattern to a known
        family, or to the provider's baseline.
        """
        pass

    @abstractmethod
    def transform_request(self, request: GatewayRequest) -> Dict[str, Any]:
        """Canonical request to provider wire body."""
        pass

    @abstractmethod
    def transform_response(
        self,
        response: Dict[str, Any],
        request: GatewayRequest,
        start_time: int,
        end_time: int,
    ) -> GatewayResponse:
        """Provider wire response to canonical response."""
        pass

    @abstractmethod
    async def send(self, request: GatewayRequest) -> GatewayResponse:
        """Issue one buffered call."""
        pass

    @abstractmethod
    def send_stream(self, request: GatewayRequest) -> ResponseStream:
        """
        Issue one streamed call.

        Returns immediately; the HTTP request is made when iteration starts.
        """
        pass

    # ------------------------------------------------------------------
    # HTTP plumbing

    @abstractmethod
    def _headers(self) -> Dict[str, str]:
        pass

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=self._headers(),
                timeout=self._timeout,
                transport=self._transport,
            )
            logger.info(f"Opened {self.name} client for {self._base_url}")
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info(f"Closed {self.name} client")

    async def _post(self, path: str, body: Dict[str, Any]) -> httpx.Response:
        try:
            return await self._get_client().post(path, json=body)
        except httpx.RequestError as e:
            raise ProviderConnectionError(
                f"{self.name} request failed: {e}", provider=self.id
            ) from e

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Raise ``ProviderAPIError`` for any non-2xx response."""
        if response.is_success:
            return

        body = response.text
        message = f"{self.name} API error: {response.status_code}"
        try:
            error = json.loads(body).get("error")
            if isinstance(error, dict) and error.get("message"):
                message = error["message"]
        except (ValueError, AttributeError):
            pass

        raise ProviderAPIError(message, self.id, response.status_code, raw=body)

    def _decode_json(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            return response.json()
        except ValueError as e:
            raise ProviderAPIError(
                f"{self.name} returned invalid JSON",
                self.id,
                response.status_code,
                raw=response.text,
            ) from e

    def _unexpected_shape(self, raw: Any) -> TransformError:
        """Error for a well-formed JSON body that is not the expected response object."""
        return TransformError(f"Unexpected {self.name} response shape", self.id, raw=raw)

    async def _iter_sse_data(self, response: httpx.Response) -> AsyncIterator[str]:
        """
        Yield the payload of each complete ``data:`` line.

        Lines split across network reads are reassembled by the client
        before they reach here.
        """
        async for line in response.aiter_lines():
            if line.startswith("data:"):
                yield line[5:].strip()

    def _parse_event(self, data: str) -> Optional[Dict[str, Any]]:
        """Decode one SSE payload; malformed JSON is skipped."""
        try:
            event = json.loads(data)
        except ValueError:
            logger.debug(f"Skipping malformed {self.name} stream event: {data[:200]!r}")
            return None
        return event if isinstance(event, dict) else None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id!r}, base_url={self._base_url!r})"
