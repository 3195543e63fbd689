"""
Single-use wrapper around a streamed provider response.
"""

import logging
from typing import AsyncIterator, Callable, List, Optional, Union

from ..models.response import GatewayResponse, StreamChunk
from .errors import StreamError

logger = logging.getLogger(__name__)

StreamEvent = Union[StreamChunk, GatewayResponse]


class ResponseStream:
    """
    Lazy, finite, non-restartable sequence of ``StreamChunk`` values.

    The underlying event source yields chunks and, last, the synthesized
    ``GatewayResponse``. The response is not yielded to the caller; it is
    exposed as ``response`` once iteration finishes.

    Usage::

        async with gateway.send_stream(request) as stream:
            async for chunk in stream:
                ...
        print(stream.response.text)
    """

    def __init__(
        self,
        events: AsyncIterator[StreamEvent],
        provider: str,
    ):
        self._events = events
        self._provider = provider
        self._callbacks: List[Callable[[GatewayResponse], None]] = []
        self._iterator: Optional[AsyncIterator[StreamChunk]] = None
        self.response: Optional[GatewayResponse] = None

    @property
    def provider(self) -> str:
        return self._provider

    def add_done_callback(self, callback: Callable[[GatewayResponse], None]) -> None:
        """Call ``callback`` with the final response once the stream completes."""
        self._callbacks.append(callback)

    @property
    def consumed(self) -> bool:
        return self._iterator is not None

    def __aiter__(self) -> AsyncIterator[StreamChunk]:
        if self._iterator is not None:
            raise StreamError("Stream has already been consumed", self._provider)
        self._iterator = self._iterate()
        return self._iterator

    async def _iterate(self) -> AsyncIterator[StreamChunk]:
        try:
            async for event in self._events:
                if isinstance(event, GatewayResponse):
                    self.response = event
                else:
                    yield event
        except Exception as e:
            # Already-delivered chunks cannot be replayed, so the failure is final.
            logger.warning(f"Stream from {self._provider} failed: {e}")
            yield StreamChunk.failure(str(e))
            raise
        finally:
            await self._close_events()

        if self.response is None:
            raise StreamError("Stream ended without complete response", self._provider)

        for callback in self._callbacks:
            callback(self.response)

    async def _close_events(self) -> None:
        aclose = getattr(self._events, "aclose", None)
        if aclose is not None:
            await aclose()

    async def collect(self) -> GatewayResponse:
        """Drain the stream and return the final response."""
        async for _ in self:
            pass
        return self.response

    async def aclose(self) -> None:
        """Release the underlying connection without consuming the rest."""
        if self._iterator is not None:
            await self._iterator.aclose()
        else:
            await self._close_events()

    async def __aenter__(self) -> "ResponseStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
