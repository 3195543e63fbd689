"""
Helpers for simulating provider HTTP traffic.

Requests are served by ``httpx.MockTransport`` so no test touches the
network.
"""

import json
from typing import Any, Callable, Dict, List

import httpx


def sse_lines(*events: Any, done: bool = False) -> bytes:
    """Encode events as an SSE body (``data: <json>`` lines)."""
    lines = []
    for event in events:
        payload = event if isinstance(event, str) else json.dumps(event)
        lines.append(f"data: {payload}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


def split_bytes(body: bytes, size: int) -> List[bytes]:
    """Cut a body into fixed-size pieces, ignoring line boundaries."""
    return [body[i:i + size] for i in range(0, len(body), size)]


def chunked(pieces: List[bytes]):
    """Async byte stream delivering ``pieces`` as separate network reads."""
    async def gen():
        for piece in pieces:
            yield piece
    return gen()


class RecordingTransport(httpx.MockTransport):
    """Mock transport that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: List[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(record)

    def last_json(self) -> Dict[str, Any]:
        return json.loads(self.requests[-1].content)


PNG_B64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
PDF_B64 = "JVBERi0xLjQKJcfsj6IKMSAwIG9iago8PD4+CmVuZG9iagp0cmFpbGVyCjw8Pj4KJSVFT0YK"
