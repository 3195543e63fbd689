"""
Tests for the Anthropic Messages API adapter.
"""

import json

import httpx
import pytest

from vlm_gateway.adapters.anthropic_adapter import (
    AnthropicAdapter,
    CLAUDE_3_CAPABILITIES,
    CLAUDE_OPUS_CAPABILITIES,
)
from vlm_gateway.core.errors import ErrorCode, GatewayError, TransformError
from vlm_gateway.models import (
    AudioPart,
    GatewayRequest,
    ImagePart,
    Message,
    PDFPart,
    TextPart,
    VideoPart,
)

from helpers import PDF_B64, PNG_B64, RecordingTransport, chunked, split_bytes, sse_lines


def _request(*messages, **kwargs) -> GatewayRequest:
    kwargs.setdefault("provider", "anthropic")
    kwargs.setdefault("model", "claude-sonnet-4-20250514")
    return GatewayRequest(messages=list(messages), **kwargs)


def _message_response(text="Hello!", stop_reason="end_turn"):
    return {
        "id": "msg_123",
        "type": "message",
        "role": "assistant",
        "model": "claude-sonnet-4-20250514",
        "content": [{"type": "text", "text": text}],
        "stop_reason": stop_reason,
        "stop_sequence": None,
        "usage": {"input_tokens": 12, "output_tokens": 5},
    }


STREAM_EVENTS = [
    {"type": "message_start", "message": {
        "id": "msg_stream", "type": "message", "role": "assistant",
        "model": "claude-sonnet-4-20250514", "content": [], "stop_reason": None,
        "usage": {"input_tokens": 25, "output_tokens": 1},
    }},
    {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
    {"type": "ping"},
    {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Hello"}},
    {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": ", world"}},
    {"type": "content_block_stop", "index": 0},
    {"type": "message_delta", "delta": {"stop_reason": "max_tokens"}, "usage": {"output_tokens": 15}},
    {"type": "message_stop"},
]


class TestAnthropicCapabilities:
    """Test the Anthropic capability registry."""

    def test_is_configured(self, clear_provider_env):
        """Test credential detection."""
        assert AnthropicAdapter(api_key="sk-ant").is_configured()
        assert not AnthropicAdapter().is_configured()

    def test_api_key_from_environment(self, clear_provider_env, monkeypatch):
        """Test the API key falls back to the environment."""
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-env")
        monkeypatch.setenv("ANTHROPIC_BASE_URL", "http://proxy.local/")
        adapter = AnthropicAdapter()
        assert adapter.is_configured()
        assert adapter.base_url == "http://proxy.local"

    def test_known_model(self):
        """Test exact lookups."""
        adapter = AnthropicAdapter(api_key="k")
        assert adapter.get_model_capabilities("claude-3-5-sonnet-latest").pdf is True
        assert adapter.get_model_capabilities("claude-3-opus-20240229").pdf is False
        assert adapter.get_model_capabilities("claude-3-haiku-20240307").max_output_tokens == 4096

    def test_unknown_model_falls_back_by_family(self):
        """Test unregistered ids resolve by name pattern, never failing."""
        adapter = AnthropicAdapter(api_key="k")
        assert adapter.get_model_capabilities("claude-opus-9-20300101") == CLAUDE_OPUS_CAPABILITIES
        assert adapter.get_model_capabilities("claude-3-9-sonnet") == CLAUDE_3_CAPABILITIES
        assert adapter.get_model_capabilities("totally-new-model") == CLAUDE_3_CAPABILITIES

    def test_provider_capabilities(self):
        """Test the provider-level capability record."""
        caps = AnthropicAdapter(api_key="k", default_model="claude-3-5-haiku-latest").get_capabilities()
        assert caps.id == "anthropic"
        assert caps.default_model == "claude-3-5-haiku-latest"
        assert list(caps.models)[0] == "claude-opus-4-20250514"
        assert caps.models["claude-sonnet-4-20250514"].content_ordering.separate_system is True


class TestAnthropicTransform:
    """Test canonical -> Anthropic request transformation."""

    def test_system_lifted_to_separate_field(self):
        """Test system prompt and system messages merge into the system field."""
        adapter = AnthropicAdapter(api_key="k")
        body = adapter.transform_request(_request(
            Message(role="system", content="Be terse."),
            Message(role="user", content="Hello"),
            system="You are helpful.",
            temperature=0.3,
        ))

        assert body["system"] == "You are helpful.\n\nBe terse."
        assert body["messages"] == [{"role": "user", "content": "Hello"}]
        assert body["temperature"] == 0.3
        assert "stream" not in body

    def test_max_tokens_defaults_to_model_ceiling(self):
        """Test max_tokens falls back to the model's output limit."""
        adapter = AnthropicAdapter(api_key="k")
        body = adapter.transform_request(_request(
            Message(role="user", content="Hi"), model="claude-opus-4-20250514",
        ))
        assert body["max_tokens"] == 16384

        body = adapter.transform_request(_request(Message(role="user", content="Hi"), max_tokens=50))
        assert body["max_tokens"] == 50

    def test_empty_model_uses_default(self):
        """Test an empty model resolves to the adapter default."""
        adapter = AnthropicAdapter(api_key="k", default_model="claude-3-5-haiku-latest")
        body = adapter.transform_request(_request(Message(role="user", content="Hi"), model=""))
        assert body["model"] == "claude-3-5-haiku-latest"

    def test_image_and_pdf_blocks(self):
        """Test image and document block shapes."""
        adapter = AnthropicAdapter(api_key="k")
        body = adapter.transform_request(_request(Message(role="user", content=[
            ImagePart(data=PNG_B64, media_type="image/png"),
            PDFPart(data=PDF_B64, filename="report.pdf"),
            TextPart(text="Compare these"),
        ])))

        blocks = body["messages"][0]["content"]
        assert blocks[0] == {
            "type": "image",
            "source": {"type": "base64", "media_type": "image/png", "data": PNG_B64},
        }
        assert blocks[1] == {
            "type": "document",
            "source": {"type": "base64", "media_type": "application/pdf", "data": PDF_B64},
        }
        assert blocks[2] == {"type": "text", "text": "Compare these"}

    def test_single_text_part_collapses(self):
        """Test a lone text part is sent as string content."""
        adapter = AnthropicAdapter(api_key="k")
        body = adapter.transform_request(_request(
            Message(role="user", content=[TextPart(text="Just text")]),
        ))
        assert body["messages"][0]["content"] == "Just text"

    def test_pdf_rejected_without_native_support(self):
        """Test PDF content fails for models without the pdf flag."""
        adapter = AnthropicAdapter(api_key="k")
        with pytest.raises(TransformError) as exc:
            adapter.transform_request(_request(
                Message(role="user", content=[PDFPart(data=PDF_B64)]),
                model="claude-3-opus-20240229",
            ))
        assert exc.value.code == ErrorCode.TRANSFORM_ERROR
        assert exc.value.provider == "anthropic"

    @pytest.mark.parametrize("part", [
        AudioPart(data="UklGRg==", media_type="audio/wav"),
        VideoPart(data="AAAAIGZ0eXA=", media_type="video/mp4"),
    ])
    def test_audio_and_video_unsupported(self, part):
        """Test audio and video never pass through silently."""
        adapter = AnthropicAdapter(api_key="k")
        with pytest.raises(TransformError):
            adapter.transform_request(_request(Message(role="user", content=[part])))

    def test_non_text_system_message_rejected(self):
        """Test system messages cannot carry images."""
        adapter = AnthropicAdapter(api_key="k")
        with pytest.raises(TransformError):
            adapter.transform_request(_request(
                Message(role="system", content=[ImagePart(data=PNG_B64, media_type="image/png")]),
                Message(role="user", content="Hi"),
            ))


class TestAnthropicResponse:
    """Test Anthropic -> canonical response transformation."""

    def test_text_round_trip(self):
        """Test text survives transform out and back unchanged."""
        adapter = AnthropicAdapter(api_key="k")
        text = "Ünïcödé text\nwith lines and \"quotes\""
        request = _request(Message(role="user", content=text))

        body = adapter.transform_request(request)
        raw = _message_response(text=body["messages"][0]["content"])
        response = adapter.transform_response(raw, request, 1000, 1400)

        assert response.text == text
        assert response.provider == "anthropic"
        assert response.usage.input_tokens == 12
        assert response.usage.output_tokens == 5
        assert response.timing.duration_ms == 400
        assert response.raw is raw

    @pytest.mark.parametrize("wire,canonical", [
        ("end_turn", "end_turn"),
        ("max_tokens", "max_tokens"),
        ("stop_sequence", "stop_sequence"),
        ("tool_use", "tool_use"),
        ("pause_turn", "end_turn"),
        (None, "end_turn"),
    ])
    def test_stop_reason_mapping(self, wire, canonical):
        """Test stop reasons map through the table, defaulting to end_turn."""
        adapter = AnthropicAdapter(api_key="k")
        request = _request(Message(role="user", content="Hi"))
        response = adapter.transform_response(_message_response(stop_reason=wire), request, 0, 1)
        assert response.stop_reason == canonical

    def test_non_text_blocks_are_labelled(self):
        """Test unsupported response blocks become placeholder text."""
        adapter = AnthropicAdapter(api_key="k")
        raw = _message_response()
        raw["content"].append({"type": "tool_use", "id": "t1", "name": "f", "input": {}})
        response = adapter.transform_response(raw, _request(Message(role="user", content="Hi")), 0, 1)
        assert response.content[1].text == "[Unsupported block type: tool_use]"


class TestAnthropicSend:
    """Test buffered calls."""

    @pytest.mark.asyncio
    async def test_send(self):
        """Test wire request shape and response normalization."""
        transport = RecordingTransport(lambda r: httpx.Response(200, json=_message_response()))
        adapter = AnthropicAdapter(api_key="sk-ant-test", base_url="https://api.test", transport=transport)

        response = await adapter.send(_request(Message(role="user", content="Hello")))
        await adapter.aclose()

        sent = transport.requests[0]
        assert sent.method == "POST"
        assert str(sent.url) == "https://api.test/v1/messages"
        assert sent.headers["x-api-key"] == "sk-ant-test"
        assert sent.headers["anthropic-version"] == "2023-06-01"
        assert sent.headers["content-type"] == "application/json"
        assert transport.last_json()["messages"] == [{"role": "user", "content": "Hello"}]

        assert response.id == "msg_123"
        assert response.text == "Hello!"
        assert response.stop_reason == "end_turn"

    @pytest.mark.asyncio
    async def test_send_forces_buffered_body(self):
        """Test a request flagged for streaming is sent unstreamed by send()."""
        transport = RecordingTransport(lambda r: httpx.Response(200, json=_message_response()))
        adapter = AnthropicAdapter(api_key="k", transport=transport)

        response = await adapter.send(_request(Message(role="user", content="Hello"), stream=True))

        assert transport.last_json()["stream"] is False
        assert len(transport.requests) == 1
        assert response.text == "Hello!"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        ["not", "an", "object"],
        {"id": "msg_1", "content": "oops"},
        {"id": "msg_1", "content": [None]},
        {"id": "msg_1", "content": [{"type": "text", "text": {"nested": True}}]},
    ])
    async def test_send_unexpected_shape(self, payload):
        """Test well-formed JSON in the wrong shape raises TRANSFORM_ERROR with the payload."""
        adapter = AnthropicAdapter(
            api_key="k",
            transport=RecordingTransport(lambda r: httpx.Response(200, json=payload)),
        )

        with pytest.raises(GatewayError) as exc:
            await adapter.send(_request(Message(role="user", content="Hello")))

        assert exc.value.code == ErrorCode.TRANSFORM_ERROR
        assert exc.value.raw == payload

    def test_lenient_envelope_fields(self):
        """Test odd id, usage and stop_reason values fall back to defaults."""
        adapter = AnthropicAdapter(api_key="k")
        raw = _message_response()
        raw.update(id=42, stop_reason=["end_turn"], usage="n/a")
        response = adapter.transform_response(raw, _request(Message(role="user", content="Hi")), 0, 1)

        assert response.id == ""
        assert response.stop_reason == "end_turn"
        assert response.usage.input_tokens == 0

    @pytest.mark.asyncio
    async def test_send_not_configured(self, clear_provider_env):
        """Test a missing key fails before any request."""
        transport = RecordingTransport(lambda r: httpx.Response(200, json=_message_response()))
        adapter = AnthropicAdapter(transport=transport)

        with pytest.raises(GatewayError) as exc:
            await adapter.send(_request(Message(role="user", content="Hello")))

        assert exc.value.code == ErrorCode.NOT_CONFIGURED
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_send_api_error_message_extracted(self):
        """Test provider error JSON becomes the error message."""
        error_body = {"type": "error", "error": {"type": "invalid_request_error", "message": "max_tokens: too large"}}
        transport = RecordingTransport(lambda r: httpx.Response(400, json=error_body))
        adapter = AnthropicAdapter(api_key="k", transport=transport)

        with pytest.raises(GatewayError) as exc:
            await adapter.send(_request(Message(role="user", content="Hello")))

        assert exc.value.code == ErrorCode.API_ERROR
        assert exc.value.status_code == 400
        assert exc.value.message == "max_tokens: too large"
        assert json.loads(exc.value.raw) == error_body

    @pytest.mark.asyncio
    async def test_send_api_error_generic_message(self):
        """Test non-JSON error bodies get a generic message."""
        transport = RecordingTransport(lambda r: httpx.Response(502, text="<html>Bad gateway</html>"))
        adapter = AnthropicAdapter(api_key="k", transport=transport)

        with pytest.raises(GatewayError) as exc:
            await adapter.send(_request(Message(role="user", content="Hello")))

        assert exc.value.message == "Anthropic API error: 502"
        assert exc.value.raw == "<html>Bad gateway</html>"

    @pytest.mark.asyncio
    async def test_send_network_error(self):
        """Test transport failures are wrapped without a status code."""
        def refuse(request):
            raise httpx.ConnectError("Connection refused", request=request)

        adapter = AnthropicAdapter(api_key="k", transport=httpx.MockTransport(refuse))

        with pytest.raises(GatewayError) as exc:
            await adapter.send(_request(Message(role="user", content="Hello")))

        assert exc.value.code == ErrorCode.NETWORK_ERROR
        assert exc.value.status_code is None


class TestAnthropicStream:
    """Test streamed calls."""

    @pytest.mark.asyncio
    async def test_stream_reconstruction(self):
        """Test chunks and the synthesized final response, across split reads."""
        body = sse_lines(*STREAM_EVENTS)
        transport = RecordingTransport(
            lambda r: httpx.Response(200, content=chunked(split_bytes(body, 7)))
        )
        adapter = AnthropicAdapter(api_key="k", transport=transport)

        stream = adapter.send_stream(_request(Message(role="user", content="Hi")))
        chunks = [chunk async for chunk in stream]

        assert transport.last_json()["stream"] is True
        assert [c.type for c in chunks] == [
            "message_start",
            "content_block_start",
            "text_delta",
            "text_delta",
            "content_block_stop",
            "message_stop",
        ]
        deltas = "".join(c.text for c in chunks if c.type == "text_delta")
        assert deltas == "Hello, world"
        assert chunks[-1].usage.input_tokens == 25
        assert chunks[-1].usage.output_tokens == 15

        response = stream.response
        assert response.text == deltas
        assert response.id == "msg_stream"
        assert response.stop_reason == "max_tokens"
        assert response.usage.input_tokens == 25
        assert response.usage.output_tokens == 15

    @pytest.mark.asyncio
    async def test_malformed_event_skipped(self):
        """Test one invalid JSON line does not break the stream."""
        events = list(STREAM_EVENTS)
        events.insert(4, "{not valid json")
        transport = RecordingTransport(lambda r: httpx.Response(200, content=sse_lines(*events)))
        adapter = AnthropicAdapter(api_key="k", transport=transport)

        response = await adapter.send_stream(_request(Message(role="user", content="Hi"))).collect()
        assert response.text == "Hello, world"

    @pytest.mark.asyncio
    async def test_wrong_shaped_events_skipped(self):
        """Test valid JSON events with unexpected field types are ignored."""
        events = list(STREAM_EVENTS)
        events.insert(4, {"type": "content_block_delta", "index": 0, "delta": "oops"})
        events.insert(5, {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": 7}})
        events.insert(6, {"type": "message_delta", "delta": ["x"], "usage": "many"})
        adapter = AnthropicAdapter(
            api_key="k",
            transport=RecordingTransport(lambda r: httpx.Response(200, content=sse_lines(*events))),
        )

        stream = adapter.send_stream(_request(Message(role="user", content="Hi")))
        chunks = [chunk async for chunk in stream]

        assert [c.text for c in chunks if c.type == "text_delta"] == ["Hello", ", world"]
        assert stream.response.text == "Hello, world"
        assert stream.response.stop_reason == "max_tokens"
        assert stream.response.usage.output_tokens == 15

    @pytest.mark.asyncio
    async def test_stream_error_event_with_string_error(self):
        """Test an error event whose error is a bare string still fails as STREAM_ERROR."""
        body = sse_lines(STREAM_EVENTS[0], {"type": "error", "error": "quota exceeded"})
        adapter = AnthropicAdapter(
            api_key="k",
            transport=RecordingTransport(lambda r: httpx.Response(200, content=body)),
        )

        with pytest.raises(GatewayError) as exc:
            await adapter.send_stream(_request(Message(role="user", content="Hi"))).collect()

        assert exc.value.code == ErrorCode.STREAM_ERROR
        assert exc.value.message == "quota exceeded"

    @pytest.mark.asyncio
    async def test_stream_without_terminal_event(self):
        """Test a truncated stream ends in an error chunk and STREAM_ERROR."""
        body = sse_lines(*STREAM_EVENTS[:5])
        transport = RecordingTransport(lambda r: httpx.Response(200, content=body))
        adapter = AnthropicAdapter(api_key="k", transport=transport)

        stream = adapter.send_stream(_request(Message(role="user", content="Hi")))
        seen = []
        with pytest.raises(GatewayError) as exc:
            async for chunk in stream:
                seen.append(chunk)

        assert exc.value.code == ErrorCode.STREAM_ERROR
        assert seen[-1].type == "error"
        assert "message_stop" not in [c.type for c in seen]
        assert stream.response is None

    @pytest.mark.asyncio
    async def test_stream_error_event(self):
        """Test an in-band error event fails the stream."""
        body = sse_lines(
            STREAM_EVENTS[0],
            {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
        )
        adapter = AnthropicAdapter(
            api_key="k",
            transport=RecordingTransport(lambda r: httpx.Response(200, content=body)),
        )

        with pytest.raises(GatewayError) as exc:
            await adapter.send_stream(_request(Message(role="user", content="Hi"))).collect()

        assert exc.value.code == ErrorCode.STREAM_ERROR
        assert exc.value.message == "Overloaded"

    @pytest.mark.asyncio
    async def test_stream_http_error(self):
        """Test a non-2xx stream response raises API_ERROR."""
        adapter = AnthropicAdapter(
            api_key="k",
            transport=RecordingTransport(lambda r: httpx.Response(
                529, json={"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
            )),
        )

        with pytest.raises(GatewayError) as exc:
            await adapter.send_stream(_request(Message(role="user", content="Hi"))).collect()

        assert exc.value.code == ErrorCode.API_ERROR
        assert exc.value.status_code == 529

    @pytest.mark.asyncio
    async def test_stream_is_single_use(self):
        """Test a consumed stream cannot be restarted."""
        adapter = AnthropicAdapter(
            api_key="k",
            transport=RecordingTransport(lambda r: httpx.Response(200, content=sse_lines(*STREAM_EVENTS))),
        )
        stream = adapter.send_stream(_request(Message(role="user", content="Hi")))
        await stream.collect()

        with pytest.raises(GatewayError) as exc:
            async for _ in stream:
                pass
        assert exc.value.code == ErrorCode.STREAM_ERROR

    @pytest.mark.asyncio
    async def test_stream_is_lazy(self):
        """Test no request is made until iteration starts."""
        transport = RecordingTransport(lambda r: httpx.Response(200, content=sse_lines(*STREAM_EVENTS)))
        adapter = AnthropicAdapter(api_key="k", transport=transport)

        async with adapter.send_stream(_request(Message(role="user", content="Hi"))):
            pass

        assert transport.requests == []
