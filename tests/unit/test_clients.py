import dataclasses

import httpx
import pytest

from switchboard.clients import (
    AnthropicClient,
    ChatMessage,
    CompletionOptions,
    DeepSeekClient,
    GeminiClient,
    LMStudioClient,
    OpenAIClient,
)
from switchboard.clients.anthropic_client import ANTHROPIC_DEFAULT_CONFIG
from switchboard.clients.deepseek_client import DEEPSEEK_DEFAULT_CONFIG
from switchboard.clients.gemini_client import GEMINI_DEFAULT_CONFIG
from switchboard.clients.lmstudio_client import LMSTUDIO_DEFAULT_CONFIG
from switchboard.clients.openai_client import OPENAI_DEFAULT_CONFIG
from switchboard.core.error_types import ErrorType
from switchboard.core.errors import (
    ConfigurationError,
    ProviderConnectionError,
    ProviderTimeoutError,
    UpstreamErrorKind,
    UpstreamHTTPError,
    user_message,
)
from switchboard.streaming.chunks import Usage
from tests.fixtures.mock_http import (
    create_anthropic_error,
    create_json_array_stream,
    create_openai_error,
    create_streaming_response,
)

MESSAGES = [ChatMessage(role="user", content="Hello")]


def _openai(api_key="sk-test", **overrides):
    return OpenAIClient(dataclasses.replace(OPENAI_DEFAULT_CONFIG, api_key=api_key, **overrides))


def _anthropic(api_key="sk-ant-test"):
    return AnthropicClient(dataclasses.replace(ANTHROPIC_DEFAULT_CONFIG, api_key=api_key))


def _gemini(api_key="gm-test"):
    return GeminiClient(dataclasses.replace(GEMINI_DEFAULT_CONFIG, api_key=api_key))


def _deepseek(api_key="ds-test"):
    return DeepSeekClient(dataclasses.replace(DEEPSEEK_DEFAULT_CONFIG, api_key=api_key))


@pytest.mark.unit
class TestMissingCredentials:
    """Hosted vendors refuse to send anything without a key."""

    @pytest.mark.asyncio
    async def test_openai_complete_without_key(self, mock_openai_api):
        route = mock_openai_api.post("/v1/chat/completions").mock(return_value=httpx.Response(200))
        client = _openai(api_key="")
        with pytest.raises(ConfigurationError):
            await client.complete(MESSAGES, CompletionOptions())
        assert route.call_count == 0
        await client.aclose()

    @pytest.mark.asyncio
    async def test_anthropic_complete_without_key(self, mock_anthropic_api):
        route = mock_anthropic_api.post("/v1/messages").mock(return_value=httpx.Response(200))
        client = _anthropic(api_key="")
        with pytest.raises(ConfigurationError):
            await client.complete(MESSAGES, CompletionOptions())
        assert route.call_count == 0
        await client.aclose()

    @pytest.mark.asyncio
    async def test_gemini_stream_without_key(self, mock_gemini_api):
        route = mock_gemini_api.post("/models/gemini-1.5-flash:streamGenerateContent").mock(
            return_value=httpx.Response(200)
        )
        client = _gemini(api_key="")
        with pytest.raises(ConfigurationError):
            async for _ in client.stream_completion(MESSAGES, CompletionOptions()):
                pass
        assert route.call_count == 0
        await client.aclose()

    @pytest.mark.asyncio
    async def test_deepseek_complete_without_key(self, mock_deepseek_api):
        route = mock_deepseek_api.post("/chat/completions").mock(return_value=httpx.Response(200))
        client = _deepseek(api_key="")
        with pytest.raises(ConfigurationError):
            await client.complete(MESSAGES, CompletionOptions())
        assert route.call_count == 0
        await client.aclose()

    @pytest.mark.asyncio
    async def test_unconfigured_clients_report_state_without_network(self, mock_openai_api):
        route = mock_openai_api.get("/v1/models").mock(return_value=httpx.Response(200, json={"data": []}))
        client = _openai(api_key="")

        assert client.is_configured() is False
        assert await client.list_models() == []
        result = await client.test_connection()
        assert result.connected is False
        assert result.error == "API key not configured"
        assert route.call_count == 0
        await client.aclose()

    @pytest.mark.asyncio
    async def test_initialize_rejects_bad_base_url(self):
        client = _openai(base_url="ftp://api.example.com")
        with pytest.raises(ConfigurationError):
            await client.initialize()
        await client.aclose()


@pytest.mark.unit
class TestOpenAIClient:
    @pytest.mark.asyncio
    async def test_complete(self, mock_openai_api, openai_chat_completion):
        route = mock_openai_api.post("/v1/chat/completions").mock(
            return_value=httpx.Response(200, json=openai_chat_completion)
        )
        client = _openai(organization="org-1")

        result = await client.complete(MESSAGES, CompletionOptions(system_prompt="Be brief"))

        assert result.text == "Hello! How can I help you today?"
        assert result.usage == Usage(prompt_tokens=10, completion_tokens=15, total_tokens=25)
        assert result.stop_reason == "stop"
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert request.headers["OpenAI-Organization"] == "org-1"
        body = httpx.Response(200, content=request.content).json()
        assert body["model"] == "gpt-4o-mini"
        assert body["messages"][0] == {"role": "system", "content": "Be brief"}
        assert body["stream"] is False
        await client.aclose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [{"choices": ["oops"]}, {"choices": [{"message": "oops"}]}, {"choices": {"0": {}}}],
    )
    async def test_malformed_choice_is_bad_gateway(self, mock_openai_api, payload):
        mock_openai_api.post("/v1/chat/completions").mock(
            return_value=httpx.Response(200, json=payload)
        )
        client = _openai()
        with pytest.raises(UpstreamHTTPError) as exc_info:
            await client.complete(MESSAGES, CompletionOptions())
        assert exc_info.value.status_code == 502
        assert exc_info.value.provider_id == "openai"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_streaming(self, mock_openai_api, openai_streaming_chunks):
        route = mock_openai_api.post("/v1/chat/completions").mock(
            return_value=create_streaming_response(openai_streaming_chunks)
        )
        client = _openai()
        received = []

        result = await client.complete_streaming(MESSAGES, CompletionOptions(), received.append)

        assert [chunk.delta_text for chunk in received] == ["Hello", "!", ""]
        assert result.text == "Hello!"
        assert result.usage.total_tokens == 11
        body = httpx.Response(200, content=route.calls.last.request.content).json()
        assert body["stream"] is True
        assert body["stream_options"] == {"include_usage": True}
        await client.aclose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, kind, error_type",
        [
            (401, UpstreamErrorKind.INVALID_CREDENTIAL, ErrorType.AUTH_ERROR),
            (404, UpstreamErrorKind.MODEL_NOT_FOUND, ErrorType.MODEL_NOT_FOUND),
            (429, UpstreamErrorKind.RATE_LIMITED, ErrorType.RATE_LIMIT),
            (500, UpstreamErrorKind.GENERIC, ErrorType.UPSTREAM_HTTP_ERROR),
        ],
    )
    async def test_error_status_mapping(self, mock_openai_api, status, kind, error_type):
        mock_openai_api.post("/v1/chat/completions").mock(
            return_value=httpx.Response(status, json=create_openai_error("upstream said no"))
        )
        client = _openai()

        with pytest.raises(UpstreamHTTPError) as exc_info:
            await client.complete(MESSAGES, CompletionOptions(model="gpt-4o"))

        error = exc_info.value
        assert error.status_code == status
        assert error.kind is kind
        assert error.error_type is error_type
        assert error.provider_id == "openai"
        assert error.model == "gpt-4o"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_invalid_key_user_message(self, mock_openai_api):
        mock_openai_api.post("/v1/chat/completions").mock(
            return_value=httpx.Response(401, json=create_openai_error("Incorrect API key provided"))
        )
        client = _openai()
        with pytest.raises(UpstreamHTTPError) as exc_info:
            await client.complete(MESSAGES, CompletionOptions())
        assert user_message(exc_info.value) == (
            "Invalid openai API key. Please check your API key in settings."
        )
        await client.aclose()

    @pytest.mark.asyncio
    async def test_streaming_error_status(self, mock_openai_api):
        mock_openai_api.post("/v1/chat/completions").mock(
            return_value=httpx.Response(429, json=create_openai_error("slow down"))
        )
        client = _openai()
        with pytest.raises(UpstreamHTTPError) as exc_info:
            async for _ in client.stream_completion(MESSAGES, CompletionOptions()):
                pass
        assert exc_info.value.kind is UpstreamErrorKind.RATE_LIMITED
        await client.aclose()

    @pytest.mark.asyncio
    async def test_timeout_maps_to_typed_error(self, mock_openai_api):
        mock_openai_api.post("/v1/chat/completions").mock(side_effect=httpx.ReadTimeout("slow"))
        client = _openai()
        with pytest.raises(ProviderTimeoutError):
            await client.complete(MESSAGES, CompletionOptions())
        await client.aclose()

    @pytest.mark.asyncio
    async def test_connection_error_maps_to_typed_error(self, mock_openai_api):
        mock_openai_api.post("/v1/chat/completions").mock(side_effect=httpx.ConnectError("refused"))
        client = _openai()
        with pytest.raises(ProviderConnectionError) as exc_info:
            await client.complete(MESSAGES, CompletionOptions())
        assert exc_info.value.retryable
        await client.aclose()

    @pytest.mark.asyncio
    async def test_list_models_keeps_gpt_models(self, mock_openai_api, openai_models_list):
        mock_openai_api.get("/v1/models").mock(return_value=httpx.Response(200, json=openai_models_list))
        client = _openai()
        models = await client.list_models()
        assert [model.id for model in models] == ["gpt-4o", "gpt-4o-mini"]
        await client.aclose()

    @pytest.mark.asyncio
    async def test_list_models_failure_returns_empty(self, mock_openai_api):
        mock_openai_api.get("/v1/models").mock(return_value=httpx.Response(503))
        client = _openai()
        assert await client.list_models() == []
        await client.aclose()

    @pytest.mark.asyncio
    async def test_connection_probe(self, mock_openai_api):
        mock_openai_api.get("/v1/models").mock(return_value=httpx.Response(200, json={"data": []}))
        client = _openai()
        result = await client.test_connection()
        assert result.connected is True
        assert result.status_code == 200
        await client.aclose()

    @pytest.mark.asyncio
    async def test_connection_probe_never_raises(self, mock_openai_api):
        mock_openai_api.get("/v1/models").mock(side_effect=httpx.ConnectError("refused"))
        client = _openai()
        result = await client.test_connection()
        assert result.connected is False
        assert "refused" in result.error
        await client.aclose()

    def test_calculate_cost(self):
        client = _openai()
        usage = Usage(prompt_tokens=1000, completion_tokens=1000, total_tokens=2000)
        assert client.calculate_cost(usage, "gpt-4o") == pytest.approx(0.02)
        assert client.calculate_cost(usage, "unknown-model") == 0.0
        assert client.calculate_cost(None, "gpt-4o") == 0.0
        assert client.calculate_cost(usage, None) == 0.0


@pytest.mark.unit
class TestAnthropicClient:
    @pytest.mark.asyncio
    async def test_complete_lifts_system_turns(self, mock_anthropic_api, anthropic_message_response):
        route = mock_anthropic_api.post("/v1/messages").mock(
            return_value=httpx.Response(200, json=anthropic_message_response)
        )
        client = _anthropic()
        messages = [ChatMessage(role="system", content="Be kind"), *MESSAGES]

        result = await client.complete(messages, CompletionOptions(max_tokens=100))

        assert result.text == "Hello! How can I help you today?"
        assert result.usage.total_tokens == 25
        assert result.stop_reason == "end_turn"
        request = route.calls.last.request
        assert request.headers["x-api-key"] == "sk-ant-test"
        assert request.headers["anthropic-version"] == "2023-06-01"
        body = httpx.Response(200, content=request.content).json()
        assert body["system"] == "Be kind"
        assert body["messages"] == [{"role": "user", "content": "Hello"}]
        assert body["max_tokens"] == 100
        await client.aclose()

    @pytest.mark.asyncio
    async def test_streaming(self, mock_anthropic_api, anthropic_streaming_events):
        mock_anthropic_api.post("/v1/messages").mock(
            return_value=create_streaming_response(anthropic_streaming_events)
        )
        client = _anthropic()

        chunks = [chunk async for chunk in client.stream_completion(MESSAGES, CompletionOptions())]

        assert chunks[-1].full_text == "Hello!"
        assert chunks[-1].stop_reason == "end_turn"
        assert chunks[-1].usage.total_tokens == 25
        assert sum(chunk.finished for chunk in chunks) == 1
        await client.aclose()

    @pytest.mark.asyncio
    async def test_rate_limit(self, mock_anthropic_api):
        mock_anthropic_api.post("/v1/messages").mock(
            return_value=httpx.Response(
                429, json=create_anthropic_error("rate_limit_error", "Too many requests")
            )
        )
        client = _anthropic()
        with pytest.raises(UpstreamHTTPError) as exc_info:
            await client.complete(MESSAGES, CompletionOptions())
        assert exc_info.value.message == "Too many requests"
        assert exc_info.value.kind is UpstreamErrorKind.RATE_LIMITED
        await client.aclose()


@pytest.mark.unit
class TestGeminiClient:
    @pytest.mark.asyncio
    async def test_complete(self, mock_gemini_api, gemini_generate_response):
        route = mock_gemini_api.post("/models/gemini-1.5-flash:generateContent").mock(
            return_value=httpx.Response(200, json=gemini_generate_response)
        )
        client = _gemini()

        result = await client.complete(
            [ChatMessage(role="assistant", content="Hi"), *MESSAGES], CompletionOptions()
        )

        assert result.text == "Hello from Gemini"
        assert result.usage == Usage(prompt_tokens=4, completion_tokens=3, total_tokens=7)
        request = route.calls.last.request
        assert request.headers["x-goog-api-key"] == "gm-test"
        body = httpx.Response(200, content=request.content).json()
        assert [content["role"] for content in body["contents"]] == ["model", "user"]
        await client.aclose()

    @pytest.mark.asyncio
    async def test_streaming_json_array(self, mock_gemini_api, gemini_stream_elements):
        mock_gemini_api.post("/models/gemini-1.5-flash:streamGenerateContent").mock(
            return_value=create_json_array_stream(gemini_stream_elements)
        )
        client = _gemini()

        chunks = [chunk async for chunk in client.stream_completion(MESSAGES, CompletionOptions())]

        assert [chunk.delta_text for chunk in chunks if not chunk.finished] == ["Hel", "lo", "!"]
        assert chunks[-1].full_text == "Hello!"
        assert chunks[-1].usage.total_tokens == 7
        await client.aclose()

    @pytest.mark.asyncio
    async def test_no_candidates(self, mock_gemini_api):
        mock_gemini_api.post("/models/gemini-1.5-flash:generateContent").mock(
            return_value=httpx.Response(200, json={"candidates": []})
        )
        client = _gemini()
        with pytest.raises(UpstreamHTTPError):
            await client.complete(MESSAGES, CompletionOptions())
        await client.aclose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"candidates": ["oops"]},
            {"candidates": [{"content": "oops"}]},
            {"candidates": [{"content": {"parts": "oops"}}]},
        ],
    )
    async def test_malformed_candidate_is_bad_gateway(self, mock_gemini_api, payload):
        mock_gemini_api.post("/models/gemini-1.5-flash:generateContent").mock(
            return_value=httpx.Response(200, json=payload)
        )
        client = _gemini()
        with pytest.raises(UpstreamHTTPError) as exc_info:
            await client.complete(MESSAGES, CompletionOptions())
        assert exc_info.value.status_code == 502
        await client.aclose()

    @pytest.mark.asyncio
    async def test_list_models_orders_flash_first(self, mock_gemini_api):
        mock_gemini_api.get("/models").mock(
            return_value=httpx.Response(
                200,
                json={
                    "models": [
                        {"name": "models/gemini-1.5-pro", "inputTokenLimit": 2000000},
                        {"name": "models/embedding-001"},
                        {"name": "models/gemini-1.5-flash", "displayName": "Gemini Flash"},
                    ]
                },
            )
        )
        client = _gemini()
        models = await client.list_models()
        assert [model.id for model in models] == ["gemini-1.5-flash", "gemini-1.5-pro"]
        assert models[0].display_name == "Gemini Flash"
        await client.aclose()

    def test_cost_never_raises(self):
        client = _gemini()
        usage = Usage(prompt_tokens=10, completion_tokens=10, total_tokens=20)
        assert client.calculate_cost(usage, "models/gemini-1.5-flash") > 0
        assert client.calculate_cost(usage, "gemini-ultra") == 0.0
        assert client.calculate_cost(None, None) == 0.0


@pytest.mark.unit
class TestDeepSeekClient:
    @pytest.mark.asyncio
    async def test_complete(self, mock_deepseek_api, openai_chat_completion):
        route = mock_deepseek_api.post("/chat/completions").mock(
            return_value=httpx.Response(200, json=openai_chat_completion)
        )
        client = _deepseek()
        result = await client.complete(MESSAGES, CompletionOptions())
        assert result.provider_id == "deepseek"
        body = httpx.Response(200, content=route.calls.last.request.content).json()
        assert body["model"] == "deepseek-chat"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_fallback_models_when_listing_fails(self, mock_deepseek_api):
        mock_deepseek_api.get("/models").mock(return_value=httpx.Response(500))
        client = _deepseek()
        models = await client.list_models()
        assert [model.id for model in models] == ["deepseek-chat", "deepseek-reasoner"]
        await client.aclose()


@pytest.mark.unit
class TestLMStudioClient:
    @pytest.mark.asyncio
    async def test_works_without_credentials(self, mock_lmstudio_api, openai_chat_completion):
        route = mock_lmstudio_api.post("/chat/completions").mock(
            return_value=httpx.Response(200, json=openai_chat_completion)
        )
        client = LMStudioClient(LMSTUDIO_DEFAULT_CONFIG)

        assert client.is_configured()
        result = await client.complete(MESSAGES, CompletionOptions())

        assert result.text == "Hello! How can I help you today?"
        assert "Authorization" not in route.calls.last.request.headers
        assert client.calculate_cost(result.usage, result.model) == 0.0
        await client.aclose()

    @pytest.mark.asyncio
    async def test_unreachable_server_lists_nothing(self, mock_lmstudio_api):
        mock_lmstudio_api.get("/models").mock(side_effect=httpx.ConnectError("refused"))
        client = LMStudioClient(LMSTUDIO_DEFAULT_CONFIG)
        assert await client.list_models() == []
        result = await client.test_connection()
        assert result.connected is False
        await client.aclose()
