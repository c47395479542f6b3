"""
Unit Tests for AI Gateway adapters

Provider SDK clients are mocked; no network calls are made.
"""

import httpx
import openai
import anthropic
import pytest
import sys
import os
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "socratic_science_tutor", "src"))

from socratic_science_tutor.ai_gateway import (
    AnthropicMessagesGateway,
    OpenAIChatGateway,
    ScriptedGateway,
    create_gateway,
    translate_openai_error,
    translate_anthropic_error,
)
from socratic_science_tutor.errors import (
    AuthError,
    CredentialError,
    MalformedResponseError,
    RateLimitOrServerError,
    TransportError,
)

REQUEST = httpx.Request("POST", "https://api.example.test/v1")
HISTORY = [{"role": "user", "content": "I think planets orbit the sun"}]


def openai_reply(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def anthropic_reply(text):
    return SimpleNamespace(content=[SimpleNamespace(text=text)])


class TestOpenAIChatGateway:

    def test_credentials_must_look_like_openai_key(self):
        assert OpenAIChatGateway(api_key="sk-test").has_valid_credentials()
        assert not OpenAIChatGateway(api_key="not-a-key").has_valid_credentials()

    @pytest.mark.asyncio
    async def test_missing_key_raises_credential_error(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        gateway = OpenAIChatGateway()

        with pytest.raises(AuthError):
            await gateway.complete(HISTORY, "system")

    @pytest.mark.asyncio
    async def test_complete_prepends_system_prompt(self):
        with patch("socratic_science_tutor.ai_gateway.AsyncOpenAI") as client_cls:
            create = AsyncMock(return_value=openai_reply("Why do you think so?"))
            client_cls.return_value.chat.completions.create = create
            gateway = OpenAIChatGateway(api_key="sk-test", model="gpt-test", max_tokens=100)

            reply = await gateway.complete(HISTORY, "be socratic", temperature=0)

        assert reply == "Why do you think so?"
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "gpt-test"
        assert kwargs["max_tokens"] == 100
        assert kwargs["temperature"] == 0
        assert kwargs["messages"][0] == {"role": "system", "content": "be socratic"}
        assert kwargs["messages"][1:] == HISTORY
        assert client_cls.call_args.kwargs["max_retries"] == 0

    @pytest.mark.asyncio
    async def test_status_error_becomes_transport_error(self):
        error = openai.RateLimitError("slow down", response=httpx.Response(429, request=REQUEST), body=None)
        with patch("socratic_science_tutor.ai_gateway.AsyncOpenAI") as client_cls:
            client_cls.return_value.chat.completions.create = AsyncMock(side_effect=error)
            gateway = OpenAIChatGateway(api_key="sk-test")

            with pytest.raises(RateLimitOrServerError) as exc_info:
                await gateway.complete(HISTORY, "system")

        assert exc_info.value.status_code == 429
        assert str(exc_info.value).startswith("[429]")

    @pytest.mark.asyncio
    async def test_missing_content_is_malformed(self):
        with patch("socratic_science_tutor.ai_gateway.AsyncOpenAI") as client_cls:
            client_cls.return_value.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=[]))
            gateway = OpenAIChatGateway(api_key="sk-test")

            with pytest.raises(MalformedResponseError):
                await gateway.complete(HISTORY, "system")

    def test_translate_authentication_error(self):
        error = openai.AuthenticationError("bad key", response=httpx.Response(401, request=REQUEST), body=None)

        assert isinstance(translate_openai_error(error), CredentialError)

    def test_translate_connection_error(self):
        translated = translate_openai_error(openai.APIConnectionError(request=REQUEST))

        assert isinstance(translated, TransportError)
        assert translated.status_code is None


class TestAnthropicMessagesGateway:

    @pytest.mark.asyncio
    async def test_leading_user_turn_added(self):
        with patch("socratic_science_tutor.ai_gateway.AsyncAnthropic") as client_cls:
            create = AsyncMock(return_value=anthropic_reply("Hi Ada! What do you know about planets?"))
            client_cls.return_value.messages.create = create
            gateway = AnthropicMessagesGateway(api_key="key")

            history = [{"role": "assistant", "content": "Hello"}]
            reply = await gateway.complete(history, "system text")

        assert reply.startswith("Hi Ada!")
        kwargs = create.call_args.kwargs
        assert kwargs["system"] == "system text"
        assert kwargs["messages"][0] == AnthropicMessagesGateway.LEADING_USER_TURN
        assert kwargs["messages"][1] == history[0]

    @pytest.mark.asyncio
    async def test_user_first_history_unchanged(self):
        with patch("socratic_science_tutor.ai_gateway.AsyncAnthropic") as client_cls:
            create = AsyncMock(return_value=anthropic_reply("ok"))
            client_cls.return_value.messages.create = create

            await AnthropicMessagesGateway(api_key="key").complete(HISTORY, "s")

        assert create.call_args.kwargs["messages"] == HISTORY

    @pytest.mark.asyncio
    async def test_server_error_translated(self):
        error = anthropic.InternalServerError("overloaded", response=httpx.Response(500, request=REQUEST), body=None)
        with patch("socratic_science_tutor.ai_gateway.AsyncAnthropic") as client_cls:
            client_cls.return_value.messages.create = AsyncMock(side_effect=error)

            with pytest.raises(TransportError) as exc_info:
                await AnthropicMessagesGateway(api_key="key").complete(HISTORY, "s")

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_empty_content_is_malformed(self):
        with patch("socratic_science_tutor.ai_gateway.AsyncAnthropic") as client_cls:
            client_cls.return_value.messages.create = AsyncMock(return_value=SimpleNamespace(content=[]))

            with pytest.raises(MalformedResponseError):
                await AnthropicMessagesGateway(api_key="key").complete(HISTORY, "s")

    def test_translate_permission_denied(self):
        error = anthropic.PermissionDeniedError("nope", response=httpx.Response(403, request=REQUEST), body=None)

        assert isinstance(translate_anthropic_error(error), CredentialError)

    def test_unknown_errors_pass_through(self):
        error = RuntimeError("other")

        assert translate_anthropic_error(error) is error


class TestScriptedGateway:

    @pytest.mark.asyncio
    async def test_replies_in_order_and_calls_recorded(self):
        gateway = ScriptedGateway(["first", "second"])

        assert await gateway.complete(HISTORY, "s1") == "first"
        assert await gateway.complete([], "s2") == "second"
        assert gateway.calls[0] == {"history": HISTORY, "system_prompt": "s1"}

    @pytest.mark.asyncio
    async def test_exception_reply_is_raised(self):
        gateway = ScriptedGateway([TransportError("down", status_code=503)])

        with pytest.raises(TransportError):
            await gateway.complete(HISTORY, "s")

    @pytest.mark.asyncio
    async def test_callable_reply(self):
        gateway = ScriptedGateway([lambda history, system: f"{len(history)} turns"])

        assert await gateway.complete(HISTORY, "s") == "1 turns"

    @pytest.mark.asyncio
    async def test_exhausted_without_default(self):
        with pytest.raises(TransportError):
            await ScriptedGateway().complete(HISTORY, "s")

    @pytest.mark.asyncio
    async def test_default_reply_after_queue(self):
        gateway = ScriptedGateway(default_reply="default")
        gateway.queue("queued")

        assert await gateway.complete(HISTORY, "s") == "queued"
        assert await gateway.complete(HISTORY, "s") == "default"

    @pytest.mark.asyncio
    async def test_history_snapshot_is_a_copy(self):
        gateway = ScriptedGateway(default_reply="x")
        history = [{"role": "user", "content": "a"}]
        await gateway.complete(history, "s")
        history[0]["content"] = "changed"

        assert gateway.calls[0]["history"][0]["content"] == "a"


class TestCreateGateway:

    def test_provider_from_environment(self, monkeypatch):
        monkeypatch.setenv("AI_PROVIDER", "anthropic")

        assert isinstance(create_gateway(api_key="key"), AnthropicMessagesGateway)

    def test_explicit_provider(self):
        gateway = create_gateway("OpenAI", api_key="sk-x")

        assert isinstance(gateway, OpenAIChatGateway)

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            create_gateway("carrier-pigeon")
