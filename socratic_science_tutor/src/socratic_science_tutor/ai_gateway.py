"""
AI Gateway

Single abstraction over the language-model call: a transcript plus a system
prompt in, raw reply text out. Provider adapters translate SDK errors into
the tutor error taxonomy. No retries happen here; callers decide.
"""

import os
import logging
from typing import Callable, Dict, List, Optional, Sequence, Union

import anthropic
import openai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from dotenv import load_dotenv

from socratic_science_tutor.errors import (
    CredentialError,
    MalformedResponseError,
    TransportError,
)

load_dotenv()

logger = logging.getLogger(__name__)

Message = Dict[str, str]

DEFAULT_OPENAI_MODEL = "gpt-4o"
DEFAULT_ANTHROPIC_MODEL = "claude-3-5-sonnet-latest"
DEFAULT_MAX_TOKENS = 1024
DEFAULT_TIMEOUT_SECONDS = 60.0


def translate_openai_error(error: Exception) -> Exception:
    """Map an openai SDK exception onto CredentialError / TransportError."""
    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return CredentialError(f"OpenAI rejected the API key: {error}")
    if isinstance(error, openai.APIStatusError):
        return TransportError(getattr(error, "message", str(error)), status_code=error.status_code)
    if isinstance(error, openai.APIConnectionError):
        return TransportError(f"Could not reach OpenAI: {error}")
    return error


def translate_anthropic_error(error: Exception) -> Exception:
    """Map an anthropic SDK exception onto CredentialError / TransportError."""
    if isinstance(error, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return CredentialError(f"Anthropic rejected the API key: {error}")
    if isinstance(error, anthropic.APIStatusError):
        return TransportError(getattr(error, "message", str(error)), status_code=error.status_code)
    if isinstance(error, anthropic.APIConnectionError):
        return TransportError(f"Could not reach Anthropic: {error}")
    return error


class AIGateway:
    """Interface every provider adapter implements."""

    provider = "base"

    def has_valid_credentials(self) -> bool:
        return True

    async def complete(
        self,
        history: Sequence[Message],
        system_prompt: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """
        Send a conversation to the model.

        Args:
            history: Ordered {"role", "content"} turns
            system_prompt: System instruction string
            max_tokens: Optional override of the configured limit
            temperature: Optional sampling temperature

        Returns:
            Unparsed reply text

        Raises:
            CredentialError: no usable credential, or upstream rejected it
            TransportError: non-success status or connection failure
            MalformedResponseError: success body without the text field
        """
        raise NotImplementedError


class OpenAIChatGateway(AIGateway):
    """Chat-completions adapter: reply text is choices[0].message.content."""

    provider = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.model = model or os.getenv("OPENAI_MODEL", DEFAULT_OPENAI_MODEL)
        self.max_tokens = max_tokens or int(os.getenv("AI_MAX_TOKENS", DEFAULT_MAX_TOKENS))
        self.timeout = timeout or float(os.getenv("AI_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS))
        self._client: Optional[AsyncOpenAI] = None

    def has_valid_credentials(self) -> bool:
        return bool(self.api_key) and self.api_key.startswith("sk-")

    @property
    def client(self) -> AsyncOpenAI:
        if not self.has_valid_credentials():
            raise CredentialError("OPENAI_API_KEY is missing or invalid (must start with sk-)")
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    async def complete(self, history, system_prompt, max_tokens=None, temperature=None) -> str:
        client = self.client
        messages = [{"role": "system", "content": system_prompt}, *history]
        kwargs = {}
        if temperature is not None:
            kwargs["temperature"] = temperature

        try:
            response = await client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens or self.max_tokens,
                messages=messages,
                **kwargs
            )
        except openai.OpenAIError as e:
            raise translate_openai_error(e) from e

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise MalformedResponseError("Response has no choices[0].message.content") from e
        if content is None:
            raise MalformedResponseError("Response message content is empty")
        return content


class AnthropicMessagesGateway(AIGateway):
    """Messages adapter: reply text is content[0].text."""

    provider = "anthropic"

    # The messages API expects the first turn to come from the user
    LEADING_USER_TURN = {"role": "user", "content": "Let's begin the tutoring session."}

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self.model = model or os.getenv("ANTHROPIC_MODEL", DEFAULT_ANTHROPIC_MODEL)
        self.max_tokens = max_tokens or int(os.getenv("AI_MAX_TOKENS", DEFAULT_MAX_TOKENS))
        self.timeout = timeout or float(os.getenv("AI_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS))
        self._client: Optional[AsyncAnthropic] = None

    def has_valid_credentials(self) -> bool:
        return bool(self.api_key)

    @property
    def client(self) -> AsyncAnthropic:
        if not self.has_valid_credentials():
            raise CredentialError("ANTHROPIC_API_KEY is not set")
        if self._client is None:
            self._client = AsyncAnthropic(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    async def complete(self, history, system_prompt, max_tokens=None, temperature=None) -> str:
        client = self.client
        messages = list(history)
        if not messages or messages[0]["role"] != "user":
            messages.insert(0, dict(self.LEADING_USER_TURN))
        kwargs = {}
        if temperature is not None:
            kwargs["temperature"] = temperature

        try:
            response = await client.messages.create(
                model=self.model,
                max_tokens=max_tokens or self.max_tokens,
                system=system_prompt,
                messages=messages,
                **kwargs
            )
        except anthropic.AnthropicError as e:
            raise translate_anthropic_error(e) from e

        try:
            text = response.content[0].text
        except (AttributeError, IndexError, TypeError) as e:
            raise MalformedResponseError("Response has no content[0].text") from e
        if text is None:
            raise MalformedResponseError("Response text is empty")
        return text


ScriptedReply = Union[str, Exception, Callable[[List[Message], str], str]]


class ScriptedGateway(AIGateway):
    """
    Deterministic in-process gateway.

    Replies are consumed in order. An Exception instance is raised instead of
    returned; a callable receives (history, system_prompt). Every call is
    recorded in `calls` for inspection.
    """

    provider = "scripted"

    def __init__(self, replies: Optional[Sequence[ScriptedReply]] = None, default_reply: Optional[str] = None):
        self.replies: List[ScriptedReply] = list(replies or [])
        self.default_reply = default_reply
        self.calls: List[Dict[str, object]] = []

    def queue(self, *replies: ScriptedReply):
        self.replies.extend(replies)

    async def complete(self, history, system_prompt, max_tokens=None, temperature=None) -> str:
        snapshot = [dict(m) for m in history]
        self.calls.append({"history": snapshot, "system_prompt": system_prompt})
        if self.replies:
            reply = self.replies.pop(0)
        elif self.default_reply is not None:
            reply = self.default_reply
        else:
            raise TransportError("ScriptedGateway has no replies left")

        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(snapshot, system_prompt)
        return reply


PROVIDERS = {
    "openai": OpenAIChatGateway,
    "anthropic": AnthropicMessagesGateway,
}


def create_gateway(provider: Optional[str] = None, **kwargs) -> AIGateway:
    """Build the gateway named by `provider` or the AI_PROVIDER env var."""
    name = (provider or os.getenv("AI_PROVIDER", "openai")).strip().lower()
    if name not in PROVIDERS:
        raise ValueError(f"Unknown AI provider: {name} (expected one of {', '.join(PROVIDERS)})")
    gateway = PROVIDERS[name](**kwargs)
    logger.info(f"🤖 [Gateway] Using {name} provider (model: {gateway.model})")
    return gateway
