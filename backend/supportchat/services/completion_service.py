"""
Completion service for support replies and chat titles.

Wraps the external text-completion provider (OpenAI or Ollama). Provider
errors are translated here and never reach the chat protocol: every public
call returns a usable string.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

import httpx
import ollama
import openai
from openai import AsyncOpenAI

from supportchat.config import Settings, settings
from supportchat.core.logging import preview
from supportchat.schemas import HistoryTurn
from supportchat.storage.base import NEW_CHAT_TITLE

logger = logging.getLogger(__name__)

SUPPORT_SYSTEM_PROMPT = (
    "You are an AI-powered customer support assistant for a SaaS platform. "
    "You help users with billing issues, account setup, and feature requests. "
    "Be friendly, helpful, and concise. If you don't know the answer, don't make up information - "
    "instead, suggest that the user might want to contact a human agent for more assistance."
)

TITLE_SYSTEM_PROMPT = (
    "You are an assistant that generates short, concise chat titles based on the user's first message. "
    "The title should be 2-4 words maximum and capture the essence of what the user is asking about."
)

NOT_CONFIGURED_REPLY = (
    "The AI service is not configured. Please contact your administrator to set up the AI provider."
)
RATE_LIMITED_REPLY = "I've reached my usage limit. Please try again in a few minutes."
UNAVAILABLE_REPLY = (
    "I'm having trouble connecting to my knowledge base right now. Please try again in a moment."
)
EMPTY_REPLY = "I'm sorry, I couldn't generate a response. Please try again."

TITLE_QUOTES = "\"'“”‘’`"


class CompletionError(Exception):
    """Provider failed to produce a completion."""


class CompletionNotConfiguredError(CompletionError):
    """Provider has no credentials or no client."""


class CompletionRateLimitError(CompletionError):
    """Provider refused the request because of a usage limit."""


class CompletionProvider(ABC):
    """Abstract base class for completion providers."""

    name = "abstract"

    @abstractmethod
    async def complete(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int,
        temperature: float,
    ) -> str:
        """
        Sends a chat transcript to the model.

        Args:
            messages: List of {"role": ..., "content": ...} dicts, system prompt first
            max_tokens: Upper bound on generated tokens
            temperature: Sampling temperature

        Returns:
            Generated text (may be empty)

        Raises:
            CompletionError or one of its subclasses
        """


class OpenAIProvider(CompletionProvider):
    """Completion provider using the OpenAI API."""

    name = "openai"

    def __init__(self, api_key: Optional[str], model: str, timeout: float = 60.0):
        self.model = model
        if not api_key:
            logger.warning(
                "No OpenAI API key found. Set OPENAI_API_KEY for AI functionality to work."
            )
            self.client = None
        else:
            self.client = AsyncOpenAI(api_key=api_key, timeout=timeout)

    async def complete(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int,
        temperature: float,
    ) -> str:
        if not self.client:
            raise CompletionNotConfiguredError("OpenAI client is not configured")

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except openai.AuthenticationError as e:
            raise CompletionNotConfiguredError(str(e)) from e
        except openai.RateLimitError as e:
            raise CompletionRateLimitError(str(e)) from e
        except openai.OpenAIError as e:
            raise CompletionError(str(e)) from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


class OllamaProvider(CompletionProvider):
    """Completion provider using a local Ollama server."""

    name = "ollama"

    def __init__(self, host: str, model: str, timeout: int = 300):
        self.host = host
        self.model = model
        if not host:
            logger.warning("No Ollama host configured. Set OLLAMA_HOST for AI functionality to work.")
            self.client = None
            return

        try:
            timeout_obj = httpx.Timeout(timeout, connect=10.0)
            self.client = ollama.AsyncClient(host=host, timeout=timeout_obj)
        except (ValueError, httpx.HTTPError) as e:
            logger.error(f"Failed to create Ollama client for {host}: {e}")
            self.client = None

    async def complete(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int,
        temperature: float,
    ) -> str:
        if not self.client:
            raise CompletionNotConfiguredError("Ollama client is not configured")

        try:
            response = await self.client.chat(
                model=self.model,
                messages=messages,
                options={"temperature": temperature, "num_predict": max_tokens},
            )
        except ollama.ResponseError as e:
            if e.status_code == 429:
                raise CompletionRateLimitError(str(e)) from e
            if e.status_code in (401, 403):
                raise CompletionNotConfiguredError(str(e)) from e
            raise CompletionError(str(e)) from e
        except (httpx.HTTPError, ConnectionError) as e:
            raise CompletionError(str(e)) from e

        # Ollama returns {"message": {"role": ..., "content": ...}}
        return response["message"]["content"] or ""


def get_completion_provider(config: Settings = settings) -> CompletionProvider:
    """
    Factory function for the configured completion provider.

    Args:
        config: Settings to read AI_PROVIDER and credentials from

    Returns:
        CompletionProvider instance
    """
    if config.AI_PROVIDER == "ollama":
        return OllamaProvider(
            host=config.OLLAMA_HOST,
            model=config.TEXT_MODEL,
            timeout=config.OLLAMA_TIMEOUT,
        )
    return OpenAIProvider(
        api_key=config.OPENAI_API_KEY,
        model=config.OPENAI_MODEL,
        timeout=config.OPENAI_TIMEOUT,
    )


def clean_title(raw: str) -> str:
    """Strip whitespace and wrapping quotes from a generated title."""
    return raw.strip().strip(TITLE_QUOTES).strip()


class CompletionService:
    """Reply and title generation that never raises."""

    def __init__(
        self,
        provider: Optional[CompletionProvider],
        reply_max_tokens: int = 1000,
        title_max_tokens: int = 15,
        temperature: float = 0.7,
    ):
        self.provider = provider
        self.reply_max_tokens = reply_max_tokens
        self.title_max_tokens = title_max_tokens
        self.temperature = temperature

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "CompletionService":
        return cls(
            provider=get_completion_provider(config),
            reply_max_tokens=config.REPLY_MAX_TOKENS,
            title_max_tokens=config.TITLE_MAX_TOKENS,
            temperature=config.COMPLETION_TEMPERATURE,
        )

    async def _complete(self, messages: List[Dict[str, str]], max_tokens: int) -> str:
        if self.provider is None:
            raise CompletionNotConfiguredError("No completion provider")
        return await self.provider.complete(
            messages, max_tokens=max_tokens, temperature=self.temperature
        )

    async def generate_reply(self, user_text: str, history: Sequence[HistoryTurn]) -> str:
        """
        Generate the assistant's reply to user_text given the prior turns.

        Returns a fallback message instead of raising when the provider is
        missing, rate limited or failing.
        """
        messages = [{"role": "system", "content": SUPPORT_SYSTEM_PROMPT}]
        messages.extend(turn.model_dump() for turn in history)
        messages.append({"role": "user", "content": user_text})

        try:
            reply = await self._complete(messages, self.reply_max_tokens)
        except CompletionNotConfiguredError as e:
            logger.error(f"Completion provider not configured: {e}")
            return NOT_CONFIGURED_REPLY
        except CompletionRateLimitError as e:
            logger.warning(f"Completion provider rate limited: {e}")
            return RATE_LIMITED_REPLY
        except CompletionError as e:
            logger.error(f"Error generating AI response: {e}")
            return UNAVAILABLE_REPLY
        except Exception as e:
            logger.error(f"Unexpected completion failure: {e}", exc_info=True)
            return UNAVAILABLE_REPLY

        reply = reply.strip()
        if not reply:
            logger.warning(f"Empty completion for message '{preview(user_text)}'")
            return EMPTY_REPLY
        return reply

    async def generate_title(self, first_user_text: str) -> str:
        """Short (2-4 word) title for a chat; falls back to a generic one."""
        messages = [
            {"role": "system", "content": TITLE_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": (
                    "Generate a short title (2-4 words maximum) for a chat that "
                    f'starts with this message: "{first_user_text}"'
                ),
            },
        ]

        try:
            raw = await self._complete(messages, self.title_max_tokens)
        except CompletionError as e:
            logger.warning(f"Cannot generate chat title: {e}")
            return NEW_CHAT_TITLE
        except Exception as e:
            logger.error(f"Unexpected title generation failure: {e}", exc_info=True)
            return NEW_CHAT_TITLE

        return clean_title(raw) or NEW_CHAT_TITLE
