"""Ollama client for LLM inference"""
import asyncio
import logging
import re
from typing import Any, AsyncIterator, Dict, List, Optional

import aiohttp
import httpx
from langchain_community.chat_models import ChatOllama

from ..config import settings
from ..exceptions import AIConnectionError, AIServiceError, EmptyAIResponseError
from ..models import StreamingEvent
from ..prompts.ai_generation import (
    EXPLANATION_SYSTEM_PROMPT,
    INSIGHT_SYSTEM_PROMPT,
    SQL_GENERATOR_SYSTEM_PROMPT,
    create_explanation_prompt,
    create_insight_prompt,
)
from .interfaces import AIService

logger = logging.getLogger(__name__)


class OllamaClient:
    """Factory for Ollama chat models"""

    def __init__(
        self,
        host: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        timeout: Optional[int] = None
    ):
        self.host = host or settings.OLLAMA_HOST
        self.model = model or settings.OLLAMA_MODEL
        self.temperature = temperature if temperature is not None else settings.OLLAMA_TEMPERATURE
        self.timeout = timeout or settings.OLLAMA_TIMEOUT

    def get_llm(
        self,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        json_mode: bool = False
    ) -> ChatOllama:
        """
        Get Ollama LLM instance.

        Args:
            model: Model name (defaults to the configured model)
            temperature: Temperature for generation (0-1)
            json_mode: Whether to request JSON output format

        Returns:
            ChatOllama instance
        """
        kwargs = {
            "base_url": self.host,
            "model": model or self.model,
            "temperature": temperature if temperature is not None else self.temperature,
            "timeout": self.timeout,
        }

        # Only set JSON format if explicitly requested
        if json_mode:
            kwargs["format"] = "json"

        return ChatOllama(**kwargs)


# Global client instance
_client: Optional[OllamaClient] = None


def get_ollama_client() -> OllamaClient:
    """Get global Ollama client instance"""
    global _client
    if _client is None:
        _client = OllamaClient()
    return _client


def get_llm(
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    json_mode: bool = False
) -> ChatOllama:
    """Convenience function to get an LLM from the global client"""
    return get_ollama_client().get_llm(model=model, temperature=temperature, json_mode=json_mode)


def strip_sql_fences(text: str) -> str:
    """Remove ```sql fences models sometimes add despite instructions"""
    match = re.search(r"```(?:sql)?\s*(.*?)```", text, re.DOTALL | re.IGNORECASE)
    if match:
        text = match.group(1)
    return text.strip()


def provider_error(error: Exception) -> Exception:
    """Map a transport or provider failure onto the service's AI errors"""
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)):
        return error
    if isinstance(error, (aiohttp.ClientError, httpx.TransportError, OSError)):
        return AIConnectionError(f"Ollama unreachable: {error}")
    return AIServiceError(f"Ollama request failed: {error}")


async def invoke_llm(llm: ChatOllama, messages: List[Dict[str, str]]) -> str:
    """
    Run one chat completion and return its stripped text.

    Raises:
        AIConnectionError: Provider could not be reached
        AIServiceError: Provider rejected or failed the request
        EmptyAIResponseError: Provider answered with no content
    """
    try:
        response = await llm.ainvoke(messages)
    except Exception as e:
        mapped = provider_error(e)
        if mapped is e:
            raise
        raise mapped from e

    text = response.content if hasattr(response, "content") else str(response)
    if not text or not text.strip():
        raise EmptyAIResponseError("Ollama returned an empty response")

    logger.debug(f"LLM response ({len(text)} chars): {text[:200]}")
    return text.strip()


class OllamaAIService(AIService):
    """AI text generation over Ollama chat models"""

    def __init__(self, client: Optional[OllamaClient] = None):
        self.client = client or get_ollama_client()

    async def generate_sql(self, prompt: str) -> str:
        return strip_sql_fences(await self._complete(SQL_GENERATOR_SYSTEM_PROMPT, prompt))

    async def generate_insight(self, question: str, rows: List[Dict[str, Any]]) -> str:
        return await self._complete(INSIGHT_SYSTEM_PROMPT, create_insight_prompt(question, rows))

    async def generate_explanation(self, sql: str) -> str:
        return await self._complete(EXPLANATION_SYSTEM_PROMPT, create_explanation_prompt(sql))

    def stream_sql(self, prompt: str) -> AsyncIterator[StreamingEvent]:
        return self._stream(SQL_GENERATOR_SYSTEM_PROMPT, prompt)

    def stream_insight(self, question: str, rows: List[Dict[str, Any]]) -> AsyncIterator[StreamingEvent]:
        return self._stream(INSIGHT_SYSTEM_PROMPT, create_insight_prompt(question, rows))

    def stream_explanation(self, sql: str) -> AsyncIterator[StreamingEvent]:
        return self._stream(EXPLANATION_SYSTEM_PROMPT, create_explanation_prompt(sql))

    async def _complete(self, system_prompt: str, user_prompt: str) -> str:
        llm = self.client.get_llm()
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt}
        ]

        return await invoke_llm(llm, messages)

    async def _stream(self, system_prompt: str, user_prompt: str) -> AsyncIterator[StreamingEvent]:
        llm = self.client.get_llm()
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt}
        ]

        produced = []
        try:
            async for chunk in llm.astream(messages):
                content = chunk.content if hasattr(chunk, "content") else str(chunk)
                if content:
                    produced.append(content)
                    yield StreamingEvent(type="chunk", content=content)
        except Exception as e:
            mapped = provider_error(e)
            if mapped is e:
                raise
            raise mapped from e

        if not produced:
            raise EmptyAIResponseError("Ollama stream produced no content")

        yield StreamingEvent(type="complete", content="".join(produced))
