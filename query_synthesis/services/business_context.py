"""LLM-backed business-context analysis"""
import json
import logging
from datetime import date
from typing import Callable, Optional

from ..models import BusinessContextProfile
from ..prompts.business_context import (
    BUSINESS_CONTEXT_SYSTEM_PROMPT,
    create_business_context_prompt,
)
from .interfaces import BusinessContextAnalyzer
from .ollama_client import OllamaClient, get_ollama_client, invoke_llm

logger = logging.getLogger(__name__)


class LLMBusinessContextAnalyzer(BusinessContextAnalyzer):
    """Asks the LLM, in JSON mode, for a BusinessContextProfile"""

    def __init__(
        self,
        client: Optional[OllamaClient] = None,
        today: Callable[[], date] = date.today
    ):
        self.client = client or get_ollama_client()
        self._today = today

    async def analyze(self, question: str, context: Optional[str] = None) -> BusinessContextProfile:
        """
        Analyze a question into a business-context profile.

        Args:
            question: User's question
            context: Optional conversation context

        Returns:
            Parsed profile

        Raises:
            ValueError: If the model output is not a valid profile
            AIServiceError: If the provider call fails
        """
        llm = self.client.get_llm(temperature=0.1, json_mode=True)
        messages = [
            {"role": "system", "content": BUSINESS_CONTEXT_SYSTEM_PROMPT},
            {"role": "user", "content": create_business_context_prompt(question, self._today(), context)}
        ]

        response_text = await invoke_llm(llm, messages)
        logger.debug(f"Business context response: {response_text[:200]}")

        return parse_profile(response_text)


def parse_profile(response_text: str) -> BusinessContextProfile:
    """Parse model output, tolerating a ```json fenced block"""
    try:
        data = json.loads(response_text)
    except json.JSONDecodeError:
        if "```json" not in response_text:
            raise ValueError(f"Model did not return JSON: {response_text[:200]}")
        data = json.loads(response_text.split("```json")[1].split("```")[0].strip())

    # Models sometimes return an empty object for "no time window"
    if not data.get("time_context"):
        data["time_context"] = None

    return BusinessContextProfile.model_validate(data)
