"""
Unit tests for business-context analysis
"""

from datetime import date

import aiohttp
import pytest
from unittest.mock import AsyncMock, Mock

from query_synthesis.exceptions import AIConnectionError
from query_synthesis.models import Granularity, IntentType
from query_synthesis.prompts.business_context import (
    BUSINESS_CONTEXT_SYSTEM_PROMPT,
    create_business_context_prompt,
)
from query_synthesis.services.business_context import LLMBusinessContextAnalyzer, parse_profile


PROFILE_JSON = """{
    "intent_type": "Trend",
    "business_terms": ["deposits", "country"],
    "time_context": {
        "start_date": "2024-06-03",
        "end_date": "2024-06-10",
        "granularity": "Day",
        "relative_expression": "last 7 days"
    },
    "confidence_score": 0.8
}"""


class TestParseProfile:
    """Model output parsing"""

    def test_plain_json(self):
        profile = parse_profile(PROFILE_JSON)

        assert profile.intent_type == IntentType.TREND
        assert profile.business_terms == ["deposits", "country"]
        assert profile.time_context.start_date == date(2024, 6, 3)
        assert profile.time_context.granularity == Granularity.DAY
        assert profile.confidence_score == 0.8

    def test_fenced_json(self):
        text = f"Here is the analysis:\n```json\n{PROFILE_JSON}\n```\nDone."

        assert parse_profile(text).intent_type == IntentType.TREND

    def test_empty_time_context_becomes_none(self):
        profile = parse_profile('{"intent_type": "Analytical", "business_terms": ["players"], "time_context": {}}')

        assert profile.time_context is None

    def test_invalid_text_raises(self):
        with pytest.raises(ValueError):
            parse_profile("I could not understand the question")


class TestLLMBusinessContextAnalyzer:
    """Prompting the model"""

    @pytest.mark.asyncio
    async def test_analyze_uses_json_mode_and_today(self):
        llm = Mock()
        llm.ainvoke = AsyncMock(return_value=Mock(content=PROFILE_JSON))
        client = Mock()
        client.get_llm.return_value = llm
        analyzer = LLMBusinessContextAnalyzer(client=client, today=lambda: date(2024, 6, 10))

        profile = await analyzer.analyze("deposits by country over the last week")

        assert profile.intent_type == IntentType.TREND
        client.get_llm.assert_called_once_with(temperature=0.1, json_mode=True)
        messages = llm.ainvoke.await_args.args[0]
        assert "2024-06-10" in messages[1]["content"]
        assert "deposits by country" in messages[1]["content"]

    @pytest.mark.asyncio
    async def test_unreachable_model_raises_connection_error(self):
        llm = Mock()
        llm.ainvoke = AsyncMock(side_effect=aiohttp.ClientConnectionError("Connection refused"))
        client = Mock()
        client.get_llm.return_value = llm
        analyzer = LLMBusinessContextAnalyzer(client=client, today=lambda: date(2024, 6, 10))

        with pytest.raises(AIConnectionError):
            await analyzer.analyze("total deposits")


class TestBusinessContextPrompt:
    """Relative time rules given to the model"""

    def test_yesterday_uses_exclusive_end(self):
        assert '"yesterday" -> start_date = TODAY - 1 day, end_date = TODAY, granularity "Day"' in (
            BUSINESS_CONTEXT_SYSTEM_PROMPT
        )
        assert 'with granularity "Day" end_date is exclusive' in BUSINESS_CONTEXT_SYSTEM_PROMPT

    def test_user_prompt_carries_today(self):
        prompt = create_business_context_prompt("total deposits for yesterday", date(2024, 6, 10))

        assert "2024-06-10" in prompt
        assert "total deposits for yesterday" in prompt


if __name__ == "__main__":
    pytest.main([__file__])
