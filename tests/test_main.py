"""
Unit tests for the composition root and JSON helpers
"""

import json
import logging
from datetime import date
from decimal import Decimal

import pytest
from unittest.mock import AsyncMock, Mock, patch

from query_synthesis.config import settings
from query_synthesis.main import (
    answer,
    build_ai_service,
    build_business_context_analyzer,
    build_db_policy,
    configure_logging,
    get_ai_policy,
)
from query_synthesis.models import QueryResponse
from query_synthesis.resilience import FailureRateCircuitBreaker
from query_synthesis.resilience.resilient_ai import ResilientAIService, ResilientBusinessContextAnalyzer
from query_synthesis.utils.json_encoder import json_dumps, normalize_rows


class TestAnswer:
    """Single-question entry point"""

    @pytest.mark.asyncio
    async def test_success_adds_insight(self):
        service = Mock()
        service.process_query = AsyncMock(return_value=QueryResponse(
            query_id="q1", success=True, sql="SELECT 1", data=[{"x": 1}], row_count=1
        ))
        ai_service = Mock()
        ai_service.generate_insight = AsyncMock(return_value="One row.")

        output = json.loads(await answer("how many?", service=service, ai_service=ai_service))

        assert output["success"] is True
        assert output["insight"] == "One row."
        ai_service.generate_insight.assert_awaited_once_with("how many?", [{"x": 1}])

    @pytest.mark.asyncio
    async def test_failure_skips_insight(self):
        service = Mock()
        service.process_query = AsyncMock(return_value=QueryResponse(
            query_id="q1", success=False, error="down", error_code="SERVICE_UNAVAILABLE"
        ))
        ai_service = Mock()
        ai_service.generate_insight = AsyncMock()

        output = json.loads(await answer("how many?", service=service, ai_service=ai_service))

        assert output["error_code"] == "SERVICE_UNAVAILABLE"
        assert "insight" not in output
        ai_service.generate_insight.assert_not_awaited()


class TestBuilders:
    """Policies wired from settings"""

    def test_db_policy_uses_failure_rate_breaker(self):
        policy = build_db_policy()

        assert isinstance(policy.breaker, FailureRateCircuitBreaker)
        assert policy.retry_attempts == 3

    def test_ai_service_is_wrapped(self):
        inner = Mock()

        service = build_ai_service(inner)

        assert isinstance(service, ResilientAIService)

    def test_analyzer_shares_ai_breaker(self):
        analyzer = build_business_context_analyzer(Mock())
        service = build_ai_service(Mock())

        assert isinstance(analyzer, ResilientBusinessContextAnalyzer)
        assert analyzer.policy is get_ai_policy()
        assert analyzer.policy.breaker is service.policy.breaker


class TestConfigureLogging:
    """Logging setup from settings"""

    def test_uses_configured_format_and_level(self):
        with patch("query_synthesis.main.logging.basicConfig") as basic_config:
            configure_logging("debug")

        basic_config.assert_called_once_with(level=logging.DEBUG, format=settings.LOG_FORMAT)

    def test_announces_service_name(self, caplog):
        with patch("query_synthesis.main.logging.basicConfig"), caplog.at_level(logging.INFO, logger="query_synthesis.main"):
            configure_logging()

        assert settings.SERVICE_NAME in caplog.text


class TestJsonHelpers:
    """Database value encoding"""

    def test_json_dumps_handles_decimal_and_dates(self):
        payload = json.loads(json_dumps({"amount": Decimal("12.50"), "day": date(2024, 6, 10)}))

        assert payload == {"amount": 12.5, "day": "2024-06-10"}

    def test_normalize_rows(self):
        rows = normalize_rows([{"amount": Decimal("1.5"), "tags": (date(2024, 1, 1),)}])

        assert rows == [{"amount": 1.5, "tags": ["2024-01-01"]}]


if __name__ == "__main__":
    pytest.main([__file__])
