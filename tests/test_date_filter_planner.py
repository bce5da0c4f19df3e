"""
Unit tests for the temporal filter planner
"""

from datetime import date

import pytest

from query_synthesis.models import DateFilterStrategy, Granularity, TimeRange
from query_synthesis.planning import DateFilterPlanner


@pytest.fixture
def planner(today):
    return DateFilterPlanner(today=lambda: today)


@pytest.fixture
def one_day():
    return TimeRange(start_date=date(2024, 1, 1), end_date=date(2024, 1, 2), granularity=Granularity.DAY)


class TestGenerateDateFilter:
    """WHERE fragment generation"""

    def test_no_time_range_means_no_filter(self, planner):
        result = planner.generate_date_filter(None, ["Date", "Amount"])

        assert result.success is True
        assert result.where_clause == ""

    def test_no_time_range_without_columns(self, planner):
        result = planner.generate_date_filter(None, [])

        assert result.success is True
        assert result.where_clause == ""

    def test_no_columns_fails(self, planner, one_day):
        result = planner.generate_date_filter(one_day, [])

        assert result.success is False
        assert result.error

    def test_optimal_day_uses_half_open_range(self, planner, one_day):
        result = planner.generate_date_filter(one_day, ["Date"])

        assert result.success is True
        assert result.where_clause == "Date >= '2024-01-01' AND Date < '2024-01-02'"
        assert result.date_columns == ["Date"]

    def test_yesterday_covers_one_day(self, planner):
        yesterday = TimeRange(
            start_date=date(2024, 6, 9), end_date=date(2024, 6, 10),
            granularity=Granularity.DAY, relative_expression="yesterday"
        )

        result = planner.generate_date_filter(yesterday, ["Date"])

        assert result.where_clause == "Date >= '2024-06-09' AND Date < '2024-06-10'"

    def test_single_day_range_is_not_empty(self, planner):
        same_day = TimeRange(start_date=date(2024, 6, 9), end_date=date(2024, 6, 9), granularity=Granularity.DAY)

        result = planner.generate_date_filter(same_day, ["Date"])

        assert result.where_clause == "Date >= '2024-06-09' AND Date < '2024-06-10'"

    def test_optimal_month_is_inclusive(self, planner):
        month = TimeRange(start_date=date(2024, 1, 1), end_date=date(2024, 1, 31), granularity=Granularity.MONTH)

        result = planner.generate_date_filter(month, ["Date"])

        assert result.where_clause == "Date >= '2024-01-01' AND Date <= '2024-01-31'"

    def test_inclusive_covers_end_of_day(self, planner, one_day):
        result = planner.generate_date_filter(one_day, ["Date"], DateFilterStrategy.INCLUSIVE)

        assert result.where_clause == "Date >= '2024-01-01' AND Date <= '2024-01-02 23:59:59'"

    def test_exclusive_uses_next_day(self, planner, one_day):
        result = planner.generate_date_filter(one_day, ["Date"], DateFilterStrategy.EXCLUSIVE)

        assert result.where_clause == "Date >= '2024-01-01' AND Date < '2024-01-03'"

    def test_performance_casts_column(self, planner, one_day):
        result = planner.generate_date_filter(one_day, ["Date"], DateFilterStrategy.PERFORMANCE)

        assert result.where_clause == (
            "CAST(Date AS DATE) >= '2024-01-01' AND CAST(Date AS DATE) <= '2024-01-02'"
        )

    def test_open_ended_range_defaults_to_today(self, planner):
        result = planner.generate_date_filter(TimeRange(start_date=date(2024, 6, 1)), ["Date"])

        assert result.where_clause == "Date >= '2024-06-01' AND Date < '2024-06-10'"
        assert result.metadata["end_date"] == "2024-06-10"

    def test_multiple_filters_ranked(self, planner, one_day):
        results = planner.generate_multiple_date_filters(one_day, ["Date"])

        scores = [result.metadata["quality_score"] for result in results]
        assert len(results) == len(DateFilterStrategy)
        assert scores == sorted(scores, reverse=True)
        assert results[0].strategy == DateFilterStrategy.OPTIMAL


class TestDateColumnSelection:
    """Column choice and validation"""

    def test_priority_list_wins(self, planner):
        column = planner.select_date_column(["Amount", "CreatedDate", "TransactionDate"])

        assert column == "TransactionDate"

    def test_generic_temporal_name(self, planner):
        assert planner.select_date_column(["Amount", "event_time"]) == "event_time"

    def test_first_column_as_last_resort(self, planner):
        assert planner.select_date_column(["Amount", "Country"]) == "Amount"

    def test_validate_recommends_better_column(self, planner):
        result = planner.validate_date_column("Amount", ["Amount", "TransactionDate"])

        assert result.is_valid is False
        assert result.recommended_column == "TransactionDate"
        assert result.warnings

    def test_validate_accepts_date_column(self, planner):
        result = planner.validate_date_column("CreatedDate")

        assert result.is_valid is True
        assert result.warnings == []


if __name__ == "__main__":
    pytest.main([__file__])
