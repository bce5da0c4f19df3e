"""
Temporal filter planning.

Turns a time range plus candidate date columns into a WHERE fragment.
"""
import logging
from datetime import date, timedelta
from typing import Callable, List, Optional

from ..models import (
    DateColumnValidationResult,
    DateFilterStrategy,
    Granularity,
    SqlDateFilterResult,
    TimeRange,
)

logger = logging.getLogger(__name__)

DATE_COLUMN_PRIORITY = [
    "Date",
    "GameDate",
    "TransactionDate",
    "CreatedDate",
    "UpdatedDate",
    "ActionDate",
    "ProcessDate",
    "EventDate",
    "Timestamp",
    "DateTime",
]

GENERIC_DATE_HINTS = ("date", "time", "created", "updated")
VALID_DATE_HINTS = ("date", "time", "created", "updated", "modified", "timestamp")

DATE_FORMAT = "%Y-%m-%d"


class DateFilterPlanner:
    """Builds date range predicates for one selected column"""

    def __init__(self, today: Optional[Callable[[], date]] = None):
        self._today = today or date.today

    def select_date_column(self, available_columns: List[str]) -> Optional[str]:
        """
        Pick the single column to filter on.

        Exact priority-list match first, then substring match against the
        same list, then any column that looks temporal, then the first one.
        """
        if not available_columns:
            return None

        lowered = {column.lower(): column for column in reversed(available_columns)}
        for preferred in DATE_COLUMN_PRIORITY:
            if preferred.lower() in lowered:
                return lowered[preferred.lower()]

        for preferred in DATE_COLUMN_PRIORITY:
            for column in available_columns:
                if preferred.lower() in column.lower():
                    return column

        for column in available_columns:
            if any(hint in column.lower() for hint in GENERIC_DATE_HINTS):
                return column

        return available_columns[0]

    def generate_date_filter(
        self,
        time_range: Optional[TimeRange],
        available_date_columns: List[str],
        strategy: DateFilterStrategy = DateFilterStrategy.OPTIMAL
    ) -> SqlDateFilterResult:
        """
        Generate the WHERE fragment for a time range.

        Args:
            time_range: Requested time window; None means no filter
            available_date_columns: Candidate columns
            strategy: Boundary semantics

        Returns:
            Date filter result; never raises
        """
        if time_range is None:
            return SqlDateFilterResult(
                success=True,
                where_clause="",
                strategy=strategy,
                metadata={"reason": "no time context"}
            )

        try:
            column = self.select_date_column(available_date_columns)
            if column is None:
                return SqlDateFilterResult(
                    success=False,
                    strategy=strategy,
                    error="No date columns available for date filtering"
                )

            start = time_range.start_date or self._today()
            end = time_range.end_date or self._today()
            clause = self._build_clause(column, start, end, time_range.granularity, strategy)

            logger.debug(f"Date filter ({strategy.value}) on {column}: {clause}")

            return SqlDateFilterResult(
                success=True,
                where_clause=clause,
                date_columns=[column],
                strategy=strategy,
                metadata={
                    "start_date": start.isoformat(),
                    "end_date": end.isoformat(),
                    "granularity": time_range.granularity.value,
                    "relative_expression": time_range.relative_expression,
                }
            )

        except Exception as e:
            logger.error(f"Date filter generation failed: {e}", exc_info=True)
            return SqlDateFilterResult(success=False, strategy=strategy, error=str(e))

    def _build_clause(
        self,
        column: str,
        start: date,
        end: date,
        granularity: Granularity,
        strategy: DateFilterStrategy
    ) -> str:
        start_literal = start.strftime(DATE_FORMAT)
        end_literal = end.strftime(DATE_FORMAT)

        if strategy == DateFilterStrategy.OPTIMAL:
            if granularity == Granularity.DAY:
                # Day ranges end exclusively; a single-day range still covers that day
                if end <= start:
                    end_literal = (start + timedelta(days=1)).strftime(DATE_FORMAT)
                return f"{column} >= '{start_literal}' AND {column} < '{end_literal}'"
            return f"{column} >= '{start_literal}' AND {column} <= '{end_literal}'"

        if strategy == DateFilterStrategy.INCLUSIVE:
            return f"{column} >= '{start_literal}' AND {column} <= '{end_literal} 23:59:59'"

        if strategy == DateFilterStrategy.EXCLUSIVE:
            next_day = (end + timedelta(days=1)).strftime(DATE_FORMAT)
            return f"{column} >= '{start_literal}' AND {column} < '{next_day}'"

        if strategy == DateFilterStrategy.PERFORMANCE:
            return (
                f"CAST({column} AS DATE) >= '{start_literal}' "
                f"AND CAST({column} AS DATE) <= '{end_literal}'"
            )

        raise ValueError(f"Unsupported date filter strategy: {strategy}")

    def generate_multiple_date_filters(
        self,
        time_range: Optional[TimeRange],
        available_date_columns: List[str]
    ) -> List[SqlDateFilterResult]:
        """
        Generate a filter for every strategy, best first.

        Only successful results are returned.
        """
        results = []
        for strategy in DateFilterStrategy:
            result = self.generate_date_filter(time_range, available_date_columns, strategy)
            if result.success:
                result.metadata["quality_score"] = self._quality_score(result)
                results.append(result)

        results.sort(key=lambda result: result.metadata["quality_score"], reverse=True)
        return results

    def _quality_score(self, result: SqlDateFilterResult) -> float:
        score = 1.0
        if result.where_clause:
            # Shorter predicates are easier for the engine to use
            score += max(0.0, 1.0 - len(result.where_clause) / 200.0)
        if result.strategy == DateFilterStrategy.PERFORMANCE:
            score += 0.3
        elif result.strategy == DateFilterStrategy.OPTIMAL:
            score += 0.2
        if any("date" in column.lower() for column in result.date_columns):
            score += 0.1
        return round(score, 4)

    def validate_date_column(
        self,
        column: str,
        available_columns: Optional[List[str]] = None
    ) -> DateColumnValidationResult:
        """Check that a column looks temporal and recommend a better one if not"""
        is_valid = any(hint in column.lower() for hint in VALID_DATE_HINTS)
        warnings = []
        if not is_valid:
            warnings.append(f"Column '{column}' does not look like a date or time column")

        recommended = self.select_date_column(available_columns or [column])

        return DateColumnValidationResult(
            is_valid=is_valid,
            column=column,
            recommended_column=recommended,
            warnings=warnings
        )
