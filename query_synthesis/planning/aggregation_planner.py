"""
Aggregation planning.

Maps the business terms of a profile onto metrics (aggregated columns) and
dimensions (grouping columns) and renders SELECT / GROUP BY / ORDER BY.
"""
import logging
from typing import Dict, List, Optional, Tuple

from ..models import (
    AggregationStrategy,
    AggregationValidationResult,
    BusinessContextProfile,
    IntentType,
    SqlAggregationResult,
    SqlDimension,
    SqlMetric,
)
from ..utils.naming import strip_separators
from .scoring import ColumnScorer, default_scorer

logger = logging.getLogger(__name__)

METRIC_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "SUM": ("total", "sum", "amount", "revenue", "deposit", "bet", "win"),
    "COUNT": ("count", "number", "how many", "depositor", "player"),
    "AVG": ("average", "avg", "mean"),
    "MAX": ("maximum", "max", "highest", "top"),
    "MIN": ("minimum", "min", "lowest", "bottom"),
}

GENERIC_METRIC_HINTS = ("amount", "value", "count", "sum")
DEFAULT_METRIC_KEYWORDS = ("amount", "value", "total", "sum", "count")
DIMENSION_KEYWORDS = (
    "country", "currency", "date", "game", "provider", "label", "type", "category"
)

MAX_METRICS = 5
MAX_DIMENSIONS = 3
TIME_DIMENSION_PRIORITY = 0.9


class AggregationPlanner:
    """Builds aggregation clauses from a business-context profile"""

    def __init__(self, scorer: Optional[ColumnScorer] = None):
        self.scorer = scorer or default_scorer

    def generate_aggregation(
        self,
        profile: BusinessContextProfile,
        available_columns: List[str],
        strategy: AggregationStrategy = AggregationStrategy.OPTIMAL
    ) -> SqlAggregationResult:
        """
        Generate SELECT / GROUP BY / ORDER BY clauses.

        Args:
            profile: Business-context profile
            available_columns: Columns of the tables in play
            strategy: Aggregation strategy; Detailed keeps every match

        Returns:
            Aggregation result; never raises
        """
        try:
            metrics = self.extract_metrics(profile, available_columns, strategy)
            dimensions = self.extract_dimensions(profile, available_columns, strategy)

            if not metrics and not dimensions:
                select_clause = (
                    "SELECT TOP 100 *" if strategy == AggregationStrategy.PERFORMANCE
                    else "SELECT *"
                )
                return SqlAggregationResult(
                    success=True,
                    select_clause=select_clause,
                    strategy=strategy,
                    metadata={"metric_count": 0, "dimension_count": 0}
                )

            result = SqlAggregationResult(
                success=True,
                select_clause=self._select_clause(metrics, dimensions, strategy),
                group_by_clause=self._group_by_clause(dimensions),
                order_by_clause=self._order_by_clause(metrics, dimensions, profile.intent_type),
                metrics=metrics,
                dimensions=dimensions,
                strategy=strategy,
                metadata={
                    "metric_count": len(metrics),
                    "dimension_count": len(dimensions),
                    "intent_type": profile.intent_type.value,
                }
            )

            logger.debug(
                f"Aggregation ({strategy.value}): {len(metrics)} metrics, "
                f"{len(dimensions)} dimensions"
            )
            return result

        except Exception as e:
            logger.error(f"Aggregation generation failed: {e}", exc_info=True)
            return SqlAggregationResult(success=False, strategy=strategy, error=str(e))

    def generate_multiple_aggregations(
        self,
        profile: BusinessContextProfile,
        available_columns: List[str]
    ) -> List[SqlAggregationResult]:
        """Run every strategy and return the successful results, best first"""
        results = [
            self.generate_aggregation(profile, available_columns, strategy)
            for strategy in AggregationStrategy
        ]
        results = [result for result in results if result.success]
        for result in results:
            result.metadata["quality_score"] = aggregation_quality(result)
        results.sort(key=lambda result: result.metadata["quality_score"], reverse=True)
        return results

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def extract_metrics(
        self,
        profile: BusinessContextProfile,
        available_columns: List[str],
        strategy: AggregationStrategy = AggregationStrategy.OPTIMAL
    ) -> List[SqlMetric]:
        terms = [term.lower() for term in profile.business_terms]
        metrics: List[SqlMetric] = []
        seen = set()

        for function, keywords in METRIC_KEYWORDS.items():
            if not self.scorer.term_matches(terms, keywords):
                continue
            for column in available_columns:
                if is_key_column(column):
                    continue
                if not (self.scorer.matches(column, keywords) or self._is_generic_metric(column)):
                    continue
                if (function, column.lower()) in seen:
                    continue
                seen.add((function, column.lower()))
                metrics.append(SqlMetric(
                    column_name=column,
                    aggregate_function=function,
                    alias=metric_alias(function, column),
                    priority=self._metric_priority(column, terms)
                ))

        if not metrics and profile.intent_type == IntentType.ANALYTICAL:
            column = self._default_metric_column(available_columns)
            if column:
                metrics.append(SqlMetric(
                    column_name=column,
                    aggregate_function="SUM",
                    alias=metric_alias("SUM", column),
                    priority=0.5
                ))

        # sorted() is stable so equal priorities keep discovery order
        metrics = sorted(metrics, key=lambda metric: metric.priority, reverse=True)
        if strategy != AggregationStrategy.DETAILED:
            metrics = metrics[:MAX_METRICS]
        return metrics

    def extract_dimensions(
        self,
        profile: BusinessContextProfile,
        available_columns: List[str],
        strategy: AggregationStrategy = AggregationStrategy.OPTIMAL
    ) -> List[SqlDimension]:
        terms = [term.lower() for term in profile.business_terms]
        dimensions: List[SqlDimension] = []
        seen = set()

        for keyword in DIMENSION_KEYWORDS:
            if not self.scorer.term_matches(terms, [keyword]):
                continue
            matched = self.scorer.filter(available_columns, [keyword])
            # Prefer descriptive columns over the keys of the same concept
            matched = [column for column in matched if not is_key_column(column)] or matched
            for column in matched:
                if column.lower() in seen:
                    continue
                seen.add(column.lower())
                dimensions.append(SqlDimension(
                    column_name=column,
                    alias=dimension_alias(column),
                    priority=self._dimension_priority(column, terms)
                ))

        if profile.time_context is not None:
            time_columns = self.scorer.filter(available_columns, ["date", "time"])
            if time_columns:
                column = time_columns[0]
                dimensions = [d for d in dimensions if d.column_name.lower() != column.lower()]
                dimensions.append(SqlDimension(
                    column_name=column,
                    alias=dimension_alias(column),
                    priority=TIME_DIMENSION_PRIORITY
                ))

        dimensions = sorted(dimensions, key=lambda dimension: dimension.priority, reverse=True)
        if strategy != AggregationStrategy.DETAILED:
            dimensions = dimensions[:MAX_DIMENSIONS]
        return dimensions

    def _is_generic_metric(self, column: str) -> bool:
        # "CountryName" contains "count" but is a dimension
        return (
            self.scorer.matches(column, GENERIC_METRIC_HINTS)
            and not self.scorer.matches(column, DIMENSION_KEYWORDS)
        )

    def _default_metric_column(self, available_columns: List[str]) -> Optional[str]:
        for keyword in DEFAULT_METRIC_KEYWORDS:
            for column in available_columns:
                if keyword in column.lower() and not is_key_column(column):
                    return column
        return None

    def _metric_priority(self, column: str, terms: List[str]) -> float:
        priority = 0.5
        if self.scorer.mentioned_in(column, terms):
            priority += 0.3
        if self.scorer.matches(column, ["amount", "revenue"]):
            priority += 0.2
        return min(priority, 1.0)

    def _dimension_priority(self, column: str, terms: List[str]) -> float:
        priority = 0.5
        if self.scorer.mentioned_in(column, terms):
            priority += 0.3
        if self.scorer.matches(column, ["country", "date"]):
            priority += 0.2
        return min(priority, 1.0)

    # ------------------------------------------------------------------
    # Clause rendering
    # ------------------------------------------------------------------

    def _select_clause(
        self,
        metrics: List[SqlMetric],
        dimensions: List[SqlDimension],
        strategy: AggregationStrategy
    ) -> str:
        items = [f"{dimension.column_name} AS {dimension.alias}" for dimension in dimensions]
        items.extend(
            f"{metric.aggregate_function}({metric.column_name}) AS {metric.alias}"
            for metric in metrics
        )
        if strategy == AggregationStrategy.PERFORMANCE:
            return "SELECT TOP 100 " + ", ".join(items)
        return "SELECT " + ", ".join(items)

    def _group_by_clause(self, dimensions: List[SqlDimension]) -> str:
        if not dimensions:
            return ""
        return "GROUP BY " + ", ".join(dimension.column_name for dimension in dimensions)

    def _order_by_clause(
        self,
        metrics: List[SqlMetric],
        dimensions: List[SqlDimension],
        intent_type: IntentType
    ) -> str:
        if intent_type == IntentType.ANALYTICAL and metrics:
            return f"ORDER BY {metrics[0].alias} DESC"

        for dimension in dimensions:
            if "date" in dimension.column_name.lower():
                return f"ORDER BY {dimension.alias} DESC"

        if dimensions:
            return f"ORDER BY {dimensions[0].alias} ASC"
        return ""

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_aggregation(
        self,
        metrics: List[SqlMetric],
        dimensions: List[SqlDimension],
        available_columns: List[str]
    ) -> AggregationValidationResult:
        """Partition metrics and dimensions by whether their column exists"""
        available = {column.lower() for column in available_columns}
        warnings = []

        valid_metrics, invalid_metrics = [], []
        for metric in metrics:
            if metric.column_name.lower() in available:
                valid_metrics.append(metric)
            else:
                invalid_metrics.append(metric)
                warnings.append(f"Metric column '{metric.column_name}' not found")

        valid_dimensions, invalid_dimensions = [], []
        for dimension in dimensions:
            if dimension.column_name.lower() in available:
                valid_dimensions.append(dimension)
            else:
                invalid_dimensions.append(dimension)
                warnings.append(f"Dimension column '{dimension.column_name}' not found")

        return AggregationValidationResult(
            is_valid=bool(valid_metrics or valid_dimensions),
            valid_metrics=valid_metrics,
            invalid_metrics=invalid_metrics,
            valid_dimensions=valid_dimensions,
            invalid_dimensions=invalid_dimensions,
            warnings=warnings
        )


def is_key_column(column: str) -> bool:
    """Surrogate or foreign key such as "CountryID" or "player_id" """
    name = column.lower()
    return name == "id" or name.endswith("_id") or column.endswith(("ID", "Id"))


def metric_alias(function: str, column: str) -> str:
    return f"{function}{strip_separators(column)}"


def dimension_alias(column: str) -> str:
    return strip_separators(column)


def aggregation_quality(result: SqlAggregationResult) -> float:
    quality = 1.0
    if result.metrics and result.dimensions:
        quality += 0.3
    if result.strategy == AggregationStrategy.OPTIMAL:
        quality += 0.2
    if len(result.metrics) + len(result.dimensions) <= 8:
        quality += 0.1
    return round(quality, 4)
