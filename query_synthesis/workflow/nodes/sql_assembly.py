"""SQL assembly node"""
import logging
from typing import Any, Dict, List, Optional

from langchain_core.runnables import RunnableConfig

from ...models import (
    BusinessContextProfile,
    PipelineStep,
    SqlAggregationResult,
    SqlDateFilterResult,
    SqlJoinResult,
)
from ..context import get_context, record_step
from ..state import SynthesisState
from .aggregation_generation import AGGREGATION_FAILURE_CONFIDENCE, AGGREGATION_SUCCESS_CONFIDENCE
from .date_filter_generation import DATE_FILTER_FAILURE_CONFIDENCE, DATE_FILTER_SUCCESS_CONFIDENCE
from .join_generation import JOIN_FAILURE_CONFIDENCE, JOIN_SUCCESS_CONFIDENCE

logger = logging.getLogger(__name__)

DEFAULT_SELECT = "SELECT TOP 100 *"


def assemble_sql(
    tables: List[str],
    join_result: Optional[SqlJoinResult],
    date_filter_result: Optional[SqlDateFilterResult],
    aggregation_result: Optional[SqlAggregationResult]
) -> str:
    """
    One clause per line: SELECT, FROM/JOIN, WHERE, GROUP BY, ORDER BY.
    """
    aggregation_ok = aggregation_result is not None and aggregation_result.success
    lines = [
        aggregation_result.select_clause
        if aggregation_ok and aggregation_result.select_clause
        else DEFAULT_SELECT
    ]

    if join_result is not None and join_result.success and join_result.join_clause:
        lines.append(join_result.join_clause)
    elif tables:
        # Single table, or join planning failed: drive from the first table
        primary = join_result.primary_table if join_result and join_result.primary_table else tables[0]
        lines.append(f"FROM {primary}")

    if date_filter_result is not None and date_filter_result.success and date_filter_result.where_clause:
        lines.append(f"WHERE {date_filter_result.where_clause}")

    if aggregation_ok:
        if aggregation_result.group_by_clause:
            lines.append(aggregation_result.group_by_clause)
        if aggregation_result.order_by_clause:
            lines.append(aggregation_result.order_by_clause)

    return "\n".join(lines)


def calculate_overall_confidence(
    profile: Optional[BusinessContextProfile],
    join_result: Optional[SqlJoinResult],
    date_filter_result: Optional[SqlDateFilterResult],
    aggregation_result: Optional[SqlAggregationResult]
) -> Dict[str, float]:
    """
    Mean of the four component confidences.

    A blended heuristic signal, not a calibrated probability.
    """
    components = {
        "business_context": profile.confidence_score if profile else 0.0,
        "join": JOIN_SUCCESS_CONFIDENCE if join_result and join_result.success else JOIN_FAILURE_CONFIDENCE,
        "date_filter": (
            DATE_FILTER_SUCCESS_CONFIDENCE if date_filter_result and date_filter_result.success
            else DATE_FILTER_FAILURE_CONFIDENCE
        ),
        "aggregation": (
            AGGREGATION_SUCCESS_CONFIDENCE if aggregation_result and aggregation_result.success
            else AGGREGATION_FAILURE_CONFIDENCE
        ),
    }
    overall = sum(components.values()) / len(components)
    components["overall"] = min(1.0, max(0.0, overall))
    return components


async def assemble(state: SynthesisState, config: RunnableConfig) -> Dict[str, Any]:
    context = get_context(config)
    trace_id = state["trace_id"]

    logger.info(f"[{trace_id}] ===== SQL ASSEMBLY START =====")

    try:
        join_result = state.get("join_result")
        date_filter_result = state.get("date_filter_result")
        aggregation_result = state.get("aggregation_result")

        sql = assemble_sql(
            state["schema_context"].table_names,
            join_result,
            date_filter_result,
            aggregation_result
        )
        confidences = calculate_overall_confidence(
            state.get("business_profile"), join_result, date_filter_result, aggregation_result
        )

        logger.info(f"[{trace_id}] Generated SQL:\n{sql}")
        logger.info(f"[{trace_id}] Overall confidence: {confidences['overall']:.2f}")
        logger.info(f"[{trace_id}] ===== SQL ASSEMBLY END (SUCCESS) =====")

        assembled = await record_step(
            context, trace_id, PipelineStep.SQL_ASSEMBLY,
            confidence=confidences["overall"],
            detail={"sql": sql, "confidences": confidences}
        )
        completed = await record_step(
            context, trace_id, PipelineStep.COMPLETED,
            confidence=confidences["overall"]
        )
        return {
            "generated_sql": sql,
            "overall_confidence": confidences["overall"],
            "component_confidences": confidences,
            "current_step": PipelineStep.COMPLETED,
            "trace": [assembled, completed]
        }

    except Exception as e:
        logger.exception(f"[{trace_id}] ===== SQL ASSEMBLY END (ERROR) =====")
        return {
            "error": f"Failed to assemble SQL: {str(e)}",
            "error_code": "SQL_ASSEMBLY_ERROR",
            "failed_step": PipelineStep.SQL_ASSEMBLY
        }
