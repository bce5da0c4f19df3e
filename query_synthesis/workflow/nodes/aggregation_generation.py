"""Aggregation generation node"""
import logging
from typing import Any, Dict, List

from langchain_core.runnables import RunnableConfig

from ...models import AggregationStrategy, PipelineStep, SchemaContext
from ..context import get_context, record_step
from ..state import SynthesisState

logger = logging.getLogger(__name__)

AGGREGATION_SUCCESS_CONFIDENCE = 0.8
AGGREGATION_FAILURE_CONFIDENCE = 0.5


def available_columns(schema: SchemaContext) -> List[str]:
    """Column names across all tables, first occurrence wins"""
    seen, columns = set(), []
    for table in schema.tables:
        for column in table.columns:
            if column.name.lower() not in seen:
                seen.add(column.name.lower())
                columns.append(column.name)
    return columns


async def generate_aggregation(state: SynthesisState, config: RunnableConfig) -> Dict[str, Any]:
    context = get_context(config)
    trace_id = state["trace_id"]
    strategy = state.get("aggregation_strategy", AggregationStrategy.OPTIMAL)

    logger.info(f"[{trace_id}] ===== AGGREGATION GENERATION START =====")

    try:
        result = context.aggregation_planner.generate_aggregation(
            state["business_profile"],
            available_columns(state["schema_context"]),
            strategy
        )

        if result.success:
            logger.info(f"[{trace_id}]   - Metrics: {[m.alias for m in result.metrics]}")
            logger.info(f"[{trace_id}]   - Dimensions: {[d.alias for d in result.dimensions]}")
            logger.info(f"[{trace_id}] ===== AGGREGATION GENERATION END (SUCCESS) =====")
        else:
            logger.warning(f"[{trace_id}] Aggregation planning failed: {result.error}")
            logger.warning(f"[{trace_id}] ===== AGGREGATION GENERATION END (DEGRADED) =====")

        entry = await record_step(
            context, trace_id, PipelineStep.AGGREGATION_GENERATION,
            status="success" if result.success else "degraded",
            confidence=AGGREGATION_SUCCESS_CONFIDENCE if result.success else AGGREGATION_FAILURE_CONFIDENCE,
            detail={
                "strategy": strategy.value,
                "select_clause": result.select_clause,
                "group_by_clause": result.group_by_clause,
                "error": result.error,
            }
        )
        return {
            "aggregation_result": result,
            "current_step": PipelineStep.AGGREGATION_GENERATION,
            "trace": [entry]
        }

    except Exception as e:
        logger.exception(f"[{trace_id}] ===== AGGREGATION GENERATION END (ERROR) =====")
        return {
            "error": f"Failed to generate aggregation: {str(e)}",
            "error_code": "AGGREGATION_GENERATION_ERROR",
            "failed_step": PipelineStep.AGGREGATION_GENERATION
        }
