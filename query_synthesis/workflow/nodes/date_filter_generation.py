"""Temporal filter generation node"""
import logging
from typing import Any, Dict, List

from langchain_core.runnables import RunnableConfig

from ...models import DateFilterStrategy, PipelineStep, SchemaContext
from ..context import get_context, record_step
from ..state import SynthesisState

logger = logging.getLogger(__name__)

DATE_FILTER_SUCCESS_CONFIDENCE = 0.8
DATE_FILTER_FAILURE_CONFIDENCE = 0.5

TEMPORAL_TYPE_HINTS = ("date", "time")


def candidate_date_columns(schema: SchemaContext) -> List[str]:
    """
    Columns that look temporal by type or name; every column when none do.
    """
    temporal, all_columns = [], []
    for table in schema.tables:
        for column in table.columns:
            if column.name in all_columns:
                continue
            all_columns.append(column.name)
            text = f"{column.type} {column.name}".lower()
            if any(hint in text for hint in TEMPORAL_TYPE_HINTS):
                temporal.append(column.name)
    return temporal or all_columns


async def generate_date_filter(state: SynthesisState, config: RunnableConfig) -> Dict[str, Any]:
    context = get_context(config)
    trace_id = state["trace_id"]
    profile = state["business_profile"]
    strategy = state.get("date_filter_strategy", DateFilterStrategy.OPTIMAL)

    logger.info(f"[{trace_id}] ===== DATE FILTER GENERATION START =====")

    try:
        columns = candidate_date_columns(state["schema_context"])
        result = context.date_filter_planner.generate_date_filter(
            profile.time_context, columns, strategy
        )

        if result.success:
            logger.info(f"[{trace_id}] Date filter: {result.where_clause or '(none)'}")
            logger.info(f"[{trace_id}] ===== DATE FILTER GENERATION END (SUCCESS) =====")
        else:
            logger.warning(f"[{trace_id}] Date filter planning failed: {result.error}")
            logger.warning(f"[{trace_id}] ===== DATE FILTER GENERATION END (DEGRADED) =====")

        entry = await record_step(
            context, trace_id, PipelineStep.DATE_FILTER_GENERATION,
            status="success" if result.success else "degraded",
            confidence=DATE_FILTER_SUCCESS_CONFIDENCE if result.success else DATE_FILTER_FAILURE_CONFIDENCE,
            detail={
                "strategy": strategy.value,
                "date_columns": result.date_columns,
                "where_clause": result.where_clause,
                "error": result.error,
            }
        )
        return {
            "date_filter_result": result,
            "current_step": PipelineStep.DATE_FILTER_GENERATION,
            "trace": [entry]
        }

    except Exception as e:
        logger.exception(f"[{trace_id}] ===== DATE FILTER GENERATION END (ERROR) =====")
        return {
            "error": f"Failed to generate date filter: {str(e)}",
            "error_code": "DATE_FILTER_GENERATION_ERROR",
            "failed_step": PipelineStep.DATE_FILTER_GENERATION
        }
