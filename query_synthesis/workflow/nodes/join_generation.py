"""Join generation node"""
import logging
from typing import Any, Dict

from langchain_core.runnables import RunnableConfig

from ...models import JoinStrategy, PipelineStep
from ..context import get_context, record_step
from ..state import SynthesisState

logger = logging.getLogger(__name__)

JOIN_SUCCESS_CONFIDENCE = 0.9
JOIN_FAILURE_CONFIDENCE = 0.3


async def generate_joins(state: SynthesisState, config: RunnableConfig) -> Dict[str, Any]:
    """
    Plan the FROM/JOIN clause.

    A failed plan is recorded as a degraded step, not a pipeline error.
    """
    context = get_context(config)
    trace_id = state["trace_id"]
    tables = state["schema_context"].table_names
    strategy = state.get("join_strategy", JoinStrategy.OPTIMAL)

    logger.info(f"[{trace_id}] ===== JOIN GENERATION START =====")

    try:
        result = await context.join_planner.generate_joins(
            tables,
            primary_table=state.get("primary_table"),
            strategy=strategy
        )

        if result.success:
            logger.info(f"[{trace_id}] Join clause:\n{result.join_clause}")
            logger.info(f"[{trace_id}] ===== JOIN GENERATION END (SUCCESS) =====")
        else:
            logger.warning(f"[{trace_id}] Join planning failed: {result.error}")
            logger.warning(f"[{trace_id}] ===== JOIN GENERATION END (DEGRADED) =====")

        warnings = [
            f"Table '{table}' joined with CROSS JOIN"
            for table in result.metadata.get("cross_joined_tables", [])
        ]

        entry = await record_step(
            context, trace_id, PipelineStep.JOIN_GENERATION,
            status="success" if result.success else "degraded",
            confidence=JOIN_SUCCESS_CONFIDENCE if result.success else JOIN_FAILURE_CONFIDENCE,
            detail={
                "strategy": strategy.value,
                "primary_table": result.primary_table,
                "table_aliases": result.table_aliases,
                "error": result.error,
            }
        )
        return {
            "join_result": result,
            "current_step": PipelineStep.JOIN_GENERATION,
            "warnings": warnings,
            "trace": [entry]
        }

    except Exception as e:
        logger.exception(f"[{trace_id}] ===== JOIN GENERATION END (ERROR) =====")
        return {
            "error": f"Failed to generate joins: {str(e)}",
            "error_code": "JOIN_GENERATION_ERROR",
            "failed_step": PipelineStep.JOIN_GENERATION
        }
