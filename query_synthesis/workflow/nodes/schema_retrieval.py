"""Schema metadata retrieval node"""
import logging
from typing import Any, Dict

from langchain_core.runnables import RunnableConfig

from ...models import PipelineStep
from ..context import get_context, record_step
from ..state import SynthesisState

logger = logging.getLogger(__name__)


async def retrieve_schema(state: SynthesisState, config: RunnableConfig) -> Dict[str, Any]:
    """
    Fetch table and column metadata for the question.

    Args:
        state: Current workflow state
        config: Runnable config carrying the SynthesisContext

    Returns:
        Updated state with schema_context
    """
    context = get_context(config)
    trace_id = state["trace_id"]
    requested = state.get("requested_tables")

    logger.info(f"[{trace_id}] ===== SCHEMA RETRIEVAL START =====")

    try:
        schema = await context.metadata_retriever.get_relevant_metadata(
            state["question"],
            state["business_profile"],
            requested
        )

        if not schema.tables:
            logger.error(f"[{trace_id}] ===== SCHEMA RETRIEVAL END (ERROR) =====")
            return {
                "error": "No relevant tables found for the question",
                "error_code": "NO_TABLES_FOUND",
                "failed_step": PipelineStep.SCHEMA_RETRIEVAL
            }

        for table in schema.tables:
            logger.info(f"[{trace_id}]   - {table.table_name}: {len(table.columns)} columns")

        warnings = []
        if requested:
            found = {name.lower() for name in schema.table_names}
            missing = [table for table in requested if table.split(".")[-1].lower() not in found]
            warnings = [f"No metadata for requested table '{table}'" for table in missing]
            for warning in warnings:
                logger.warning(f"[{trace_id}] {warning}")

        logger.info(f"[{trace_id}] ===== SCHEMA RETRIEVAL END (SUCCESS) =====")

        entry = await record_step(
            context, trace_id, PipelineStep.SCHEMA_RETRIEVAL,
            status="degraded" if warnings else "success",
            detail={"tables": schema.table_names, "warnings": warnings}
        )
        return {
            "schema_context": schema,
            "current_step": PipelineStep.SCHEMA_RETRIEVAL,
            "warnings": warnings,
            "trace": [entry]
        }

    except Exception as e:
        logger.exception(f"[{trace_id}] ===== SCHEMA RETRIEVAL END (ERROR) =====")
        return {
            "error": f"Failed to retrieve schema metadata: {str(e)}",
            "error_code": "METADATA_RETRIEVAL_ERROR",
            "failed_step": PipelineStep.SCHEMA_RETRIEVAL
        }
