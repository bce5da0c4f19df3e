"""Foreign key discovery node"""
import logging
from typing import Any, Dict

from langchain_core.runnables import RunnableConfig

from ...models import PipelineStep
from ..context import get_context, record_step
from ..state import SynthesisState

logger = logging.getLogger(__name__)


async def discover_relationships(state: SynthesisState, config: RunnableConfig) -> Dict[str, Any]:
    """Look up foreign keys between the retrieved tables and check they connect"""
    context = get_context(config)
    trace_id = state["trace_id"]
    tables = state["schema_context"].table_names

    logger.info(f"[{trace_id}] ===== RELATIONSHIP DISCOVERY START =====")

    try:
        relationships = await context.catalog.get_relationships_for_tables(tables)
        validation = await context.join_planner.validate_joinability(tables)

        logger.info(f"[{trace_id}] Found {len(relationships)} relationships for {len(tables)} tables")
        for warning in validation.warnings:
            logger.warning(f"[{trace_id}] {warning}")

        logger.info(f"[{trace_id}] ===== RELATIONSHIP DISCOVERY END (SUCCESS) =====")

        entry = await record_step(
            context, trace_id, PipelineStep.RELATIONSHIP_DISCOVERY,
            status="success" if validation.is_valid else "degraded",
            detail={
                "relationship_count": len(relationships),
                "connected_tables": validation.connected_tables,
                "isolated_tables": validation.isolated_tables,
            }
        )
        return {
            "relationships": relationships,
            "current_step": PipelineStep.RELATIONSHIP_DISCOVERY,
            "warnings": validation.warnings,
            "trace": [entry]
        }

    except Exception as e:
        logger.exception(f"[{trace_id}] ===== RELATIONSHIP DISCOVERY END (ERROR) =====")
        return {
            "error": f"Failed to discover table relationships: {str(e)}",
            "error_code": "RELATIONSHIP_DISCOVERY_ERROR",
            "failed_step": PipelineStep.RELATIONSHIP_DISCOVERY
        }
