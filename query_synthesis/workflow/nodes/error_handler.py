"""Terminal error node"""
import logging
from typing import Any, Dict

from langchain_core.runnables import RunnableConfig

from ...models import PipelineStep
from ..context import get_context, record_step
from ..state import SynthesisState

logger = logging.getLogger(__name__)


async def record_error(state: SynthesisState, config: RunnableConfig) -> Dict[str, Any]:
    """Record the failure in the trace; no SQL survives an error"""
    context = get_context(config)
    trace_id = state["trace_id"]
    failed_step = state.get("failed_step")

    logger.error(
        f"[{trace_id}] Synthesis failed at {failed_step.value if failed_step else 'unknown step'}: "
        f"{state.get('error')}"
    )

    entry = await record_step(
        context, trace_id, PipelineStep.ERROR,
        status="error",
        detail={
            "failed_step": failed_step.value if failed_step else None,
            "error": state.get("error"),
            "error_code": state.get("error_code"),
        }
    )
    return {
        "generated_sql": None,
        "overall_confidence": 0.0,
        "current_step": PipelineStep.ERROR,
        "trace": [entry]
    }
