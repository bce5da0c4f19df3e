"""Business-context analysis node"""
import logging
from typing import Any, Dict

from langchain_core.runnables import RunnableConfig

from ...exceptions import CircuitBreakerOpenError
from ...models import PipelineStep
from ...resilience.policies import is_transient_ai_error
from ..context import get_context, record_step
from ..state import SynthesisState

logger = logging.getLogger(__name__)


async def analyze_business_context(state: SynthesisState, config: RunnableConfig) -> Dict[str, Any]:
    """
    Produce the business-context profile for the question.

    A profile supplied by the caller is used as-is.

    Args:
        state: Current workflow state
        config: Runnable config carrying the SynthesisContext

    Returns:
        Updated state with business_profile
    """
    context = get_context(config)
    trace_id = state["trace_id"]
    question = state["question"]

    logger.info(f"[{trace_id}] ===== SEMANTIC ANALYSIS START =====")

    try:
        profile = state.get("business_profile")
        source = "caller"
        if profile is None:
            logger.info(f"[{trace_id}] Analyzing question: {question}")
            profile = await context.analyzer.analyze(question)
            source = "analyzer"

        logger.info(f"[{trace_id}]   - Intent: {profile.intent_type.value}")
        logger.info(f"[{trace_id}]   - Business terms: {profile.business_terms}")
        logger.info(f"[{trace_id}]   - Time context: {profile.time_context}")
        logger.info(f"[{trace_id}] ===== SEMANTIC ANALYSIS END (SUCCESS) =====")

        entry = await record_step(
            context, trace_id, PipelineStep.SEMANTIC_ANALYSIS,
            confidence=profile.confidence_score,
            detail={
                "source": source,
                "intent_type": profile.intent_type.value,
                "business_terms": profile.business_terms,
            }
        )
        return {
            "business_profile": profile,
            "current_step": PipelineStep.SEMANTIC_ANALYSIS,
            "trace": [entry]
        }

    except Exception as e:
        logger.exception(f"[{trace_id}] ===== SEMANTIC ANALYSIS END (ERROR) =====")
        unavailable = isinstance(e, CircuitBreakerOpenError) or is_transient_ai_error(e)
        return {
            "error": f"Failed to analyze business context: {str(e)}",
            "error_code": "SERVICE_UNAVAILABLE" if unavailable else "SEMANTIC_ANALYSIS_ERROR",
            "failed_step": PipelineStep.SEMANTIC_ANALYSIS
        }
