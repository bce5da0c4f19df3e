"""Synthesis orchestrator: runs the workflow and shapes its result"""
import logging
import time
import uuid
from typing import List, Optional

from ..models import (
    AggregationStrategy,
    BusinessContextProfile,
    DateFilterStrategy,
    EnhancedQueryResult,
    JoinStrategy,
)
from .context import SynthesisContext
from .graph import get_workflow
from .state import create_initial_state

logger = logging.getLogger(__name__)


class SynthesisOrchestrator:
    """
    Turns a question (and optionally an analyzed profile) into SQL.

    Steps run strictly in order; the first hard failure ends the run with
    ``success=False`` and no SQL. Planner failures only lower confidence.
    """

    def __init__(self, context: SynthesisContext):
        self.context = context
        self.workflow = get_workflow()

    async def synthesize(
        self,
        question: str,
        profile: Optional[BusinessContextProfile] = None,
        tables: Optional[List[str]] = None,
        trace_id: Optional[str] = None,
        primary_table: Optional[str] = None,
        join_strategy: JoinStrategy = JoinStrategy.OPTIMAL,
        date_filter_strategy: DateFilterStrategy = DateFilterStrategy.OPTIMAL,
        aggregation_strategy: AggregationStrategy = AggregationStrategy.OPTIMAL
    ) -> EnhancedQueryResult:
        """
        Run the synthesis pipeline.

        Args:
            question: User's question
            profile: Business-context profile; analyzed from the question when omitted
            tables: Table set to use instead of ranked retrieval
            trace_id: Caller-visible id for logs and trace entries; generated when omitted
            primary_table: Preferred driving table for joins
            join_strategy: Join planner strategy
            date_filter_strategy: Temporal filter strategy
            aggregation_strategy: Aggregation planner strategy

        Returns:
            EnhancedQueryResult with SQL, confidence and the step trace
        """
        trace_id = trace_id or str(uuid.uuid4())
        start = time.monotonic()

        logger.info(f"[{trace_id}] Starting SQL synthesis: {question}")

        initial_state = create_initial_state(
            trace_id=trace_id,
            question=question,
            profile=profile,
            tables=tables,
            primary_table=primary_table,
            join_strategy=join_strategy,
            date_filter_strategy=date_filter_strategy,
            aggregation_strategy=aggregation_strategy
        )

        final_state = await self.workflow.ainvoke(
            initial_state,
            config={"configurable": {"context": self.context}}
        )

        duration_ms = int((time.monotonic() - start) * 1000)
        schema = final_state.get("schema_context")
        join_result = final_state.get("join_result")
        metadata = {
            "duration_ms": duration_ms,
            "tables": schema.table_names if schema else [],
            "warnings": final_state.get("warnings", []),
            "primary_table": join_result.primary_table if join_result else None,
            "component_confidences": final_state.get("component_confidences", {}),
        }

        if final_state.get("error"):
            failed_step = final_state.get("failed_step")
            metadata["failed_step"] = failed_step.value if failed_step else None
            logger.error(f"[{trace_id}] SQL synthesis failed after {duration_ms}ms")
            return EnhancedQueryResult(
                success=False,
                trace_id=trace_id,
                business_profile=final_state.get("business_profile"),
                processing_metadata=metadata,
                trace=final_state.get("trace", []),
                error=final_state["error"],
                error_code=final_state.get("error_code")
            )

        logger.info(f"[{trace_id}] SQL synthesis completed in {duration_ms}ms")
        return EnhancedQueryResult(
            success=True,
            trace_id=trace_id,
            generated_sql=final_state.get("generated_sql") or "",
            business_profile=final_state.get("business_profile"),
            join_result=join_result,
            date_filter_result=final_state.get("date_filter_result"),
            aggregation_result=final_state.get("aggregation_result"),
            overall_confidence=final_state.get("overall_confidence", 0.0),
            processing_metadata=metadata,
            trace=final_state.get("trace", [])
        )
