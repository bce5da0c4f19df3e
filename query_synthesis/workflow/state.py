"""Workflow state definition for LangGraph"""
import operator
from typing import Annotated, Any, Dict, List, Optional, TypedDict

from ..models import (
    AggregationStrategy,
    BusinessContextProfile,
    DateFilterStrategy,
    ForeignKeyRelationship,
    JoinStrategy,
    PipelineStep,
    SchemaContext,
    SqlAggregationResult,
    SqlDateFilterResult,
    SqlJoinResult,
    TraceEntry,
)


class SynthesisState(TypedDict, total=False):
    """
    State definition for the synthesis workflow.

    Each node receives the current state and returns the keys it updates;
    ``trace`` entries are appended rather than replaced.
    """

    # ========================================================================
    # Input (Set at workflow start)
    # ========================================================================
    trace_id: str
    question: str
    requested_tables: Optional[List[str]]
    primary_table: Optional[str]
    join_strategy: JoinStrategy
    date_filter_strategy: DateFilterStrategy
    aggregation_strategy: AggregationStrategy

    # ========================================================================
    # Intermediate Results (Updated by nodes)
    # ========================================================================
    business_profile: Optional[BusinessContextProfile]
    schema_context: Optional[SchemaContext]
    relationships: List[ForeignKeyRelationship]
    join_result: Optional[SqlJoinResult]
    date_filter_result: Optional[SqlDateFilterResult]
    aggregation_result: Optional[SqlAggregationResult]
    warnings: Annotated[List[str], operator.add]

    # ========================================================================
    # Control Flow
    # ========================================================================
    current_step: PipelineStep
    error: Optional[str]
    error_code: Optional[str]
    failed_step: Optional[PipelineStep]
    trace: Annotated[List[TraceEntry], operator.add]

    # ========================================================================
    # Output (Final result)
    # ========================================================================
    generated_sql: Optional[str]
    overall_confidence: float
    component_confidences: Dict[str, Any]


def create_initial_state(
    trace_id: str,
    question: str,
    profile: Optional[BusinessContextProfile] = None,
    tables: Optional[List[str]] = None,
    primary_table: Optional[str] = None,
    join_strategy: JoinStrategy = JoinStrategy.OPTIMAL,
    date_filter_strategy: DateFilterStrategy = DateFilterStrategy.OPTIMAL,
    aggregation_strategy: AggregationStrategy = AggregationStrategy.OPTIMAL
) -> SynthesisState:
    """
    Create initial workflow state.

    Args:
        trace_id: Caller-visible identifier for this run
        question: User's question
        profile: Already analyzed profile; skips semantic analysis when given
        tables: Explicit table set; skips table ranking when given
        primary_table: Preferred driving table for joins
        join_strategy: Join planner strategy
        date_filter_strategy: Temporal filter strategy
        aggregation_strategy: Aggregation planner strategy

    Returns:
        Initial workflow state
    """
    return SynthesisState(
        # Input
        trace_id=trace_id,
        question=question,
        requested_tables=tables,
        primary_table=primary_table,
        join_strategy=join_strategy,
        date_filter_strategy=date_filter_strategy,
        aggregation_strategy=aggregation_strategy,

        # Intermediate
        business_profile=profile,
        schema_context=None,
        relationships=[],
        join_result=None,
        date_filter_result=None,
        aggregation_result=None,
        warnings=[],

        # Control flow
        current_step=PipelineStep.STARTED,
        error=None,
        error_code=None,
        failed_step=None,
        trace=[TraceEntry(trace_id=trace_id, step=PipelineStep.STARTED, detail={"question": question})],

        # Output
        generated_sql=None,
        overall_confidence=0.0,
        component_confidences={}
    )
