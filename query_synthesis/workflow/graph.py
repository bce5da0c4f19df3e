"""LangGraph workflow for SQL synthesis"""
import logging
from typing import Literal

from langgraph.graph import StateGraph, END

from .state import SynthesisState
from .nodes import (
    semantic_analysis,
    schema_retrieval,
    relationship_discovery,
    join_generation,
    date_filter_generation,
    aggregation_generation,
    sql_assembly,
    error_handler
)

logger = logging.getLogger(__name__)

# (node name, next node) in execution order
PIPELINE = [
    ("analyze_context", "retrieve_schema"),
    ("retrieve_schema", "discover_relationships"),
    ("discover_relationships", "generate_joins"),
    ("generate_joins", "generate_date_filter"),
    ("generate_date_filter", "generate_aggregation"),
    ("generate_aggregation", "assemble_sql"),
]


def check_for_errors(state: SynthesisState) -> Literal["continue", "error"]:
    """
    Check if any node has set an error in state.

    Args:
        state: Current workflow state

    Returns:
        "error" if error exists, "continue" otherwise
    """
    if state.get("error"):
        return "error"
    return "continue"


def create_synthesis_workflow() -> StateGraph:
    """
    Create and compile the LangGraph workflow for SQL synthesis.

    The workflow:
    1. Analyze business context -> intent, terms, time range
    2. Retrieve schema -> relevant tables and columns
    3. Discover relationships -> foreign keys and joinability
    4. Generate joins -> FROM/JOIN clause
    5. Generate date filter -> WHERE clause
    6. Generate aggregation -> SELECT, GROUP BY, ORDER BY
    7. Assemble SQL -> final statement and confidence

    Any node that sets ``error`` routes to the error recorder and ends the run.

    Returns:
        Compiled workflow graph
    """
    workflow = StateGraph(SynthesisState)

    workflow.add_node("analyze_context", semantic_analysis.analyze_business_context)
    workflow.add_node("retrieve_schema", schema_retrieval.retrieve_schema)
    workflow.add_node("discover_relationships", relationship_discovery.discover_relationships)
    workflow.add_node("generate_joins", join_generation.generate_joins)
    workflow.add_node("generate_date_filter", date_filter_generation.generate_date_filter)
    workflow.add_node("generate_aggregation", aggregation_generation.generate_aggregation)
    workflow.add_node("assemble_sql", sql_assembly.assemble)
    workflow.add_node("record_error", error_handler.record_error)

    workflow.set_entry_point("analyze_context")

    for node, next_node in PIPELINE:
        workflow.add_conditional_edges(
            node,
            check_for_errors,
            {
                "continue": next_node,
                "error": "record_error"
            }
        )

    workflow.add_conditional_edges(
        "assemble_sql",
        check_for_errors,
        {
            "continue": END,
            "error": "record_error"
        }
    )
    workflow.add_edge("record_error", END)

    compiled = workflow.compile()

    logger.info("Synthesis workflow compiled successfully")

    return compiled


# Global workflow instance (created once)
_workflow = None


def get_workflow() -> StateGraph:
    """Get global workflow instance"""
    global _workflow
    if _workflow is None:
        _workflow = create_synthesis_workflow()
    return _workflow
