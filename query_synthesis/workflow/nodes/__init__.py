"""Workflow nodes for LangGraph"""
from . import (
    semantic_analysis,
    schema_retrieval,
    relationship_discovery,
    join_generation,
    date_filter_generation,
    aggregation_generation,
    sql_assembly,
    error_handler
)

__all__ = [
    "semantic_analysis",
    "schema_retrieval",
    "relationship_discovery",
    "join_generation",
    "date_filter_generation",
    "aggregation_generation",
    "sql_assembly",
    "error_handler"
]
