"""Clause planners for join, date filter and aggregation generation"""
from .aggregation_planner import AggregationPlanner
from .date_filter_planner import DateFilterPlanner
from .join_planner import JoinPathPlanner
from .scoring import ColumnScorer, KeywordColumnScorer

__all__ = [
    "AggregationPlanner",
    "DateFilterPlanner",
    "JoinPathPlanner",
    "ColumnScorer",
    "KeywordColumnScorer",
]
