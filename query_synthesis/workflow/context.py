"""Collaborators shared by the workflow nodes"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from langchain_core.runnables import RunnableConfig

from ..models import PipelineStep, TraceEntry
from ..planning import AggregationPlanner, DateFilterPlanner, JoinPathPlanner
from ..services.interfaces import BusinessContextAnalyzer, MetadataRetriever, RelationshipCatalog
from ..services.redis_publisher import TracePublisher

logger = logging.getLogger(__name__)


@dataclass
class SynthesisContext:
    """
    Everything the nodes need besides the state.

    Passed to the compiled graph as ``config["configurable"]["context"]`` so
    one compiled graph serves every request.
    """
    analyzer: BusinessContextAnalyzer
    metadata_retriever: MetadataRetriever
    catalog: RelationshipCatalog
    join_planner: Optional[JoinPathPlanner] = None
    date_filter_planner: DateFilterPlanner = field(default_factory=DateFilterPlanner)
    aggregation_planner: AggregationPlanner = field(default_factory=AggregationPlanner)
    publisher: Optional[TracePublisher] = None

    def __post_init__(self):
        if self.join_planner is None:
            self.join_planner = JoinPathPlanner(self.catalog)


def get_context(config: RunnableConfig) -> SynthesisContext:
    return config["configurable"]["context"]


async def record_step(
    context: SynthesisContext,
    trace_id: str,
    step: PipelineStep,
    status: str = "success",
    confidence: Optional[float] = None,
    detail: Optional[Dict[str, Any]] = None
) -> TraceEntry:
    """Build a trace entry for a finished step and publish it best-effort"""
    entry = TraceEntry(
        trace_id=trace_id,
        step=step,
        status=status,
        confidence=confidence,
        detail=detail or {}
    )
    if context.publisher is not None:
        await context.publisher.publish_trace(entry)
    return entry
