"""Pydantic models for synthesis inputs, planner results and service responses"""
from datetime import date, datetime
from enum import Enum
from typing import Optional, Dict, Any, List, Literal

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Enumerations
# ============================================================================

class IntentType(str, Enum):
    """Kind of analytical intent extracted upstream"""
    ANALYTICAL = "Analytical"
    OPERATIONAL = "Operational"
    EXPLORATORY = "Exploratory"
    COMPARISON = "Comparison"
    TREND = "Trend"


class Granularity(str, Enum):
    """Time-bucket size of a time range"""
    DAY = "Day"
    WEEK = "Week"
    MONTH = "Month"
    QUARTER = "Quarter"
    YEAR = "Year"


class JoinStrategy(str, Enum):
    OPTIMAL = "Optimal"
    LEFT_JOIN = "LeftJoin"
    INNER_JOIN = "InnerJoin"
    MINIMAL_PATH = "MinimalPath"


class DateFilterStrategy(str, Enum):
    OPTIMAL = "Optimal"
    INCLUSIVE = "Inclusive"
    EXCLUSIVE = "Exclusive"
    PERFORMANCE = "Performance"


class AggregationStrategy(str, Enum):
    OPTIMAL = "Optimal"
    PERFORMANCE = "Performance"
    DETAILED = "Detailed"


class PipelineStep(str, Enum):
    """Steps of the synthesis state machine, in execution order"""
    STARTED = "Started"
    SEMANTIC_ANALYSIS = "SemanticAnalysis"
    SCHEMA_RETRIEVAL = "SchemaRetrieval"
    RELATIONSHIP_DISCOVERY = "RelationshipDiscovery"
    JOIN_GENERATION = "JoinGeneration"
    DATE_FILTER_GENERATION = "DateFilterGeneration"
    AGGREGATION_GENERATION = "AggregationGeneration"
    SQL_ASSEMBLY = "SqlAssembly"
    COMPLETED = "Completed"
    ERROR = "Error"


# ============================================================================
# Relationship Models
# ============================================================================

class ForeignKeyRelationship(BaseModel):
    """Foreign key edge between two tables"""
    model_config = ConfigDict(frozen=True)

    parent_table: str
    parent_column: str
    referenced_table: str
    referenced_column: str


class JoinCondition(BaseModel):
    """Single equality condition of a join path hop"""
    left_table: str
    left_column: str
    right_table: str
    right_column: str


class JoinPath(BaseModel):
    """Sequence of foreign key hops connecting two tables"""
    from_table: str
    to_table: str
    path_length: int
    performance_score: float
    is_optimal: bool = False
    join_conditions: List[JoinCondition] = Field(default_factory=list)


class SqlJoinResult(BaseModel):
    """FROM/JOIN clause produced by the join planner"""
    success: bool
    join_clause: str = ""
    table_aliases: Dict[str, str] = Field(default_factory=dict)
    join_paths: List[JoinPath] = Field(default_factory=list)
    primary_table: Optional[str] = None
    strategy: JoinStrategy = JoinStrategy.OPTIMAL
    metadata: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class JoinValidationResult(BaseModel):
    """Connectivity report for a table set"""
    is_valid: bool
    connected_tables: List[str] = Field(default_factory=list)
    isolated_tables: List[str] = Field(default_factory=list)
    available_relationships: int = 0
    warnings: List[str] = Field(default_factory=list)


# ============================================================================
# Temporal Models
# ============================================================================

class TimeRange(BaseModel):
    """Time window requested by the user"""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    granularity: Granularity = Granularity.DAY
    relative_expression: Optional[str] = None


class SqlDateFilterResult(BaseModel):
    """WHERE fragment produced by the temporal filter planner"""
    success: bool
    where_clause: str = ""
    date_columns: List[str] = Field(default_factory=list)
    strategy: DateFilterStrategy = DateFilterStrategy.OPTIMAL
    metadata: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class DateColumnValidationResult(BaseModel):
    """Result of checking whether a column looks temporal"""
    is_valid: bool
    column: str
    recommended_column: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)


# ============================================================================
# Aggregation Models
# ============================================================================

class SqlMetric(BaseModel):
    """Aggregated measure in the SELECT list"""
    column_name: str
    aggregate_function: Literal["SUM", "COUNT", "AVG", "MAX", "MIN"]
    alias: str
    priority: float = Field(0.5, ge=0.0, le=1.0)


class SqlDimension(BaseModel):
    """Grouping column in the SELECT list"""
    column_name: str
    alias: str
    priority: float = Field(0.5, ge=0.0, le=1.0)


class SqlAggregationResult(BaseModel):
    """SELECT/GROUP BY/ORDER BY fragments produced by the aggregation planner"""
    success: bool
    select_clause: str = ""
    group_by_clause: str = ""
    order_by_clause: str = ""
    metrics: List[SqlMetric] = Field(default_factory=list)
    dimensions: List[SqlDimension] = Field(default_factory=list)
    strategy: AggregationStrategy = AggregationStrategy.OPTIMAL
    metadata: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class AggregationValidationResult(BaseModel):
    """Partition of metrics and dimensions by column availability"""
    is_valid: bool
    valid_metrics: List[SqlMetric] = Field(default_factory=list)
    invalid_metrics: List[SqlMetric] = Field(default_factory=list)
    valid_dimensions: List[SqlDimension] = Field(default_factory=list)
    invalid_dimensions: List[SqlDimension] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


# ============================================================================
# Upstream Inputs
# ============================================================================

class BusinessContextProfile(BaseModel):
    """Structured analytical intent extracted from a user question"""
    intent_type: IntentType = IntentType.ANALYTICAL
    business_terms: List[str] = Field(default_factory=list)
    time_context: Optional[TimeRange] = None
    confidence_score: float = Field(0.5, ge=0.0, le=1.0)


class TableColumn(BaseModel):
    """Column metadata"""
    name: str
    type: str = ""
    description: Optional[str] = None


class TableMetadata(BaseModel):
    """Schema metadata for one table"""
    table_name: str
    schema_name: str = "default"
    columns: List[TableColumn] = Field(default_factory=list)
    relationships: List[ForeignKeyRelationship] = Field(default_factory=list)


class SchemaContext(BaseModel):
    """Relevant tables returned by business metadata retrieval"""
    tables: List[TableMetadata] = Field(default_factory=list)

    @property
    def table_names(self) -> List[str]:
        return [table.table_name for table in self.tables]


# ============================================================================
# Synthesis Output
# ============================================================================

class TraceEntry(BaseModel):
    """One recorded step of a synthesis run"""
    trace_id: str
    step: PipelineStep
    status: Literal["success", "degraded", "error"] = "success"
    confidence: Optional[float] = None
    detail: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class EnhancedQueryResult(BaseModel):
    """Outcome of one synthesis request"""
    success: bool
    trace_id: str
    generated_sql: str = ""
    business_profile: Optional[BusinessContextProfile] = None
    join_result: Optional[SqlJoinResult] = None
    date_filter_result: Optional[SqlDateFilterResult] = None
    aggregation_result: Optional[SqlAggregationResult] = None
    overall_confidence: float = Field(0.0, ge=0.0, le=1.0)
    processing_metadata: Dict[str, Any] = Field(default_factory=dict)
    trace: List[TraceEntry] = Field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[str] = None


# ============================================================================
# Query Service Models
# ============================================================================

class QueryRequest(BaseModel):
    """Request to synthesize and execute a query"""
    question: str
    user_id: str = "anonymous"
    tables: Optional[List[str]] = None
    profile: Optional[BusinessContextProfile] = None
    session_id: Optional[str] = None


class QueryResponse(BaseModel):
    """Structured result returned to callers, never an exception"""
    query_id: str = ""
    success: bool
    sql: str = ""
    data: List[Dict[str, Any]] = Field(default_factory=list)
    columns: List[str] = Field(default_factory=list)
    row_count: int = 0
    confidence: float = 0.0
    error: Optional[str] = None
    error_code: Optional[str] = None
    cached: bool = False
    execution_time_ms: int = 0
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class QueryHistoryItem(BaseModel):
    query_id: str
    user_id: str
    question: str
    sql: str
    success: bool
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class QueryFeedback(BaseModel):
    query_id: str
    feedback: Literal["positive", "negative", "neutral"]
    comments: Optional[str] = None
    suggested_improvement: Optional[str] = None


class QueryPerformanceMetrics(BaseModel):
    query_hash: str
    execution_time_ms: int = 0
    row_count: int = 0
    from_cache: bool = False
    executed_at: datetime = Field(default_factory=datetime.utcnow)


class StreamingEvent(BaseModel):
    """Event emitted by streaming AI generation"""
    type: Literal["chunk", "error", "complete"]
    content: str = ""
    is_fallback: bool = False


# ============================================================================
# Cache Models
# ============================================================================

class CacheEntry(BaseModel):
    """Stored response with its expiry"""
    key: str
    value: str
    created_at: datetime
    expires_at: datetime
    tables: List[str] = Field(default_factory=list)


class SemanticMatch(BaseModel):
    """Best similar prior query returned by the similarity service"""
    fingerprint: str
    score: float
    natural_language_query: str = ""
    sql_query: str = ""


class CacheWarmupReport(BaseModel):
    probed: int = 0
    hits: int = 0
    misses: List[str] = Field(default_factory=list)


class CacheStatistics(BaseModel):
    hits: int = 0
    semantic_hits: int = 0
    misses: int = 0
    writes: int = 0
    invalidations: int = 0
    errors: int = 0
