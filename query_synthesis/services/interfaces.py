"""
Abstract interfaces for the collaborators around the synthesis core
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from ..models import (
    BusinessContextProfile,
    ForeignKeyRelationship,
    JoinPath,
    QueryFeedback,
    QueryHistoryItem,
    QueryPerformanceMetrics,
    QueryRequest,
    QueryResponse,
    SchemaContext,
    SemanticMatch,
    StreamingEvent,
)


class RelationshipCatalog(ABC):
    """Source of foreign key relationships and precomputed join paths"""

    @abstractmethod
    async def get_relationships_for_tables(
        self,
        table_names: List[str]
    ) -> List[ForeignKeyRelationship]:
        """
        Get every foreign key touching any of the given tables

        Args:
            table_names: Requested table names

        Returns:
            List of relationships
        """
        pass

    @abstractmethod
    async def generate_join_paths(self, table_names: List[str]) -> List[JoinPath]:
        """
        Compute shortest join paths between every pair of requested tables

        Args:
            table_names: Requested table names

        Returns:
            Join paths ordered by ascending path length
        """
        pass


class BusinessContextAnalyzer(ABC):
    """Turns a raw user question into a business-context profile"""

    @abstractmethod
    async def analyze(self, question: str) -> BusinessContextProfile:
        pass


class MetadataRetriever(ABC):
    """Supplies the table/column catalog relevant to a question"""

    @abstractmethod
    async def get_relevant_metadata(
        self,
        question: str,
        profile: BusinessContextProfile,
        tables: Optional[List[str]] = None
    ) -> SchemaContext:
        """
        Retrieve table and column metadata

        Args:
            question: Original user question
            profile: Analyzed business context
            tables: Explicit table set; when given only these are returned

        Returns:
            Schema context with the relevant tables
        """
        pass


class SimilarityService(ABC):
    """Scores prior queries by meaning similarity"""

    @abstractmethod
    async def find_similar(
        self,
        natural_language_query: str,
        sql_query: str = ""
    ) -> Optional[SemanticMatch]:
        """Return the best scoring prior query, or None"""
        pass

    @abstractmethod
    async def index(
        self,
        fingerprint: str,
        natural_language_query: str,
        sql_query: str,
        tables: List[str],
        expires_at: Optional[datetime] = None
    ) -> None:
        """Index a query whose cached value expires at ``expires_at``"""
        pass

    @abstractmethod
    async def remove(self, fingerprint: str) -> None:
        """Drop one indexed query"""
        pass

    @abstractmethod
    async def remove_for_table(self, table_name: str) -> List[str]:
        """Drop indexed queries referencing a table; returns their fingerprints"""
        pass


class AIService(ABC):
    """AI-assisted text generation"""

    @abstractmethod
    async def generate_sql(self, prompt: str) -> str:
        pass

    @abstractmethod
    async def generate_insight(self, question: str, rows: List[Dict[str, Any]]) -> str:
        pass

    @abstractmethod
    async def generate_explanation(self, sql: str) -> str:
        pass

    @abstractmethod
    def stream_sql(self, prompt: str) -> AsyncIterator[StreamingEvent]:
        """Yield chunk events followed by one complete event"""
        pass

    @abstractmethod
    def stream_insight(self, question: str, rows: List[Dict[str, Any]]) -> AsyncIterator[StreamingEvent]:
        pass

    @abstractmethod
    def stream_explanation(self, sql: str) -> AsyncIterator[StreamingEvent]:
        pass


class QueryExecutor(ABC):
    """Runs read-only SQL against the reporting store"""

    @abstractmethod
    async def execute(self, sql: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        pass


class QueryService(ABC):
    """
    Public query-processing contract.

    Implemented by the plain service and by the resilient decorator that
    wraps it, so callers never know which one they hold.
    """

    @abstractmethod
    async def process_query(self, request: QueryRequest) -> QueryResponse:
        pass

    @abstractmethod
    async def execute_query(self, sql: str) -> QueryResponse:
        pass

    @abstractmethod
    async def get_query_history(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 20
    ) -> List[QueryHistoryItem]:
        pass

    @abstractmethod
    async def submit_feedback(self, feedback: QueryFeedback, user_id: str) -> bool:
        pass

    @abstractmethod
    async def get_query_suggestions(
        self,
        user_id: str,
        context: Optional[str] = None
    ) -> List[str]:
        pass

    @abstractmethod
    async def get_cached_query(self, query_hash: str) -> Optional[QueryResponse]:
        pass

    @abstractmethod
    async def cache_query(
        self,
        query_hash: str,
        response: QueryResponse,
        expiry_seconds: Optional[int] = None
    ) -> None:
        pass

    @abstractmethod
    async def get_query_performance(self, query_hash: str) -> QueryPerformanceMetrics:
        pass

    @abstractmethod
    async def invalidate_query_cache(self, pattern: str) -> int:
        pass
