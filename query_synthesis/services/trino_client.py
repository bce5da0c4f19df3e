"""Trino client for executing read-only SQL"""
import asyncio
import logging
import re
from typing import Any, Dict, List, Optional

import trino
from trino.auth import BasicAuthentication
from trino.exceptions import HttpError, TrinoQueryError

from ..config import settings
from ..exceptions import QueryExecutionError
from .interfaces import QueryExecutor

logger = logging.getLogger(__name__)

_TOP_PATTERN = re.compile(r"^\s*SELECT\s+TOP\s+(\d+)\s+", re.IGNORECASE)


def apply_row_limit(sql: str, limit: Optional[int] = None) -> str:
    """
    Rewrite ``SELECT TOP n`` into a trailing LIMIT and cap the row count.

    Args:
        sql: SQL query
        limit: Maximum rows; the smaller of this and any TOP wins

    Returns:
        SQL Trino accepts
    """
    sql = sql.strip().rstrip(";")
    match = _TOP_PATTERN.match(sql)
    if match:
        top = int(match.group(1))
        sql = "SELECT " + sql[match.end():]
        limit = min(top, limit) if limit else top

    if limit and not re.search(r"\bLIMIT\s+\d+\s*$", sql, re.IGNORECASE):
        sql = f"{sql}\nLIMIT {limit}"
    return sql


class TrinoClient(QueryExecutor):
    """Client for interacting with Trino query engine"""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        catalog: Optional[str] = None,
        schema: Optional[str] = None,
        user: Optional[str] = None,
        auth_type: Optional[str] = None,
        timeout: Optional[int] = None
    ):
        self.host = host or settings.TRINO_HOST
        self.port = port or settings.TRINO_PORT
        self.catalog = catalog or settings.TRINO_CATALOG
        self.schema = schema or settings.TRINO_SCHEMA
        self.user = user or settings.TRINO_USER
        self.auth_type = auth_type or settings.TRINO_AUTH_TYPE
        self.timeout = timeout or settings.TRINO_TIMEOUT
        self._connection: Optional[trino.dbapi.Connection] = None

    def get_connection(self) -> trino.dbapi.Connection:
        """Get or create Trino connection"""
        if self._connection is None:
            auth = None
            if self.auth_type == "basic":
                auth = BasicAuthentication(self.user, "")

            self._connection = trino.dbapi.connect(
                host=self.host,
                port=self.port,
                user=self.user,
                catalog=self.catalog,
                schema=self.schema,
                auth=auth,
                http_scheme="http",
                request_timeout=self.timeout
            )

            logger.info(f"Connected to Trino at {self.host}:{self.port}")

        return self._connection

    def close(self):
        """Close Trino connection"""
        if self._connection:
            self._connection.close()
            self._connection = None

    async def execute(self, sql: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Execute SQL without blocking the event loop.

        Args:
            sql: SQL query to execute
            limit: Optional limit on number of rows returned

        Returns:
            List of row dictionaries

        Raises:
            QueryExecutionError: With Trino's error code and name when available
        """
        return await asyncio.to_thread(self.execute_query, sql, limit)

    def execute_query(
        self,
        sql: str,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        sql = apply_row_limit(sql, limit)
        logger.info(f"Executing Trino query: {sql[:200]}...")

        try:
            cursor = self.get_connection().cursor()
            cursor.execute(sql)
            rows = cursor.fetchall()
            columns = [desc[0] for desc in cursor.description]

        except TrinoQueryError as e:
            logger.error(f"Trino query failed ({e.error_name}): {e.message}")
            raise QueryExecutionError(
                e.message,
                error_code=e.error_code,
                error_name=e.error_name
            ) from e
        except HttpError as e:
            logger.error(f"Trino request failed: {e}")
            # Drop the connection so the next attempt reconnects
            self.close()
            raise QueryExecutionError(str(e), error_name="CONNECTION_ERROR") from e

        results = [dict(zip(columns, row)) for row in rows]
        logger.info(f"Query returned {len(results)} rows")
        return results


# Global client instance
_client: Optional[TrinoClient] = None


def get_trino_client() -> TrinoClient:
    """Get global Trino client instance"""
    global _client
    if _client is None:
        _client = TrinoClient()
    return _client
