"""OpenMetadata client for table, column and foreign key metadata"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..exceptions import MetadataRetrievalError
from ..models import (
    BusinessContextProfile,
    ForeignKeyRelationship,
    SchemaContext,
    TableColumn,
    TableMetadata,
)
from ..utils.naming import table_key
from .interfaces import MetadataRetriever
from .relationship_catalog import GraphRelationshipCatalog

logger = logging.getLogger(__name__)


class OpenMetadataClient:
    """Client for interacting with OpenMetadata API"""

    def __init__(
        self,
        api_endpoint: Optional[str] = None,
        jwt_token: Optional[str] = None,
        timeout: Optional[int] = None,
        service: Optional[str] = None,
        database: Optional[str] = None,
        schema: Optional[str] = None
    ):
        self.api_endpoint = api_endpoint or settings.OPENMETADATA_API_ENDPOINT
        self.jwt_token = jwt_token if jwt_token is not None else settings.OPENMETADATA_JWT_TOKEN
        self.timeout = timeout or settings.OPENMETADATA_TIMEOUT
        self.service = service or settings.OPENMETADATA_SERVICE
        self.database = database or settings.OPENMETADATA_DATABASE
        self.schema = schema or settings.OPENMETADATA_SCHEMA

        self.headers = {
            "Authorization": f"Bearer {self.jwt_token}",
            "Content-Type": "application/json"
        }

    def table_fqn(self, table_name: str) -> str:
        # OpenMetadata FQN: data-pipeline-service.default.default.table_name
        return f"{self.service}.{self.database}.{self.schema}.{table_name}"

    async def list_tables(self, limit: int = 100) -> List[Dict[str, Any]]:
        """
        List table summaries of the configured service.

        Returns:
            Raw table entities (name, description, fullyQualifiedName)
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    f"{self.api_endpoint}/v1/tables",
                    params={"limit": limit, "service": self.service},
                    headers=self.headers
                )
                response.raise_for_status()
                tables = response.json().get("data", [])
                logger.info(f"List tables returned {len(tables)} results")
                return tables

        except Exception as e:
            logger.error(f"Failed to list tables: {e}")
            return []

    async def get_table_metadata(self, table_fqn: str) -> Optional[TableMetadata]:
        """
        Get columns and foreign keys for one table.

        Args:
            table_fqn: Fully qualified table name

        Returns:
            TableMetadata or None if not found
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    f"{self.api_endpoint}/v1/tables/name/{table_fqn}",
                    params={"fields": "columns,tableConstraints,databaseSchema"},
                    headers=self.headers
                )
                response.raise_for_status()
                data = response.json()

        except Exception as e:
            logger.error(f"Failed to get table metadata for {table_fqn}: {e}")
            return None

        table_name = data.get("name", "")
        columns = [
            TableColumn(
                name=column["name"],
                type=column.get("dataType", ""),
                description=column.get("description") or None
            )
            for column in data.get("columns", [])
        ]

        relationships = parse_foreign_keys(table_name, data.get("tableConstraints") or [])
        logger.info(
            f"Parsed table: {table_name}, columns: {len(columns)}, foreign keys: {len(relationships)}"
        )

        return TableMetadata(
            table_name=table_name,
            schema_name=data.get("databaseSchema", {}).get("name", self.schema),
            columns=columns,
            relationships=relationships
        )


def parse_foreign_keys(
    table_name: str,
    constraints: List[Dict[str, Any]]
) -> List[ForeignKeyRelationship]:
    """
    Turn OpenMetadata FOREIGN_KEY constraints into relationships.

    ``referredColumns`` hold column FQNs whose last two parts are the
    referenced table and column.
    """
    relationships = []
    for constraint in constraints:
        if constraint.get("constraintType") != "FOREIGN_KEY":
            continue
        for column, referred in zip(constraint.get("columns", []), constraint.get("referredColumns", [])):
            parts = referred.split(".")
            if len(parts) < 2:
                logger.warning(f"Skipping malformed referred column '{referred}' on {table_name}")
                continue
            relationships.append(ForeignKeyRelationship(
                parent_table=table_name,
                parent_column=column,
                referenced_table=parts[-2],
                referenced_column=parts[-1]
            ))
    return relationships


class OpenMetadataRetriever(MetadataRetriever):
    """Business metadata retrieval over OpenMetadata"""

    def __init__(
        self,
        client: Optional[OpenMetadataClient] = None,
        max_tables: Optional[int] = None
    ):
        self.client = client or OpenMetadataClient()
        self.max_tables = max_tables or settings.MAX_RELEVANT_TABLES

    async def get_relevant_metadata(
        self,
        question: str,
        profile: BusinessContextProfile,
        tables: Optional[List[str]] = None
    ) -> SchemaContext:
        if not tables:
            tables = await self._rank_tables(question, profile)

        metadata = []
        for table in tables:
            table_meta = await self.client.get_table_metadata(self.client.table_fqn(table))
            if table_meta is None:
                logger.warning(f"No metadata found for table '{table}'")
                continue
            metadata.append(table_meta)

        if not metadata:
            raise MetadataRetrievalError(f"No table metadata available for: {question}")

        return SchemaContext(tables=metadata)

    async def load_relationship_catalog(self, tables: List[str]) -> GraphRelationshipCatalog:
        """Build a relationship catalog from the foreign keys of the given tables"""
        catalog = GraphRelationshipCatalog()
        for table in tables:
            table_meta = await self.client.get_table_metadata(self.client.table_fqn(table))
            if table_meta is None:
                continue
            for relationship in table_meta.relationships:
                catalog.add_relationship(relationship)
        return catalog

    async def _rank_tables(self, question: str, profile: BusinessContextProfile) -> List[str]:
        words = set()
        for phrase in [question] + profile.business_terms:
            words.update(word for word in phrase.lower().split() if len(word) > 2)

        scored = []
        for entity in await self.client.list_tables():
            name = entity.get("name", "")
            haystack = f"{table_key(name)} {(entity.get('description') or '').lower()}"
            score = sum(1 for word in words if word.rstrip("s") in haystack)
            if score:
                scored.append((score, name))

        scored.sort(key=lambda item: item[0], reverse=True)
        ranked = [name for _, name in scored[:self.max_tables]]
        logger.info(f"Ranked {len(ranked)} relevant tables: {ranked}")
        return ranked
