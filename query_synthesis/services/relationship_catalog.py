"""
In-process relationship catalog backed by a table graph
"""
import logging
from typing import Iterable, List, Optional

import networkx as nx

from ..models import ForeignKeyRelationship, JoinCondition, JoinPath
from ..utils.naming import normalize_table_name, table_key
from .interfaces import RelationshipCatalog

logger = logging.getLogger(__name__)

OPTIMAL_MAX_HOPS = 2


class GraphRelationshipCatalog(RelationshipCatalog):
    """
    Relationship catalog over an undirected table graph.

    Every foreign key becomes an edge between its two tables so paths can be
    walked in either direction; the edge keeps the original relationship so
    join conditions stay oriented parent -> referenced.
    """

    def __init__(self, relationships: Optional[Iterable[ForeignKeyRelationship]] = None):
        self.graph = nx.Graph()
        self.relationships: List[ForeignKeyRelationship] = []
        for relationship in relationships or []:
            self.add_relationship(relationship)

    def add_relationship(self, relationship: ForeignKeyRelationship) -> None:
        if relationship in self.relationships:
            return
        self.relationships.append(relationship)

        parent = table_key(relationship.parent_table)
        referenced = table_key(relationship.referenced_table)
        self.graph.add_node(parent, name=normalize_table_name(relationship.parent_table))
        self.graph.add_node(referenced, name=normalize_table_name(relationship.referenced_table))

        # Keep the first foreign key between a pair of tables
        if not self.graph.has_edge(parent, referenced):
            self.graph.add_edge(parent, referenced, relationship=relationship)

    async def get_relationships_for_tables(
        self,
        table_names: List[str]
    ) -> List[ForeignKeyRelationship]:
        keys = {table_key(name) for name in table_names}
        return [
            relationship for relationship in self.relationships
            if table_key(relationship.parent_table) in keys
            or table_key(relationship.referenced_table) in keys
        ]

    async def generate_join_paths(self, table_names: List[str]) -> List[JoinPath]:
        """
        Breadth-first shortest path between every pair of requested tables

        Args:
            table_names: Requested table names

        Returns:
            Join paths ordered by ascending path length
        """
        names = []
        for name in table_names:
            if table_key(name) not in [table_key(existing) for existing in names]:
                names.append(name)

        paths: List[JoinPath] = []
        for i in range(len(names)):
            for j in range(i + 1, len(names)):
                path = self._shortest_path(names[i], names[j])
                if path is not None:
                    paths.append(path)

        paths.sort(key=lambda path: path.path_length)
        logger.debug(f"Generated {len(paths)} join paths for {len(names)} tables")
        return paths

    def _shortest_path(self, from_table: str, to_table: str) -> Optional[JoinPath]:
        source = table_key(from_table)
        target = table_key(to_table)
        try:
            nodes = nx.shortest_path(self.graph, source, target)
        except (nx.NetworkXNoPath, nx.NodeNotFound):
            return None

        conditions = []
        for left, right in zip(nodes, nodes[1:]):
            relationship = self.graph.edges[left, right]["relationship"]
            conditions.append(JoinCondition(
                left_table=normalize_table_name(relationship.parent_table),
                left_column=relationship.parent_column,
                right_table=normalize_table_name(relationship.referenced_table),
                right_column=relationship.referenced_column
            ))

        hops = len(conditions)
        return JoinPath(
            from_table=normalize_table_name(from_table),
            to_table=normalize_table_name(to_table),
            path_length=hops,
            performance_score=calculate_performance_score(hops),
            is_optimal=hops <= OPTIMAL_MAX_HOPS,
            join_conditions=conditions
        )


def calculate_performance_score(hops: int, enabled_ratio: float = 1.0) -> float:
    """Fewer hops score higher; never below 0.1"""
    return max(0.1, 1.0 - 0.2 * (hops - 1) + 0.2 * enabled_ratio)
