"""
Join path planning.

Turns a table set plus the relationship catalog into a single FROM/JOIN
clause and a table alias map.
"""
import logging
import re
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..models import (
    ForeignKeyRelationship,
    JoinCondition,
    JoinPath,
    JoinStrategy,
    JoinValidationResult,
    SqlJoinResult,
)
from ..services.interfaces import RelationshipCatalog
from ..utils.naming import normalize_table_name, table_key

logger = logging.getLogger(__name__)

DEFAULT_TABLE_PREFIXES = ("tbl_", "vw_", "dim_", "fact_")
MAX_ALIAS_LENGTH = 4

# Aliases that would read as SQL keywords
RESERVED_ALIASES = {
    "as", "at", "by", "do", "go", "if", "in", "is", "of", "on", "or", "to",
    "and", "asc", "end", "for", "not", "set", "top", "desc", "from", "join",
    "left", "null", "over", "then", "when", "with",
}


class JoinPathPlanner:
    """Builds FROM/JOIN clauses from foreign key join paths"""

    def __init__(
        self,
        catalog: RelationshipCatalog,
        table_prefixes: Iterable[str] = DEFAULT_TABLE_PREFIXES
    ):
        self.catalog = catalog
        self.table_prefixes = tuple(prefix.lower() for prefix in table_prefixes)

    # ------------------------------------------------------------------
    # Aliasing
    # ------------------------------------------------------------------

    def derive_alias(self, table_name: str) -> str:
        """
        Deterministic short alias for a table.

        Strips a recognized prefix, then takes the first two characters of
        every underscore-delimited segment.

        Args:
            table_name: Table name, optionally schema-qualified

        Returns:
            Lowercase alias, at most four characters
        """
        name = normalize_table_name(table_name)
        lowered = name.lower()
        for prefix in self.table_prefixes:
            if lowered.startswith(prefix) and len(name) > len(prefix):
                name = name[len(prefix):]
                break

        segments = [re.sub(r"[^0-9A-Za-z]", "", part) for part in name.split("_")]
        alias = "".join(segment[:2] for segment in segments if segment).lower()
        alias = alias[:MAX_ALIAS_LENGTH]

        if not alias:
            return "t"
        if alias[0].isdigit():
            alias = ("t" + alias)[:MAX_ALIAS_LENGTH]
        return alias

    def generate_table_aliases(self, tables: List[str]) -> Dict[str, str]:
        """
        Produce one unique alias per table.

        Names differing only in case or schema count as one table and keep
        the first spelling; colliding aliases get an increasing numeric suffix.

        Args:
            tables: Requested table names

        Returns:
            Map of table name to alias
        """
        return self._assign_aliases(_unique_tables(tables), used=set())

    def _assign_aliases(self, tables: Iterable[str], used: Set[str]) -> Dict[str, str]:
        aliases: Dict[str, str] = {}

        for table in tables:
            base = self.derive_alias(table)
            alias = base
            suffix = 1
            while alias in used or alias in RESERVED_ALIASES:
                alias = f"{base}{suffix}"
                suffix += 1

            used.add(alias)
            aliases[table] = alias

        return aliases

    # ------------------------------------------------------------------
    # Join generation
    # ------------------------------------------------------------------

    async def generate_joins(
        self,
        tables: List[str],
        primary_table: Optional[str] = None,
        strategy: JoinStrategy = JoinStrategy.OPTIMAL
    ) -> SqlJoinResult:
        """
        Generate the FROM/JOIN clause for a table set.

        Args:
            tables: Requested tables
            primary_table: Preferred driving table
            strategy: Join strategy

        Returns:
            Join result; never raises
        """
        try:
            tables = _unique_tables(tables)
            aliases = self.generate_table_aliases(tables)

            if len(tables) <= 1:
                return SqlJoinResult(
                    success=True,
                    join_clause="",
                    table_aliases=aliases,
                    primary_table=tables[0] if tables else None,
                    strategy=strategy,
                    metadata={"join_count": 0, "table_count": len(tables)}
                )

            relationships = await self.catalog.get_relationships_for_tables(tables)
            join_paths = await self.catalog.generate_join_paths(tables)

            requested = {table_key(table): table for table in tables}
            join_paths = [
                path for path in join_paths
                if table_key(path.from_table) in requested
                and table_key(path.to_table) in requested
            ]

            primary = self._select_primary_table(tables, relationships, primary_table)
            logger.info(
                f"Generating {strategy.value} joins for {len(tables)} tables "
                f"(primary={primary}, relationships={len(relationships)}, paths={len(join_paths)})"
            )

            builder = _JoinClauseBuilder(self, tables, aliases, primary)

            if strategy == JoinStrategy.OPTIMAL:
                ordered = sorted(
                    join_paths,
                    key=lambda path: (path.path_length, -path.performance_score)
                )
                builder.walk_paths(ordered)
                builder.cross_join_remaining()
            elif strategy in (JoinStrategy.LEFT_JOIN, JoinStrategy.INNER_JOIN):
                join_type = "LEFT JOIN" if strategy == JoinStrategy.LEFT_JOIN else "INNER JOIN"
                builder.join_direct(relationships, join_type)
            elif strategy == JoinStrategy.MINIMAL_PATH:
                optimal = sorted(
                    (path for path in join_paths if path.is_optimal),
                    key=lambda path: path.path_length
                )
                builder.walk_paths(optimal)
            else:
                raise ValueError(f"Unsupported join strategy: {strategy}")

            metadata = {
                "table_count": len(tables),
                "relationship_count": len(relationships),
                "path_count": len(join_paths),
                "join_count": builder.join_count,
                "cross_joined_tables": builder.cross_joined,
                "unjoined_tables": builder.unjoined_tables(),
                "bridge_tables": dict(builder.bridge_aliases),
            }

            return SqlJoinResult(
                success=True,
                join_clause="\n".join(builder.lines),
                table_aliases=aliases,
                join_paths=join_paths,
                primary_table=primary,
                strategy=strategy,
                metadata=metadata
            )

        except Exception as e:
            logger.error(f"Join generation failed for {tables}: {e}", exc_info=True)
            return SqlJoinResult(
                success=False,
                join_clause="",
                table_aliases={},
                strategy=strategy,
                metadata={},
                error=str(e)
            )

    def _select_primary_table(
        self,
        tables: List[str],
        relationships: List[ForeignKeyRelationship],
        preferred: Optional[str]
    ) -> str:
        if preferred:
            for table in tables:
                if table_key(table) == table_key(preferred):
                    return table

        counts = {table_key(table): 0 for table in tables}
        for relationship in relationships:
            for name in (relationship.parent_table, relationship.referenced_table):
                key = table_key(name)
                if key in counts:
                    counts[key] += 1

        # max() keeps the first table on ties
        return max(tables, key=lambda table: counts[table_key(table)])

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def validate_joinability(self, tables: List[str]) -> JoinValidationResult:
        """
        Report which requested tables are reachable through known join paths.

        Args:
            tables: Requested tables

        Returns:
            Validation result with connected and isolated tables
        """
        tables = _unique_tables(tables)
        if len(tables) < 2:
            return JoinValidationResult(is_valid=True, connected_tables=list(tables))

        try:
            relationships = await self.catalog.get_relationships_for_tables(tables)
            join_paths = await self.catalog.generate_join_paths(tables)
        except Exception as e:
            logger.error(f"Join validation failed for {tables}: {e}")
            return JoinValidationResult(
                is_valid=False,
                isolated_tables=list(tables),
                warnings=[f"Relationship lookup failed: {e}"]
            )

        reachable: Set[str] = set()
        for path in join_paths:
            reachable.add(table_key(path.from_table))
            reachable.add(table_key(path.to_table))

        connected = [table for table in tables if table_key(table) in reachable]
        isolated = [table for table in tables if table_key(table) not in reachable]
        warnings = [
            f"Table '{table}' has no join path to the other requested tables"
            for table in isolated
        ]

        return JoinValidationResult(
            is_valid=not isolated,
            connected_tables=connected,
            isolated_tables=isolated,
            available_relationships=len(relationships),
            warnings=warnings
        )


class _JoinClauseBuilder:
    """Request-local state for assembling one join clause"""

    def __init__(
        self,
        planner: JoinPathPlanner,
        tables: List[str],
        aliases: Dict[str, str],
        primary: str
    ):
        self.planner = planner
        self.tables = tables
        self.requested = {table_key(table): table for table in tables}
        self.alias_by_key = {table_key(table): alias for table, alias in aliases.items()}
        self.used_aliases = set(aliases.values())
        self.bridge_aliases: Dict[str, str] = {}
        self.joined: Set[str] = {table_key(primary)}
        self.join_count = 0
        self.cross_joined: List[str] = []
        self.lines = [f"FROM {primary} {self.alias_by_key[table_key(primary)]}"]

    def alias_for(self, table_name: str) -> str:
        key = table_key(table_name)
        if key not in self.alias_by_key:
            bridge = self.planner._assign_aliases([table_name], self.used_aliases)
            self.alias_by_key[key] = bridge[table_name]
            self.bridge_aliases[normalize_table_name(table_name)] = bridge[table_name]
        return self.alias_by_key[key]

    def display_name(self, table_name: str) -> str:
        return self.requested.get(table_key(table_name), table_name)

    def unjoined_tables(self) -> List[str]:
        return [table for table in self.tables if table_key(table) not in self.joined]

    def walk_paths(self, paths: List[JoinPath]) -> None:
        """Join paths until no remaining path touches the joined set"""
        progress = True
        while progress and self.unjoined_tables():
            progress = False
            for path in paths:
                from_key = table_key(path.from_table)
                to_key = table_key(path.to_table)

                if from_key in self.joined and to_key not in self.joined:
                    self._emit_path(path.join_conditions, reverse=False)
                elif to_key in self.joined and from_key not in self.joined:
                    self._emit_path(list(reversed(path.join_conditions)), reverse=True)
                else:
                    continue
                progress = True

    def _emit_path(self, conditions: List[JoinCondition], reverse: bool) -> None:
        for condition in conditions:
            left_key = table_key(condition.left_table)
            right_key = table_key(condition.right_table)

            if left_key in self.joined and right_key not in self.joined:
                new_table = condition.right_table
            elif right_key in self.joined and left_key not in self.joined:
                new_table = condition.left_table
            else:
                continue

            left_alias = self.alias_for(condition.left_table)
            right_alias = self.alias_for(condition.right_table)
            if reverse:
                on_clause = (
                    f"{right_alias}.{condition.right_column} = "
                    f"{left_alias}.{condition.left_column}"
                )
            else:
                on_clause = (
                    f"{left_alias}.{condition.left_column} = "
                    f"{right_alias}.{condition.right_column}"
                )

            self.lines.append(
                f"INNER JOIN {self.display_name(new_table)} "
                f"{self.alias_for(new_table)} ON {on_clause}"
            )
            self.joined.add(table_key(new_table))
            self.join_count += 1

    def join_direct(self, relationships: List[ForeignKeyRelationship], join_type: str) -> None:
        primary_key = next(iter(self.joined))
        for table in self.tables:
            key = table_key(table)
            if key == primary_key:
                continue

            relationship = _direct_relationship(relationships, primary_key, key)
            if relationship is None:
                logger.debug(f"No direct relationship between primary table and '{table}', skipping")
                continue

            parent_alias = self.alias_for(relationship.parent_table)
            referenced_alias = self.alias_for(relationship.referenced_table)
            self.lines.append(
                f"{join_type} {table} {self.alias_by_key[key]} ON "
                f"{parent_alias}.{relationship.parent_column} = "
                f"{referenced_alias}.{relationship.referenced_column}"
            )
            self.joined.add(key)
            self.join_count += 1

    def cross_join_remaining(self) -> None:
        for table in self.unjoined_tables():
            logger.warning(
                f"No join path found for table '{table}'; adding CROSS JOIN"
            )
            self.lines.append(f"CROSS JOIN {table} {self.alias_by_key[table_key(table)]}")
            self.joined.add(table_key(table))
            self.cross_joined.append(table)


def _direct_relationship(
    relationships: List[ForeignKeyRelationship],
    first_key: str,
    second_key: str
) -> Optional[ForeignKeyRelationship]:
    for relationship in relationships:
        ends: Tuple[str, str] = (
            table_key(relationship.parent_table),
            table_key(relationship.referenced_table),
        )
        if ends in ((first_key, second_key), (second_key, first_key)):
            return relationship
    return None


def _unique_tables(tables: List[str]) -> List[str]:
    seen: Set[str] = set()
    unique = []
    for table in tables or []:
        key = table_key(table)
        if key and key not in seen:
            seen.add(key)
            unique.append(table)
    return unique
