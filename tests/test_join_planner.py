"""
Unit tests for the join path planner
"""

import pytest
from unittest.mock import AsyncMock, Mock

from query_synthesis.models import JoinStrategy
from query_synthesis.planning import JoinPathPlanner


class TestTableAliases:
    """Alias derivation and uniqueness"""

    @pytest.fixture
    def planner(self, catalog):
        return JoinPathPlanner(catalog)

    def test_prefix_stripped_and_segments_abbreviated(self, planner):
        assert planner.derive_alias("tbl_Daily_actions") == "daac"
        assert planner.derive_alias("Transactions") == "tr"

    def test_schema_qualifier_ignored(self, planner):
        assert planner.derive_alias("dbo.tbl_Daily_actions") == "daac"

    def test_leading_digit_gets_prefix(self, planner):
        assert planner.derive_alias("2024_sales") == "t20s"

    def test_colliding_aliases_get_numeric_suffix(self, planner):
        aliases = planner.generate_table_aliases(["tbl_Daily_actions", "tbl_Daily_actions_players"])

        assert aliases == {
            "tbl_Daily_actions": "daac",
            "tbl_Daily_actions_players": "daac1",
        }

    def test_one_distinct_alias_per_table(self, planner):
        tables = ["Transactions", "Transfers", "Trades", "tbl_Trips", "Countries"]
        aliases = planner.generate_table_aliases(tables)

        assert set(aliases) == set(tables)
        assert len(set(aliases.values())) == len(tables)

    def test_case_variants_share_one_entry(self, planner):
        aliases = planner.generate_table_aliases(["Orders", "orders", "dbo.ORDERS", "Countries"])

        assert aliases == {"Orders": "or1", "Countries": "co"}
        assert len(set(aliases.values())) == len(aliases)

    def test_reserved_words_avoided(self, planner):
        aliases = planner.generate_table_aliases(["Orders"])

        assert aliases["Orders"] == "or1"


class TestGenerateJoins:
    """FROM/JOIN clause generation"""

    @pytest.fixture
    def planner(self, catalog):
        return JoinPathPlanner(catalog)

    @pytest.mark.asyncio
    async def test_no_tables(self, planner):
        result = await planner.generate_joins([])

        assert result.success is True
        assert result.join_clause == ""
        assert result.table_aliases == {}

    @pytest.mark.asyncio
    async def test_single_table(self, planner):
        result = await planner.generate_joins(["Transactions"])

        assert result.success is True
        assert result.join_clause == ""
        assert result.table_aliases == {"Transactions": "tr"}
        assert result.primary_table == "Transactions"

    @pytest.mark.asyncio
    async def test_direct_foreign_key(self, planner):
        result = await planner.generate_joins(["Transactions", "Countries"])

        assert result.success is True
        assert result.primary_table == "Transactions"
        assert result.join_clause == (
            "FROM Transactions tr\n"
            "INNER JOIN Countries co ON tr.CountryID = co.CountryID"
        )
        assert result.metadata["join_count"] == 1

    @pytest.mark.asyncio
    async def test_preferred_primary_table_reverses_condition(self, planner):
        result = await planner.generate_joins(["Transactions", "Countries"], primary_table="Countries")

        assert result.join_clause == (
            "FROM Countries co\n"
            "INNER JOIN Transactions tr ON co.CountryID = tr.CountryID"
        )

    @pytest.mark.asyncio
    async def test_bridge_table_added_for_multi_hop_path(self, planner):
        result = await planner.generate_joins(["Bets", "Countries"], primary_table="Bets")

        assert result.join_clause == (
            "FROM Bets be\n"
            "INNER JOIN Players pl ON be.PlayerID = pl.PlayerID\n"
            "INNER JOIN Countries co ON pl.CountryID = co.CountryID"
        )
        assert result.metadata["bridge_tables"] == {"Players": "pl"}
        assert result.table_aliases == {"Bets": "be", "Countries": "co"}

    @pytest.mark.asyncio
    async def test_unconnected_table_is_cross_joined(self, planner):
        result = await planner.generate_joins(["Transactions", "Currencies"])

        assert result.success is True
        assert result.join_clause == "FROM Transactions tr\nCROSS JOIN Currencies cu"
        assert result.metadata["cross_joined_tables"] == ["Currencies"]

    @pytest.mark.asyncio
    async def test_left_join_strategy_uses_direct_relationships(self, planner):
        result = await planner.generate_joins(
            ["Transactions", "Countries"], strategy=JoinStrategy.LEFT_JOIN
        )

        assert result.join_clause == (
            "FROM Transactions tr\n"
            "LEFT JOIN Countries co ON tr.CountryID = co.CountryID"
        )

    @pytest.mark.asyncio
    async def test_inner_join_strategy_skips_indirect_tables(self, planner):
        result = await planner.generate_joins(
            ["Bets", "Countries"], primary_table="Bets", strategy=JoinStrategy.INNER_JOIN
        )

        assert result.join_clause == "FROM Bets be"
        assert result.metadata["unjoined_tables"] == ["Countries"]

    @pytest.mark.asyncio
    async def test_minimal_path_leaves_unconnected_tables_out(self, planner):
        result = await planner.generate_joins(
            ["Transactions", "Countries", "Currencies"], strategy=JoinStrategy.MINIMAL_PATH
        )

        assert "CROSS JOIN" not in result.join_clause
        assert "INNER JOIN Countries co" in result.join_clause
        assert result.metadata["unjoined_tables"] == ["Currencies"]

    @pytest.mark.asyncio
    async def test_catalog_failure_reported_not_raised(self):
        broken = Mock()
        broken.get_relationships_for_tables = AsyncMock(side_effect=RuntimeError("catalog down"))
        broken.generate_join_paths = AsyncMock(return_value=[])
        planner = JoinPathPlanner(broken)

        result = await planner.generate_joins(["Transactions", "Countries"])

        assert result.success is False
        assert "catalog down" in result.error
        assert result.join_clause == ""


class TestValidateJoinability:
    """Connectivity checks"""

    @pytest.fixture
    def planner(self, catalog):
        return JoinPathPlanner(catalog)

    @pytest.mark.asyncio
    async def test_connected_tables_are_valid(self, planner):
        result = await planner.validate_joinability(["Transactions", "Countries", "Bets"])

        assert result.is_valid is True
        assert result.isolated_tables == []
        assert result.available_relationships == 4

    @pytest.mark.asyncio
    async def test_isolated_table_reported(self, planner):
        result = await planner.validate_joinability(["Transactions", "Countries", "Currencies"])

        assert result.is_valid is False
        assert result.isolated_tables == ["Currencies"]
        assert result.connected_tables == ["Transactions", "Countries"]
        assert len(result.warnings) == 1

    @pytest.mark.asyncio
    async def test_single_table_is_valid(self, planner):
        result = await planner.validate_joinability(["Currencies"])

        assert result.is_valid is True


if __name__ == "__main__":
    pytest.main([__file__])
