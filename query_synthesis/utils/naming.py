"""Identifier helpers shared by the planners and the relationship catalog"""


def normalize_table_name(table_name: str) -> str:
    """
    Drop any schema/catalog qualifier from a table name.

    Args:
        table_name: e.g. "dbo.tbl_Daily_actions" or "tbl_Daily_actions"

    Returns:
        Bare table name
    """
    return table_name.strip().split(".")[-1].strip('"[]`')


def table_key(table_name: str) -> str:
    """Case-insensitive comparison key for a table name"""
    return normalize_table_name(table_name).lower()


def strip_separators(name: str) -> str:
    """Remove underscores and spaces, e.g. "Country_Name" -> "CountryName" """
    return name.replace("_", "").replace(" ", "")
