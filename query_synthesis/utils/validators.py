"""SQL validation utilities"""
import logging
import re
from typing import List

import sqlparse

from ..exceptions import UnsafeQueryError

logger = logging.getLogger(__name__)

DANGEROUS_KEYWORDS = [
    "DROP", "DELETE", "TRUNCATE", "ALTER", "UPDATE", "INSERT",
    "MERGE", "CREATE", "GRANT", "REVOKE", "EXEC", "EXECUTE", "CALL",
]

_DANGEROUS_PATTERN = re.compile(
    r"\b(" + "|".join(DANGEROUS_KEYWORDS) + r")\b", re.IGNORECASE
)


def find_dangerous_keywords(sql: str) -> List[str]:
    """
    Whole-word DDL/DML keywords outside string literals and comments.

    Column names such as ``UpdatedDate`` or ``CreatedAt`` do not match.
    """
    stripped = sqlparse.format(sql, strip_comments=True)
    stripped = re.sub(r"'(?:[^']|'')*'", "''", stripped)
    found = []
    for match in _DANGEROUS_PATTERN.finditer(stripped):
        keyword = match.group(1).upper()
        if keyword not in found:
            found.append(keyword)
    return found


def ensure_read_only(sql: str) -> str:
    """
    Reject anything but a single SELECT/WITH statement.

    Args:
        sql: SQL query string

    Returns:
        The SQL without a trailing semicolon

    Raises:
        UnsafeQueryError: If the query is empty, has several statements,
            does not start with SELECT/WITH, or contains DDL/DML keywords
    """
    if not sql or not sql.strip():
        raise UnsafeQueryError("SQL query is empty")

    statements = [statement for statement in sqlparse.split(sql) if statement.strip()]
    if len(statements) != 1:
        raise UnsafeQueryError(f"Expected a single statement, found {len(statements)}")

    statement = statements[0].strip().rstrip(";").strip()
    body = sqlparse.format(statement, strip_comments=True).strip()
    if not body:
        raise UnsafeQueryError("SQL query has no statement besides comments")

    first_token = body.split(None, 1)[0].upper()
    if first_token not in ("SELECT", "WITH"):
        raise UnsafeQueryError(f"Only SELECT queries are allowed, got {first_token}")

    dangerous = find_dangerous_keywords(statement)
    if dangerous:
        logger.warning(f"Rejected SQL with dangerous operations {dangerous}: {statement[:200]}")
        raise UnsafeQueryError(f"Dangerous operation(s) not allowed: {', '.join(dangerous)}")

    return statement
