"""Prompts for AI-assisted SQL drafting, insights and explanations"""
from typing import Any, Dict, List

from ..utils.json_encoder import json_dumps

SQL_GENERATOR_SYSTEM_PROMPT = """You are an expert SQL developer for a reporting warehouse.

Rules:
- Generate a single read-only SELECT statement (CTEs with WITH are allowed)
- Use only the tables and columns given in the prompt
- Qualify columns with table aliases when more than one table is involved
- Never generate INSERT, UPDATE, DELETE, DROP, ALTER, TRUNCATE or MERGE

Return ONLY the SQL, without markdown fences or explanation."""

INSIGHT_SYSTEM_PROMPT = """You are a business analyst. Given a question and a sample of its result rows,
write two or three short sentences with the most important finding.
Mention concrete numbers. Do not speculate beyond the data."""

EXPLANATION_SYSTEM_PROMPT = """You explain SQL to business users.
Describe in plain language what the query returns: which data, which filters,
how it is grouped and ordered. Keep it under five sentences and avoid SQL jargon."""

MAX_INSIGHT_ROWS = 20


def create_insight_prompt(question: str, rows: List[Dict[str, Any]]) -> str:
    sample = rows[:MAX_INSIGHT_ROWS]
    return (
        f'Question: "{question}"\n\n'
        f"Result rows ({len(rows)} total, first {len(sample)} shown):\n"
        f"{json_dumps(sample, indent=2)}\n\n"
        "Insight:"
    )


def create_explanation_prompt(sql: str) -> str:
    return f"SQL:\n{sql}\n\nExplanation:"
