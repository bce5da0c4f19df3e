"""JSON encoding for database values"""
import json
from decimal import Decimal
from datetime import datetime, date
from typing import Any


class DatabaseJSONEncoder(json.JSONEncoder):
    """
    Encodes values returned by the query engine:
    - Decimal as float
    - datetime/date as ISO 8601 strings
    - pydantic models via model_dump()
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return float(obj)
        elif isinstance(obj, (datetime, date)):
            return obj.isoformat()
        elif hasattr(obj, "model_dump"):
            return obj.model_dump(mode="json")
        return super().default(obj)


def json_dumps(obj: Any, **kwargs) -> str:
    """json.dumps with Decimal/datetime support"""
    return json.dumps(obj, cls=DatabaseJSONEncoder, **kwargs)


def normalize_rows(rows: Any) -> Any:
    """
    Recursively convert Decimal and date values so rows survive pydantic
    validation and a JSON round trip unchanged.
    """
    if isinstance(rows, Decimal):
        return float(rows)
    elif isinstance(rows, (datetime, date)):
        return rows.isoformat()
    elif isinstance(rows, dict):
        return {key: normalize_rows(value) for key, value in rows.items()}
    elif isinstance(rows, (list, tuple)):
        return [normalize_rows(item) for item in rows]
    return rows
