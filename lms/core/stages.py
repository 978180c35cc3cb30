"""
Pipeline stage builders.

Reports are written as plain MongoDB aggregation stages; these helpers only
keep the repeated shapes (joins, unwinds, full names) readable.
"""

from typing import Any, Dict, List, Optional


def match(filter: Dict[str, Any]) -> dict:
    return {"$match": filter}


def join(source: str, local_field: str, foreign_field: str, as_field: str) -> dict:
    """Equality join: every `source` document whose foreign_field equals local_field"""
    return {
        "$lookup": {
            "from": source,
            "localField": local_field,
            "foreignField": foreign_field,
            "as": as_field,
        }
    }


def correlated_join(source: str, let: Dict[str, str], pipeline: List[dict], as_field: str) -> dict:
    return {
        "$lookup": {
            "from": source,
            "let": let,
            "pipeline": pipeline,
            "as": as_field,
        }
    }


def unwind(path: str, keep_empty: bool = False) -> dict:
    return {"$unwind": {"path": path, "preserveNullAndEmptyArrays": keep_empty}}


def add_fields(fields: Dict[str, Any]) -> dict:
    return {"$addFields": fields}


def project(fields: Dict[str, Any]) -> dict:
    return {"$project": fields}


def group(key: Any, accumulators: Dict[str, Any]) -> dict:
    return {"$group": {"_id": key, **accumulators}}


def sort(*keys: str, descending: bool = False) -> dict:
    direction = -1 if descending else 1
    return {"$sort": {key: direction for key in keys}}


def full_name(prefix: Optional[str] = None) -> dict:
    """Expression concatenating firstName and lastName (of `prefix` when given)"""
    base = f"${prefix}." if prefix else "$"
    return {"$concat": [f"{base}firstName", " ", f"{base}lastName"]}


def equals_all(*pairs) -> dict:
    """$expr conjunction of equality pairs, for correlated sub-pipelines"""
    return {"$expr": {"$and": [{"$eq": [left, right]} for left, right in pairs]}}
