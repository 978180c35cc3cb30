"""
MongoDB query and update semantics for the in-memory store.

Covers the filter operators and update operators the services issue; the
aggregation stages live in pipeline_eval.py and reuse the path helpers here.
"""

import copy
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId


class _Missing:
    """Marker for a path that does not exist in a document"""

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


# ==================== PATHS ====================

def get_path(value: Any, path: str) -> Any:
    """Resolve a dotted path the way aggregation field paths do.

    Arrays of sub-documents are traversed element-wise, so "a.b" on
    {"a": [{"b": 1}, {"b": 2}]} gives [1, 2].
    """
    return _resolve(value, path.split(".")) if path else value


def _resolve(value: Any, parts: List[str]) -> Any:
    if not parts:
        return value
    if isinstance(value, dict):
        if parts[0] not in value:
            return MISSING
        return _resolve(value[parts[0]], parts[1:])
    if isinstance(value, list):
        out = []
        for item in value:
            if isinstance(item, dict):
                found = _resolve(item, parts)
                if found is not MISSING:
                    out.append(found)
        return out
    return MISSING


def set_path(doc: dict, path: str, value: Any) -> None:
    parts = path.split(".")
    target = doc
    for part in parts[:-1]:
        if not isinstance(target.get(part), dict):
            target[part] = {}
        target = target[part]
    target[parts[-1]] = value


def unset_path(doc: dict, path: str) -> None:
    parts = path.split(".")
    target = doc
    for part in parts[:-1]:
        target = target.get(part)
        if not isinstance(target, dict):
            return
    target.pop(parts[-1], None)


def _candidates(value: Any, parts: List[str]) -> List[Any]:
    """Values a query predicate is tested against (array leaves expand)"""
    if not parts:
        if isinstance(value, list):
            return [value] + list(value)
        return [value]
    if isinstance(value, dict):
        if parts[0] not in value:
            return [MISSING]
        return _candidates(value[parts[0]], parts[1:])
    if isinstance(value, list):
        out = []
        for item in value:
            if isinstance(item, dict):
                out.extend(_candidates(item, parts))
        return out or [MISSING]
    return [MISSING]


def query_candidates(doc: dict, path: str) -> List[Any]:
    return _candidates(doc, path.split("."))


# ==================== ORDERING ====================

def _type_rank(value: Any) -> int:
    if value is MISSING or value is None:
        return 0
    if isinstance(value, bool):
        return 8
    if isinstance(value, (int, float)):
        return 1
    if isinstance(value, str):
        return 2
    if isinstance(value, dict):
        return 3
    if isinstance(value, list):
        return 4
    if isinstance(value, ObjectId):
        return 6
    if isinstance(value, datetime):
        return 9
    return 10


def sort_key(value: Any):
    rank = _type_rank(value)
    if rank in (1, 2, 6, 8, 9):
        return (rank, value)
    return (rank, 0)


def compare(left: Any, right: Any) -> int:
    a, b = sort_key(left), sort_key(right)
    if a == b:
        return 0
    return -1 if a < b else 1


def values_equal(left: Any, right: Any) -> bool:
    if left is MISSING:
        left = None
    if right is MISSING:
        right = None
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def sort_documents(docs: List[dict], spec) -> List[dict]:
    """Stable multi-key sort; spec is a dict or a list of (path, direction)"""
    items = list(spec.items()) if isinstance(spec, dict) else list(spec)
    result = list(docs)
    for path, direction in reversed(items):
        result.sort(key=lambda d: sort_key(get_path(d, path)), reverse=direction < 0)
    return result


# ==================== FILTERS ====================

def matches(doc: dict, filter: Optional[Dict[str, Any]], variables: Optional[dict] = None) -> bool:
    if not filter:
        return True
    for key, condition in filter.items():
        if key == "$and":
            if not all(matches(doc, sub, variables) for sub in condition):
                return False
        elif key == "$or":
            if not any(matches(doc, sub, variables) for sub in condition):
                return False
        elif key == "$nor":
            if any(matches(doc, sub, variables) for sub in condition):
                return False
        elif key == "$expr":
            # local import: pipeline_eval imports this module
            from lms.store.pipeline_eval import evaluate, truthy
            if not truthy(evaluate(condition, doc, variables or {})):
                return False
        elif not _field_matches(query_candidates(doc, key), condition):
            return False
    return True


def _is_operator_dict(condition: Any) -> bool:
    return isinstance(condition, dict) and bool(condition) and all(k.startswith("$") for k in condition)


def _field_matches(candidates: List[Any], condition: Any) -> bool:
    if not _is_operator_dict(condition):
        return any(values_equal(c, condition) for c in candidates)

    for op, arg in condition.items():
        if op == "$eq":
            ok = any(values_equal(c, arg) for c in candidates)
        elif op == "$ne":
            ok = not any(values_equal(c, arg) for c in candidates)
        elif op in ("$gt", "$gte", "$lt", "$lte"):
            ok = any(_ordered(c, op, arg) for c in candidates)
        elif op == "$in":
            ok = any(values_equal(c, v) for c in candidates for v in arg)
        elif op == "$nin":
            ok = not any(values_equal(c, v) for c in candidates for v in arg)
        elif op == "$exists":
            ok = any(c is not MISSING for c in candidates) == bool(arg)
        elif op == "$regex":
            flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
            ok = any(isinstance(c, str) and re.search(arg, c, flags) for c in candidates)
        elif op == "$options":
            continue
        elif op == "$not":
            ok = not _field_matches(candidates, arg)
        else:
            raise ValueError(f"Unsupported query operator: {op}")
        if not ok:
            return False
    return True


def _ordered(candidate: Any, op: str, arg: Any) -> bool:
    if candidate is MISSING or candidate is None:
        return False
    if _type_rank(candidate) != _type_rank(arg):
        return False
    result = compare(candidate, arg)
    return {
        "$gt": result > 0,
        "$gte": result >= 0,
        "$lt": result < 0,
        "$lte": result <= 0,
    }[op]


# ==================== UPDATES ====================

def apply_update(doc: dict, update: Dict[str, Any]) -> bool:
    """Apply an update document in place; returns True when the document changed"""
    before = copy.deepcopy(doc)

    for op, fields in update.items():
        if not op.startswith("$"):
            raise ValueError("Update documents must use update operators")
        for path, arg in fields.items():
            if op == "$set":
                set_path(doc, path, copy.deepcopy(arg))
            elif op == "$unset":
                unset_path(doc, path)
            elif op == "$inc":
                current = get_path(doc, path)
                set_path(doc, path, (0 if current is MISSING else current) + arg)
            elif op in ("$addToSet", "$push"):
                current = get_path(doc, path)
                items = list(current) if isinstance(current, list) else []
                values = arg["$each"] if isinstance(arg, dict) and "$each" in arg else [arg]
                for value in values:
                    if op == "$push" or not any(values_equal(v, value) for v in items):
                        items.append(copy.deepcopy(value))
                set_path(doc, path, items)
            elif op == "$pull":
                current = get_path(doc, path)
                if isinstance(current, list):
                    set_path(doc, path, [v for v in current if not _field_matches([v], arg)])
            else:
                raise ValueError(f"Unsupported update operator: {op}")

    return doc != before
