"""
In-memory interpreter for the aggregation pipeline subset used by the
reporting queries. Semantics follow MongoDB: expressions inside $project are
evaluated against the whole input document, $group preserves first-seen
group order, and missing values are dropped from object expressions.
"""

import copy
from typing import Any, Callable, Dict, List, Optional

from lms.store.query import (
    MISSING,
    compare,
    get_path,
    matches,
    query_candidates,
    set_path,
    sort_documents,
    sort_key,
    unset_path,
    values_equal,
)


class PipelineError(ValueError):
    pass


# ==================== EXPRESSIONS ====================

def truthy(value: Any) -> bool:
    if value is MISSING or value is None or value is False:
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0:
        return False
    return True


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _nullish(value: Any) -> bool:
    return value is MISSING or value is None


def evaluate(expr: Any, doc: Any, variables: Dict[str, Any]) -> Any:
    if isinstance(expr, str):
        if expr.startswith("$$"):
            name, _, rest = expr[2:].partition(".")
            if name in ("ROOT", "CURRENT"):
                base = variables.get(name, doc)
            elif name in variables:
                base = variables[name]
            else:
                raise PipelineError(f"Undefined variable: {name}")
            return get_path(base, rest) if rest else base
        if expr.startswith("$"):
            return get_path(doc, expr[1:])
        return expr
    if isinstance(expr, list):
        return [_drop_missing(evaluate(e, doc, variables)) for e in expr]
    if isinstance(expr, dict):
        if len(expr) == 1:
            op = next(iter(expr))
            if op.startswith("$"):
                return _operator(op, expr[op], doc, variables)
        out = {}
        for key, sub in expr.items():
            value = evaluate(sub, doc, variables)
            if value is not MISSING:
                out[key] = value
        return out
    return expr


def _drop_missing(value: Any) -> Any:
    return None if value is MISSING else value


def _args(arg: Any, doc: Any, variables: Dict[str, Any]) -> List[Any]:
    if isinstance(arg, list):
        return [evaluate(a, doc, variables) for a in arg]
    return [evaluate(arg, doc, variables)]


def _numeric_values(arg: Any, doc: Any, variables: Dict[str, Any]) -> List[Any]:
    # single operand: an array value is traversed; several operands are taken as-is
    if isinstance(arg, list):
        values = [evaluate(a, doc, variables) for a in arg]
    else:
        value = evaluate(arg, doc, variables)
        values = value if isinstance(value, list) else [value]
    return [v for v in values if _is_number(v)]


def _operator(op: str, arg: Any, doc: Any, variables: Dict[str, Any]) -> Any:
    if op == "$literal":
        return arg

    if op == "$concat":
        parts = _args(arg, doc, variables)
        if any(_nullish(p) for p in parts):
            return None
        return "".join(parts)

    if op == "$cond":
        if isinstance(arg, dict):
            condition, then, otherwise = arg["if"], arg["then"], arg["else"]
        else:
            condition, then, otherwise = arg
        branch = then if truthy(evaluate(condition, doc, variables)) else otherwise
        return evaluate(branch, doc, variables)

    if op in ("$eq", "$ne", "$gt", "$gte", "$lt", "$lte"):
        left, right = _args(arg, doc, variables)
        if op == "$eq":
            return values_equal(left, right)
        if op == "$ne":
            return not values_equal(left, right)
        result = compare(_drop_missing(left), _drop_missing(right))
        return {"$gt": result > 0, "$gte": result >= 0, "$lt": result < 0, "$lte": result <= 0}[op]

    if op == "$and":
        return all(truthy(v) for v in _args(arg, doc, variables))
    if op == "$or":
        return any(truthy(v) for v in _args(arg, doc, variables))
    if op == "$not":
        return not truthy(_args(arg, doc, variables)[0])

    if op == "$in":
        value, array = _args(arg, doc, variables)
        if not isinstance(array, list):
            raise PipelineError("$in requires an array as its second argument")
        return any(values_equal(value, item) for item in array)

    if op == "$size":
        value = _args(arg, doc, variables)[0]
        if not isinstance(value, list):
            raise PipelineError(f"$size requires an array, got {type(value).__name__}")
        return len(value)

    if op in ("$add", "$subtract", "$multiply", "$divide"):
        values = _args(arg, doc, variables)
        if any(_nullish(v) for v in values):
            return None
        if op == "$add":
            return sum(values)
        if op == "$multiply":
            result = 1
            for v in values:
                result *= v
            return result
        left, right = values
        if op == "$subtract":
            return left - right
        if right == 0:
            raise PipelineError("can't $divide by zero")
        return left / right

    if op == "$arrayElemAt":
        array, index = _args(arg, doc, variables)
        if _nullish(array):
            return None
        if -len(array) <= index < len(array):
            return array[index]
        return MISSING

    if op == "$ifNull":
        values = _args(arg, doc, variables)
        for value in values[:-1]:
            if not _nullish(value):
                return value
        return values[-1]

    if op == "$filter":
        items = evaluate(arg["input"], doc, variables)
        if _nullish(items):
            return None
        name = arg.get("as", "this")
        return [
            item for item in items
            if truthy(evaluate(arg["cond"], doc, {**variables, name: item}))
        ]

    if op == "$map":
        items = evaluate(arg["input"], doc, variables)
        if _nullish(items):
            return None
        name = arg.get("as", "this")
        return [
            _drop_missing(evaluate(arg["in"], doc, {**variables, name: item}))
            for item in items
        ]

    if op == "$mergeObjects":
        merged = {}
        for value in _args(arg, doc, variables):
            if isinstance(value, dict):
                merged.update(value)
        return merged

    if op == "$sortArray":
        items = evaluate(arg["input"], doc, variables)
        if _nullish(items):
            return None
        sort_by = arg["sortBy"]
        if isinstance(sort_by, dict):
            return sort_documents(items, sort_by)
        return sorted(items, key=sort_key, reverse=sort_by < 0)

    if op == "$let":
        bound = {name: evaluate(v, doc, variables) for name, v in arg["vars"].items()}
        return evaluate(arg["in"], doc, {**variables, **bound})

    if op in ("$sum", "$avg", "$max", "$min"):
        numbers = _numeric_values(arg, doc, variables)
        if op == "$sum":
            return sum(numbers)
        if not numbers:
            return None
        if op == "$avg":
            return sum(numbers) / len(numbers)
        return max(numbers) if op == "$max" else min(numbers)

    raise PipelineError(f"Unsupported expression operator: {op}")


# ==================== STAGES ====================

class PipelineRunner:
    """Runs a pipeline over documents; `collection` resolves $lookup sources"""

    def __init__(self, collection: Callable[[str], List[dict]]):
        self.collection = collection

    def run(self, docs: List[dict], pipeline: List[dict], variables: Optional[dict] = None) -> List[dict]:
        variables = variables or {}
        for stage in pipeline:
            if len(stage) != 1:
                raise PipelineError(f"A pipeline stage must have exactly one operator: {stage}")
            name, spec = next(iter(stage.items()))
            handler = getattr(self, "_stage_" + name.lstrip("$"), None)
            if handler is None:
                raise PipelineError(f"Unsupported pipeline stage: {name}")
            docs = handler(docs, spec, variables)
        return docs

    def _stage_match(self, docs, spec, variables):
        return [d for d in docs if matches(d, spec, variables)]

    def _stage_lookup(self, docs, spec, variables):
        foreign = self.collection(spec["from"])
        out = []
        for doc in docs:
            if "pipeline" in spec:
                bound = {name: evaluate(e, doc, variables) for name, e in spec.get("let", {}).items()}
                joined = self.run(copy.deepcopy(foreign), spec["pipeline"], {**variables, **bound})
            else:
                local = get_path(doc, spec["localField"])
                # a missing local value joins on null; an empty array joins nothing
                keys = local if isinstance(local, list) else [None if local is MISSING else local]
                joined = [
                    copy.deepcopy(f) for f in foreign
                    if any(
                        values_equal(c, k)
                        for c in query_candidates(f, spec["foreignField"])
                        for k in keys
                    )
                ]
            set_path(doc, spec["as"], joined)
            out.append(doc)
        return out

    def _stage_unwind(self, docs, spec, variables):
        if isinstance(spec, str):
            spec = {"path": spec}
        path = spec["path"].lstrip("$")
        preserve = spec.get("preserveNullAndEmptyArrays", False)
        out = []
        for doc in docs:
            value = get_path(doc, path)
            if isinstance(value, list) and value:
                for item in value:
                    clone = copy.deepcopy(doc)
                    set_path(clone, path, copy.deepcopy(item))
                    out.append(clone)
            elif isinstance(value, list) or _nullish(value):
                if preserve:
                    if isinstance(value, list):
                        unset_path(doc, path)
                    out.append(doc)
            else:
                out.append(doc)
        return out

    def _stage_addFields(self, docs, spec, variables):
        out = []
        for doc in docs:
            scope = {**variables, "ROOT": doc, "CURRENT": doc}
            computed = {key: evaluate(expr, doc, scope) for key, expr in spec.items()}
            for key, value in computed.items():
                if value is MISSING:
                    unset_path(doc, key)
                else:
                    set_path(doc, key, value)
            out.append(doc)
        return out

    _stage_set = _stage_addFields

    def _stage_project(self, docs, spec, variables):
        if _is_exclusion(spec):
            out = []
            for doc in docs:
                for key in spec:
                    unset_path(doc, key)
                out.append(doc)
            return out

        nested = _nest(spec)
        id_spec = nested.pop("_id", 1)
        out = []
        for doc in docs:
            scope = {**variables, "ROOT": doc, "CURRENT": doc}
            projected = {}
            if _is_flag(id_spec):
                if id_spec and "_id" in doc:
                    projected["_id"] = doc["_id"]
            else:
                value = evaluate(id_spec, doc, scope)
                if value is not MISSING:
                    projected["_id"] = value
            projected.update(_project_inclusion(doc, nested, doc, scope))
            out.append(projected)
        return out

    def _stage_group(self, docs, spec, variables):
        groups: Dict[Any, dict] = {}
        members: Dict[Any, List[dict]] = {}
        for doc in docs:
            scope = {**variables, "ROOT": doc, "CURRENT": doc}
            key_value = _drop_missing(evaluate(spec["_id"], doc, scope))
            key = _freeze(key_value)
            if key not in groups:
                groups[key] = {"_id": key_value}
                members[key] = []
            members[key].append(doc)

        for key, group in groups.items():
            for field, accumulator in spec.items():
                if field == "_id":
                    continue
                (op, expr), = accumulator.items()
                values = [
                    evaluate(expr, d, {**variables, "ROOT": d, "CURRENT": d})
                    for d in members[key]
                ]
                group[field] = _accumulate(op, values)
        return list(groups.values())

    def _stage_sort(self, docs, spec, variables):
        return sort_documents(docs, spec)

    def _stage_skip(self, docs, spec, variables):
        return docs[spec:]

    def _stage_limit(self, docs, spec, variables):
        return docs[:spec]

    def _stage_count(self, docs, spec, variables):
        return [{spec: len(docs)}] if docs else []


# ==================== STAGE HELPERS ====================

def _accumulate(op: str, values: List[Any]) -> Any:
    if op == "$sum":
        return sum(v for v in values if _is_number(v))
    if op == "$avg":
        numbers = [v for v in values if _is_number(v)]
        return sum(numbers) / len(numbers) if numbers else None
    if op == "$push":
        return [v for v in values if v is not MISSING]
    if op == "$addToSet":
        out = []
        for v in values:
            if v is not MISSING and not any(values_equal(v, seen) for seen in out):
                out.append(v)
        return out
    if op == "$first":
        return _drop_missing(values[0]) if values else None
    if op == "$last":
        return _drop_missing(values[-1]) if values else None
    if op in ("$max", "$min"):
        present = [v for v in values if not _nullish(v)]
        if not present:
            return None
        ordered = sorted(present, key=sort_key)
        return ordered[-1] if op == "$max" else ordered[0]
    raise PipelineError(f"Unsupported accumulator: {op}")


def _freeze(value: Any) -> Any:
    if isinstance(value, dict):
        return tuple((k, _freeze(v)) for k, v in value.items())
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


def _is_flag(value: Any) -> bool:
    return isinstance(value, bool) or value in (0, 1)


def _is_exclusion(spec: dict) -> bool:
    values = [v for k, v in spec.items() if k != "_id"]
    if not values:
        return _is_flag(spec.get("_id")) and not spec.get("_id")
    return all(_is_flag(v) and not v for v in values)


def _nest(spec: dict) -> dict:
    """Turn dotted projection keys into nested specs"""
    nested: Dict[str, Any] = {}
    for key, value in spec.items():
        parts = key.split(".")
        target = nested
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        if isinstance(value, dict) and not _is_expression(value):
            target.setdefault(parts[-1], {}).update(_nest(value))
        else:
            target[parts[-1]] = value
    return nested


def _is_expression(value: Any) -> bool:
    if isinstance(value, str):
        return value.startswith("$")
    if isinstance(value, dict):
        return len(value) == 1 and next(iter(value)).startswith("$")
    return False


def _project_inclusion(source: Any, spec: dict, root: dict, scope: dict) -> dict:
    out = {}
    for key, value in spec.items():
        if _is_flag(value):
            if value and isinstance(source, dict) and key in source:
                out[key] = source[key]
        elif _is_expression(value) or not isinstance(value, dict):
            result = evaluate(value, root, scope)
            if result is not MISSING:
                out[key] = result
        else:
            sub = source.get(key, MISSING) if isinstance(source, dict) else MISSING
            if isinstance(sub, list):
                out[key] = [
                    _project_inclusion(item, value, root, scope)
                    for item in sub if isinstance(item, dict)
                ]
            else:
                projected = _project_inclusion(sub if isinstance(sub, dict) else {}, value, root, scope)
                if projected or isinstance(sub, dict):
                    out[key] = projected
    return out
