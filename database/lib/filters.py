"""Filter documents shared by the store backends.

A filter maps field names to either a plain value (equality, ``None`` meaning
SQL NULL) or an operator dict such as ``{'$lt': now}``. Supported operators are
listed in OPERATORS. Updates use ``{'$set': {...}}``.
"""
import re
from typing import Any, Dict, Iterable, List, Tuple

from ..exceptions import DatabaseError

IDENTIFIER = re.compile(r'^[a-z_][a-z0-9_]*$')

OPERATORS = {
    '$ne': '!=',
    '$lt': '<',
    '$lte': '<=',
    '$gt': '>',
    '$gte': '>=',
    '$in': 'IN'
}

ASCENDING = 1
DESCENDING = -1

def check_identifier(name: str) -> str:
    """Ensure a field name is safe to interpolate as a column name."""
    if not IDENTIFIER.match(name):
        raise DatabaseError(f"Invalid field name: {name!r}")
    return name

def get_set_fields(update: Dict[str, Any]) -> Dict[str, Any]:
    """Extract the ``$set`` document of an update, rejecting anything else."""
    unknown = set(update) - {'$set'}
    if unknown or not update.get('$set'):
        raise DatabaseError(f"Unsupported update document: {sorted(update)}")
    for field in update['$set']:
        check_identifier(field)
    return update['$set']

def _compare(op: str, actual: Any, expected: Any) -> bool:
    if op == '$in':
        return actual in expected
    if op == '$ne':
        return actual != expected
    if actual is None or expected is None:
        return False
    if op == '$lt':
        return actual < expected
    if op == '$lte':
        return actual <= expected
    if op == '$gt':
        return actual > expected
    if op == '$gte':
        return actual >= expected
    raise DatabaseError(f"Unsupported filter operator: {op}")

def matches(record: Dict[str, Any], filter: Dict[str, Any]) -> bool:
    """Evaluate a filter document against an in-memory record."""
    for field, condition in filter.items():
        actual = record.get(field)
        if isinstance(condition, dict):
            for op, expected in condition.items():
                if op not in OPERATORS:
                    raise DatabaseError(f"Unsupported filter operator: {op}")
                if not _compare(op, actual, expected):
                    return False
        elif actual != condition:
            return False
    return True

def build_where(filter: Dict[str, Any], params: List[Any], encode) -> str:
    """Translate a filter document into a SQL WHERE clause.

    Values are appended to ``params`` and referenced positionally ($1, $2...).
    """
    clauses = []
    for field, condition in filter.items():
        column = check_identifier(field)
        if not isinstance(condition, dict):
            condition = {'$eq': condition}
        for op, value in condition.items():
            if op == '$eq':
                if value is None:
                    clauses.append(f"{column} IS NULL")
                    continue
                params.append(encode(value))
                clauses.append(f"{column} = ${len(params)}")
            elif op == '$ne' and value is None:
                clauses.append(f"{column} IS NOT NULL")
            elif op == '$in':
                values = list(value)
                if not values:
                    clauses.append('FALSE')
                    continue
                placeholders = []
                for item in values:
                    params.append(encode(item))
                    placeholders.append(f"${len(params)}")
                clauses.append(f"{column} IN ({', '.join(placeholders)})")
            elif op in OPERATORS:
                params.append(encode(value))
                clauses.append(f"{column} {OPERATORS[op]} ${len(params)}")
            else:
                raise DatabaseError(f"Unsupported filter operator: {op}")
    return ' AND '.join(clauses) if clauses else 'TRUE'

def build_order_by(sort: Iterable[Tuple[str, int]]) -> str:
    """Translate ``[(field, ASCENDING|DESCENDING)]`` into an ORDER BY clause."""
    parts = []
    for field, direction in sort:
        parts.append(f"{check_identifier(field)} {'DESC' if direction == DESCENDING else 'ASC'}")
    return f" ORDER BY {', '.join(parts)}" if parts else ''
