"""In-process record collections for development and tests.

Selected with a ``memory://`` database URL. Unique indexes declared in the
schema are enforced here as well, including partial ones (``match``). None of
the methods await between reading and writing, so each call is atomic with
respect to other coroutines on the same event loop.
"""
import copy
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..exceptions import DuplicateRecordError
from .filters import DESCENDING, get_set_fields, matches

logger = logging.getLogger(__name__)

class MemoryCollection:
    """Record collection held in a Python list."""

    def __init__(self, name: str, key: str = 'id', unique: Iterable[Dict[str, Any]] = ()) -> None:
        self.name = name
        self.key = key
        self._records: List[Dict[str, Any]] = []
        # Each entry: {'columns': [...], 'match': {...}}
        self._unique = [{'columns': [key], 'match': {}}] + list(unique)

    def _check_unique(self, candidate: Dict[str, Any], ignore: Optional[Dict[str, Any]] = None) -> None:
        for index in self._unique:
            if not matches(candidate, index['match']):
                continue
            values = tuple(candidate.get(column) for column in index['columns'])
            for record in self._records:
                if record is ignore:
                    continue
                if not matches(record, index['match']):
                    continue
                if tuple(record.get(column) for column in index['columns']) == values:
                    raise DuplicateRecordError(
                        f"Duplicate record in {self.name} on {index['columns']}"
                    )

    async def insert_one(self, document: Dict[str, Any]) -> Dict[str, Any]:
        record = copy.deepcopy(document)
        self._check_unique(record)
        self._records.append(record)
        return copy.deepcopy(record)

    async def find_one(self, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for record in self._records:
            if matches(record, filter):
                return copy.deepcopy(record)
        return None

    async def find(
        self,
        filter: Dict[str, Any],
        sort: Iterable[Tuple[str, int]] = (),
        skip: int = 0,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        results = [record for record in self._records if matches(record, filter)]
        # Stable sorts applied from the least significant key up
        for field, direction in reversed(list(sort)):
            results.sort(key=lambda r: r.get(field), reverse=direction == DESCENDING)
        results = results[skip:]
        if limit is not None:
            results = results[:limit]
        return copy.deepcopy(results)

    async def count(self, filter: Dict[str, Any]) -> int:
        return sum(1 for record in self._records if matches(record, filter))

    async def distinct(self, field: str, filter: Dict[str, Any]) -> List[Any]:
        values = []
        for record in self._records:
            if matches(record, filter) and record.get(field) not in values:
                values.append(record.get(field))
        return values

    def _apply(self, record: Dict[str, Any], fields: Dict[str, Any]) -> None:
        updated = dict(record, **copy.deepcopy(fields))
        self._check_unique(updated, ignore=record)
        record.update(updated)

    async def update_one(self, filter: Dict[str, Any], update: Dict[str, Any]) -> int:
        fields = get_set_fields(update)
        for record in self._records:
            if matches(record, filter):
                self._apply(record, fields)
                return 1
        return 0

    async def update_many(self, filter: Dict[str, Any], update: Dict[str, Any]) -> int:
        fields = get_set_fields(update)
        targets = [record for record in self._records if matches(record, filter)]
        for record in targets:
            self._apply(record, fields)
        return len(targets)
