"""
Query primitives shared by the local cache and the remote stores
"""
import operator
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda actual, expected: actual in expected,
}


@dataclass(frozen=True)
class Filter:
    """A single field comparison, evaluated locally or sent to the remote."""
    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")

    def matches(self, record: Dict[str, Any]) -> bool:
        if self.field not in record:
            return False
        actual = record[self.field]
        if actual is None and self.op not in ("==", "!="):
            return False
        try:
            return _OPERATORS[self.op](actual, self.value)
        except TypeError:
            return False


@dataclass(frozen=True)
class OrderSpec:
    field: str
    descending: bool = False


def matches_all(record: Dict[str, Any], filters: Optional[Sequence[Filter]]) -> bool:
    return all(f.matches(record) for f in filters or ())


def apply_filters(
    records: Iterable[Dict[str, Any]],
    filters: Optional[Sequence[Filter]] = None,
) -> List[Dict[str, Any]]:
    """Records matching every filter, in their existing order."""
    return [r for r in records if matches_all(r, filters)]


def sort_records(
    records: List[Dict[str, Any]],
    order: Optional[OrderSpec] = None,
) -> List[Dict[str, Any]]:
    """Stable sort by one field; records missing the field go last."""
    if order is None:
        return list(records)

    present = [r for r in records if r.get(order.field) is not None]
    missing = [r for r in records if r.get(order.field) is None]
    present.sort(key=lambda r: r[order.field], reverse=order.descending)
    return present + missing
