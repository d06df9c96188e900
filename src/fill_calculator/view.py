from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from fill_calculator.models import COL_PAIRS, COL_SIDE, Dataset, Row, View, ViewRow
from fill_calculator.values import (
    KIND_NUMBER,
    KIND_TIME,
    column_kind,
    is_empty,
    text_of,
    to_number,
    to_timestamp,
)


@dataclass(frozen=True)
class ViewFilters:
    search: str = ""
    pair: str = ""
    side: str = ""

    @property
    def active(self) -> bool:
        return bool(self.search.strip() or self.pair.strip() or self.side.strip())


@dataclass(frozen=True)
class SortSpec:
    key: str | None = None
    descending: bool = False

    @classmethod
    def parse(cls, key: str | None, direction: str | None) -> SortSpec:
        cleaned = (key or "").strip()
        desc = (direction or "").strip().lower() in {"desc", "descending", "d"}
        return cls(key=cleaned or None, descending=desc)


def apply_view(
    dataset: Dataset,
    filters: ViewFilters | None = None,
    sort: SortSpec | None = None,
) -> View:
    filters = filters or ViewFilters()
    sort = sort or SortSpec()

    matched = [
        ViewRow(row=row, index=index)
        for index, row in enumerate(dataset.rows)
        if row_matches(row, filters)
    ]
    if sort.key:
        sort_key = _sort_key_for(sort.key)
        # sorted() is stable for reverse=True too, so ties keep pre-sort order
        matched = sorted(matched, key=lambda item: sort_key(item.row), reverse=sort.descending)
    return View(rows=tuple(matched))


def row_matches(row: Row, filters: ViewFilters) -> bool:
    search = filters.search.strip().lower()
    if search and not any(search in text_of(value).lower() for value in row.values()):
        return False
    pair = filters.pair.strip().lower()
    if pair and text_of(row.get(COL_PAIRS, "")).strip().lower() != pair:
        return False
    side = filters.side.strip().lower()
    if side and text_of(row.get(COL_SIDE, "")).strip().lower() != side:
        return False
    return True


def distinct_values(dataset: Dataset, column: str) -> list[str]:
    if not dataset.has_column(column):
        return []
    seen: dict[str, None] = {}
    for row in dataset.rows:
        value = row.get(column)
        if is_empty(value):
            continue
        seen.setdefault(text_of(value).strip(), None)
    return list(seen)


def _sort_key_for(column: str) -> Callable[[Row], Any]:
    kind = column_kind(column)
    if kind == KIND_NUMBER:
        return lambda row: to_number(row.get(column))
    if kind == KIND_TIME:
        return lambda row: to_timestamp(row.get(column))
    return lambda row: text_of(row.get(column, "")).lower()
