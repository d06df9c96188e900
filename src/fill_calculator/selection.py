from __future__ import annotations

from typing import Iterable, Iterator

SCOPE_DATASET = "dataset"
SCOPE_VIEW = "view"
SELECT_ALL_SCOPES = (SCOPE_DATASET, SCOPE_VIEW)


class Selection:
    """Original-row indices the user has ticked.

    Indices always refer to positions in the Dataset, never in a filtered
    View, so changing filters or sort order leaves the selection intact.
    """

    def __init__(self, indices: Iterable[int] = ()) -> None:
        self._indices: set[int] = {int(index) for index in indices}

    def toggle_row(self, index: int) -> bool:
        if index in self._indices:
            self._indices.discard(index)
            return False
        self._indices.add(index)
        return True

    def select_all(self, indices: Iterable[int]) -> None:
        self._indices.update(indices)

    def deselect_all(self, indices: Iterable[int] | None = None) -> None:
        if indices is None:
            self._indices.clear()
            return
        self._indices.difference_update(indices)

    def clear(self) -> None:
        self._indices.clear()

    def contains(self, index: int) -> bool:
        return index in self._indices

    def all_selected(self, indices: Iterable[int]) -> bool:
        candidates = list(indices)
        return bool(candidates) and all(index in self._indices for index in candidates)

    def some_selected(self, indices: Iterable[int]) -> bool:
        candidates = list(indices)
        hits = sum(1 for index in candidates if index in self._indices)
        return 0 < hits < len(candidates)

    def copy(self) -> Selection:
        return Selection(self._indices)

    def __contains__(self, index: object) -> bool:
        return index in self._indices

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._indices))

    def __len__(self) -> int:
        return len(self._indices)

    def __bool__(self) -> bool:
        return bool(self._indices)

    def __repr__(self) -> str:
        return f"Selection({sorted(self._indices)!r})"
