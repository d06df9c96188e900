from __future__ import annotations

import secrets
import threading
from collections import OrderedDict
from dataclasses import dataclass, field

from fill_calculator.ingest.spreadsheet import DecodeError, decode_spreadsheet
from fill_calculator.metrics.aggregate import Aggregate, summarize
from fill_calculator.models import Dataset, View
from fill_calculator.selection import Selection
from fill_calculator.view import SortSpec, ViewFilters, apply_view

DEFAULT_MAX_SESSIONS = 64


@dataclass(frozen=True)
class Snapshot:
    """Dataset and selection captured together for one request.

    Views and summaries are recomputed from the snapshot, so per-request
    filters, sort order and target price never touch shared state.
    """

    dataset: Dataset
    selection: Selection

    @property
    def loaded(self) -> bool:
        return bool(self.dataset.headers)

    def view(self, filters: ViewFilters | None = None, sort: SortSpec | None = None) -> View:
        return apply_view(self.dataset, filters, sort)

    def summary(self, target_price: float | None = None) -> Aggregate:
        return summarize(self.dataset, self.selection, target_price)


@dataclass
class Workspace:
    dataset: Dataset = field(default_factory=Dataset.empty)
    selection: Selection = field(default_factory=Selection)
    error: str | None = None
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    @property
    def loaded(self) -> bool:
        return bool(self.dataset.headers)

    def snapshot(self) -> Snapshot:
        with self._lock:
            return Snapshot(dataset=self.dataset, selection=self.selection.copy())

    def replace(self, dataset: Dataset) -> None:
        with self._lock:
            self.dataset = dataset
            self.selection = Selection()
            self.error = None

    def clear(self) -> None:
        with self._lock:
            self.dataset = Dataset.empty()
            self.selection = Selection()
            self.error = None

    def record_error(self, message: str) -> None:
        with self._lock:
            self.error = message

    def take_error(self) -> str | None:
        with self._lock:
            error, self.error = self.error, None
            return error

    def toggle_row(self, index: int) -> bool:
        with self._lock:
            if not 0 <= index < len(self.dataset):
                raise IndexError(f"Row {index} is out of range.")
            return self.selection.toggle_row(index)

    def select_all(self, filters: ViewFilters | None = None) -> None:
        # None selects the whole dataset; filters limit it to the matching rows.
        with self._lock:
            self.selection.select_all(self._scope(filters))

    def deselect_all(self, filters: ViewFilters | None = None) -> None:
        with self._lock:
            if filters is None:
                self.selection.clear()
            else:
                self.selection.deselect_all(self._scope(filters))

    def _scope(self, filters: ViewFilters | None) -> list[int] | range:
        if filters is None:
            return self.dataset.indices
        return apply_view(self.dataset, filters).indices


class WorkspaceStore:
    def __init__(self, max_sessions: int = DEFAULT_MAX_SESSIONS) -> None:
        self._lock = threading.Lock()
        self._workspaces: OrderedDict[str, Workspace] = OrderedDict()
        self.max_sessions = max(1, max_sessions)

    def new_session_id(self) -> str:
        return secrets.token_urlsafe(16)

    def peek(self, session_id: str | None) -> Workspace | None:
        if not session_id:
            return None
        with self._lock:
            workspace = self._workspaces.get(session_id)
            if workspace is not None:
                self._workspaces.move_to_end(session_id)
            return workspace

    def get(self, session_id: str) -> Workspace:
        with self._lock:
            workspace = self._workspaces.get(session_id)
            if workspace is None:
                workspace = Workspace()
                self._workspaces[session_id] = workspace
            self._workspaces.move_to_end(session_id)
            while len(self._workspaces) > self.max_sessions:
                self._workspaces.popitem(last=False)
            return workspace

    def load(
        self, session_id: str, content: bytes, filename: str, *, max_bytes: int | None = None
    ) -> bool:
        # Decode outside any lock; only the handoff is serialized.
        try:
            dataset = decode_spreadsheet(content, filename, max_bytes=max_bytes)
        except DecodeError as exc:
            self.get(session_id).record_error(str(exc))
            return False
        self.get(session_id).replace(dataset)
        return True

    def drop(self, session_id: str) -> None:
        with self._lock:
            self._workspaces.pop(session_id, None)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._workspaces

    def __len__(self) -> int:
        with self._lock:
            return len(self._workspaces)
