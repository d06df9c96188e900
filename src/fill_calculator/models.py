from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Mapping, Sequence, Union

CellValue = Union[float, int, str]
Row = Mapping[str, CellValue]

COL_PAIRS = "Pairs"
COL_SIDE = "Side"
COL_PRICE = "Filled Price"
COL_AMOUNT = "Executed Amount"
COL_TOTAL = "Total"
COL_FEE = "Fee"

SIDE_BUY = "Buy"
SIDE_SELL = "Sell"


@dataclass(frozen=True)
class Dataset:
    headers: tuple[str, ...]
    rows: tuple[Row, ...]
    file_name: str = ""

    @classmethod
    def from_records(
        cls,
        headers: Sequence[str],
        records: Sequence[Mapping[str, CellValue]],
        *,
        file_name: str = "",
    ) -> Dataset:
        header_tuple = tuple(str(header) for header in headers)
        rows = tuple(
            {header: record.get(header, "") for header in header_tuple} for record in records
        )
        return cls(headers=header_tuple, rows=rows, file_name=file_name)

    @classmethod
    def empty(cls) -> Dataset:
        return cls(headers=(), rows=())

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[Row]:
        return iter(self.rows)

    def __getitem__(self, index: int) -> Row:
        return self.rows[index]

    def has_column(self, name: str) -> bool:
        return name in self.headers

    @property
    def indices(self) -> range:
        return range(len(self.rows))


@dataclass(frozen=True)
class ViewRow:
    row: Row
    index: int


@dataclass(frozen=True)
class View:
    rows: tuple[ViewRow, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[ViewRow]:
        return iter(self.rows)

    @property
    def indices(self) -> list[int]:
        return [item.index for item in self.rows]
