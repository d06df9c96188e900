from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from fill_calculator.models import (
    COL_AMOUNT,
    COL_FEE,
    COL_PAIRS,
    COL_PRICE,
    COL_SIDE,
    COL_TOTAL,
    SIDE_BUY,
    SIDE_SELL,
    Dataset,
    Row,
)
from fill_calculator.values import is_empty, parse_number, text_of, to_number

DEFAULT_BASE_CURRENCY = "CRYPTO"


@dataclass(frozen=True)
class SideTotals:
    row_count: int
    priced_rows: int
    total_value: float
    total_quantity: float
    average_price: float
    total_fees: float


@dataclass(frozen=True)
class CrossSideMetrics:
    net_quantity: float
    realized_pnl: float
    price_diff: float


@dataclass(frozen=True)
class TargetMetrics:
    target_price: float
    profit_per_unit: float
    profit_percentage: float
    total_profit: float
    profit_in_base: float
    sell_value: float
    break_even_price: float
    distance_to_break_even_pct: float


@dataclass(frozen=True)
class Aggregate:
    row_count: int
    overall: SideTotals
    buy: SideTotals
    sell: SideTotals
    cross: CrossSideMetrics | None
    target: TargetMetrics | None
    base_currency: str

    @property
    def has_selection(self) -> bool:
        return self.row_count > 0

    @property
    def has_buys(self) -> bool:
        return self.buy.row_count > 0


def summarize(
    dataset: Dataset,
    selection: Iterable[int],
    target_price: float | None = None,
) -> Aggregate:
    size = len(dataset)
    selected_rows = [dataset.rows[index] for index in selection if 0 <= index < size]

    buy_rows = [row for row in selected_rows if row.get(COL_SIDE) == SIDE_BUY]
    sell_rows = [row for row in selected_rows if row.get(COL_SIDE) == SIDE_SELL]

    overall = compute_side_totals(selected_rows)
    buy = compute_side_totals(buy_rows)
    sell = compute_side_totals(sell_rows)

    cross = None
    if buy_rows and sell_rows:
        cross = compute_cross_side(buy, sell)

    target = None
    if target_price is not None and target_price > 0 and buy.total_quantity > 0:
        target = compute_target_metrics(buy, target_price)

    return Aggregate(
        row_count=len(selected_rows),
        overall=overall,
        buy=buy,
        sell=sell,
        cross=cross,
        target=target,
        base_currency=base_currency(selected_rows),
    )


def compute_side_totals(rows: Iterable[Row]) -> SideTotals:
    row_count = 0
    priced_rows = 0
    total_value = 0.0
    total_quantity = 0.0
    total_fees = 0.0
    for row in rows:
        row_count += 1
        measured = _price_and_quantity(row)
        if measured is None:
            continue
        price, quantity = measured
        priced_rows += 1
        total_value += to_number(row.get(COL_TOTAL)) or price * quantity
        total_quantity += quantity
        total_fees += to_number(row.get(COL_FEE))

    return SideTotals(
        row_count=row_count,
        priced_rows=priced_rows,
        total_value=total_value,
        total_quantity=total_quantity,
        average_price=weighted_average(total_value, total_quantity),
        total_fees=total_fees,
    )


def compute_cross_side(buy: SideTotals, sell: SideTotals) -> CrossSideMetrics:
    realized_pnl = 0.0
    if sell.total_quantity > 0 and buy.average_price > 0 and sell.average_price > 0:
        matched_quantity = min(buy.total_quantity, sell.total_quantity)
        realized_pnl = (sell.average_price - buy.average_price) * matched_quantity
    return CrossSideMetrics(
        net_quantity=buy.total_quantity - sell.total_quantity,
        realized_pnl=realized_pnl,
        price_diff=sell.average_price - buy.average_price,
    )


def compute_target_metrics(buy: SideTotals, target_price: float) -> TargetMetrics:
    average = buy.average_price
    profit_per_unit = target_price - average
    profit_percentage = profit_per_unit / average * 100 if average else 0.0
    break_even = break_even_price(buy)
    distance = 0.0
    if break_even:
        distance = (target_price - break_even) / break_even * 100
    return TargetMetrics(
        target_price=target_price,
        profit_per_unit=profit_per_unit,
        profit_percentage=profit_percentage,
        total_profit=profit_per_unit * buy.total_quantity,
        profit_in_base=buy.total_quantity * profit_percentage / 100,
        sell_value=target_price * buy.total_quantity,
        break_even_price=break_even,
        distance_to_break_even_pct=distance,
    )


def break_even_price(buy: SideTotals) -> float:
    if buy.total_value == 0:
        return buy.average_price
    return buy.average_price * (1 + buy.total_fees / buy.total_value)


def weighted_average(total_value: float, total_quantity: float) -> float:
    if total_quantity == 0:
        return 0.0
    return total_value / total_quantity


def base_currency(rows: list[Row]) -> str:
    if not rows:
        return DEFAULT_BASE_CURRENCY
    pair = text_of(rows[0].get(COL_PAIRS, "")).strip()
    base = pair.split("_")[0].strip()
    return base or DEFAULT_BASE_CURRENCY


def _price_and_quantity(row: Row) -> tuple[float, float] | None:
    # Blank cells count as zero; text that is present but not numeric drops the row.
    price_raw = row.get(COL_PRICE)
    quantity_raw = row.get(COL_AMOUNT)
    price = 0.0 if is_empty(price_raw) else parse_number(price_raw)
    quantity = 0.0 if is_empty(quantity_raw) else parse_number(quantity_raw)
    if price is None or quantity is None:
        return None
    return price, quantity
