from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path

from fill_calculator.ingest.spreadsheet import DecodeError, load_dataset
from fill_calculator.metrics.aggregate import Aggregate, SideTotals, summarize
from fill_calculator.models import Dataset, View
from fill_calculator.selection import SCOPE_DATASET, SCOPE_VIEW, Selection
from fill_calculator.values import text_of
from fill_calculator.view import SortSpec, ViewFilters, apply_view


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Filter a fills spreadsheet and summarize the selected rows."
    )
    parser.add_argument("path", type=Path, help="Fills export (xlsx/csv/tsv/json).")
    parser.add_argument("--search", type=str, default="", help="Substring matched against every column.")
    parser.add_argument("--pair", type=str, default="", help="Only rows with this Pairs value.")
    parser.add_argument("--side", type=str, default="", help="Only rows with this Side value.")
    parser.add_argument("--sort", type=str, default=None, help="Column to sort by.")
    parser.add_argument("--desc", action="store_true", help="Sort descending.")
    parser.add_argument(
        "--select",
        type=str,
        default=SCOPE_VIEW,
        help="Rows to summarize: 'all' (whole file), 'view' (filtered rows) or comma separated indices.",
    )
    parser.add_argument("--target", type=float, default=None, help="Hypothetical sell price.")
    parser.add_argument("--limit", type=int, default=20, help="Max rows to print (0 for all).")
    parser.add_argument("--json", action="store_true", help="Print the summary as JSON.")
    args = parser.parse_args(argv)

    try:
        dataset = load_dataset(args.path)
    except DecodeError as exc:
        print(f"Failed to load {args.path}: {exc}", file=sys.stderr)
        return 2

    filters = ViewFilters(search=args.search, pair=args.pair, side=args.side)
    view = apply_view(dataset, filters, SortSpec(key=args.sort, descending=args.desc))

    try:
        selection = _resolve_selection(args.select, dataset, view)
    except ValueError as exc:
        print(f"Invalid --select value: {exc}", file=sys.stderr)
        return 2

    aggregate = summarize(dataset, selection, args.target)

    if args.json:
        payload = {
            "file": dataset.file_name,
            "rows": len(dataset),
            "view_rows": len(view),
            "selected": list(selection),
            "summary": asdict(aggregate),
        }
        print(json.dumps(payload, indent=2))
        return 0

    for line in _render_view(dataset, view, args.limit):
        print(line)
    print()
    for line in render_summary(aggregate):
        print(line)
    return 0


def _resolve_selection(raw: str, dataset: Dataset, view: View) -> Selection:
    cleaned = raw.strip().lower()
    selection = Selection()
    if cleaned in {"all", SCOPE_DATASET}:
        selection.select_all(dataset.indices)
        return selection
    if cleaned == SCOPE_VIEW:
        selection.select_all(view.indices)
        return selection
    for part in cleaned.split(","):
        if not part.strip():
            continue
        index = int(part)
        if not 0 <= index < len(dataset):
            raise ValueError(f"row {index} is out of range")
        selection.toggle_row(index)
    return selection


def _render_view(dataset: Dataset, view: View, limit: int) -> list[str]:
    lines = ["index " + " | ".join(dataset.headers)]
    items = list(view)
    if limit > 0:
        items = items[:limit]
    for item in items:
        cells = [text_of(item.row.get(header, "")) or "-" for header in dataset.headers]
        lines.append(f"{item.index} " + " | ".join(cells))
    if len(view) > len(items):
        lines.append(f"... {len(view) - len(items)} more rows")
    if not len(view):
        lines.append("No rows match the current filters.")
    return lines


def render_summary(aggregate: Aggregate) -> list[str]:
    if not aggregate.has_selection:
        return ["No rows selected."]

    lines = [f"Selected rows: {aggregate.row_count}"]
    lines.extend(_side_lines("overall", aggregate.overall))
    if aggregate.buy.row_count:
        lines.extend(_side_lines(f"buys ({aggregate.buy.row_count})", aggregate.buy))
    if aggregate.sell.row_count:
        lines.extend(_side_lines(f"sells ({aggregate.sell.row_count})", aggregate.sell))

    cross = aggregate.cross
    if cross is not None:
        lines.append(
            f"net_qty={cross.net_quantity:.6f} realized_pnl={cross.realized_pnl:+.2f} "
            f"price_diff={cross.price_diff:+.4f}"
        )

    target = aggregate.target
    if target is not None:
        unit = aggregate.base_currency
        lines.append(
            f"target={target.target_price:.4f} profit_per_{unit}={target.profit_per_unit:+.4f} "
            f"profit_pct={target.profit_percentage:+.2f}% total_profit={target.total_profit:+.2f} "
            f"profit_{unit}={target.profit_in_base:+.6f} sell_value={target.sell_value:.2f}"
        )
        lines.append(
            f"break_even={target.break_even_price:.4f} "
            f"distance={target.distance_to_break_even_pct:+.2f}%"
        )
    elif not aggregate.has_buys:
        lines.append("Select some buy orders to calculate potential profits.")
    return lines


def _side_lines(label: str, totals: SideTotals) -> list[str]:
    return [
        f"{label}: avg_price={totals.average_price:.4f} qty={totals.total_quantity:.6f} "
        f"value={totals.total_value:.2f} fees={totals.total_fees:.6g}"
    ]


if __name__ == "__main__":
    raise SystemExit(main())
