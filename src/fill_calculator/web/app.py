from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import parse_qsl, urlencode

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from jinja2 import Undefined

from fill_calculator.config.app_config import load_app_config
from fill_calculator.ingest.spreadsheet import SUPPORTED_SUFFIXES
from fill_calculator.metrics.aggregate import Aggregate, SideTotals
from fill_calculator.models import COL_PAIRS, COL_SIDE, SIDE_BUY, SIDE_SELL
from fill_calculator.selection import SCOPE_VIEW
from fill_calculator.values import KIND_NUMBER, column_kind, is_empty, parse_number
from fill_calculator.view import SortSpec, ViewFilters, distinct_values
from fill_calculator.workspace import Snapshot, Workspace, WorkspaceStore

APP_ROOT = Path(__file__).resolve().parent
TEMPLATES = Jinja2Templates(directory=str(APP_ROOT / "templates"))
APP_CONFIG = load_app_config(env=os.environ)
STORE = WorkspaceStore(max_sessions=APP_CONFIG.app.max_sessions)

_STATE_PARAMS = ("q", "pair", "side", "sort", "dir", "target")

app = FastAPI(title="Fill Calculator")
app.mount("/static", StaticFiles(directory=str(APP_ROOT / "static")), name="static")


@app.get("/", response_class=HTMLResponse)
def index(request: Request) -> Response:
    session_id, is_new = _session_id(request)
    workspace = _existing_workspace(session_id)
    state = _parse_state(request.query_params)
    error = workspace.take_error()
    snapshot = workspace.snapshot()

    context: dict[str, Any] = {
        "page": "index",
        "error": error,
        "accept": ",".join(SUPPORTED_SUFFIXES),
        "loaded": snapshot.loaded,
        "query": state["query"],
        "state": state,
    }
    if snapshot.loaded:
        context.update(_table_context(snapshot, state))

    response = TEMPLATES.TemplateResponse(request=request, name="index.html", context=context)
    return _with_session(response, session_id, is_new)


@app.post("/upload")
def upload(request: Request, file: UploadFile = File(...)) -> Response:
    session_id, is_new = _session_id(request)
    max_bytes = APP_CONFIG.app.max_upload_bytes
    filename = Path(file.filename or "").name
    if not filename:
        STORE.get(session_id).record_error("Choose a spreadsheet before uploading.")
        return _redirect("", session_id, is_new)

    content = file.file.read(max_bytes + 1)
    if not STORE.load(session_id, content, filename, max_bytes=max_bytes):
        print(f"Upload of {filename} failed: {STORE.get(session_id).error}", file=sys.stderr)
    return _redirect("", session_id, is_new)


@app.post("/clear")
def clear(request: Request) -> Response:
    session_id, is_new = _session_id(request)
    workspace = STORE.peek(session_id)
    if workspace is not None:
        workspace.clear()
    return _redirect("", session_id, is_new)


@app.post("/selection/toggle")
def toggle_selection(request: Request, index: int = Form(...), query: str = Form("")) -> Response:
    session_id, is_new = _session_id(request)
    try:
        STORE.get(session_id).toggle_row(index)
    except IndexError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _redirect(query, session_id, is_new)


@app.post("/selection/all")
def select_all(request: Request, query: str = Form("")) -> Response:
    session_id, is_new = _session_id(request)
    STORE.get(session_id).select_all(_scope_filters(query))
    return _redirect(query, session_id, is_new)


@app.post("/selection/none")
def select_none(request: Request, query: str = Form("")) -> Response:
    session_id, is_new = _session_id(request)
    STORE.get(session_id).deselect_all(_scope_filters(query))
    return _redirect(query, session_id, is_new)


@app.get("/api/view")
def view_api(request: Request) -> dict[str, Any]:
    session_id, _ = _session_id(request)
    snapshot = _existing_workspace(session_id).snapshot()
    state = _parse_state(request.query_params)
    view = snapshot.view(state["filters"], state["sort_spec"])
    return {
        "file_name": snapshot.dataset.file_name,
        "headers": list(snapshot.dataset.headers),
        "total_rows": len(snapshot.dataset),
        "rows": [
            {
                "index": item.index,
                "selected": item.index in snapshot.selection,
                "values": dict(item.row),
            }
            for item in view
        ],
    }


@app.get("/api/summary")
def summary_api(request: Request) -> dict[str, Any]:
    session_id, _ = _session_id(request)
    snapshot = _existing_workspace(session_id).snapshot()
    state = _parse_state(request.query_params)
    return _summary_payload(snapshot.summary(state["target_price"]))


def _session_id(request: Request) -> tuple[str, bool]:
    session_id = request.cookies.get(APP_CONFIG.app.session_cookie)
    if session_id:
        return session_id, False
    return STORE.new_session_id(), True


def _existing_workspace(session_id: str) -> Workspace:
    # Reads never register a session; unknown ids render the empty state.
    return STORE.peek(session_id) or Workspace()


def _with_session(response: Response, session_id: str, is_new: bool) -> Response:
    if is_new:
        response.set_cookie(
            APP_CONFIG.app.session_cookie, session_id, httponly=True, samesite="lax"
        )
    return response


def _redirect(query: str, session_id: str, is_new: bool) -> Response:
    target = "/"
    cleaned = _clean_query(dict(parse_qsl(query)))
    if cleaned:
        target = f"/?{cleaned}"
    return _with_session(RedirectResponse(target, status_code=303), session_id, is_new)


def _parse_state(params: Mapping[str, str]) -> dict[str, Any]:
    filters = ViewFilters(
        search=(params.get("q") or "").strip(),
        pair=(params.get("pair") or "").strip(),
        side=(params.get("side") or "").strip(),
    )
    sort = SortSpec.parse(params.get("sort"), params.get("dir"))
    target = _parse_target(params.get("target"))

    return {
        "filters": filters,
        "sort_spec": sort,
        "q": filters.search,
        "pair": filters.pair,
        "side": filters.side,
        "sort": sort.key or "",
        "dir": "desc" if sort.descending else "asc",
        "target": params.get("target") or "",
        "target_price": target,
        "query": _clean_query(params),
    }


def _scope_filters(query: str) -> ViewFilters | None:
    if APP_CONFIG.selection.select_all_scope != SCOPE_VIEW:
        return None
    return _parse_state(dict(parse_qsl(query)))["filters"]


def _parse_target(value: str | None) -> float | None:
    parsed = parse_number(value)
    if parsed is None or parsed <= 0:
        return None
    return parsed


def _clean_query(params: Mapping[str, str]) -> str:
    pairs = []
    for key in _STATE_PARAMS:
        value = (params.get(key) or "").strip()
        if value:
            pairs.append((key, value))
    return urlencode(pairs)


def _table_context(snapshot: Snapshot, state: dict[str, Any]) -> dict[str, Any]:
    dataset = snapshot.dataset
    selection = snapshot.selection
    view = snapshot.view(state["filters"], state["sort_spec"])
    items = list(view)
    limit = APP_CONFIG.display.table_limit
    hidden = 0
    if limit is not None and len(items) > limit:
        hidden = len(items) - limit
        items = items[:limit]

    scope_indices = dataset.indices
    if APP_CONFIG.selection.select_all_scope == SCOPE_VIEW:
        scope_indices = view.indices

    return {
        "file_name": dataset.file_name,
        "headers": dataset.headers,
        "rows": items,
        "hidden_rows": hidden,
        "total_rows": len(dataset),
        "view_rows": len(view),
        "selection": selection,
        "all_selected": selection.all_selected(scope_indices),
        "some_selected": selection.some_selected(scope_indices),
        "select_all_scope": APP_CONFIG.selection.select_all_scope,
        "pair_options": distinct_values(dataset, COL_PAIRS),
        "side_options": distinct_values(dataset, COL_SIDE),
        "sort_links": _sort_links(dataset.headers, state),
        "summary": snapshot.summary(state["target_price"]),
    }


def _sort_links(headers: tuple[str, ...], state: dict[str, Any]) -> dict[str, str]:
    links: dict[str, str] = {}
    for header in headers:
        direction = "asc"
        if state["sort"] == header and state["dir"] == "asc":
            direction = "desc"
        params = {key: state[key] for key in ("q", "pair", "side", "target")}
        params.update({"sort": header, "dir": direction})
        links[header] = f"/?{_clean_query(params)}"
    return links


def _side_payload(totals: SideTotals) -> dict[str, Any]:
    return {
        "row_count": totals.row_count,
        "priced_rows": totals.priced_rows,
        "total_value": totals.total_value,
        "total_quantity": totals.total_quantity,
        "average_price": totals.average_price,
        "total_fees": totals.total_fees,
    }


def _summary_payload(aggregate: Aggregate) -> dict[str, Any]:
    cross = aggregate.cross
    target = aggregate.target
    return {
        "row_count": aggregate.row_count,
        "base_currency": aggregate.base_currency,
        "overall": _side_payload(aggregate.overall),
        "buy": _side_payload(aggregate.buy),
        "sell": _side_payload(aggregate.sell),
        "cross": None
        if cross is None
        else {
            "net_quantity": cross.net_quantity,
            "realized_pnl": cross.realized_pnl,
            "price_diff": cross.price_diff,
        },
        "target": None
        if target is None
        else {
            "target_price": target.target_price,
            "profit_per_unit": target.profit_per_unit,
            "profit_percentage": target.profit_percentage,
            "total_profit": target.total_profit,
            "profit_in_base": target.profit_in_base,
            "sell_value": target.sell_value,
            "break_even_price": target.break_even_price,
            "distance_to_break_even_pct": target.distance_to_break_even_pct,
        },
    }


def _fixed(value: Any, digits: int) -> str:
    if value is None or isinstance(value, Undefined):
        return "n/a"
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return "n/a"
    return f"{amount:.{digits}f}"


def _fraction(value: float, min_digits: int, max_digits: int) -> str:
    text = f"{value:,.{max_digits}f}"
    if "." not in text:
        return text
    whole, frac = text.split(".", 1)
    frac = frac.rstrip("0").ljust(min_digits, "0")
    return f"{whole}.{frac}" if frac else whole


def price_filter(value: float | None) -> str:
    return _fixed(value, 4)


def qty_filter(value: float | None) -> str:
    return _fixed(value, 6)


def money_filter(value: float | None) -> str:
    return _fixed(value, 2)


def signed_filter(value: float | None, digits: int = 2) -> str:
    text = _fixed(value, digits)
    if text != "n/a" and float(value) >= 0:
        return f"+{text}"
    return text


def tone_filter(value: float | None) -> str:
    if value is None or isinstance(value, Undefined):
        return ""
    return "positive" if float(value) >= 0 else "negative"


def cell_filter(value: Any, header: str) -> str:
    if value is None or isinstance(value, Undefined) or is_empty(value):
        return "-"
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return str(value)
    lowered = header.lower()
    if "price" in lowered or "filled" in lowered:
        return _fraction(float(value), 1, 4)
    if "amount" in lowered or "total" in lowered:
        return _fraction(float(value), 0, 6)
    if "fee" in lowered:
        return str(value)
    return _fraction(float(value), 0, 3)


def cell_class_filter(value: Any, header: str) -> str:
    classes = []
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        classes.append("num")
    elif column_kind(header) == KIND_NUMBER and parse_number(value) is not None:
        classes.append("num")
    lowered = header.lower()
    if "side" in lowered:
        if value == SIDE_BUY:
            classes.append("buy")
        elif value == SIDE_SELL:
            classes.append("sell")
    if "pairs" in lowered:
        classes.append("pair")
    return " ".join(classes)


TEMPLATES.env.filters.update(
    {
        "price": price_filter,
        "qty": qty_filter,
        "money": money_filter,
        "signed": signed_filter,
        "tone": tone_filter,
        "cell": cell_filter,
        "cell_class": cell_class_filter,
    }
)


def main() -> None:
    import uvicorn

    uvicorn.run(
        "fill_calculator.web.app:app",
        host=APP_CONFIG.app.host,
        port=APP_CONFIG.app.port,
        reload=APP_CONFIG.app.reload,
    )


if __name__ == "__main__":
    main()
