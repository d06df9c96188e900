from __future__ import annotations

import io
import zipfile

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook

from fill_calculator.config.app_config import build_app_config
from fill_calculator.web import app as web_app
from fill_calculator.workspace import WorkspaceStore

XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _xlsx_bytes() -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(["Pairs", "Side", "Filled Price", "Executed Amount"])
    sheet.append(["ETH_USDT", "Buy", 3000, 1])
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def client() -> TestClient:
    return TestClient(web_app.app)


@pytest.fixture
def loaded_client(client, fills_csv) -> TestClient:
    response = client.post(
        "/upload",
        files={"file": ("fills.csv", fills_csv, "text/csv")},
        follow_redirects=False,
    )
    assert response.status_code == 303
    return client


def test_index_shows_upload_form(client):
    response = client.get("/")
    assert response.status_code == 200
    assert 'action="/upload"' in response.text
    assert web_app.APP_CONFIG.app.session_cookie in response.cookies


def test_upload_renders_table(loaded_client):
    response = loaded_client.get("/")
    assert response.status_code == 200
    assert "fills.csv" in response.text
    assert "BTC_USDT" in response.text
    assert "2 of 2 rows" in response.text
    assert "Select rows in the table" in response.text


def test_failed_upload_keeps_previous_dataset(loaded_client):
    response = loaded_client.post(
        "/upload",
        files={"file": ("fills.pdf", b"%PDF-1.4", "application/pdf")},
        follow_redirects=False,
    )
    assert response.status_code == 303
    page = loaded_client.get("/").text
    assert "Unsupported file type" in page
    assert "BTC_USDT" in page
    assert "Unsupported file type" not in loaded_client.get("/").text


def test_view_api_filters_and_sorts(loaded_client):
    payload = loaded_client.get("/api/view", params={"side": "sell"}).json()
    assert payload["total_rows"] == 2
    assert [row["index"] for row in payload["rows"]] == [1]

    payload = loaded_client.get(
        "/api/view", params={"sort": "Filled Price", "dir": "desc"}
    ).json()
    assert [row["index"] for row in payload["rows"]] == [1, 0]


def test_toggle_updates_summary(loaded_client):
    response = loaded_client.post(
        "/selection/toggle", data={"index": "0", "query": "side=Buy"}, follow_redirects=False
    )
    assert response.status_code == 303
    assert response.headers["location"] == "/?side=Buy"

    summary = loaded_client.get("/api/summary", params={"target": "64000"}).json()
    assert summary["row_count"] == 1
    assert summary["buy"]["average_price"] == pytest.approx(60000)
    assert summary["target"]["total_profit"] == pytest.approx(2000)
    assert summary["base_currency"] == "BTC"

    view = loaded_client.get("/api/view").json()
    assert [row["selected"] for row in view["rows"]] == [True, False]


def test_toggle_out_of_range_is_rejected(loaded_client):
    response = loaded_client.post("/selection/toggle", data={"index": "42"})
    assert response.status_code == 400


def test_select_all_ignores_filters_by_default(loaded_client):
    loaded_client.post("/selection/all", data={"query": "side=Sell"}, follow_redirects=False)
    summary = loaded_client.get("/api/summary").json()
    assert summary["row_count"] == 2
    assert summary["cross"]["realized_pnl"] == pytest.approx(500)

    loaded_client.post("/selection/none", data={"query": ""}, follow_redirects=False)
    assert loaded_client.get("/api/summary").json()["row_count"] == 0


def test_select_all_can_be_scoped_to_view(loaded_client, monkeypatch):
    monkeypatch.setattr(
        web_app, "APP_CONFIG", build_app_config({"selection": {"select_all_scope": "view"}})
    )
    loaded_client.post("/selection/all", data={"query": "side=Sell"}, follow_redirects=False)
    summary = loaded_client.get("/api/summary").json()
    assert summary["row_count"] == 1
    assert summary["sell"]["row_count"] == 1


def test_page_renders_profit_calculator(loaded_client):
    loaded_client.post("/selection/all", data={"query": ""}, follow_redirects=False)
    page = loaded_client.get("/", params={"target": "64000"}).text
    assert "Break-even Analysis" in page
    assert "Realized P&amp;L" in page
    assert "+500.00" in page


def test_sell_only_selection_prompts_for_buys(loaded_client):
    loaded_client.post("/selection/toggle", data={"index": "1"}, follow_redirects=False)
    page = loaded_client.get("/").text
    assert "Select some buy orders" in page


def test_clear_drops_dataset(loaded_client):
    response = loaded_client.post("/clear", follow_redirects=False)
    assert response.status_code == 303
    assert 'action="/upload"' in loaded_client.get("/").text
    assert loaded_client.get("/api/view").json()["rows"] == []


def test_cell_filter_formats_by_column():
    assert web_app.cell_filter(60000, "Filled Price") == "60,000.0"
    assert web_app.cell_filter(0.123456789, "Executed Amount") == "0.123457"
    assert web_app.cell_filter(1500, "Total") == "1,500"
    assert web_app.cell_filter(0.0005, "Fee") == "0.0005"
    assert web_app.cell_filter("", "Pairs") == "-"
    assert web_app.cell_filter("Buy", "Side") == "Buy"


def test_cell_class_filter():
    assert web_app.cell_class_filter("Buy", "Side") == "buy"
    assert web_app.cell_class_filter("Sell", "Side") == "sell"
    assert web_app.cell_class_filter("60000", "Filled Price") == "num"
    assert web_app.cell_class_filter("BTC_USDT", "Pairs") == "pair"


def test_signed_and_tone_filters():
    assert web_app.signed_filter(12.5) == "+12.50"
    assert web_app.signed_filter(-1.23456, 4) == "-1.2346"
    assert web_app.signed_filter(None) == "n/a"
    assert web_app.tone_filter(0) == "positive"
    assert web_app.tone_filter(-2) == "negative"


def test_upload_with_corrupt_sheet_keeps_previous_dataset(loaded_client):
    source = zipfile.ZipFile(io.BytesIO(_xlsx_bytes()))
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as target:
        for item in source.infolist():
            data = source.read(item.filename)
            if item.filename == "xl/worksheets/sheet1.xml":
                data = b"<worksheet><sheetData><row><c"
            target.writestr(item, data)

    response = loaded_client.post(
        "/upload",
        files={"file": ("fills.xlsx", buffer.getvalue(), XLSX_TYPE)},
        follow_redirects=False,
    )
    assert response.status_code == 303
    page = loaded_client.get("/").text
    assert "Unable to read workbook" in page
    assert "BTC_USDT" in page
    assert loaded_client.get("/api/view").json()["file_name"] == "fills.csv"


def test_reads_do_not_create_sessions(monkeypatch):
    store = WorkspaceStore(max_sessions=4)
    monkeypatch.setattr(web_app, "STORE", store)
    for _ in range(10):
        fresh = TestClient(web_app.app)
        assert fresh.get("/api/summary").json()["row_count"] == 0
        assert fresh.get("/api/view").json()["rows"] == []
        assert fresh.get("/").status_code == 200
    assert len(store) == 0


def test_session_store_is_capped(monkeypatch, fills_csv):
    store = WorkspaceStore(max_sessions=3)
    monkeypatch.setattr(web_app, "STORE", store)
    for _ in range(5):
        fresh = TestClient(web_app.app)
        fresh.post(
            "/upload",
            files={"file": ("fills.csv", fills_csv, "text/csv")},
            follow_redirects=False,
        )
    assert len(store) == 3


def test_query_state_is_not_shared_between_requests(loaded_client):
    loaded_client.post("/selection/all", data={"query": ""}, follow_redirects=False)

    filtered = loaded_client.get("/api/view", params={"side": "sell"}).json()
    assert [row["index"] for row in filtered["rows"]] == [1]
    assert loaded_client.get("/api/summary", params={"target": "64000"}).json()["target"]

    assert [row["index"] for row in loaded_client.get("/api/view").json()["rows"]] == [0, 1]
    assert loaded_client.get("/api/summary").json()["target"] is None
