from __future__ import annotations

import pytest

from fill_calculator.models import Dataset

HEADERS = ["Time", "Pairs", "Side", "Filled Price", "Executed Amount", "Total", "Fee", "Role"]


@pytest.fixture
def pair_dataset() -> Dataset:
    return Dataset.from_records(
        ["Side", "Filled Price", "Executed Amount", "Total", "Fee"],
        [
            {"Side": "Buy", "Filled Price": 100, "Executed Amount": 2, "Total": 200, "Fee": 1},
            {"Side": "Sell", "Filled Price": 150, "Executed Amount": 2, "Total": 300},
        ],
    )


@pytest.fixture
def fills_dataset() -> Dataset:
    records = [
        {
            "Time": "2024-03-02 10:00:00",
            "Pairs": "BTC_USDT",
            "Side": "Buy",
            "Filled Price": "60000",
            "Executed Amount": "0.5",
            "Total": "30000",
            "Fee": "0.0005",
            "Role": "Taker",
        },
        {
            "Time": "2024-03-01 09:30:00",
            "Pairs": "ETH_USDT",
            "Side": "Buy",
            "Filled Price": "3000",
            "Executed Amount": "2",
            "Total": "",
            "Fee": "0.002",
            "Role": "Maker",
        },
        {
            "Time": "2024-03-03 12:15:00",
            "Pairs": "BTC_USDT",
            "Side": "Sell",
            "Filled Price": "62000",
            "Executed Amount": "0.25",
            "Total": "15500",
            "Fee": "7.75",
            "Role": "Taker",
        },
        {
            "Time": "not a time",
            "Pairs": "SOL_USDT",
            "Side": "Buy",
            "Filled Price": "150",
            "Executed Amount": "10",
            "Total": "1500",
            "Fee": "n/a",
            "Role": "Maker",
        },
    ]
    return Dataset.from_records(HEADERS, records, file_name="fills.csv")


FILLS_CSV = (
    "Time,Pairs,Side,Filled Price,Executed Amount,Total,Fee,Role\n"
    "2024-03-02 10:00:00,BTC_USDT,Buy,60000,0.5,30000,0.0005,Taker\n"
    "2024-03-03 12:15:00,BTC_USDT,Sell,62000,0.25,15500,7.75,Taker\n"
)


@pytest.fixture
def fills_csv() -> bytes:
    return FILLS_CSV.encode("utf-8")
