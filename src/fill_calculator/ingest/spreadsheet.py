from __future__ import annotations

import csv
import io
import json
import struct
import zipfile
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence
from xml.etree import ElementTree

import xlrd
from xlrd.compdoc import CompDocError
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from fill_calculator.models import CellValue, Dataset

SUPPORTED_SUFFIXES = (".xlsx", ".xlsm", ".xls", ".csv", ".tsv", ".json")

_TEXT_ENCODINGS = ("utf-8-sig", "cp1252", "latin-1")


class DecodeError(ValueError):
    pass


def load_dataset(path: str | Path) -> Dataset:
    source_path = Path(path)
    try:
        content = source_path.read_bytes()
    except OSError as exc:
        raise DecodeError(f"Unable to read {source_path}: {exc}") from exc
    return decode_spreadsheet(content, source_path.name)


def decode_spreadsheet(
    content: bytes, filename: str, *, max_bytes: int | None = None
) -> Dataset:
    suffix = Path(filename).suffix.lower()
    if not content:
        raise DecodeError("Uploaded file is empty.")
    if max_bytes is not None and len(content) > max_bytes:
        raise DecodeError(f"File is larger than {max_bytes} bytes.")

    if suffix in {".xlsx", ".xlsm"}:
        table = _read_workbook(content)
    elif suffix == ".xls":
        table = _read_legacy_workbook(content)
    elif suffix in {".csv", ".tsv"}:
        table = _read_delimited(content, delimiter="\t" if suffix == ".tsv" else ",")
    elif suffix == ".json":
        return _read_json(content, filename)
    else:
        raise DecodeError(f"Unsupported file type: {suffix or filename}")

    return _dataset_from_table(table, filename)


def _read_workbook(content: bytes) -> list[list[Any]]:
    # read_only workbooks parse sheet XML lazily, so row iteration stays inside the guard.
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
        try:
            if not workbook.sheetnames:
                raise DecodeError("Workbook has no worksheets.")
            worksheet = workbook[workbook.sheetnames[0]]
            return [list(row) for row in worksheet.iter_rows(values_only=True)]
        finally:
            workbook.close()
    except DecodeError:
        raise
    except (
        InvalidFileException,
        zipfile.BadZipFile,
        ElementTree.ParseError,
        KeyError,
        OSError,
        TypeError,
        ValueError,
    ) as exc:
        raise DecodeError(f"Unable to read workbook: {exc}") from exc


def _read_legacy_workbook(content: bytes) -> list[list[Any]]:
    try:
        book = xlrd.open_workbook(file_contents=content, on_demand=True)
        try:
            if not book.nsheets:
                raise DecodeError("Workbook has no worksheets.")
            sheet = book.sheet_by_index(0)
            return [
                [_legacy_cell(cell, book.datemode) for cell in sheet.row(position)]
                for position in range(sheet.nrows)
            ]
        finally:
            book.release_resources()
    except DecodeError:
        raise
    except (
        xlrd.XLRDError,
        CompDocError,
        struct.error,
        IndexError,
        KeyError,
        TypeError,
        ValueError,
    ) as exc:
        raise DecodeError(f"Unable to read workbook: {exc}") from exc


def _legacy_cell(cell: Any, datemode: int) -> Any:
    if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK, xlrd.XL_CELL_ERROR):
        return None
    if cell.ctype == xlrd.XL_CELL_BOOLEAN:
        return bool(cell.value)
    if cell.ctype == xlrd.XL_CELL_DATE:
        return xlrd.xldate.xldate_as_datetime(cell.value, datemode)
    if cell.ctype == xlrd.XL_CELL_NUMBER:
        value = float(cell.value)
        return int(value) if value.is_integer() else value
    return cell.value


def _read_delimited(content: bytes, delimiter: str) -> list[list[Any]]:
    text = _decode_text(content)
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)
    try:
        return [list(row) for row in reader]
    except csv.Error as exc:
        raise DecodeError(f"Malformed delimited file: {exc}") from exc


def _read_json(content: bytes, filename: str) -> Dataset:
    try:
        payload = json.loads(_decode_text(content))
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Invalid JSON: {exc}") from exc

    records = _extract_records(payload)
    headers: list[str] = []
    for record in records:
        for key in record:
            if str(key) not in headers:
                headers.append(str(key))
    if not headers:
        raise DecodeError("No columns found in JSON payload.")

    normalized = [
        {str(key): _normalize_cell(value) for key, value in record.items()} for record in records
    ]
    return Dataset.from_records(headers, normalized, file_name=filename)


def _extract_records(payload: Any) -> list[Mapping[str, Any]]:
    if isinstance(payload, dict):
        for key in ("data", "rows", "fills"):
            if key in payload and isinstance(payload[key], list):
                payload = payload[key]
                break
    if not isinstance(payload, list):
        raise DecodeError("Unsupported JSON format for rows payload.")
    records = [item for item in payload if isinstance(item, dict)]
    if len(records) != len(payload):
        raise DecodeError("JSON rows must be objects.")
    return records


def _decode_text(content: bytes) -> str:
    for encoding in _TEXT_ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise DecodeError("Unable to decode file text.")


def _dataset_from_table(table: Sequence[Sequence[Any]], filename: str) -> Dataset:
    rows = [row for row in table if not _is_blank_row(row)]
    if not rows:
        raise DecodeError("File has no header row.")

    headers = _build_headers(rows[0])
    records: list[dict[str, CellValue]] = []
    for raw in rows[1:]:
        record: dict[str, CellValue] = {}
        for position, header in enumerate(headers):
            value = raw[position] if position < len(raw) else None
            record[header] = _normalize_cell(value)
        records.append(record)
    return Dataset.from_records(headers, records, file_name=filename)


def _build_headers(raw: Iterable[Any]) -> list[str]:
    headers: list[str] = []
    seen: dict[str, int] = {}
    cells = list(raw)
    while cells and _normalize_cell(cells[-1]) == "":
        cells.pop()
    for position, cell in enumerate(cells, start=1):
        name = str(_normalize_cell(cell)).strip() or f"Column {position}"
        count = seen.get(name, 0) + 1
        seen[name] = count
        headers.append(name if count == 1 else f"{name} ({count})")
    return headers


def _normalize_cell(value: Any) -> CellValue:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).upper()
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, str):
        return value
    return str(value)


def _is_blank_row(row: Sequence[Any]) -> bool:
    return all(_normalize_cell(cell) == "" for cell in row)
