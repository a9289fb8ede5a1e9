"""
sheets.py — Spreadsheet Sheet Loader
=====================================
Reads one tab of a public Google spreadsheet through the "visualization
query" endpoint and turns it into a list of records keyed by column label.

The endpoint answers with JSON wrapped in a JavaScript callback::

    /*O_o*/
    google.visualization.Query.setResponse({"version": "0.6", ... "table": {...}});

The payload boundaries are located by delimiter rather than fixed offsets,
so a changed preamble does not break parsing.

Usage
-----
    from sheets import fetch_sheets

    primary, june, may = fetch_sheets(sheet_id, ["sheet1", "sheet2", "sheet3"])
"""

from __future__ import annotations

import concurrent.futures
import json
import logging
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

GVIZ_URL = "https://docs.google.com/spreadsheets/d/{sheet_id}/gviz/tq?tqx=out:json&sheet={sheet_name}"
_CALLBACK_MARKER = "setResponse("

Record = Dict[str, Any]


class SheetLoadError(Exception):
    """Raised when a sheet cannot be fetched or its payload cannot be parsed."""


# ══════════════════════════════════════════════════════════════════════════════
# Payload parsing
# ══════════════════════════════════════════════════════════════════════════════

def build_sheet_url(sheet_id: str, sheet_name: str) -> str:
    return GVIZ_URL.format(sheet_id=quote(sheet_id, safe=""), sheet_name=quote(sheet_name, safe=""))


def _extract_json(text: str) -> str:
    """Return the JSON object embedded in a gviz callback response."""
    marker = text.find(_CALLBACK_MARKER)
    search_from = marker + len(_CALLBACK_MARKER) if marker != -1 else 0
    start = text.find("{", search_from)
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise SheetLoadError("Response does not contain a JSON payload")
    return text[start:end + 1]


def _column_keys(cols: List[Any]) -> List[str]:
    keys = []
    for i, col in enumerate(cols):
        if not isinstance(col, dict):
            raise SheetLoadError(f"Column {i} is not an object")
        label = str(col.get("label") or "").strip()
        keys.append(label or col.get("id") or f"col_{i}")
    return keys


def parse_gviz_response(text: str) -> List[Record]:
    """
    Parse a gviz JSON response body into records.

    Every record carries one key per column; empty cells map to ``""``.
    Rows keep the order the sheet returns them in. A payload whose table
    does not have the expected shape raises SheetLoadError.
    """
    try:
        payload = json.loads(_extract_json(text))
    except json.JSONDecodeError as e:
        raise SheetLoadError(f"Malformed sheet payload: {e}") from e

    if payload.get("status") == "error":
        errors = payload.get("errors")
        reasons = "; ".join(
            str(err.get("detailed_message") or err.get("message") or err.get("reason") or "")
            for err in (errors if isinstance(errors, list) else [])
            if isinstance(err, dict)
        )
        raise SheetLoadError(f"Sheet query failed: {reasons or 'unknown error'}")

    table = payload.get("table")
    if not isinstance(table, dict):
        raise SheetLoadError("Sheet payload has no table")

    cols = table.get("cols", [])
    rows = table.get("rows", [])
    if not isinstance(cols, list) or not isinstance(rows, list):
        raise SheetLoadError("Sheet table 'cols' and 'rows' must be lists")

    keys = _column_keys(cols)
    records: List[Record] = []
    for n, row in enumerate(rows):
        if not isinstance(row, dict):
            raise SheetLoadError(f"Row {n} is not an object")
        cells = row.get("c") or []
        if not isinstance(cells, list):
            raise SheetLoadError(f"Row {n} cells are not a list")
        record: Record = {}
        for i, key in enumerate(keys):
            cell = cells[i] if i < len(cells) else None
            value = cell.get("v") if isinstance(cell, dict) else None
            record[key] = "" if value is None else value
        records.append(record)
    return records


# ══════════════════════════════════════════════════════════════════════════════
# HTTP
# ══════════════════════════════════════════════════════════════════════════════

def fetch_sheet(
    sheet_id: str,
    sheet_name: str,
    session: Optional[requests.Session] = None,
    timeout: float = 30,
) -> List[Record]:
    """Fetch and parse a single sheet. Raises SheetLoadError on any failure."""
    url = build_sheet_url(sheet_id, sheet_name)
    http = session or requests
    try:
        response = http.get(url, timeout=timeout)
    except requests.exceptions.RequestException as e:
        raise SheetLoadError(f"Could not fetch sheet '{sheet_name}': {e}") from e

    if response.status_code != 200:
        raise SheetLoadError(f"Sheet '{sheet_name}' returned HTTP {response.status_code}")

    records = parse_gviz_response(response.text)
    logger.info("Fetched sheet '%s': %d rows", sheet_name, len(records))
    return records


def fetch_sheets(
    sheet_id: str,
    sheet_names: Sequence[str],
    session: Optional[requests.Session] = None,
    timeout: float = 30,
) -> List[List[Record]]:
    """
    Fetch several sheets concurrently and return them in ``sheet_names`` order.
    If any sheet fails the whole load fails; partial results are discarded.
    """
    names = list(sheet_names)
    results: List[Optional[List[Record]]] = [None] * len(names)

    with concurrent.futures.ThreadPoolExecutor(max_workers=max(len(names), 1)) as executor:
        future_to_index = {
            executor.submit(fetch_sheet, sheet_id, name, session, timeout): i
            for i, name in enumerate(names)
        }
        for future in concurrent.futures.as_completed(future_to_index):
            i = future_to_index[future]
            # .result() re-raises the worker's SheetLoadError
            results[i] = future.result()

    return [r for r in results if r is not None]
