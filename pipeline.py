"""
pipeline.py — Payment Status Join & Derive
===========================================
Turns the three fetched sheets into the dashboard's "last N months payment
status" rows, then filters, summarises and pages them.

  • primary sheet    : every customer still owing for the current period,
                       with a signed ledger balance
  • auxiliary sheets : one per earlier period; presence of a customer id
                       means "No Payment" for that period

Rows are rebuilt from scratch on every load and keep primary-sheet order.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

STATUS_PAID = "Payment"
STATUS_UNPAID = "No Payment"
STATUS_VALUES = [STATUS_UNPAID, STATUS_PAID]

ID_FIELD = "customer_id"
NAME_FIELD = "PPPoE_Name"
PHONE_FIELD = "client_phone"
AREA_FIELD = "area"
BALANCE_FIELD = "balance"

SEARCH_FIELDS = ("customer_id", "name", "phone", "area")


@dataclass
class CustomerStatus:
    """One joined dashboard row."""

    serial: int
    customer_id: str
    name: str
    phone: str
    area: str
    statuses: Dict[str, str] = field(default_factory=dict)  # period label -> status
    count: int = 0
    due_amount: int = 0
    due: str = ""

    def unpaid_periods(self) -> List[str]:
        return [p for p, s in self.statuses.items() if s == STATUS_UNPAID]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ══════════════════════════════════════════════════════════════════════════════
# Primitive helpers
# ══════════════════════════════════════════════════════════════════════════════

def _clean(v: Any) -> str:
    """Return stripped string; '' when None/NaN."""
    if v is None:
        return ""
    if isinstance(v, float) and (v != v):
        return ""
    return str(v).strip()


def _to_str_ref(v: Any) -> str:
    """Normalise identifiers to strings (strip .0 suffix from whole floats)."""
    if isinstance(v, float) and v == v and not math.isinf(v) and v == int(v):
        return str(int(v))
    return _clean(v)


def _to_float(v: Any) -> float:
    """Convert a ledger cell to float; blank or unparseable cells count as 0."""
    if isinstance(v, bool):
        return float(v)
    if isinstance(v, (int, float)):
        return 0.0 if v != v else float(v)
    s = _clean(v).replace(",", "").replace(" ", "")
    if s.startswith("(") and s.endswith(")"):
        s = "-" + s[1:-1]
    try:
        return float(s) if s else 0.0
    except ValueError:
        return 0.0


# ══════════════════════════════════════════════════════════════════════════════
# Due amount
# ══════════════════════════════════════════════════════════════════════════════

def compute_due(balance: float, formula: str = "offset", offset: float = 500) -> int:
    """
    Derive the non-negative due amount from a signed ledger balance.

    ``offset``  : balance < 0 -> |balance| + offset, else offset - balance
    ``clamped`` : max(balance, 0)

    The result is clamped at 0 and truncated toward zero.
    """
    if formula == "offset":
        due = abs(balance) + offset if balance < 0 else offset - balance
    elif formula == "clamped":
        due = balance
    else:
        raise ValueError(f"Unknown due formula: {formula}")
    return int(max(due, 0))


def format_due(amount: int, currency: str = "TK") -> str:
    return f"{amount} {currency}"


# ══════════════════════════════════════════════════════════════════════════════
# Join
# ══════════════════════════════════════════════════════════════════════════════

def _id_set(records: Iterable[Mapping[str, Any]], id_field: str) -> set:
    ids = {_to_str_ref(r.get(id_field)) for r in records}
    ids.discard("")
    return ids


def build_status_rows(
    primary: Sequence[Mapping[str, Any]],
    auxiliaries: Sequence[Sequence[Mapping[str, Any]]],
    periods: Sequence[str],
    formula: str = "offset",
    offset: float = 500,
    currency: str = "TK",
    id_field: str = ID_FIELD,
    name_field: str = NAME_FIELD,
    phone_field: str = PHONE_FIELD,
    area_field: str = AREA_FIELD,
    balance_field: str = BALANCE_FIELD,
) -> List[CustomerStatus]:
    """
    Left-join the primary sheet against the auxiliary id sets.

    ``periods[0]`` is the current period: every primary customer is unpaid
    for it. ``periods[k]`` (k >= 1) is unpaid when the id appears in
    ``auxiliaries[k - 1]``.
    """
    if len(auxiliaries) != len(periods) - 1:
        raise ValueError(
            f"Expected {len(periods) - 1} auxiliary sheets for periods {list(periods)}, got {len(auxiliaries)}"
        )

    columns = [id_field, name_field, phone_field, area_field, balance_field]
    df = pd.DataFrame.from_records(list(primary))
    df = df.reindex(columns=columns, fill_value="")
    if df.empty:
        return []

    ids = df[id_field].map(_to_str_ref)
    flags = pd.DataFrame(index=df.index)
    flags[periods[0]] = True
    for period, records in zip(periods[1:], auxiliaries):
        flags[period] = ids.isin(_id_set(records, id_field))

    counts = flags.sum(axis=1).astype(int)
    dues = df[balance_field].map(_to_float).map(lambda b: compute_due(b, formula, offset))

    rows: List[CustomerStatus] = []
    for i, idx in enumerate(df.index):
        statuses = {
            p: STATUS_UNPAID if bool(flags.at[idx, p]) else STATUS_PAID
            for p in periods
        }
        due_amount = int(dues.at[idx])
        rows.append(CustomerStatus(
            serial=i + 1,
            customer_id=ids.at[idx],
            name=_to_str_ref(df.at[idx, name_field]) or "-",
            phone=_to_str_ref(df.at[idx, phone_field]),
            area=_clean(df.at[idx, area_field]),
            statuses=statuses,
            count=int(counts.at[idx]),
            due_amount=due_amount,
            due=format_due(due_amount, currency),
        ))
    return rows


def summarize(rows: Sequence[CustomerStatus], periods: Sequence[str]) -> Dict[str, int]:
    """Number of "No Payment" rows per period."""
    return {p: sum(1 for r in rows if r.statuses.get(p) == STATUS_UNPAID) for p in periods}


# ══════════════════════════════════════════════════════════════════════════════
# Filter / search / paging
# ══════════════════════════════════════════════════════════════════════════════

def _matches(row: CustomerStatus, filters: Mapping[str, str], needle: str) -> bool:
    for key, wanted in filters.items():
        if not wanted:
            continue
        if key == "area":
            value = row.area
        elif key == "due":
            value = row.due
        elif key in row.statuses:
            value = row.statuses[key]
        else:
            # unknown filter keys never match anything
            return False
        if value != wanted:
            return False

    if needle:
        haystack = (getattr(row, f) for f in SEARCH_FIELDS)
        if not any(needle in str(v).lower() for v in haystack):
            return False
    return True


def filter_rows(
    rows: Sequence[CustomerStatus],
    filters: Optional[Mapping[str, str]] = None,
    search: str = "",
) -> List[CustomerStatus]:
    """
    Apply equality filters (period statuses, ``area``, ``due``) and a
    case-insensitive substring search across id, name, phone and area.
    Empty values are ignored; order is preserved.
    """
    filters = filters or {}
    needle = str(search or "").strip().lower()
    return [r for r in rows if _matches(r, filters, needle)]


def _distinct(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(v for v in values if v != ""))


def filter_options(rows: Sequence[CustomerStatus], periods: Sequence[str]) -> Dict[str, List[str]]:
    """Drop-down values for the dashboard filters, in first-seen order."""
    options: Dict[str, List[str]] = {p: list(STATUS_VALUES) for p in periods}
    options["area"] = _distinct(r.area for r in rows)
    options["due"] = _distinct(r.due for r in rows)
    return options


def paginate(rows: Sequence[Any], page: int = 0, per_page: int = 100) -> Dict[str, Any]:
    """Return the 0-based ``page`` slice together with paging metadata."""
    per_page = max(int(per_page), 1)
    page = max(int(page), 0)
    total = len(rows)
    start = page * per_page
    return {
        "items": list(rows[start:start + per_page]),
        "page": page,
        "per_page": per_page,
        "total": total,
        "pages": max(math.ceil(total / per_page), 1),
    }
