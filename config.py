"""
Payment Status Dashboard — Configuration
=========================================
Reads settings from the environment (and a local ``.env`` file) into an
immutable ``Settings`` object that the Flask app factory receives.
"""

import os
import uuid
from dataclasses import dataclass, field
from typing import List, Tuple

from dotenv import load_dotenv

load_dotenv()

# ─────────────────────────────────────────────────────────────
# DEFAULTS
# ─────────────────────────────────────────────────────────────

DEFAULT_SHEET_ID = "1LYAKchZIX6qhGqBh4AxrkJU_4bGNMEJgegHHq-kYZwA"
DEFAULT_SHEET_NAMES = "sheet1,sheet2,sheet3"
DEFAULT_PERIOD_LABELS = "July,June,May"
DEFAULT_USERS = "01815128906:Abc1234#"

DEFAULT_AI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
DEFAULT_AI_MODEL = "gemini-2.0-flash"

DUE_FORMULAS = ("offset", "clamped")


def _split_csv(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def parse_users(value: str) -> List[Tuple[str, str]]:
    """
    Parse ``user:pass,user2:pass2`` into credential pairs.
    Only the first ``:`` separates user from password.
    """
    users = []
    for entry in _split_csv(value):
        if ":" not in entry:
            continue
        username, password = entry.split(":", 1)
        users.append((username.strip(), password))
    return users


@dataclass(frozen=True)
class Settings:
    sheet_id: str = DEFAULT_SHEET_ID
    sheet_names: Tuple[str, ...] = tuple(_split_csv(DEFAULT_SHEET_NAMES))
    period_labels: Tuple[str, ...] = tuple(_split_csv(DEFAULT_PERIOD_LABELS))
    due_formula: str = "offset"
    due_offset: float = 500.0
    due_currency: str = "TK"
    rows_per_page: int = 100
    country_code: str = "880"
    sheet_timeout: float = 30.0
    store_ttl: float = 12 * 60 * 60
    users: Tuple[Tuple[str, str], ...] = tuple(parse_users(DEFAULT_USERS))
    secret_key: str = field(default_factory=lambda: "payment-dashboard-" + uuid.uuid4().hex[:8])
    ai_api_key: str = ""
    ai_api_url: str = DEFAULT_AI_URL
    ai_model: str = DEFAULT_AI_MODEL

    def __post_init__(self):
        if len(self.sheet_names) != len(self.period_labels):
            raise ValueError(
                f"SHEET_NAMES has {len(self.sheet_names)} entries but "
                f"PERIOD_LABELS has {len(self.period_labels)}"
            )
        if not self.sheet_names:
            raise ValueError("At least one sheet is required")
        if len(set(self.period_labels)) != len(self.period_labels):
            raise ValueError("PERIOD_LABELS must be unique")
        if self.due_formula not in DUE_FORMULAS:
            raise ValueError(f"Unknown DUE_FORMULA '{self.due_formula}' (expected one of {DUE_FORMULAS})")
        if self.rows_per_page <= 0:
            raise ValueError("ROWS_PER_PAGE must be positive")
        if self.store_ttl <= 0:
            raise ValueError("STORE_TTL must be positive")


def load_settings() -> Settings:
    """Build Settings from environment variables, falling back to defaults."""
    env = os.environ
    kwargs = {
        "sheet_id": env.get("SHEET_ID", DEFAULT_SHEET_ID),
        "sheet_names": tuple(_split_csv(env.get("SHEET_NAMES", DEFAULT_SHEET_NAMES))),
        "period_labels": tuple(_split_csv(env.get("PERIOD_LABELS", DEFAULT_PERIOD_LABELS))),
        "due_formula": env.get("DUE_FORMULA", "offset").strip().lower(),
        "due_offset": float(env.get("DUE_OFFSET", "500")),
        "due_currency": env.get("DUE_CURRENCY", "TK"),
        "rows_per_page": int(env.get("ROWS_PER_PAGE", "100")),
        "country_code": env.get("COUNTRY_CODE", "880"),
        "sheet_timeout": float(env.get("SHEET_TIMEOUT", "30")),
        "store_ttl": float(env.get("STORE_TTL", str(12 * 60 * 60))),
        "users": tuple(parse_users(env.get("DASHBOARD_USERS", DEFAULT_USERS))),
        "ai_api_key": env.get("AI_API_KEY", ""),
        "ai_api_url": env.get("AI_API_URL", DEFAULT_AI_URL),
        "ai_model": env.get("AI_MODEL", DEFAULT_AI_MODEL),
    }
    secret = env.get("FLASK_SECRET_KEY")
    if secret:
        kwargs["secret_key"] = secret
    return Settings(**kwargs)
