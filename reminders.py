"""
reminders.py — WhatsApp Reminder Links
=======================================
Phone normalisation, the collection message template, and ``wa.me`` deep
links for single customers and for a whole filtered view.

A phone number that cannot be normalised never raises; it simply yields no
link.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

from pipeline import CustomerStatus

logger = logging.getLogger(__name__)

WHATSAPP_URL = "https://wa.me/{digits}?text={text}"
NATIONAL_DIGITS = 10

_NON_DIGIT = re.compile(r"\D")


def normalize_phone(raw, country_code: str = "880", national_digits: int = NATIONAL_DIGITS) -> Optional[str]:
    """
    Reduce a phone number to ``<country code><national number>`` digits.

    Accepts punctuation, ``+``/``00`` international prefixes and a national
    trunk ``0``. Returns None unless the result is exactly the country code
    followed by ``national_digits`` digits.
    """
    digits = _NON_DIGIT.sub("", str(raw or ""))
    if not digits:
        return None

    if digits.startswith("00" + country_code):
        digits = digits[2:]

    full_len = len(country_code) + national_digits
    if digits.startswith(country_code) and len(digits) == full_len:
        return digits
    if digits.startswith("0") and len(digits) == national_digits + 1:
        return country_code + digits[1:]
    if len(digits) == national_digits and not digits.startswith("0"):
        return country_code + digits
    return None


def build_reminder_message(row: CustomerStatus) -> str:
    """Plain collection message used for links and as the AI fallback."""
    unpaid = row.unpaid_periods()
    months = ", ".join(unpaid) if unpaid else "the current month"
    lines = [
        f"Dear {row.name if row.name != '-' else 'Customer'},",
        f"Your internet bill (Client ID: {row.customer_id}) is unpaid for {months}.",
        f"Total due: {row.due}.",
        "Please pay as soon as possible to avoid service interruption. Thank you.",
    ]
    return "\n".join(lines)


def whatsapp_link(phone, message: str, country_code: str = "880") -> Optional[str]:
    digits = normalize_phone(phone, country_code=country_code)
    if digits is None:
        return None
    return WHATSAPP_URL.format(digits=digits, text=quote(message, safe=""))


def tel_link(phone) -> Optional[str]:
    text = str(phone or "").strip()
    return f"tel:{text}" if text else None


def reminder_for(row: CustomerStatus, country_code: str = "880", message: Optional[str] = None) -> Dict:
    """Reminder payload for one row; ``link`` is None when the phone is unusable."""
    body = message if message is not None else build_reminder_message(row)
    return {
        "customer_id": row.customer_id,
        "name": row.name,
        "phone": row.phone,
        "due": row.due,
        "message": body,
        "link": whatsapp_link(row.phone, body, country_code=country_code),
    }


def bulk_reminders(rows: Sequence[CustomerStatus], country_code: str = "880") -> Tuple[List[Dict], List[Dict]]:
    """
    Build reminder links for every row.

    Returns ``(reminders, skipped)``; skipped rows carry the phone that could
    not be normalised.
    """
    reminders: List[Dict] = []
    skipped: List[Dict] = []
    for row in rows:
        item = reminder_for(row, country_code=country_code)
        if item["link"]:
            reminders.append(item)
        else:
            skipped.append({"customer_id": row.customer_id, "name": row.name, "phone": row.phone})

    if skipped:
        logger.warning("Skipped %d of %d reminders with unusable phone numbers", len(skipped), len(rows))
    return reminders, skipped
