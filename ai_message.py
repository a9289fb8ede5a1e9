"""
Payment Status Dashboard — AI Reminder Wording
===============================================
Asks a generative-text API (Gemini ``generateContent`` by default) to word
a polite payment reminder for one customer. The prompt is grounded in the
customer's joined row so the model cannot invent amounts.

This is optional: without an API key, or after three failed attempts, the
caller falls back to the plain template in ``reminders.py``.
"""

import logging
import time

import requests

from pipeline import CustomerStatus

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────
# CONFIG
# ─────────────────────────────────────────────────────────────

MAX_ATTEMPTS = 3
BACKOFF_BASE_SECONDS = 1  # waits 1s, then 2s
REQUEST_TIMEOUT = 60


def _should_retry(status_code: int) -> bool:
    """True for 429 and any 5xx status."""
    return status_code == 429 or 500 <= status_code < 600


# ─────────────────────────────────────────────────────────────
# PROMPT BUILDER
# ─────────────────────────────────────────────────────────────

def build_reminder_prompt(row: CustomerStatus) -> str:
    """
    Build a grounded prompt for one customer's reminder message.
    """
    unpaid = row.unpaid_periods()
    prompt_parts = [
        "You write short, polite payment reminder messages for an internet service provider.",
        "The message will be sent over WhatsApp to the customer below.",
        "",
        "RULES:",
        "1. Use ONLY the facts listed under CUSTOMER. Do NOT invent amounts, dates or services.",
        "2. Mention the client ID, the unpaid months and the exact total due.",
        "3. Keep it under 80 words. Plain text only, no markdown, no subject line.",
        "4. Friendly but firm tone. End with a thank-you.",
        "",
        "CUSTOMER:",
        f"  - Name: {row.name if row.name != '-' else 'Customer'}",
        f"  - Client ID: {row.customer_id}",
        f"  - Area: {row.area or 'N/A'}",
        f"  - Unpaid months: {', '.join(unpaid) if unpaid else 'none'}",
        f"  - Months unpaid (count): {row.count}",
        f"  - Total due: {row.due}",
    ]
    return "\n".join(prompt_parts)


# ─────────────────────────────────────────────────────────────
# API CALL
# ─────────────────────────────────────────────────────────────

def _extract_text(data: dict) -> str:
    candidates = data.get("candidates") or [{}]
    parts = candidates[0].get("content", {}).get("parts") or [{}]
    return "".join(p.get("text", "") for p in parts).strip()


def call_text_model(prompt: str, api_key: str, api_url: str, model: str, sleep=time.sleep) -> dict:
    """
    POST the prompt to the generative-text endpoint.
    Retries up to MAX_ATTEMPTS times with exponential backoff on network
    errors, 429 and 5xx. Returns dict with 'content' and 'error'.
    """
    if not api_key:
        return {"content": None, "error": "AI text generation is not configured"}

    url = api_url.format(model=model)
    headers = {
        "Content-Type": "application/json",
        "x-goog-api-key": api_key,
    }
    payload = {
        "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        "generationConfig": {"temperature": 0.4, "maxOutputTokens": 512},
    }

    response = None
    for attempt in range(MAX_ATTEMPTS):
        wait_time = BACKOFF_BASE_SECONDS * (2 ** attempt)
        try:
            response = requests.post(url, headers=headers, json=payload, timeout=REQUEST_TIMEOUT)
        except requests.exceptions.RequestException as e:
            logger.warning("AI attempt %d/%d failed: %s", attempt + 1, MAX_ATTEMPTS, e)
            if attempt < MAX_ATTEMPTS - 1:
                sleep(wait_time)
                continue
            return {"content": None, "error": f"Could not reach AI service: {e}"}

        if response.status_code == 200:
            break

        if _should_retry(response.status_code) and attempt < MAX_ATTEMPTS - 1:
            logger.warning("AI service busy (%d), retrying in %ss", response.status_code, wait_time)
            sleep(wait_time)
            continue

        return {"content": None, "error": f"AI API error ({response.status_code}): {response.text[:200]}"}

    try:
        content = _extract_text(response.json())
    except (ValueError, AttributeError, IndexError, TypeError) as e:
        logger.warning("Could not parse AI response: %s", e)
        return {"content": None, "error": f"AI response parse error: {e}"}

    if not content:
        return {"content": None, "error": "Empty response from AI model"}
    return {"content": content, "error": None}


def generate_reminder_text(row: CustomerStatus, settings) -> dict:
    """Word a reminder for ``row`` using the AI settings on ``settings``."""
    return call_text_model(
        build_reminder_prompt(row),
        api_key=settings.ai_api_key,
        api_url=settings.ai_api_url,
        model=settings.ai_model,
    )
