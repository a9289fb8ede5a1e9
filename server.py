"""
Payment Status Dashboard — Server
==================================
Flask backend for the "No Payment Summary" dashboard.
Loads the primary and auxiliary payment sheets, joins them per customer,
and serves a filterable, paginated view plus WhatsApp reminder links.

Usage:
    python server.py
    Then open http://localhost:5000 in your browser.
"""

import logging
import os
import time
import uuid
from datetime import datetime, timezone

from flask import Blueprint, Flask, current_app, jsonify, redirect, render_template, request, session, url_for
from flask_cors import CORS

from ai_message import generate_reminder_text
from auth import CredentialStore, is_authenticated, login_required, login_user, logout_user
from config import Settings, load_settings
from pipeline import build_status_rows, filter_options, filter_rows, paginate, summarize
from reminders import build_reminder_message, bulk_reminders, reminder_for, tel_link
from sheets import SheetLoadError, fetch_sheets

logger = logging.getLogger(__name__)

LOAD_FAILED_MESSAGE = "Failed to fetch data"
NO_DATA_MESSAGE = "No data loaded. Please load the sheets first."

bp = Blueprint("dashboard", __name__)


class DashboardState:
    """Per-app collaborators and the in-memory result store."""

    def __init__(self, settings, credentials, fetcher):
        self.settings = settings
        self.credentials = credentials
        self.fetcher = fetcher
        # Joined rows keyed by session ID; replaced whole on each load
        self.store = {}

    def prune(self, now=None):
        """Drop entries not touched within settings.store_ttl seconds."""
        now = time.monotonic() if now is None else now
        stale = [sid for sid, entry in self.store.items() if now - entry["touched"] > self.settings.store_ttl]
        for sid in stale:
            del self.store[sid]
        if stale:
            logger.info("Dropped %d idle session result(s)", len(stale))
        return len(stale)


def _state() -> DashboardState:
    return current_app.extensions["dashboard"]


def _get_session_id():
    """Get or create a session ID."""
    if "sid" not in session:
        session["sid"] = uuid.uuid4().hex
    return session["sid"]


def _loaded():
    loaded = _state().store.get(_get_session_id())
    if loaded:
        loaded["touched"] = time.monotonic()
    return loaded


def _filters_from(source) -> dict:
    keys = list(_state().settings.period_labels) + ["area", "due"]
    return {k: (source.get(k) or "") for k in keys}


def _find_row(rows, customer_id):
    for row in rows:
        if row.customer_id == customer_id:
            return row
    return None


# ─────────────────────────────────────────────────────────────
# PAGES
# ─────────────────────────────────────────────────────────────

@bp.route("/")
@login_required
def index():
    """Serve the dashboard page."""
    settings = _state().settings
    return render_template(
        "index.html",
        periods=list(settings.period_labels),
        per_page=settings.rows_per_page,
        dark_mode=bool(session.get("dark_mode")),
        username=session.get("username", ""),
    )


@bp.route("/login", methods=["GET", "POST"])
def login():
    """Handle login page and authentication."""
    if is_authenticated():
        return redirect(url_for("dashboard.index"))

    if request.method == "POST":
        username = (request.form.get("username") or "").strip()
        password = request.form.get("password") or ""

        if _state().credentials.verify(username, password):
            login_user(username)
            logger.info("User '%s' logged in", username)
            return redirect(url_for("dashboard.index"))

        logger.warning("Rejected login for '%s'", username)
        return render_template("login.html", error="Invalid credentials", username=username)

    return render_template("login.html")


@bp.route("/logout")
def logout():
    """Drop loaded data, clear session and return to login."""
    sid = session.get("sid")
    if sid:
        _state().store.pop(sid, None)
    logout_user()
    return redirect(url_for("dashboard.login"))


# ─────────────────────────────────────────────────────────────
# DATA API
# ─────────────────────────────────────────────────────────────

@bp.route("/api/load", methods=["POST"])
@login_required
def load_data():
    """Fetch all sheets, join them and store the result for this session."""
    state = _state()
    settings = state.settings
    sid = _get_session_id()

    try:
        sheets = state.fetcher(settings.sheet_id, settings.sheet_names, timeout=settings.sheet_timeout)
        rows = build_status_rows(
            sheets[0],
            sheets[1:],
            settings.period_labels,
            formula=settings.due_formula,
            offset=settings.due_offset,
            currency=settings.due_currency,
        )
    except (SheetLoadError, ValueError):
        # Previously loaded rows stay as they were
        logger.exception("Data load failed for sheets %s", list(settings.sheet_names))
        return jsonify({"error": LOAD_FAILED_MESSAGE}), 502

    loaded_at = datetime.now(timezone.utc).isoformat()
    state.prune()
    state.store[sid] = {"rows": rows, "loaded_at": loaded_at, "touched": time.monotonic()}
    logger.info("Loaded %d customer rows", len(rows))

    return jsonify({
        "total": len(rows),
        "loaded_at": loaded_at,
        "summary": summarize(rows, settings.period_labels),
        "options": filter_options(rows, settings.period_labels),
    })


@bp.route("/api/rows", methods=["GET"])
@login_required
def list_rows():
    """Filtered, searched and paginated view of the loaded rows."""
    loaded = _loaded()
    if not loaded:
        return jsonify({"error": NO_DATA_MESSAGE}), 400

    settings = _state().settings
    view = filter_rows(loaded["rows"], _filters_from(request.args), request.args.get("search", ""))

    try:
        page = int(request.args.get("page", 0))
        per_page = int(request.args.get("per_page", settings.rows_per_page))
    except ValueError:
        return jsonify({"error": "page and per_page must be integers"}), 400

    result = paginate(view, page, per_page)
    result["items"] = [row.to_dict() for row in result["items"]]
    result["summary"] = summarize(loaded["rows"], settings.period_labels)
    result["loaded_at"] = loaded["loaded_at"]
    return jsonify(result)


@bp.route("/api/customers/<path:customer_id>", methods=["GET"])
@login_required
def customer_detail(customer_id):
    """Details for one customer, with call and WhatsApp links."""
    loaded = _loaded()
    if not loaded:
        return jsonify({"error": NO_DATA_MESSAGE}), 400

    row = _find_row(loaded["rows"], customer_id)
    if row is None:
        return jsonify({"error": "Customer not found"}), 404

    reminder = reminder_for(row, country_code=_state().settings.country_code)
    detail = row.to_dict()
    detail.update({
        "tel": tel_link(row.phone),
        "whatsapp": reminder["link"],
        "message": reminder["message"],
    })
    return jsonify(detail)


# ─────────────────────────────────────────────────────────────
# REMINDERS
# ─────────────────────────────────────────────────────────────

@bp.route("/api/reminders/bulk", methods=["POST"])
@login_required
def bulk_reminder_links():
    """WhatsApp links for every row in the current filtered view."""
    loaded = _loaded()
    if not loaded:
        return jsonify({"error": NO_DATA_MESSAGE}), 400

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    filters = data.get("filters")
    if not isinstance(filters, dict):
        filters = {}
    search = data.get("search")
    view = filter_rows(loaded["rows"], _filters_from(filters), search if isinstance(search, str) else "")
    reminders, skipped = bulk_reminders(view, country_code=_state().settings.country_code)

    return jsonify({
        "reminders": reminders,
        "skipped": skipped,
        "count": len(reminders),
    })


@bp.route("/api/reminders/<path:customer_id>/ai", methods=["POST"])
@login_required
def ai_reminder(customer_id):
    """AI-worded reminder for one customer; falls back to the template."""
    loaded = _loaded()
    if not loaded:
        return jsonify({"error": NO_DATA_MESSAGE}), 400

    row = _find_row(loaded["rows"], customer_id)
    if row is None:
        return jsonify({"error": "Customer not found"}), 404

    settings = _state().settings
    result = generate_reminder_text(row, settings)
    if result.get("error"):
        logger.info("Using template reminder for %s: %s", customer_id, result["error"])
        message, source = build_reminder_message(row), "template"
    else:
        message, source = result["content"], "ai"

    reminder = reminder_for(row, country_code=settings.country_code, message=message)
    reminder["source"] = source
    reminder["ai_error"] = result.get("error")
    return jsonify(reminder)


# ─────────────────────────────────────────────────────────────
# PREFERENCES
# ─────────────────────────────────────────────────────────────

@bp.route("/api/theme", methods=["POST"])
@login_required
def toggle_theme():
    session["dark_mode"] = not session.get("dark_mode", False)
    return jsonify({"dark_mode": session["dark_mode"]})


# ─────────────────────────────────────────────────────────────
# APP SETUP
# ─────────────────────────────────────────────────────────────

def create_app(settings: Settings = None, credentials: CredentialStore = None, fetcher=None) -> Flask:
    """Build the Flask app with injected settings, credential store and sheet fetcher."""
    settings = settings or load_settings()

    app = Flask(__name__, static_folder="static", template_folder="templates")
    app.secret_key = settings.secret_key
    app.extensions["dashboard"] = DashboardState(
        settings=settings,
        credentials=credentials or CredentialStore(settings.users),
        fetcher=fetcher or fetch_sheets,
    )

    CORS(app)
    app.register_blueprint(bp)
    return app


app = create_app()


# ─────────────────────────────────────────────────────────────
# RUN
# ─────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import threading
    import webbrowser

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    port = int(os.environ.get("PORT", 5000))
    print("\n  No Payment Summary Dashboard")
    print(f"  http://localhost:{port}\n")

    # Auto-open browser after short delay
    def open_browser():
        time.sleep(1.5)
        webbrowser.open(f"http://localhost:{port}")

    threading.Thread(target=open_browser, daemon=True).start()

    app.run(host="0.0.0.0", port=port, debug=True, use_reloader=False)
