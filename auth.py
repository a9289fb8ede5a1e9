"""
Payment Status Dashboard — Login Gate
======================================
A static credential list plus helpers around the single ``authenticated``
flag kept in the Flask session. The flag lives until logout clears the
session.
"""

from functools import wraps
from typing import Iterable, Tuple

from flask import jsonify, redirect, request, session, url_for


class CredentialStore:
    """In-memory username/password list checked at login."""

    def __init__(self, users: Iterable[Tuple[str, str]]):
        self._users = {username: password for username, password in users}

    def verify(self, username: str, password: str) -> bool:
        if not username or password is None:
            return False
        expected = self._users.get(username.strip())
        return expected is not None and expected == password

    def __len__(self):
        return len(self._users)


# ─────────────────────────────────────────────────────────────
# SESSION CONTEXT
# ─────────────────────────────────────────────────────────────

def is_authenticated() -> bool:
    return bool(session.get("authenticated"))


def login_user(username: str):
    session["authenticated"] = True
    session["username"] = username


def logout_user():
    session.clear()


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not is_authenticated():
            if request.path.startswith("/api/"):
                return jsonify({"error": "Login required"}), 401
            return redirect(url_for("dashboard.login"))
        return f(*args, **kwargs)
    return decorated_function
