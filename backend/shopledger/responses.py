# Overview: JSON response envelope shared by every route.

from flask import current_app, jsonify

from .errors import LedgerError


def ok(data=None, message: str | None = None, status: int = 200, **extra):
    """{success: true, message?, data?, ...extra}"""
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return jsonify(body), status


def fail(error: LedgerError):
    return jsonify(error.to_dict()), error.status_code


def server_error(what: str):
    """Log the active exception and render a 500."""
    current_app.logger.exception("%s failed", what)
    return jsonify({"success": False, "error": "Internal server error"}), 500


def balances_json(balances: dict) -> dict:
    """{account_id: Decimal} -> {"<id>": float}"""
    return {str(account_id): float(balance) for account_id, balance in balances.items()}
