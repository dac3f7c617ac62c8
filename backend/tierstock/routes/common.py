# backend/tierstock/routes/common.py
"""
Request parsing and error mapping shared by the JSON blueprints.
"""
from flask import current_app, jsonify

from ..errors import LedgerError
from ..extensions import db
from ..services.aggregation import DateRange
from tierstock.time_utils import parse_iso_datetime


def require_fields(payload: dict, *names: str) -> None:
    for name in names:
        if payload.get(name) is None:
            raise KeyError(name)


def optional_int(args, name: str) -> int | None:
    raw = args.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer")


def date_range_from_args(args) -> DateRange:
    if not args.get("start") or not args.get("end"):
        raise ValueError("start and end are required (YYYY-MM-DD)")
    return DateRange.from_values(args.get("start"), args.get("end"))


def datetime_arg(args, name: str):
    raw = args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValueError(f"{name} must be an ISO-8601 datetime")


def error_response(e: Exception):
    """Roll back and map an exception to a JSON error response."""
    db.session.rollback()
    if isinstance(e, KeyError):
        return jsonify({"error": f"Missing required field: {e.args[0]}"}), 400
    if isinstance(e, LedgerError):
        return jsonify({"error": str(e)}), e.status_code
    if isinstance(e, ValueError):
        return jsonify({"error": str(e)}), 400
    current_app.logger.exception("Unexpected error")
    return jsonify({"error": "Unexpected error"}), 500
