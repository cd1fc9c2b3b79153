# Overview: Flask API routes for the cashbook; parses input and returns JSON responses.

# backend/yuandi/routes/cashbook.py
"""
Cashbook routes.

Entries are written by the inventory/order/shipment/refund workflows. The
only direct write exposed here is a manual adjustment.
"""
from flask import Blueprint, request, current_app

from ..models import CashbookTransaction
from ..models.cashbook import CASHBOOK_TYPES
from ..services.cashbook_service import (
    get_current_balance,
    list_cashbook_transactions,
    record_adjustment,
)
from yuandi.time_utils import parse_iso_datetime
from ..validation import ModelValidationPolicy, validate_payload, ValidationError


cashbook_bp = Blueprint("cashbook", __name__, url_prefix="/api/cashbook")

ADJUSTMENT_POLICY = ModelValidationPolicy(
    writable_fields={"amount", "description"},
    required_on_create={"amount", "description"},
)


@cashbook_bp.get("")
def list_cashbook_route():
    """
    List cashbook entries, newest first, with the current balance.

    Query params:
    - type: entry type (optional)
    - order_id: int (optional)
    - start / end: ISO-8601 datetimes, inclusive (optional)
    - limit: max rows (default 100)
    """
    entry_type = request.args.get("type")
    if entry_type and entry_type not in CASHBOOK_TYPES:
        return {"error": f"type must be one of {', '.join(CASHBOOK_TYPES)}"}, 400

    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return {"error": "start/end must be ISO-8601 datetimes"}, 400

    limit = request.args.get("limit", default=100, type=int)
    if limit <= 0:
        return {"error": "limit must be > 0"}, 400

    entries = list_cashbook_transactions(
        type=entry_type,
        start=start,
        end=end,
        order_id=request.args.get("order_id", type=int),
        limit=min(limit, 1000),
    )
    return {
        "balance": get_current_balance(),
        "items": [e.to_dict() for e in entries],
        "count": len(entries),
    }, 200


@cashbook_bp.post("/adjustment")
def adjustment_route():
    """
    Manual cashbook correction.

    Request body: {"amount": -15000, "description": "은행 수수료"}
    """
    try:
        patch = validate_payload(
            model=CashbookTransaction,
            payload=request.get_json(silent=True) or {},
            policy=ADJUSTMENT_POLICY,
            partial=False,
        )
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        entry = record_adjustment(amount=patch["amount"], description=patch["description"])
    except ValueError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to record cashbook adjustment")
        return {"error": "Internal server error"}, 500

    return {"entry": entry.to_dict(), "balance": entry.balance}, 201
