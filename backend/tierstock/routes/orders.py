# backend/tierstock/routes/orders.py
"""
Pending order routes: create, approve, reject, payment recheck, remarks.

LIFECYCLE:
pending -> completed (approve or successful payment recheck)
pending -> failed (reject or failed payment)
"""
from flask import Blueprint, jsonify, request

from ..services import settlement_service
from .common import datetime_arg, error_response, optional_int, require_fields


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
def create_order_route():
    """
    Request body:
    {
        "buyer_id": int,
        "quantity": int,
        "product_id": int | "bundle_id": int,
        "unit_price_cents": int (optional, product orders only),
        "payment_reference": str (optional),
        "remarks": str (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        require_fields(payload, "buyer_id", "quantity")
        order = settlement_service.create_order(
            buyer_id=payload["buyer_id"],
            quantity=payload["quantity"],
            product_id=payload.get("product_id"),
            bundle_id=payload.get("bundle_id"),
            unit_price_cents=payload.get("unit_price_cents"),
            payment_reference=payload.get("payment_reference"),
            remarks=payload.get("remarks"),
        )
    except Exception as e:
        return error_response(e)

    return jsonify(order.to_dict()), 201


@orders_bp.get("")
def list_orders_route():
    """Orders plus status counts and completed totals for the same filter."""
    try:
        orders = settlement_service.list_orders(
            status=request.args.get("status") or None,
            buyer_id=optional_int(request.args, "buyer_id"),
            start=datetime_arg(request.args, "start"),
            end=datetime_arg(request.args, "end"),
            limit=optional_int(request.args, "limit") or 500,
        )
    except Exception as e:
        return error_response(e)

    return jsonify({
        "orders": [o.to_dict() for o in orders],
        "summary": settlement_service.order_summary(orders),
    }), 200


@orders_bp.post("/<int:order_id>/approve")
def approve_order_route(order_id: int):
    try:
        order = settlement_service.approve_order(order_id=order_id)
    except Exception as e:
        return error_response(e)

    return jsonify(order.to_dict()), 200


@orders_bp.post("/<int:order_id>/reject")
def reject_order_route(order_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        order = settlement_service.reject_order(order_id=order_id, reason=payload.get("reason"))
    except Exception as e:
        return error_response(e)

    return jsonify(order.to_dict()), 200


@orders_bp.post("/<int:order_id>/recheck")
def recheck_payment_route(order_id: int):
    """502 when the gateway cannot be reached; the order is left as it was."""
    try:
        result = settlement_service.recheck_external_payment(order_id=order_id)
    except Exception as e:
        return error_response(e)

    return jsonify(result.to_dict()), 200


@orders_bp.patch("/<int:order_id>/remarks")
def save_remark_route(order_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        order = settlement_service.save_remark(order_id=order_id, remark=payload.get("remarks"))
    except Exception as e:
        return error_response(e)

    return jsonify(order.to_dict()), 200
