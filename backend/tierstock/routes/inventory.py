# backend/tierstock/routes/inventory.py
"""
Inventory ledger routes.

Actor ids come from the request; the caller is trusted to have
authenticated upstream.

Time semantics:
- occurred_at accepts ISO-8601 with Z/offsets and is stored UTC-naive.
- start/end movement filters are inclusive.
"""
from flask import Blueprint, jsonify, request

from ..services import inventory_service
from .common import datetime_arg, error_response, optional_int, require_fields


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _movement_kwargs(payload: dict) -> dict:
    require_fields(payload, "actor_id", "product_id", "quantity")
    return dict(
        actor_id=payload["actor_id"],
        product_id=payload["product_id"],
        quantity=payload["quantity"],
        occurred_at=payload.get("occurred_at"),
        description=payload.get("description"),
        counterparty_id=payload.get("counterparty_id"),
    )


@inventory_bp.post("/receive")
def receive_route():
    """Stock-in for an actor (HQ receiving from production, branch stock-in)."""
    payload = request.get_json(silent=True) or {}
    try:
        movement = inventory_service.receive_stock(**_movement_kwargs(payload))
    except Exception as e:
        return error_response(e)

    balance = inventory_service.get_balance(movement.actor_id, movement.product_id)
    return jsonify({"movement": movement.to_dict(), "balance": balance}), 201


@inventory_bp.post("/issue")
def issue_route():
    """Stock-out for an actor. 409 when the balance is short."""
    payload = request.get_json(silent=True) or {}
    try:
        movement = inventory_service.issue_stock(**_movement_kwargs(payload))
    except Exception as e:
        return error_response(e)

    balance = inventory_service.get_balance(movement.actor_id, movement.product_id)
    return jsonify({"movement": movement.to_dict(), "balance": balance}), 201


@inventory_bp.post("/transfer")
def transfer_route():
    """
    Move stock between two actors.

    Request body:
    {
        "source_id": int,
        "destination_id": int,
        "product_id": int,
        "quantity": int,
        "unit_price_cents": int (optional),
        "occurred_at": str (optional),
        "description": str (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        require_fields(payload, "source_id", "destination_id", "product_id", "quantity")
        result = inventory_service.transfer_stock(
            source_id=payload["source_id"],
            destination_id=payload["destination_id"],
            product_id=payload["product_id"],
            quantity=payload["quantity"],
            occurred_at=payload.get("occurred_at"),
            description=payload.get("description"),
            unit_price_cents=payload.get("unit_price_cents"),
        )
    except Exception as e:
        return error_response(e)

    return jsonify(result.to_dict()), 201


@inventory_bp.delete("/movements/<int:movement_id>")
def reverse_movement_route(movement_id: int):
    try:
        legs = inventory_service.reverse_movement(movement_id=movement_id)
    except Exception as e:
        return error_response(e)

    return jsonify({"reversed": [leg.id for leg in legs]}), 200


@inventory_bp.patch("/movements/<int:movement_id>")
def amend_movement_route(movement_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        require_fields(payload, "quantity")
        movement = inventory_service.amend_movement(
            movement_id=movement_id,
            quantity=payload["quantity"],
            description=payload.get("description"),
        )
    except Exception as e:
        return error_response(e)

    return jsonify({"movement": movement.to_dict()}), 200


@inventory_bp.get("/balances")
def list_balances_route():
    try:
        actor_id = optional_int(request.args, "actor_id")
        if actor_id is None:
            raise KeyError("actor_id")
        balances = inventory_service.list_balances(
            actor_id=actor_id,
            include_empty=request.args.get("include_empty") == "true",
        )
    except Exception as e:
        return error_response(e)

    return jsonify({"balances": [b.to_dict() for b in balances]}), 200


@inventory_bp.get("/movements")
def list_movements_route():
    try:
        actor_id = optional_int(request.args, "actor_id")
        if actor_id is None:
            raise KeyError("actor_id")
        movements = inventory_service.list_movements(
            actor_id=actor_id,
            product_id=optional_int(request.args, "product_id"),
            direction=request.args.get("direction") or None,
            start=datetime_arg(request.args, "start"),
            end=datetime_arg(request.args, "end"),
            limit=optional_int(request.args, "limit") or 200,
        )
    except Exception as e:
        return error_response(e)

    return jsonify({"movements": [m.to_dict() for m in movements]}), 200


@inventory_bp.get("/products/<int:product_id>/total")
def product_total_route(product_id: int):
    return jsonify({"product_id": product_id, "total_units": inventory_service.total_units(product_id)}), 200
