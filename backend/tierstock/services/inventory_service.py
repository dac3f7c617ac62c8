# Overview: Per-tier stock balances: receive, issue, transfer, reverse and amend movements.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import (
    InsufficientInventory,
    InvalidQuantity,
    InvalidTransfer,
    InventoryCorruption,
    MovementLocked,
    NotFound,
)
from ..models import Actor, Product, InventoryBalance, StockMovement, PendingOrder, Transaction
from ..models.actors import ROLE_HQ, PAYING_ROLES
from ..models.inventory import DIRECTION_IN, DIRECTION_OUT
from ..models.orders import ORDER_STATUS_COMPLETED, TRANSACTION_TYPE_PURCHASE
from tierstock.time_utils import utcnow, normalize_datetime
from .catalog_service import tier_unit_price_cents
from .concurrency import lock_for_update, run_with_retry, finish
from .document_service import next_document_number
from .ledger_service import append_ledger_event
"""
Inventory invariants

- A balance row exists per (actor, product) once stock has been received;
  a missing row means zero.
- Balances never go below zero. Issues that would do so are rejected,
  never clamped.
- Every balance change is paired with a StockMovement and a LedgerEvent
  in the same DB transaction.
- The two legs of a transfer share transfer_ref and are created and
  reversed together.
- Issue is a single conditional UPDATE (quantity >= requested), so two
  concurrent issues can never both pass a stale availability check.
"""

logger = logging.getLogger(__name__)


@dataclass
class TransferResult:
    transfer_ref: str
    out_movement: StockMovement
    in_movement: StockMovement
    order: PendingOrder | None = None
    transaction: Transaction | None = None

    def to_dict(self) -> dict:
        return {
            "transfer_ref": self.transfer_ref,
            "out_movement": self.out_movement.to_dict(),
            "in_movement": self.in_movement.to_dict(),
            "order": self.order.to_dict() if self.order else None,
            "transaction": self.transaction.to_dict() if self.transaction else None,
        }


def _validate_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantity(quantity)
    return quantity


def _occurred(value) -> datetime:
    return normalize_datetime(value) or utcnow()


def _ensure_actor(actor_id: int, *, require_active: bool = False) -> Actor:
    actor = db.session.get(Actor, actor_id)
    if actor is None:
        raise NotFound(f"Actor {actor_id} not found")
    if require_active and not actor.is_active:
        raise InvalidTransfer(f"Actor {actor_id} is inactive")
    return actor


def _ensure_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound(f"Product {product_id} not found")
    return product


def get_balance(actor_id: int, product_id: int) -> int:
    """Current balance; 0 when the actor never held the product."""
    qty = (
        db.session.query(InventoryBalance.quantity)
        .filter_by(actor_id=actor_id, product_id=product_id)
        .scalar()
    )
    return int(qty or 0)


def _credit(actor_id: int, product_id: int, quantity: int) -> None:
    stmt = (
        update(InventoryBalance)
        .where(InventoryBalance.actor_id == actor_id, InventoryBalance.product_id == product_id)
        .values(quantity=InventoryBalance.quantity + quantity)
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount:
        return
    try:
        with db.session.begin_nested():
            db.session.add(InventoryBalance(actor_id=actor_id, product_id=product_id, quantity=quantity))
    except IntegrityError:
        # Another writer created the row first
        if not db.session.execute(stmt).rowcount:
            raise


def _try_debit(actor_id: int, product_id: int, quantity: int) -> bool:
    stmt = (
        update(InventoryBalance)
        .where(
            InventoryBalance.actor_id == actor_id,
            InventoryBalance.product_id == product_id,
            InventoryBalance.quantity >= quantity,
        )
        .values(quantity=InventoryBalance.quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    return bool(db.session.execute(stmt).rowcount)


def _debit(actor_id: int, product_id: int, quantity: int) -> None:
    if not _try_debit(actor_id, product_id, quantity):
        raise InsufficientInventory(actor_id, product_id, get_balance(actor_id, product_id), quantity)


def _add_movement(
    *,
    actor_id: int,
    product_id: int,
    quantity: int,
    direction: str,
    occurred_dt: datetime,
    description: str | None,
    counterparty_id: int | None,
    transfer_ref: str | None,
) -> StockMovement:
    movement = StockMovement(
        actor_id=actor_id,
        product_id=product_id,
        quantity=quantity,
        direction=direction,
        occurred_at=occurred_dt,
        description=description,
        counterparty_id=counterparty_id,
        transfer_ref=transfer_ref,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def _receive_inner(
    *,
    actor_id: int,
    product_id: int,
    quantity: int,
    occurred_dt: datetime,
    description: str | None = None,
    counterparty_id: int | None = None,
    transfer_ref: str | None = None,
) -> StockMovement:
    """Core receive logic without validation, retry or commit.

    Shared by receive_stock, transfer_stock and order settlement.
    """
    _credit(actor_id, product_id, quantity)
    movement = _add_movement(
        actor_id=actor_id,
        product_id=product_id,
        quantity=quantity,
        direction=DIRECTION_IN,
        occurred_dt=occurred_dt,
        description=description,
        counterparty_id=counterparty_id,
        transfer_ref=transfer_ref,
    )
    append_ledger_event(
        event_type="inventory.received",
        event_category="inventory",
        entity_type="stock_movement",
        entity_id=movement.id,
        actor_id=actor_id,
        transfer_ref=transfer_ref,
        occurred_at=occurred_dt,
        note=description,
        payload={"product_id": product_id, "quantity": quantity},
    )
    return movement


def _issue_inner(
    *,
    actor_id: int,
    product_id: int,
    quantity: int,
    occurred_dt: datetime,
    description: str | None = None,
    counterparty_id: int | None = None,
    transfer_ref: str | None = None,
) -> StockMovement:
    """Core issue logic without validation, retry or commit.

    Raises InsufficientInventory before anything is written.
    """
    _debit(actor_id, product_id, quantity)
    movement = _add_movement(
        actor_id=actor_id,
        product_id=product_id,
        quantity=quantity,
        direction=DIRECTION_OUT,
        occurred_dt=occurred_dt,
        description=description,
        counterparty_id=counterparty_id,
        transfer_ref=transfer_ref,
    )
    append_ledger_event(
        event_type="inventory.issued",
        event_category="inventory",
        entity_type="stock_movement",
        entity_id=movement.id,
        actor_id=actor_id,
        transfer_ref=transfer_ref,
        occurred_at=occurred_dt,
        note=description,
        payload={"product_id": product_id, "quantity": quantity},
    )
    return movement


def receive_stock(
    *,
    actor_id: int,
    product_id: int,
    quantity: int,
    occurred_at=None,
    description: str | None = None,
    counterparty_id: int | None = None,
    commit: bool = True,
) -> StockMovement:
    """Record a stock-in and increase the actor's balance."""
    def _op():
        _validate_quantity(quantity)
        _ensure_actor(actor_id)
        _ensure_product(product_id)

        movement = _receive_inner(
            actor_id=actor_id,
            product_id=product_id,
            quantity=quantity,
            occurred_dt=_occurred(occurred_at),
            description=description,
            counterparty_id=counterparty_id,
        )
        finish(commit)
        return movement

    return run_with_retry(_op, commit=commit)


def issue_stock(
    *,
    actor_id: int,
    product_id: int,
    quantity: int,
    occurred_at=None,
    description: str | None = None,
    counterparty_id: int | None = None,
    commit: bool = True,
) -> StockMovement:
    """
    Record a stock-out and decrease the actor's balance.

    Raises InsufficientInventory (with available and requested) when the
    balance is short; nothing is written in that case.
    """
    def _op():
        _validate_quantity(quantity)
        _ensure_actor(actor_id)
        _ensure_product(product_id)

        movement = _issue_inner(
            actor_id=actor_id,
            product_id=product_id,
            quantity=quantity,
            occurred_dt=_occurred(occurred_at),
            description=description,
            counterparty_id=counterparty_id,
        )
        finish(commit)
        return movement

    return run_with_retry(_op, commit=commit)


def _transfer_inner(
    *,
    source_id: int,
    destination_id: int,
    product_id: int,
    quantity: int,
    occurred_dt: datetime,
    description: str | None = None,
) -> tuple[str, StockMovement, StockMovement]:
    transfer_ref = next_document_number(document_type="TRANSFER", prefix="TRF-")
    out_movement = _issue_inner(
        actor_id=source_id,
        product_id=product_id,
        quantity=quantity,
        occurred_dt=occurred_dt,
        description=description,
        counterparty_id=destination_id,
        transfer_ref=transfer_ref,
    )
    in_movement = _receive_inner(
        actor_id=destination_id,
        product_id=product_id,
        quantity=quantity,
        occurred_dt=occurred_dt,
        description=description,
        counterparty_id=source_id,
        transfer_ref=transfer_ref,
    )
    return transfer_ref, out_movement, in_movement


def _record_direct_sale(
    *,
    seller: Actor,
    buyer: Actor,
    product_id: int,
    quantity: int,
    unit_price_cents: int,
    transfer_ref: str,
    description: str | None,
) -> tuple[PendingOrder, Transaction]:
    now = utcnow()
    total = unit_price_cents * quantity
    order = PendingOrder(
        order_number=next_document_number(document_type="ORDER", prefix="ORD-"),
        buyer_id=buyer.id,
        seller_id=seller.id,
        product_id=product_id,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        total_price_cents=total,
        status=ORDER_STATUS_COMPLETED,
        transfer_ref=transfer_ref,
        remarks=description,
        updated_at=now,
        settled_at=now,
    )
    db.session.add(order)
    db.session.flush()

    txn = Transaction(
        order_id=order.id,
        buyer_id=buyer.id,
        seller_id=seller.id,
        product_id=product_id,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        total_price_cents=total,
        transaction_type=TRANSACTION_TYPE_PURCHASE,
        created_at=now,
    )
    db.session.add(txn)
    db.session.flush()

    append_ledger_event(
        event_type="order.settled",
        event_category="orders",
        entity_type="pending_order",
        entity_id=order.id,
        actor_id=seller.id,
        order_id=order.id,
        transfer_ref=transfer_ref,
        note="direct transfer",
        payload={"transaction_id": txn.id, "total_price_cents": total},
    )
    return order, txn


def transfer_stock(
    *,
    source_id: int,
    destination_id: int,
    product_id: int,
    quantity: int,
    occurred_at=None,
    description: str | None = None,
    unit_price_cents: int | None = None,
    commit: bool = True,
) -> TransferResult:
    """
    Move stock from one actor to another as a single unit of work.

    Both legs share a transfer_ref; either both are written or neither.
    When a unit price is given, or when HQ ships to a paying tier and a
    tier price exists, a completed order and its Transaction are
    recorded with the same transfer_ref.
    """
    def _op():
        _validate_quantity(quantity)
        if source_id == destination_id:
            raise InvalidTransfer("Cannot transfer stock to the same actor")
        if unit_price_cents is not None and (
            isinstance(unit_price_cents, bool) or not isinstance(unit_price_cents, int) or unit_price_cents < 0
        ):
            raise InvalidTransfer("unit_price_cents must be a non-negative integer")

        source = _ensure_actor(source_id)
        destination = _ensure_actor(destination_id, require_active=True)
        _ensure_product(product_id)

        transfer_ref, out_movement, in_movement = _transfer_inner(
            source_id=source_id,
            destination_id=destination_id,
            product_id=product_id,
            quantity=quantity,
            occurred_dt=_occurred(occurred_at),
            description=description,
        )

        price = unit_price_cents
        if price is None and source.role == ROLE_HQ and destination.role in PAYING_ROLES:
            price = tier_unit_price_cents(product_id, destination.role)

        order = txn = None
        if price is not None:
            order, txn = _record_direct_sale(
                seller=source,
                buyer=destination,
                product_id=product_id,
                quantity=quantity,
                unit_price_cents=price,
                transfer_ref=transfer_ref,
                description=description,
            )

        finish(commit)
        return TransferResult(transfer_ref, out_movement, in_movement, order, txn)

    return run_with_retry(_op, commit=commit)


def reverse_movement(*, movement_id: int, commit: bool = True) -> list[StockMovement]:
    """
    Delete a movement and undo its balance effect.

    A transfer leg takes its sibling with it. Movements written by a
    settled order cannot be reversed. Raises InventoryCorruption when
    undoing a stock-in would drive a balance negative (the stock has
    already left).
    """
    def _op():
        movement = lock_for_update(db.session.query(StockMovement).filter_by(id=movement_id)).first()
        if movement is None:
            raise NotFound(f"Movement {movement_id} not found")

        legs = [movement]
        if movement.transfer_ref:
            order_id = (
                db.session.query(PendingOrder.id)
                .filter_by(transfer_ref=movement.transfer_ref)
                .scalar()
            )
            if order_id is not None:
                raise MovementLocked(
                    f"Movement {movement_id} belongs to settled order {order_id} and cannot be reversed"
                )
            legs = (
                lock_for_update(
                    db.session.query(StockMovement).filter_by(transfer_ref=movement.transfer_ref)
                )
                .order_by(StockMovement.id.asc())
                .all()
            )

        for leg in legs:
            if leg.direction == DIRECTION_IN:
                if not _try_debit(leg.actor_id, leg.product_id, leg.quantity):
                    raise InventoryCorruption(
                        f"Reversing movement {leg.id} would make the balance of product "
                        f"{leg.product_id} for actor {leg.actor_id} negative "
                        f"(available: {get_balance(leg.actor_id, leg.product_id)}, reversing: {leg.quantity})"
                    )
            else:
                _credit(leg.actor_id, leg.product_id, leg.quantity)

            append_ledger_event(
                event_type="inventory.movement_reversed",
                event_category="inventory",
                entity_type="stock_movement",
                entity_id=leg.id,
                actor_id=leg.actor_id,
                transfer_ref=leg.transfer_ref,
                payload={
                    "product_id": leg.product_id,
                    "quantity": leg.quantity,
                    "direction": leg.direction,
                },
            )
            db.session.delete(leg)

        db.session.flush()
        logger.info("Reversed %d movement(s) starting at %s", len(legs), movement_id)
        finish(commit)
        return legs

    return run_with_retry(_op, commit=commit)


def amend_movement(
    *,
    movement_id: int,
    quantity: int,
    description: str | None = None,
    commit: bool = True,
) -> StockMovement:
    """
    Replace a standalone stock-in or stock-out with one at a new quantity.

    The old row is reversed and a new one applied in the same transaction,
    so the balance only ever reflects one of them.
    """
    def _op():
        _validate_quantity(quantity)
        movement = lock_for_update(db.session.query(StockMovement).filter_by(id=movement_id)).first()
        if movement is None:
            raise NotFound(f"Movement {movement_id} not found")
        if movement.transfer_ref:
            raise MovementLocked(
                f"Movement {movement_id} is a transfer leg; reverse the transfer instead"
            )

        if movement.direction == DIRECTION_IN:
            if not _try_debit(movement.actor_id, movement.product_id, movement.quantity):
                raise InventoryCorruption(
                    f"Amending movement {movement_id} would make the balance of product "
                    f"{movement.product_id} for actor {movement.actor_id} negative"
                )
        else:
            _credit(movement.actor_id, movement.product_id, movement.quantity)

        params = dict(
            actor_id=movement.actor_id,
            product_id=movement.product_id,
            quantity=quantity,
            occurred_dt=movement.occurred_at,
            description=description if description is not None else movement.description,
            counterparty_id=movement.counterparty_id,
        )
        direction = movement.direction
        old_quantity = movement.quantity

        append_ledger_event(
            event_type="inventory.movement_amended",
            event_category="inventory",
            entity_type="stock_movement",
            entity_id=movement.id,
            actor_id=movement.actor_id,
            payload={"old_quantity": old_quantity, "new_quantity": quantity},
        )
        db.session.delete(movement)
        db.session.flush()

        if direction == DIRECTION_IN:
            replacement = _receive_inner(**params)
        else:
            replacement = _issue_inner(**params)

        finish(commit)
        return replacement

    return run_with_retry(_op, commit=commit)


def list_balances(*, actor_id: int, include_empty: bool = False) -> list[InventoryBalance]:
    query = (
        db.session.query(InventoryBalance)
        .filter(InventoryBalance.actor_id == actor_id)
        .order_by(InventoryBalance.product_id.asc())
        .populate_existing()
    )
    if not include_empty:
        query = query.filter(InventoryBalance.quantity > 0)
    return query.all()


def list_movements(
    *,
    actor_id: int,
    product_id: int | None = None,
    direction: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    """Movements for an actor, newest first. start/end are inclusive."""
    if direction is not None and direction not in (DIRECTION_IN, DIRECTION_OUT):
        raise ValueError("direction must be 'in' or 'out'")

    query = (
        db.session.query(StockMovement)
        .filter(StockMovement.actor_id == actor_id)
        .order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
    )
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if direction:
        query = query.filter(StockMovement.direction == direction)
    if start:
        query = query.filter(StockMovement.occurred_at >= start)
    if end:
        query = query.filter(StockMovement.occurred_at <= end)
    return query.limit(limit).all()


def total_units(product_id: int) -> int:
    """Units of a product held across every tier."""
    total = (
        db.session.query(func.coalesce(func.sum(InventoryBalance.quantity), 0))
        .filter(InventoryBalance.product_id == product_id)
        .scalar()
    )
    return int(total or 0)
