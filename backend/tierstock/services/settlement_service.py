# Overview: Pending order lifecycle: creation, approval/settlement, rejection and payment rechecks.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import func, update

from ..extensions import db
from ..errors import (
    ConfigurationMissing,
    ExternalGatewayError,
    InvalidQuantity,
    LedgerError,
    NotFound,
    OrderNotPending,
)
from ..models import Actor, ActorRelationship, Bundle, Product, PendingOrder, Transaction
from ..models.actors import ROLE_MASTER_AGENT, ROLE_AGENT, PAYING_ROLES
from ..models.orders import (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_FAILED,
    ORDER_STATUSES,
    TRANSACTION_TYPE_PURCHASE,
)
from tierstock.time_utils import utcnow
from .catalog_service import bundle_price_for_role, tier_unit_price_cents
from .concurrency import lock_for_update, run_with_retry, finish
from .document_service import next_document_number
from .inventory_service import _transfer_inner
from .ledger_service import append_ledger_event
from .payment_gateway import GATEWAY_COMPLETED, GATEWAY_FAILED, PaymentGateway, get_payment_gateway
"""
Settlement invariants

LIFECYCLE:
- pending -> completed: seller issue, buyer receive, Transaction and
  status change commit together or not at all.
- pending -> failed: rejection or failed payment; no inventory effect.
- failed -> completed: only through a payment recheck that finds the
  payment successful.

An order is claimed with a compare-and-set UPDATE on its status, so two
concurrent approvals settle it exactly once; the loser gets
OrderNotPending. Transactions.order_id is unique as a second guard.

Seller resolution: master agents buy from HQ (HQ_ACTOR_ID, injected),
agents buy from their master agent (actor_relationships).
"""

logger = logging.getLogger(__name__)


class OrderError(LedgerError):
    """Raised when an order cannot be created as requested."""
    pass


@dataclass
class PaymentRecheckResult:
    order: PendingOrder
    gateway_status: str | None
    settled: bool

    def to_dict(self) -> dict:
        return {
            "order": self.order.to_dict(),
            "gateway_status": self.gateway_status,
            "settled": self.settled,
        }


def _hq_actor_id(hq_actor_id: int | None) -> int:
    if hq_actor_id is not None:
        return hq_actor_id
    configured = current_app.config.get("HQ_ACTOR_ID")
    if configured is None:
        raise ConfigurationMissing("HQ_ACTOR_ID is not configured")
    return int(configured)


def _resolve_seller_id(buyer: Actor, hq_actor_id: int | None) -> int:
    if buyer.role == ROLE_MASTER_AGENT:
        return _hq_actor_id(hq_actor_id)
    if buyer.role == ROLE_AGENT:
        master_agent_id = (
            db.session.query(ActorRelationship.master_agent_id)
            .filter_by(agent_id=buyer.id)
            .order_by(ActorRelationship.id.asc())
            .limit(1)
            .scalar()
        )
        if master_agent_id is None:
            raise ConfigurationMissing(f"Agent {buyer.id} is not assigned to a master agent")
        return master_agent_id
    raise OrderError(f"Actor {buyer.id} with role {buyer.role!r} does not buy from an upper tier")


def _get_order(order_id: int, *, lock: bool = False) -> PendingOrder:
    query = db.session.query(PendingOrder).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query)
    order = query.populate_existing().first()
    if order is None:
        raise NotFound(f"Order {order_id} not found")
    return order


def _claim(order: PendingOrder, *, from_statuses: tuple[str, ...], to_status: str) -> None:
    """Compare-and-set the status; OrderNotPending when another writer got there first."""
    stmt = (
        update(PendingOrder)
        .where(PendingOrder.id == order.id, PendingOrder.status.in_(from_statuses))
        .values(status=to_status, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if not db.session.execute(stmt).rowcount:
        current = db.session.query(PendingOrder.status).filter_by(id=order.id).scalar()
        raise OrderNotPending(order.id, current)
    order.status = to_status


def create_order(
    *,
    buyer_id: int,
    quantity: int,
    product_id: int | None = None,
    bundle_id: int | None = None,
    unit_price_cents: int | None = None,
    payment_reference: str | None = None,
    remarks: str | None = None,
    commit: bool = True,
) -> PendingOrder:
    """
    Create a pending purchase order for a master agent or agent.

    Bundle orders are priced server-side from the buyer's tier and stock
    quantity * units of the bundle's first product. Product orders use the
    given unit price, else the tier price from single-product bundles.
    """
    def _op():
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidQuantity(quantity)
        if (product_id is None) == (bundle_id is None):
            raise OrderError("Exactly one of product_id or bundle_id is required")

        buyer = db.session.get(Actor, buyer_id)
        if buyer is None:
            raise NotFound(f"Actor {buyer_id} not found")
        if buyer.role not in PAYING_ROLES:
            raise OrderError(f"Actor {buyer_id} with role {buyer.role!r} cannot place purchase orders")

        bundle_quantity = None
        if bundle_id is not None:
            bundle = db.session.get(Bundle, bundle_id)
            if bundle is None or not bundle.is_active:
                raise NotFound(f"Bundle {bundle_id} not found")
            if not bundle.items:
                raise OrderError(f"Bundle {bundle_id} has no items")
            first = bundle.items[0]
            stock_product_id = first.product_id
            stock_units = quantity * first.units
            bundle_quantity = quantity
            price = bundle_price_for_role(bundle, buyer.role)
            total = price * quantity
        else:
            product = db.session.get(Product, product_id)
            if product is None or not product.is_active:
                raise NotFound(f"Product {product_id} not found")
            stock_product_id = product.id
            stock_units = quantity
            price = unit_price_cents
            if price is None:
                price = tier_unit_price_cents(product.id, buyer.role)
            if price is None:
                raise OrderError(f"No {buyer.role} price configured for product {product_id}")
            if isinstance(price, bool) or not isinstance(price, int) or price < 0:
                raise OrderError("unit_price_cents must be a non-negative integer")
            total = price * quantity

        order = PendingOrder(
            order_number=next_document_number(document_type="ORDER", prefix="ORD-"),
            buyer_id=buyer.id,
            product_id=stock_product_id,
            bundle_id=bundle_id,
            quantity=stock_units,
            bundle_quantity=bundle_quantity,
            unit_price_cents=price,
            total_price_cents=total,
            status=ORDER_STATUS_PENDING,
            payment_reference=payment_reference,
            remarks=remarks,
        )
        db.session.add(order)
        db.session.flush()

        append_ledger_event(
            event_type="order.created",
            event_category="orders",
            entity_type="pending_order",
            entity_id=order.id,
            actor_id=buyer.id,
            order_id=order.id,
            note=order.order_number,
            payload={"total_price_cents": total, "quantity": stock_units},
        )
        finish(commit)
        return order

    return run_with_retry(_op, commit=commit)


def _settle_inner(order: PendingOrder, *, hq_actor_id: int | None) -> Transaction:
    """Move stock seller -> buyer and write the Transaction. Status already claimed."""
    buyer = db.session.get(Actor, order.buyer_id)
    seller_id = _resolve_seller_id(buyer, hq_actor_id)
    if db.session.get(Actor, seller_id) is None:
        raise NotFound(f"Seller {seller_id} not found")

    now = utcnow()
    transfer_ref, _, _ = _transfer_inner(
        source_id=seller_id,
        destination_id=buyer.id,
        product_id=order.product_id,
        quantity=order.quantity,
        occurred_dt=now,
        description=f"Order {order.order_number or order.id}",
    )

    txn = Transaction(
        order_id=order.id,
        buyer_id=buyer.id,
        seller_id=seller_id,
        product_id=order.product_id,
        quantity=order.quantity,
        unit_price_cents=order.unit_price_cents,
        total_price_cents=order.total_price_cents,
        transaction_type=TRANSACTION_TYPE_PURCHASE,
        created_at=now,
    )
    db.session.add(txn)

    order.seller_id = seller_id
    order.transfer_ref = transfer_ref
    order.settled_at = now
    order.updated_at = now
    db.session.flush()

    append_ledger_event(
        event_type="order.settled",
        event_category="orders",
        entity_type="pending_order",
        entity_id=order.id,
        actor_id=seller_id,
        order_id=order.id,
        transfer_ref=transfer_ref,
        occurred_at=now,
        payload={"transaction_id": txn.id, "total_price_cents": order.total_price_cents},
    )
    logger.info("Settled order %s: %s units from %s to %s", order.id, order.quantity, seller_id, buyer.id)
    return txn


def approve_order(*, order_id: int, hq_actor_id: int | None = None, commit: bool = True) -> PendingOrder:
    """
    Settle a pending order.

    Raises OrderNotPending for completed or failed orders, and
    InsufficientInventory when the seller is short; the order then stays
    pending and nothing is written.
    """
    def _op():
        order = _get_order(order_id, lock=True)
        _claim(order, from_statuses=(ORDER_STATUS_PENDING,), to_status=ORDER_STATUS_COMPLETED)
        _settle_inner(order, hq_actor_id=hq_actor_id)
        finish(commit)
        return order

    return run_with_retry(_op, commit=commit)


def reject_order(*, order_id: int, reason: str | None = None, commit: bool = True) -> PendingOrder:
    def _op():
        order = _get_order(order_id, lock=True)
        _claim(order, from_statuses=(ORDER_STATUS_PENDING,), to_status=ORDER_STATUS_FAILED)
        if reason:
            order.remarks = reason

        append_ledger_event(
            event_type="order.rejected",
            event_category="orders",
            entity_type="pending_order",
            entity_id=order.id,
            actor_id=order.buyer_id,
            order_id=order.id,
            note=reason,
        )
        finish(commit)
        return order

    return run_with_retry(_op, commit=commit)


def recheck_external_payment(
    *,
    order_id: int,
    gateway: PaymentGateway | None = None,
    hq_actor_id: int | None = None,
    commit: bool = True,
) -> PaymentRecheckResult:
    """
    Ask the payment gateway about an order's payment and reconcile.

    - gateway completed: pending or failed orders are settled
    - gateway failed: pending orders become failed
    - gateway pending: nothing changes
    - completed orders are never settled again; the gateway status is still
      reported when the order carries a payment reference

    The gateway is called before any DB work; ExternalGatewayError leaves
    the order exactly as it was.
    """
    order = _get_order(order_id)
    if not order.payment_reference:
        if order.status == ORDER_STATUS_COMPLETED:
            return PaymentRecheckResult(order, None, False)
        raise ExternalGatewayError(f"Order {order_id} has no payment reference")

    gateway = gateway or get_payment_gateway()
    gateway_status = gateway.get_status(order.payment_reference)
    if order.status == ORDER_STATUS_COMPLETED:
        return PaymentRecheckResult(order, gateway_status, False)

    def _op():
        current = _get_order(order_id, lock=True)
        settled = False
        if current.status == ORDER_STATUS_COMPLETED:
            pass
        elif gateway_status == GATEWAY_COMPLETED:
            previous = current.status
            _claim(
                current,
                from_statuses=(ORDER_STATUS_PENDING, ORDER_STATUS_FAILED),
                to_status=ORDER_STATUS_COMPLETED,
            )
            _settle_inner(current, hq_actor_id=hq_actor_id)
            settled = True
            if previous == ORDER_STATUS_FAILED:
                logger.info("Reopened failed order %s after successful payment", current.id)
        elif gateway_status == GATEWAY_FAILED and current.status == ORDER_STATUS_PENDING:
            _claim(current, from_statuses=(ORDER_STATUS_PENDING,), to_status=ORDER_STATUS_FAILED)
            append_ledger_event(
                event_type="order.payment_failed",
                event_category="orders",
                entity_type="pending_order",
                entity_id=current.id,
                actor_id=current.buyer_id,
                order_id=current.id,
                note=current.payment_reference,
            )
        finish(commit)
        return PaymentRecheckResult(current, gateway_status, settled)

    return run_with_retry(_op, commit=commit)


def recheck_pending_orders(
    *,
    limit: int = 50,
    gateway: PaymentGateway | None = None,
    hq_actor_id: int | None = None,
) -> list[dict]:
    """
    Recheck every pending order that carries a payment reference.

    One order's failure does not stop the batch; it is reported in the
    returned rows under "error".
    """
    order_ids = [
        row[0]
        for row in db.session.query(PendingOrder.id)
        .filter(
            PendingOrder.status == ORDER_STATUS_PENDING,
            PendingOrder.payment_reference.isnot(None),
        )
        .order_by(PendingOrder.created_at.asc(), PendingOrder.id.asc())
        .limit(limit)
        .all()
    ]
    if not order_ids:
        return []
    gateway = gateway or get_payment_gateway()

    rows = []
    for oid in order_ids:
        try:
            result = recheck_external_payment(order_id=oid, gateway=gateway, hq_actor_id=hq_actor_id)
        except LedgerError as exc:
            logger.warning("Recheck of order %s failed: %s", oid, exc)
            rows.append({"order_id": oid, "status": None, "settled": False, "error": str(exc)})
            continue
        rows.append({
            "order_id": oid,
            "status": result.order.status,
            "settled": result.settled,
            "error": None,
        })
    return rows


def save_remark(*, order_id: int, remark: str | None, commit: bool = True) -> PendingOrder:
    def _op():
        order = _get_order(order_id, lock=True)
        order.remarks = remark.strip() if remark else None
        order.updated_at = utcnow()
        finish(commit)
        return order

    return run_with_retry(_op, commit=commit)


def list_orders(
    *,
    status: str | None = None,
    buyer_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 500,
) -> list[PendingOrder]:
    """Orders newest first; start/end filter created_at inclusively."""
    if status is not None and status not in ORDER_STATUSES:
        raise ValueError(f"status must be one of {', '.join(ORDER_STATUSES)}")

    query = db.session.query(PendingOrder).order_by(PendingOrder.created_at.desc(), PendingOrder.id.desc())
    if status:
        query = query.filter(PendingOrder.status == status)
    if buyer_id is not None:
        query = query.filter(PendingOrder.buyer_id == buyer_id)
    if start:
        query = query.filter(PendingOrder.created_at >= start)
    if end:
        query = query.filter(PendingOrder.created_at <= end)
    return query.limit(limit).all()


def order_summary(orders: list[PendingOrder]) -> dict:
    """Counts per status plus completed sales and units."""
    summary = {
        "total": len(orders),
        ORDER_STATUS_PENDING: 0,
        ORDER_STATUS_COMPLETED: 0,
        ORDER_STATUS_FAILED: 0,
        "completed_sales_cents": 0,
        "completed_units": 0,
    }
    for order in orders:
        if order.status in ORDER_STATUSES:
            summary[order.status] += 1
        if order.status == ORDER_STATUS_COMPLETED:
            summary["completed_sales_cents"] += order.total_price_cents or 0
            summary["completed_units"] += order.quantity or 0
    return summary


def transaction_count(order_id: int) -> int:
    return int(
        db.session.query(func.count(Transaction.id)).filter(Transaction.order_id == order_id).scalar() or 0
    )
