# Overview: Loads report inputs from the store for a date window and runs the pure aggregations.

from __future__ import annotations

from datetime import datetime, time, timedelta

from sqlalchemy import func, or_

from tierstock.extensions import db
from tierstock.errors import NotFound
from tierstock.models import Actor, CustomerPurchase, Spend, Prospect, Product, StockMovement, Transaction
from tierstock.models.actors import ROLE_MARKETER
from tierstock.models.inventory import DIRECTION_IN, DIRECTION_OUT
from tierstock.models.orders import TRANSACTION_TYPE_PURCHASE
from tierstock.services import aggregation
from tierstock.services.aggregation import DateRange, MovementRecord, OrderRecord, SpendRecord
from tierstock.services.incentive_service import load_commission_tiers


def _window(date_range: DateRange) -> tuple[datetime, datetime]:
    """Half-open datetime bounds covering every day of the range."""
    return (
        datetime.combine(date_range.start, time.min),
        datetime.combine(date_range.end + timedelta(days=1), time.min),
    )


def _to_order_record(row: CustomerPurchase) -> OrderRecord:
    return OrderRecord(
        product_id=row.product_id,
        product_name=row.product_name,
        quantity=row.quantity or 0,
        total_price_cents=row.total_price_cents or 0,
        platform=row.platform,
        customer_type=row.customer_type,
        delivery_status=row.delivery_status,
        date_order=row.date_order,
        date_processed=row.date_processed,
        date_return=row.date_return,
        marketer_id=row.marketer_id,
        branch_id=row.branch_id,
    )


def purchase_records(
    *,
    date_range: DateRange,
    branch_id: int | None = None,
    marketer_id: int | None = None,
) -> list[OrderRecord]:
    """
    Customer purchases touching the window on any of their three dates.

    The pure functions decide which date each metric uses.
    """
    start, end = date_range.start, date_range.end
    query = db.session.query(CustomerPurchase).filter(
        or_(
            CustomerPurchase.date_order.between(start, end),
            CustomerPurchase.date_processed.between(start, end),
            CustomerPurchase.date_return.between(start, end),
        )
    )
    if branch_id is not None:
        query = query.filter(CustomerPurchase.branch_id == branch_id)
    if marketer_id is not None:
        query = query.filter(CustomerPurchase.marketer_id == marketer_id)
    return [_to_order_record(r) for r in query.order_by(CustomerPurchase.id.asc()).all()]


def movement_records(*, actor_id: int, date_range: DateRange, direction: str) -> list[MovementRecord]:
    start_dt, end_dt = _window(date_range)
    rows = (
        db.session.query(StockMovement)
        .filter(
            StockMovement.actor_id == actor_id,
            StockMovement.direction == direction,
            StockMovement.occurred_at >= start_dt,
            StockMovement.occurred_at < end_dt,
        )
        .order_by(StockMovement.id.asc())
        .all()
    )
    return [
        MovementRecord(
            actor_id=r.actor_id,
            product_id=r.product_id,
            quantity=r.quantity,
            direction=r.direction,
            occurred_on=r.occurred_at,
        )
        for r in rows
    ]


def spend_records(*, marketer_id: int, date_range: DateRange) -> list[SpendRecord]:
    rows = (
        db.session.query(Spend)
        .filter(
            Spend.marketer_id == marketer_id,
            Spend.spend_date.between(date_range.start, date_range.end),
        )
        .order_by(Spend.id.asc())
        .all()
    )
    return [
        SpendRecord(marketer_id=r.marketer_id, amount_cents=r.amount_cents or 0, spend_date=r.spend_date, platform=r.platform)
        for r in rows
    ]


def lead_dates(*, marketer_id: int, date_range: DateRange) -> list:
    rows = (
        db.session.query(Prospect.lead_date)
        .filter(
            Prospect.marketer_id == marketer_id,
            Prospect.lead_date.between(date_range.start, date_range.end),
        )
        .all()
    )
    return [r[0] for r in rows]


def _require_actor(actor_id: int, role: str | None = None) -> Actor:
    actor = db.session.get(Actor, actor_id)
    if actor is None or (role is not None and actor.role != role):
        raise NotFound(f"Actor {actor_id} not found")
    return actor


def product_report(*, actor_id: int, date_range: DateRange, branch_id: int | None = None) -> dict:
    """
    Product transaction report for one stock holder.

    Purchases are scoped to branch_id when given (usually the holder itself).
    """
    _require_actor(actor_id)
    products = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True))
        .order_by(Product.sku.asc())
        .all()
    )
    lines = aggregation.product_transaction_report(
        products,
        purchase_records(date_range=date_range, branch_id=branch_id),
        movement_records(actor_id=actor_id, date_range=date_range, direction=DIRECTION_IN),
        movement_records(actor_id=actor_id, date_range=date_range, direction=DIRECTION_OUT),
        date_range,
    )
    return {
        "start": date_range.start.isoformat(),
        "end": date_range.end.isoformat(),
        "lines": lines,
        "summary": aggregation.summarize_report(lines),
    }


def marketer_report(*, marketer_id: int, date_range: DateRange) -> dict:
    _require_actor(marketer_id, ROLE_MARKETER)
    return aggregation.marketer_stats(
        purchase_records(date_range=date_range, marketer_id=marketer_id),
        spend_records(marketer_id=marketer_id, date_range=date_range),
        lead_dates(marketer_id=marketer_id, date_range=date_range),
        date_range,
    )


def marketer_pnl_report(*, marketer_id: int, date_range: DateRange, branch_id: int | None = None) -> dict:
    """P&L with commission from the branch's marketer tier table (global table as fallback)."""
    _require_actor(marketer_id, ROLE_MARKETER)
    tiers = load_commission_tiers(role=ROLE_MARKETER, branch_id=branch_id)
    report = aggregation.marketer_pnl(
        purchase_records(date_range=date_range, marketer_id=marketer_id),
        spend_records(marketer_id=marketer_id, date_range=date_range),
        tiers,
        date_range,
    )
    report["tiers_configured"] = bool(tiers)
    return report


def tier_sales_report(*, seller_id: int, date_range: DateRange) -> list[dict]:
    """Units and value each buyer purchased from a seller in the window."""
    _require_actor(seller_id)
    start_dt, end_dt = _window(date_range)
    rows = (
        db.session.query(
            Transaction.buyer_id,
            func.count(Transaction.id),
            func.coalesce(func.sum(Transaction.quantity), 0),
            func.coalesce(func.sum(Transaction.total_price_cents), 0),
        )
        .filter(
            Transaction.seller_id == seller_id,
            Transaction.transaction_type == TRANSACTION_TYPE_PURCHASE,
            Transaction.created_at >= start_dt,
            Transaction.created_at < end_dt,
        )
        .group_by(Transaction.buyer_id)
        .order_by(Transaction.buyer_id.asc())
        .all()
    )
    return [
        {
            "buyer_id": buyer_id,
            "transactions": int(count or 0),
            "units": int(units or 0),
            "total_cents": int(total or 0),
        }
        for buyer_id, count, units, total in rows
    ]
