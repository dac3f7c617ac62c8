from __future__ import annotations

from ..extensions import db
from tierstock.time_utils import to_utc_z


ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_COMPLETED = "completed"
ORDER_STATUS_FAILED = "failed"

ORDER_STATUSES = (ORDER_STATUS_PENDING, ORDER_STATUS_COMPLETED, ORDER_STATUS_FAILED)

TRANSACTION_TYPE_PURCHASE = "purchase"


class PendingOrder(db.Model):
    """
    A purchase request from a lower tier.

    LIFECYCLE:
    - pending -> completed (settled: stock moved, Transaction written)
    - pending -> failed (rejected or payment failed)

    seller_id is filled in at settlement time. The status column is the
    compare-and-set target for approval; see settlement_service.
    """
    __tablename__ = "pending_orders"
    __table_args__ = (
        db.Index("ix_pending_orders_status_created", "status", "created_at"),
        db.CheckConstraint("quantity > 0", name="ck_pending_orders_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=True, unique=True)

    buyer_id = db.Column(db.Integer, db.ForeignKey("actors.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("actors.id"), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    bundle_id = db.Column(db.Integer, db.ForeignKey("bundles.id"), nullable=True, index=True)

    # Stock units moved on settlement
    quantity = db.Column(db.Integer, nullable=False)
    # Bundles ordered; unit_price_cents is then the per-bundle price
    bundle_quantity = db.Column(db.Integer, nullable=True)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_price_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING, index=True)
    payment_reference = db.Column(db.String(128), nullable=True, index=True)
    # Shared with the two stock movements written at settlement
    transfer_ref = db.Column(db.String(64), nullable=True, index=True)
    remarks = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    settled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    product = db.relationship("Product")
    bundle = db.relationship("Bundle")

    def __repr__(self) -> str:
        return f"<PendingOrder id={self.id} number={self.order_number!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "buyer_id": self.buyer_id,
            "seller_id": self.seller_id,
            "product_id": self.product_id,
            "bundle_id": self.bundle_id,
            "quantity": self.quantity,
            "bundle_quantity": self.bundle_quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "status": self.status,
            "payment_reference": self.payment_reference,
            "transfer_ref": self.transfer_ref,
            "remarks": self.remarks,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at) if self.updated_at else None,
            "settled_at": to_utc_z(self.settled_at) if self.settled_at else None,
        }


class Transaction(db.Model):
    """
    Settled purchase between two tiers. Immutable once written.

    order_id is unique so an order can never produce a second row; direct
    HQ stock-outs to a paying tier write one with their own order.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint("order_id", name="uq_transactions_order"),
        db.Index("ix_transactions_buyer_created", "buyer_id", "created_at"),
        db.Index("ix_transactions_seller_created", "seller_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("pending_orders.id"), nullable=True)

    buyer_id = db.Column(db.Integer, db.ForeignKey("actors.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("actors.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_price_cents = db.Column(db.Integer, nullable=False, default=0)
    transaction_type = db.Column(db.String(16), nullable=False, default=TRANSACTION_TYPE_PURCHASE)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "buyer_id": self.buyer_id,
            "seller_id": self.seller_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "transaction_type": self.transaction_type,
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-type document sequences (order numbers, transfer refs).
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
