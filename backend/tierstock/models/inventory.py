from __future__ import annotations

from ..extensions import db
from tierstock.time_utils import to_utc_z


DIRECTION_IN = "in"
DIRECTION_OUT = "out"


class InventoryBalance(db.Model):
    """
    Unit balance per (actor, product).

    One row per pair that has ever held stock; a missing row means zero.
    Only inventory_service mutates this table, and only through
    conditional UPDATEs so concurrent issues cannot pass a stale check.
    """
    __tablename__ = "inventory_balances"
    __table_args__ = (
        db.UniqueConstraint("actor_id", "product_id", name="uq_inventory_actor_product"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(db.Integer, db.ForeignKey("actors.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<InventoryBalance actor={self.actor_id} product={self.product_id} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only stock-in / stock-out record.

    Rows are created or deleted, never updated in place; deleting a row
    goes through inventory_service.reverse_movement so the balance follows.
    Both legs of a transfer share transfer_ref.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_movements_actor_product_occurred", "actor_id", "product_id", "occurred_at"),
        db.CheckConstraint("quantity > 0", name="ck_movements_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(db.Integer, db.ForeignKey("actors.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    direction = db.Column(db.String(8), nullable=False, index=True)

    counterparty_id = db.Column(db.Integer, db.ForeignKey("actors.id"), nullable=True, index=True)
    description = db.Column(db.String(255), nullable=True)
    transfer_ref = db.Column(db.String(64), nullable=True, index=True)

    occurred_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def quantity_delta(self) -> int:
        return self.quantity if self.direction == DIRECTION_IN else -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "direction": self.direction,
            "counterparty_id": self.counterparty_id,
            "description": self.description,
            "transfer_ref": self.transfer_ref,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
        }
