from __future__ import annotations

from ..extensions import db
from tierstock.time_utils import to_iso_date, to_utc_z


DELIVERY_PENDING = "Pending"
DELIVERY_SHIPPED = "Shipped"
DELIVERY_RETURN = "Return"
DELIVERY_FAILED = "Failed"


class CustomerPurchase(db.Model):
    """
    Denormalized customer order line, used only as reporting input.

    Each metric filters on its own date column: date_order for sales,
    date_processed for shipments, date_return for returns.
    product_id is NULL for combo lines; product_name then carries the
    combo label ("SKU-A + SKU-B").
    """
    __tablename__ = "customer_purchases"
    __table_args__ = (
        db.Index("ix_customer_purchases_marketer_order", "marketer_id", "date_order"),
        db.Index("ix_customer_purchases_branch_order", "branch_id", "date_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    total_price_cents = db.Column(db.Integer, nullable=False, default=0)

    platform = db.Column(db.String(32), nullable=True, index=True)
    customer_type = db.Column(db.String(8), nullable=True)
    delivery_status = db.Column(db.String(16), nullable=False, default=DELIVERY_PENDING, index=True)

    date_order = db.Column(db.Date, nullable=True, index=True)
    date_processed = db.Column(db.Date, nullable=True)
    date_return = db.Column(db.Date, nullable=True)

    marketer_id = db.Column(db.Integer, db.ForeignKey("actors.id"), nullable=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("actors.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "total_price_cents": self.total_price_cents,
            "platform": self.platform,
            "customer_type": self.customer_type,
            "delivery_status": self.delivery_status,
            "date_order": to_iso_date(self.date_order),
            "date_processed": to_iso_date(self.date_processed),
            "date_return": to_iso_date(self.date_return),
            "marketer_id": self.marketer_id,
            "branch_id": self.branch_id,
            "created_at": to_utc_z(self.created_at),
        }


class Spend(db.Model):
    """Advertising spend entered by a marketer for one day and platform."""
    __tablename__ = "spends"
    __table_args__ = (
        db.Index("ix_spends_marketer_date", "marketer_id", "spend_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    marketer_id = db.Column(db.Integer, db.ForeignKey("actors.id"), nullable=False)
    platform = db.Column(db.String(32), nullable=True)
    amount_cents = db.Column(db.Integer, nullable=False, default=0)
    spend_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "marketer_id": self.marketer_id,
            "platform": self.platform,
            "amount_cents": self.amount_cents,
            "spend_date": to_iso_date(self.spend_date),
            "created_at": to_utc_z(self.created_at),
        }


class Prospect(db.Model):
    """A lead captured by a marketer."""
    __tablename__ = "prospects"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    marketer_id = db.Column(db.Integer, db.ForeignKey("actors.id"), nullable=False, index=True)
    name = db.Column(db.String(160), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    lead_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "marketer_id": self.marketer_id,
            "name": self.name,
            "phone": self.phone,
            "lead_date": to_iso_date(self.lead_date),
            "created_at": to_utc_z(self.created_at),
        }
