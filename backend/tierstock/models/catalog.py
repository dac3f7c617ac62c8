from __future__ import annotations

from ..extensions import db
from tierstock.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    SKU is globally unique. Identity (sku, name) is fixed after creation;
    HQ may change base_cost_cents and is_active.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)

    # Authoritative storage in cents
    base_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "base_cost_cents": self.base_cost_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Bundle(db.Model):
    """
    A fixed grouping of products sold as one unit under its own SKU.

    Prices are per bundle and depend on the buyer's tier.
    """
    __tablename__ = "bundles"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(128), nullable=True, unique=True)
    master_agent_price_cents = db.Column(db.Integer, nullable=False, default=0)
    agent_price_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship(
        "BundleItem",
        backref="bundle",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="BundleItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "master_agent_price_cents": self.master_agent_price_cents,
            "agent_price_cents": self.agent_price_cents,
            "is_active": self.is_active,
            "items": [item.to_dict() for item in self.items],
            "created_at": to_utc_z(self.created_at),
        }


class BundleItem(db.Model):
    __tablename__ = "bundle_items"
    __table_args__ = (
        db.UniqueConstraint("bundle_id", "product_id", name="uq_bundle_items_bundle_product"),
        db.CheckConstraint("units > 0", name="ck_bundle_items_units_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    bundle_id = db.Column(db.Integer, db.ForeignKey("bundles.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    units = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bundle_id": self.bundle_id,
            "product_id": self.product_id,
            "units": self.units,
        }
