from __future__ import annotations

from ..extensions import db
from tierstock.time_utils import to_utc_z


class RewardTier(db.Model):
    """
    Quantity target for a role and period.

    month == 0 means the target covers the whole calendar year.
    """
    __tablename__ = "reward_tiers"
    __table_args__ = (
        db.Index("ix_reward_tiers_role_period", "role", "year", "month"),
        db.CheckConstraint("month >= 0 AND month <= 12", name="ck_reward_tiers_month"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    role = db.Column(db.String(32), nullable=False)
    month = db.Column(db.Integer, nullable=False, default=0)
    year = db.Column(db.Integer, nullable=False)
    min_quantity = db.Column(db.Integer, nullable=False, default=0)
    reward_description = db.Column(db.String(255), nullable=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role,
            "month": self.month,
            "year": self.year,
            "min_quantity": self.min_quantity,
            "reward_description": self.reward_description,
            "sort_order": self.sort_order,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class CommissionTier(db.Model):
    """
    Sales band + ROAS band that earns a commission percent and fixed bonus.

    NULL max_sales_cents is unbounded; NULL or zero roas_max defaults to
    99 when resolved. branch_id scopes a tier table to one branch (NULL = global).
    """
    __tablename__ = "commission_tiers"
    __table_args__ = (
        db.Index("ix_commission_tiers_role_branch", "role", "branch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    role = db.Column(db.String(32), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("actors.id"), nullable=True)

    min_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    max_sales_cents = db.Column(db.Integer, nullable=True)
    roas_min = db.Column(db.Numeric(8, 2), nullable=True)
    roas_max = db.Column(db.Numeric(8, 2), nullable=True)

    commission_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    bonus_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role,
            "branch_id": self.branch_id,
            "min_sales_cents": self.min_sales_cents,
            "max_sales_cents": self.max_sales_cents,
            "roas_min": float(self.roas_min) if self.roas_min is not None else None,
            "roas_max": float(self.roas_max) if self.roas_max is not None else None,
            "commission_percent": float(self.commission_percent or 0),
            "bonus_cents": self.bonus_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
