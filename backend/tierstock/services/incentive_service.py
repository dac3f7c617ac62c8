# Overview: Reward achievement and commission tier resolution, plus period loaders.

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from sqlalchemy import func
from sqlalchemy.orm import aliased

from ..extensions import db
from ..errors import ConfigurationMissing
from ..models import Actor, CommissionTier, RewardTier, Transaction
from ..models.orders import TRANSACTION_TYPE_PURCHASE
"""
Tier resolution rules

Reward tiers: a tier is achieved when quantity >= min_quantity.
  percent = min(100, round(100 * quantity / min_quantity)), half-up;
  0 when min_quantity <= 0.

Commission tiers: a tier matches when
  min_sales <= sales <= max_sales AND roas_min <= roas <= roas_max.
  Missing max_sales is unbounded, missing roas_min is 0, missing or zero
  roas_max is 99.
  Tiers are tried in ascending (min_sales, id) order and the first match wins.
  commission = sales * percent / 100 (half-up to the cent);
  total_earnings = commission + bonus.

Overlapping commission tiers make the first-match rule depend on ordering;
find_overlapping_tiers reports them so the table can be fixed.
"""

DEFAULT_ROAS_MAX = 99.0


@dataclass(frozen=True)
class ActorTotals:
    quantity: int = 0
    sales_cents: int = 0
    roas: float = 0.0


@dataclass(frozen=True)
class RewardTierSpec:
    id: int | None
    min_quantity: int
    reward_description: str | None = None
    month: int = 0
    year: int | None = None
    sort_order: int = 0

    @classmethod
    def from_model(cls, tier: RewardTier) -> "RewardTierSpec":
        return cls(
            id=tier.id,
            min_quantity=tier.min_quantity or 0,
            reward_description=tier.reward_description,
            month=tier.month or 0,
            year=tier.year,
            sort_order=tier.sort_order or 0,
        )


@dataclass(frozen=True)
class CommissionTierSpec:
    id: int | None
    min_sales_cents: int = 0
    max_sales_cents: int | None = None
    roas_min: float | None = None
    roas_max: float | None = None
    commission_percent: float = 0.0
    bonus_cents: int = 0

    @classmethod
    def from_model(cls, tier: CommissionTier) -> "CommissionTierSpec":
        return cls(
            id=tier.id,
            min_sales_cents=tier.min_sales_cents or 0,
            max_sales_cents=tier.max_sales_cents,
            roas_min=float(tier.roas_min) if tier.roas_min is not None else None,
            roas_max=float(tier.roas_max) if tier.roas_max is not None else None,
            commission_percent=float(tier.commission_percent or 0),
            bonus_cents=tier.bonus_cents or 0,
        )

    @property
    def roas_low(self) -> float:
        return self.roas_min if self.roas_min is not None else 0.0

    @property
    def roas_high(self) -> float:
        # 0 means unset
        return self.roas_max or DEFAULT_ROAS_MAX

    @property
    def sales_high(self) -> float:
        return self.max_sales_cents if self.max_sales_cents is not None else float("inf")

    def matches(self, sales_cents, roas: float) -> bool:
        return (
            self.min_sales_cents <= sales_cents <= self.sales_high
            and self.roas_low <= roas <= self.roas_high
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "min_sales_cents": self.min_sales_cents,
            "max_sales_cents": self.max_sales_cents,
            "roas_min": self.roas_low,
            "roas_max": self.roas_high,
            "commission_percent": self.commission_percent,
            "bonus_cents": self.bonus_cents,
        }


@dataclass(frozen=True)
class RewardProgress:
    tier: RewardTierSpec
    quantity: int
    percent: int
    achieved: bool

    def to_dict(self) -> dict:
        return {
            "tier_id": self.tier.id,
            "min_quantity": self.tier.min_quantity,
            "reward_description": self.tier.reward_description,
            "quantity": self.quantity,
            "percent": self.percent,
            "achieved": self.achieved,
        }


@dataclass(frozen=True)
class RewardResult:
    quantity: int
    progress: list = field(default_factory=list)
    best: RewardTierSpec | None = None

    def to_dict(self) -> dict:
        return {
            "quantity": self.quantity,
            "progress": [p.to_dict() for p in self.progress],
            "best_tier_id": self.best.id if self.best else None,
        }


@dataclass(frozen=True)
class CommissionResult:
    tier: CommissionTierSpec | None
    commission_percent: float
    bonus_cents: int
    commission_cents: int
    total_earnings_cents: int

    def to_dict(self) -> dict:
        return {
            "tier": self.tier.to_dict() if self.tier else None,
            "commission_percent": self.commission_percent,
            "bonus_cents": self.bonus_cents,
            "commission_cents": self.commission_cents,
            "total_earnings_cents": self.total_earnings_cents,
        }


def _as_reward_spec(tier) -> RewardTierSpec:
    return tier if isinstance(tier, RewardTierSpec) else RewardTierSpec.from_model(tier)


def _as_commission_spec(tier) -> CommissionTierSpec:
    return tier if isinstance(tier, CommissionTierSpec) else CommissionTierSpec.from_model(tier)


def _half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def reward_percent(quantity: int, min_quantity: int) -> int:
    if min_quantity <= 0:
        return 0
    return min(100, _half_up(Decimal(quantity) * 100 / Decimal(min_quantity)))


def resolve_reward(totals: ActorTotals, tiers: Iterable) -> RewardResult:
    """
    Progress against every reward tier, in (sort_order, min_quantity, id) order.

    `best` is the achieved tier with the highest min_quantity.
    """
    specs = sorted(
        (_as_reward_spec(t) for t in tiers),
        key=lambda t: (t.sort_order, t.min_quantity, t.id or 0),
    )
    quantity = totals.quantity
    progress = [
        RewardProgress(
            tier=spec,
            quantity=quantity,
            percent=reward_percent(quantity, spec.min_quantity),
            achieved=quantity >= spec.min_quantity,
        )
        for spec in specs
    ]

    best = None
    for entry in progress:
        if entry.achieved and (best is None or entry.tier.min_quantity > best.min_quantity):
            best = entry.tier
    return RewardResult(quantity=quantity, progress=progress, best=best)


def order_commission_tiers(tiers: Iterable) -> list[CommissionTierSpec]:
    return sorted(
        (_as_commission_spec(t) for t in tiers),
        key=lambda t: (t.min_sales_cents, t.id if t.id is not None else 0),
    )


def resolve_commission(totals: ActorTotals, tiers: Iterable) -> CommissionResult:
    """First matching tier in ascending (min_sales, id) order; no match earns nothing."""
    for spec in order_commission_tiers(tiers):
        if spec.matches(totals.sales_cents, totals.roas):
            commission = _half_up(
                Decimal(totals.sales_cents) * Decimal(str(spec.commission_percent)) / 100
            )
            return CommissionResult(
                tier=spec,
                commission_percent=spec.commission_percent,
                bonus_cents=spec.bonus_cents,
                commission_cents=commission,
                total_earnings_cents=commission + spec.bonus_cents,
            )
    return CommissionResult(None, 0.0, 0, 0, 0)


def require_commission(totals: ActorTotals, tiers: Iterable) -> CommissionResult:
    tiers = list(tiers)
    if not tiers:
        raise ConfigurationMissing("No commission tiers are configured")
    result = resolve_commission(totals, tiers)
    if result.tier is None:
        raise ConfigurationMissing(
            f"No commission tier matches sales {totals.sales_cents} at ROAS {totals.roas:.2f}"
        )
    return result


def find_overlapping_tiers(tiers: Iterable) -> list[tuple[CommissionTierSpec, CommissionTierSpec]]:
    """Pairs of tiers whose sales band and ROAS band both intersect."""
    specs = order_commission_tiers(tiers)
    overlaps = []
    for i, a in enumerate(specs):
        for b in specs[i + 1:]:
            sales_overlap = a.min_sales_cents <= b.sales_high and b.min_sales_cents <= a.sales_high
            roas_overlap = a.roas_low <= b.roas_high and b.roas_low <= a.roas_high
            if sales_overlap and roas_overlap:
                overlaps.append((a, b))
    return overlaps


def period_bounds(month: int, year: int) -> tuple[datetime, datetime]:
    """
    Inclusive [start, end] datetimes of a month, or of the whole year when month == 0.
    """
    if not 0 <= month <= 12:
        raise ValueError("month must be between 0 and 12")
    if month == 0:
        start = datetime(year, 1, 1)
        end = datetime(year + 1, 1, 1)
    else:
        start = datetime(year, month, 1)
        last_day = calendar.monthrange(year, month)[1]
        end = datetime(year, month, last_day) + timedelta(days=1)
    return start, end - timedelta(microseconds=1)


def load_reward_tiers(*, role: str, month: int, year: int) -> list[RewardTierSpec]:
    rows = (
        db.session.query(RewardTier)
        .filter(
            RewardTier.role == role,
            RewardTier.year == year,
            RewardTier.month == month,
            RewardTier.is_active.is_(True),
        )
        .order_by(RewardTier.sort_order.asc(), RewardTier.min_quantity.asc(), RewardTier.id.asc())
        .all()
    )
    return [RewardTierSpec.from_model(r) for r in rows]


def load_commission_tiers(*, role: str, branch_id: int | None = None) -> list[CommissionTierSpec]:
    """Active tiers for a role; a branch's own table replaces the global one when present."""
    base = db.session.query(CommissionTier).filter(
        CommissionTier.role == role,
        CommissionTier.is_active.is_(True),
    )
    rows = []
    if branch_id is not None:
        rows = base.filter(CommissionTier.branch_id == branch_id).all()
    if not rows:
        rows = base.filter(CommissionTier.branch_id.is_(None)).all()
    return order_commission_tiers(rows)


def purchase_totals(
    *,
    buyer_role: str,
    seller_role: str,
    start: datetime,
    end: datetime,
) -> dict[int, int]:
    """Units bought per buyer of buyer_role from sellers of seller_role in [start, end]."""
    seller = aliased(Actor)
    buyer = aliased(Actor)
    rows = (
        db.session.query(Transaction.buyer_id, func.coalesce(func.sum(Transaction.quantity), 0))
        .join(buyer, buyer.id == Transaction.buyer_id)
        .join(seller, seller.id == Transaction.seller_id)
        .filter(
            buyer.role == buyer_role,
            seller.role == seller_role,
            Transaction.transaction_type == TRANSACTION_TYPE_PURCHASE,
            Transaction.created_at >= start,
            Transaction.created_at <= end,
        )
        .group_by(Transaction.buyer_id)
        .all()
    )
    return {buyer_id: int(qty or 0) for buyer_id, qty in rows}


def reward_progress_for_role(*, role: str, month: int, year: int, seller_role: str) -> list[dict]:
    """
    Reward progress for every active actor of a role over a period.

    Quantity is the units the actor bought from sellers of seller_role.
    """
    start, end = period_bounds(month, year)
    tiers = load_reward_tiers(role=role, month=month, year=year)
    totals = purchase_totals(buyer_role=role, seller_role=seller_role, start=start, end=end)

    actors = (
        db.session.query(Actor)
        .filter(Actor.role == role, Actor.is_active.is_(True))
        .order_by(Actor.name.asc(), Actor.id.asc())
        .all()
    )
    rows = []
    for actor in actors:
        result = resolve_reward(ActorTotals(quantity=totals.get(actor.id, 0)), tiers)
        rows.append({"actor": actor.to_dict(), **result.to_dict()})
    return rows
