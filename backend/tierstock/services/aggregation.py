# Overview: Pure reporting computations over typed order, spend and stock movement records.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable

from tierstock.time_utils import coerce_date
from .incentive_service import ActorTotals, resolve_commission
"""
Aggregation rules

- Pure: no DB access and no side effects. Identical inputs give identical output.
- Date windows are closed on both ends and compare calendar dates.
- Each metric filters on its own date: sales on date_order, shipments on
  date_processed, returns on date_return.
- A missing or malformed date is never in range; nothing here raises on bad rows.
- Money is integer cents; ratios are floats.
"""

COMBO_DELIMITER = " + "

DELIVERY_SHIPPED = "Shipped"
DELIVERY_RETURN = "Return"
DELIVERY_FAILED = "Failed"

# Platform buckets for branch HQ shipments (orders without a marketer)
HQ_PLATFORM_GROUPS = {
    "StoreHub": ("StoreHub",),
    "TikTok": ("Tiktok HQ",),
    "Shopee": ("Shopee HQ",),
    "Online": ("Facebook", "Database", "Google"),
}

MARKETER_PLATFORMS = ("Facebook", "Shopee", "Tiktok", "Database", "Google")
CUSTOMER_TYPES = ("NP", "EP", "EC")


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    @classmethod
    def from_values(cls, start, end) -> "DateRange":
        start_d = coerce_date(start)
        end_d = coerce_date(end)
        if start_d is None or end_d is None:
            raise ValueError("start and end must be valid dates (YYYY-MM-DD)")
        if start_d > end_d:
            raise ValueError("start must not be after end")
        return cls(start_d, end_d)

    def contains(self, value) -> bool:
        d = coerce_date(value)
        return d is not None and self.start <= d <= self.end


@dataclass(frozen=True)
class OrderRecord:
    product_id: int | None
    product_name: str | None
    quantity: int = 0
    total_price_cents: int = 0
    platform: str | None = None
    customer_type: str | None = None
    delivery_status: str | None = None
    date_order: object = None
    date_processed: object = None
    date_return: object = None
    marketer_id: int | None = None
    branch_id: int | None = None


@dataclass(frozen=True)
class SpendRecord:
    marketer_id: int | None
    amount_cents: int
    spend_date: object = None
    platform: str | None = None


@dataclass(frozen=True)
class MovementRecord:
    actor_id: int
    product_id: int
    quantity: int
    direction: str
    occurred_on: object = None


@dataclass(frozen=True)
class ProductRef:
    id: int
    sku: str
    name: str


def in_range(value, date_range: DateRange) -> bool:
    return date_range.contains(value)


def _matches(record, filters: dict) -> bool:
    for field, expected in filters.items():
        actual = getattr(record, field, None)
        if isinstance(expected, (tuple, list, set, frozenset)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


def sum_field(records: Iterable, field: str, date_range: DateRange, date_field: str, **filters):
    """
    Sum `field` over records whose `date_field` is in range and whose
    attributes equal the given filters (a tuple/list/set filter means "any of").
    """
    total = 0
    for record in records:
        if not date_range.contains(getattr(record, date_field, None)):
            continue
        if not _matches(record, filters):
            continue
        total += getattr(record, field, 0) or 0
    return total


def count_records(records: Iterable, date_range: DateRange, date_field: str, **filters) -> int:
    return sum(
        1
        for record in records
        if date_range.contains(getattr(record, date_field, None)) and _matches(record, filters)
    )


def breakdown(values: dict) -> dict:
    """
    Per-category value and percent of the compared categories' sum.

    Percentages are rounded to two decimals; a zero total gives 0.0 everywhere.
    """
    total = sum(v or 0 for v in values.values())
    result = {}
    for category, value in values.items():
        value = value or 0
        pct = round(value * 100.0 / total, 2) if total > 0 else 0.0
        result[category] = {"value": value, "percent": pct}
    return result


def roas(sales, spend) -> float:
    return sales / spend if spend and spend > 0 else 0.0


def profit(sales, spend):
    return sales - spend


def profit_margin(sales, spend) -> float:
    return (sales - spend) / sales if sales and sales > 0 else 0.0


def is_combo(record) -> bool:
    return record.product_id is None and COMBO_DELIMITER in (record.product_name or "")


def _line_metrics(records: list, date_range: DateRange) -> dict:
    shipped = [
        r for r in records
        if r.delivery_status == DELIVERY_SHIPPED and date_range.contains(r.date_processed)
    ]
    returned = [
        r for r in records
        if r.delivery_status == DELIVERY_RETURN and date_range.contains(r.date_return)
    ]

    hq_shipped = [r for r in shipped if not r.marketer_id]
    platform_units = {}
    platform_transactions = {}
    for label, platforms in HQ_PLATFORM_GROUPS.items():
        rows = [r for r in hq_shipped if r.platform in platforms]
        platform_units[label] = sum(r.quantity or 0 for r in rows)
        platform_transactions[label] = len(rows)

    platforms = breakdown(platform_units)
    for label, entry in platforms.items():
        entry["transactions"] = platform_transactions[label]

    return {
        "total_sales_cents": sum_field(records, "total_price_cents", date_range, "date_order"),
        "shipped_units": sum(r.quantity or 0 for r in shipped),
        "shipped_transactions": len(shipped),
        "return_units": sum(r.quantity or 0 for r in returned),
        "return_transactions": len(returned),
        "platforms": platforms,
    }


def _has_activity(line: dict) -> bool:
    return bool(line["total_sales_cents"] or line["shipped_units"] or line["return_units"])


def group_combos(purchases: Iterable[OrderRecord], date_range: DateRange) -> list[dict]:
    """
    Combo lines: purchases with no product_id whose name contains " + ",
    grouped by the exact name. Only combos with activity in the window are kept.
    """
    groups: dict[str, list] = {}
    for record in purchases:
        if is_combo(record):
            groups.setdefault(record.product_name, []).append(record)

    lines = []
    for name, records in groups.items():
        line = {
            "product_id": None,
            "sku": f"COMBO - {name}",
            "name": name,
            "is_combo": True,
            "stock_in": 0,
            "stock_out": 0,
        }
        line.update(_line_metrics(records, date_range))
        if _has_activity(line):
            lines.append(line)
    return lines


def product_transaction_report(
    products: Iterable,
    purchases: Iterable[OrderRecord],
    stock_in: Iterable[MovementRecord],
    stock_out: Iterable[MovementRecord],
    date_range: DateRange,
) -> list[dict]:
    """
    Per-product stock and sales activity for a window, followed by combo lines.

    `products` only needs id, sku and name attributes.
    """
    purchases = list(purchases)
    stock_in = list(stock_in)
    stock_out = list(stock_out)

    by_product: dict[int, list] = {}
    for record in purchases:
        if record.product_id is not None:
            by_product.setdefault(record.product_id, []).append(record)

    lines = []
    for product in products:
        line = {
            "product_id": product.id,
            "sku": product.sku,
            "name": product.name,
            "is_combo": False,
            "stock_in": sum_field(stock_in, "quantity", date_range, "occurred_on", product_id=product.id),
            "stock_out": sum_field(stock_out, "quantity", date_range, "occurred_on", product_id=product.id),
        }
        line.update(_line_metrics(by_product.get(product.id, []), date_range))
        lines.append(line)

    lines.extend(group_combos(purchases, date_range))
    return lines


def summarize_report(lines: list[dict]) -> dict:
    totals = {
        "total_sales_cents": 0,
        "stock_in": 0,
        "stock_out": 0,
        "shipped_units": 0,
        "return_units": 0,
    }
    platform_units = {label: 0 for label in HQ_PLATFORM_GROUPS}
    for line in lines:
        for key in totals:
            totals[key] += line.get(key, 0) or 0
        for label, entry in line.get("platforms", {}).items():
            platform_units[label] = platform_units.get(label, 0) + entry["value"]
    totals["platforms"] = breakdown(platform_units)
    return totals


def marketer_stats(
    purchases: Iterable[OrderRecord],
    spends: Iterable[SpendRecord],
    leads: Iterable,
    date_range: DateRange,
) -> dict:
    """
    Marketer dashboard figures for one window.

    `leads` are lead dates; only those in range are counted.
    """
    orders = [r for r in purchases if date_range.contains(r.date_order)]
    spend_cents = sum_field(spends, "amount_cents", date_range, "spend_date")
    total_leads = sum(1 for lead in leads if date_range.contains(lead))

    sales_cents = sum(r.total_price_cents or 0 for r in orders)
    total_orders = len(orders)

    by_platform = {
        p: sum(r.total_price_cents or 0 for r in orders if r.platform == p)
        for p in MARKETER_PLATFORMS
    }
    by_customer_type = {
        t: sum(r.total_price_cents or 0 for r in orders if r.customer_type == t)
        for t in CUSTOMER_TYPES
    }

    return {
        "total_sales_cents": sales_cents,
        "return_count": sum(1 for r in orders if r.delivery_status in (DELIVERY_RETURN, DELIVERY_FAILED)),
        "total_spend_cents": spend_cents,
        "roas": round(roas(sales_cents, spend_cents), 2),
        "sales_by_platform": by_platform,
        "sales_by_customer_type": by_customer_type,
        "total_units": sum(r.quantity or 0 for r in orders),
        "total_orders": total_orders,
        "total_leads": total_leads,
        "cost_per_lead_cents": round(spend_cents / total_leads, 2) if total_leads > 0 else 0.0,
        "closing_rate": round(total_orders * 100.0 / total_leads, 1) if total_leads > 0 else 0.0,
    }


def marketer_pnl(
    purchases: Iterable[OrderRecord],
    spends: Iterable[SpendRecord],
    tiers: Iterable,
    date_range: DateRange | None = None,
) -> dict:
    """
    Profit and loss for a marketer with commission from the tier table.

    Gross sales exclude Return/Failed orders; those are reported as returns.
    """
    purchases = list(purchases)
    spends = list(spends)
    if date_range is not None:
        purchases = [r for r in purchases if date_range.contains(r.date_order)]
        spends = [s for s in spends if date_range.contains(s.spend_date)]

    lost = (DELIVERY_RETURN, DELIVERY_FAILED)
    gross_cents = sum(r.total_price_cents or 0 for r in purchases if r.delivery_status not in lost)
    returns_cents = sum(r.total_price_cents or 0 for r in purchases if r.delivery_status in lost)
    spend_cents = sum(s.amount_cents or 0 for s in spends)
    ratio = roas(gross_cents, spend_cents)

    commission = resolve_commission(ActorTotals(sales_cents=gross_cents, roas=ratio), tiers)

    return {
        "gross_sales_cents": gross_cents,
        "returns_cents": returns_cents,
        "net_sales_cents": gross_cents,
        "total_spend_cents": spend_cents,
        "roas": round(ratio, 2),
        "commission": commission.to_dict(),
        "profit_cents": profit(gross_cents, spend_cents),
        "profit_margin": round(profit_margin(gross_cents, spend_cents), 4),
    }
