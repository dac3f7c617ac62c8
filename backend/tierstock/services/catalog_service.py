# Overview: Product and bundle master data, plus tier price lookup.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from ..extensions import db
from ..errors import LedgerError, NotFound
from ..models import Product, Bundle, BundleItem
from ..models.actors import ROLE_MASTER_AGENT, ROLE_AGENT
from .concurrency import run_with_retry, finish
from .ledger_service import append_ledger_event


class CatalogError(LedgerError):
    """Raised when product or bundle master data is invalid."""
    pass


def _non_negative_cents(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise CatalogError(f"{field} must be a non-negative integer (cents)")
    return value


def create_product(*, sku: str, name: str, base_cost_cents: int = 0, commit: bool = True) -> Product:
    def _op():
        if not sku or not sku.strip():
            raise CatalogError("sku is required")
        if not name or not name.strip():
            raise CatalogError("name is required")
        if db.session.query(Product.id).filter_by(sku=sku.strip()).first():
            raise CatalogError(f"SKU {sku!r} already exists")

        product = Product(
            sku=sku.strip(),
            name=name.strip(),
            base_cost_cents=_non_negative_cents(base_cost_cents, "base_cost_cents"),
        )
        db.session.add(product)
        db.session.flush()

        append_ledger_event(
            event_type="product.created",
            event_category="catalog",
            entity_type="product",
            entity_id=product.id,
            note=product.sku,
        )
        finish(commit)
        return product

    return run_with_retry(_op, commit=commit)


def update_product(
    *,
    product_id: int,
    base_cost_cents: int | None = None,
    is_active: bool | None = None,
    commit: bool = True,
) -> Product:
    """
    Change the mutable fields of a product.

    SKU and name are identity and cannot be changed here.
    """
    def _op():
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFound(f"Product {product_id} not found")

        changes = {}
        if base_cost_cents is not None:
            product.base_cost_cents = _non_negative_cents(base_cost_cents, "base_cost_cents")
            changes["base_cost_cents"] = product.base_cost_cents
        if is_active is not None:
            product.is_active = bool(is_active)
            changes["is_active"] = product.is_active

        if changes:
            append_ledger_event(
                event_type="product.updated",
                event_category="catalog",
                entity_type="product",
                entity_id=product.id,
                payload=changes,
            )
        finish(commit)
        return product

    return run_with_retry(_op, commit=commit)


def create_bundle(
    *,
    name: str,
    items: list[tuple[int, int]],
    master_agent_price_cents: int,
    agent_price_cents: int,
    sku: str | None = None,
    commit: bool = True,
) -> Bundle:
    """
    Create a bundle from (product_id, units) pairs.

    The first item is the product whose stock moves when the bundle is ordered.
    """
    def _op():
        if not name or not name.strip():
            raise CatalogError("name is required")
        if not items:
            raise CatalogError("a bundle needs at least one item")

        bundle = Bundle(
            name=name.strip(),
            sku=sku,
            master_agent_price_cents=_non_negative_cents(master_agent_price_cents, "master_agent_price_cents"),
            agent_price_cents=_non_negative_cents(agent_price_cents, "agent_price_cents"),
        )
        seen = set()
        for product_id, units in items:
            if product_id in seen:
                raise CatalogError(f"Product {product_id} listed twice in bundle")
            if isinstance(units, bool) or not isinstance(units, int) or units <= 0:
                raise CatalogError("units must be a positive integer")
            if db.session.get(Product, product_id) is None:
                raise NotFound(f"Product {product_id} not found")
            seen.add(product_id)
            bundle.items.append(BundleItem(product_id=product_id, units=units))

        db.session.add(bundle)
        db.session.flush()

        append_ledger_event(
            event_type="bundle.created",
            event_category="catalog",
            entity_type="bundle",
            entity_id=bundle.id,
            payload={"items": [[pid, units] for pid, units in items]},
        )
        finish(commit)
        return bundle

    return run_with_retry(_op, commit=commit)


def bundle_price_for_role(bundle: Bundle, role: str) -> int | None:
    """Per-bundle price paid by a buyer of the given role, None for non-paying roles."""
    if role == ROLE_MASTER_AGENT:
        return bundle.master_agent_price_cents
    if role == ROLE_AGENT:
        return bundle.agent_price_cents
    return None


def tier_unit_price_cents(product_id: int, role: str) -> int | None:
    """
    Per-unit tier price of a single product, taken from the oldest active
    bundle made of that product alone. Half-up rounding when the bundle
    holds more than one unit.
    """
    bundles = (
        db.session.query(Bundle)
        .join(BundleItem, BundleItem.bundle_id == Bundle.id)
        .filter(Bundle.is_active.is_(True), BundleItem.product_id == product_id)
        .order_by(Bundle.id.asc())
        .all()
    )
    for bundle in bundles:
        if len(bundle.items) != 1:
            continue
        price = bundle_price_for_role(bundle, role)
        if price is None:
            return None
        units = bundle.items[0].units
        return int((Decimal(price) / Decimal(units)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return None


def list_products(*, include_inactive: bool = False) -> list[Product]:
    query = db.session.query(Product).order_by(Product.sku.asc())
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    return query.all()
