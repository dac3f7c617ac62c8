# Overview: Pytest coverage for products, bundles, tier prices and document numbers.

import pytest

from tierstock.errors import NotFound
from tierstock.models import LedgerEvent
from tierstock.models.actors import ROLE_AGENT, ROLE_BRANCH, ROLE_MASTER_AGENT
from tierstock.routes.common import error_response
from tierstock.services import catalog_service
from tierstock.services.catalog_service import CatalogError
from tierstock.services.document_service import DocumentSequenceError, next_document_number
from tierstock.services.ledger_service import list_ledger_events


class TestProducts:

    def test_create_product(self, db_session):
        product = catalog_service.create_product(sku=" SKU-C-3 ", name="Product C", base_cost_cents=250)

        assert product.sku == "SKU-C-3"
        assert product.is_active is True
        assert db_session.query(LedgerEvent).filter_by(event_type="product.created").count() == 1

    def test_duplicate_sku(self, db_session, product):
        with pytest.raises(CatalogError):
            catalog_service.create_product(sku=product.sku, name="Copy")

    def test_negative_cost(self, db_session):
        with pytest.raises(CatalogError):
            catalog_service.create_product(sku="SKU-X", name="X", base_cost_cents=-1)

    def test_deactivate(self, db_session, product):
        catalog_service.update_product(product_id=product.id, is_active=False)

        assert catalog_service.list_products() == []
        assert len(catalog_service.list_products(include_inactive=True)) == 1

    def test_update_unknown(self, db_session):
        with pytest.raises(NotFound):
            catalog_service.update_product(product_id=404, base_cost_cents=1)


class TestBundles:

    def test_bundle_prices_per_role(self, db_session, product, other_product):
        bundle = catalog_service.create_bundle(
            name="Starter Kit",
            items=[(product.id, 2), (other_product.id, 1)],
            master_agent_price_cents=3000,
            agent_price_cents=3600,
        )

        assert [item.product_id for item in bundle.items] == [product.id, other_product.id]
        assert catalog_service.bundle_price_for_role(bundle, ROLE_MASTER_AGENT) == 3000
        assert catalog_service.bundle_price_for_role(bundle, ROLE_AGENT) == 3600
        assert catalog_service.bundle_price_for_role(bundle, ROLE_BRANCH) is None

    def test_bundle_needs_items(self, db_session):
        with pytest.raises(CatalogError):
            catalog_service.create_bundle(name="Empty", items=[], master_agent_price_cents=0, agent_price_cents=0)

    def test_bundle_rejects_repeated_product(self, db_session, product):
        with pytest.raises(CatalogError):
            catalog_service.create_bundle(
                name="Twice",
                items=[(product.id, 1), (product.id, 2)],
                master_agent_price_cents=0,
                agent_price_cents=0,
            )

    def test_tier_unit_price_rounds_half_up(self, db_session, other_product):
        catalog_service.create_bundle(
            name="Product B x4",
            items=[(other_product.id, 4)],
            master_agent_price_cents=1002,
            agent_price_cents=1000,
        )

        assert catalog_service.tier_unit_price_cents(other_product.id, ROLE_MASTER_AGENT) == 251
        assert catalog_service.tier_unit_price_cents(other_product.id, ROLE_AGENT) == 250

    def test_multi_product_bundles_do_not_set_unit_price(self, db_session, product, other_product):
        catalog_service.create_bundle(
            name="Mixed",
            items=[(other_product.id, 1), (product.id, 1)],
            master_agent_price_cents=100,
            agent_price_cents=100,
        )

        assert catalog_service.tier_unit_price_cents(other_product.id, ROLE_MASTER_AGENT) is None


class TestDocumentNumbers:

    def test_sequential_numbers(self, db_session):
        first = next_document_number(document_type="ORDER", prefix="ORD-")
        second = next_document_number(document_type="ORDER", prefix="ORD-")
        other = next_document_number(document_type="TRANSFER", prefix="TRF-", pad=4)
        db_session.commit()

        assert (first, second, other) == ("ORD-000001", "ORD-000002", "TRF-0001")

    def test_document_type_required(self, db_session):
        with pytest.raises(DocumentSequenceError):
            next_document_number(document_type="", prefix="X-")

    def test_sequence_errors_map_to_conflict(self, db_session):
        response, status = error_response(DocumentSequenceError("Could not allocate ORDER number"))

        assert status == 409
        assert response.json == {"error": "Could not allocate ORDER number"}


class TestLedgerEvents:

    def test_filter_by_type(self, db_session):
        catalog_service.create_product(sku="SKU-L-1", name="Ledger One")
        catalog_service.create_product(sku="SKU-L-2", name="Ledger Two")

        events = list_ledger_events(event_type="product.created")

        assert len(events) == 2
        assert {e.note for e in events} == {"SKU-L-1", "SKU-L-2"}
