# Overview: Pytest coverage for the pending order lifecycle and payment rechecks.

import pytest

from tierstock.errors import (
    ConfigurationMissing,
    ExternalGatewayError,
    InsufficientInventory,
    InvalidQuantity,
    NotFound,
    OrderNotPending,
)
from tierstock.models import Actor, Bundle, BundleItem, LedgerEvent, PendingOrder, StockMovement, Transaction
from tierstock.models.actors import ROLE_HQ, ROLE_AGENT
from tierstock.models.orders import ORDER_STATUS_COMPLETED, ORDER_STATUS_FAILED, ORDER_STATUS_PENDING
from tierstock.services import inventory_service, settlement_service
from tierstock.services.inventory_service import get_balance
from tierstock.services.payment_gateway import GATEWAY_COMPLETED, GATEWAY_FAILED, GATEWAY_PENDING
from tierstock.services.settlement_service import OrderError


@pytest.fixture
def stocked_hq(db_session, hq, product):
    inventory_service.receive_stock(actor_id=hq.id, product_id=product.id, quantity=100)
    return hq


class TestCreateOrder:

    def test_master_agent_order_uses_tier_price(self, db_session, master_agent, product):
        order = settlement_service.create_order(buyer_id=master_agent.id, product_id=product.id, quantity=5)

        assert order.status == ORDER_STATUS_PENDING
        assert order.order_number.startswith("ORD-")
        assert order.unit_price_cents == 1000
        assert order.total_price_cents == 5000
        assert order.seller_id is None

    def test_agent_order_uses_agent_price(self, db_session, agent, product):
        order = settlement_service.create_order(buyer_id=agent.id, product_id=product.id, quantity=2)

        assert order.unit_price_cents == 1500
        assert order.total_price_cents == 3000

    def test_explicit_price_wins(self, db_session, agent, product):
        order = settlement_service.create_order(
            buyer_id=agent.id,
            product_id=product.id,
            quantity=3,
            unit_price_cents=1200,
        )

        assert order.total_price_cents == 3600

    def test_bundle_order(self, db_session, master_agent, product):
        bundle = Bundle(name="Product A x6", master_agent_price_cents=5400, agent_price_cents=7200)
        bundle.items.append(BundleItem(product_id=product.id, units=6))
        db_session.add(bundle)
        db_session.commit()

        order = settlement_service.create_order(buyer_id=master_agent.id, bundle_id=bundle.id, quantity=2)

        assert order.product_id == product.id
        assert order.quantity == 12
        assert order.bundle_quantity == 2
        assert order.unit_price_cents == 5400
        assert order.total_price_cents == 10800

    def test_requires_exactly_one_of_product_or_bundle(self, db_session, master_agent, product):
        with pytest.raises(OrderError):
            settlement_service.create_order(buyer_id=master_agent.id, quantity=1)

    def test_non_paying_role_rejected(self, db_session, branch, product):
        with pytest.raises(OrderError):
            settlement_service.create_order(buyer_id=branch.id, product_id=product.id, quantity=1)

    def test_no_price_configured(self, db_session, master_agent, other_product):
        with pytest.raises(OrderError):
            settlement_service.create_order(buyer_id=master_agent.id, product_id=other_product.id, quantity=1)

    def test_invalid_quantity(self, db_session, master_agent, product):
        with pytest.raises(InvalidQuantity):
            settlement_service.create_order(buyer_id=master_agent.id, product_id=product.id, quantity=0)

        assert db_session.query(PendingOrder).count() == 0


class TestApprove:

    def test_approve_moves_stock_and_records_transaction(self, db_session, stocked_hq, master_agent, product):
        order = settlement_service.create_order(buyer_id=master_agent.id, product_id=product.id, quantity=10)

        settled = settlement_service.approve_order(order_id=order.id)

        assert settled.status == ORDER_STATUS_COMPLETED
        assert settled.seller_id == stocked_hq.id
        assert settled.settled_at is not None
        assert get_balance(stocked_hq.id, product.id) == 90
        assert get_balance(master_agent.id, product.id) == 10

        txn = db_session.query(Transaction).filter_by(order_id=order.id).one()
        assert txn.quantity == 10
        assert txn.total_price_cents == 10000
        assert _legs(db_session, settled.transfer_ref) == 2

    def test_agent_buys_from_master_agent(self, db_session, master_agent, agent, product):
        inventory_service.receive_stock(actor_id=master_agent.id, product_id=product.id, quantity=8)
        order = settlement_service.create_order(buyer_id=agent.id, product_id=product.id, quantity=3)

        settlement_service.approve_order(order_id=order.id)

        assert get_balance(master_agent.id, product.id) == 5
        assert get_balance(agent.id, product.id) == 3

    def test_hq_identity_can_be_injected(self, db_session, app, master_agent, product, monkeypatch):
        supplier = Actor(name="Regional HQ", role=ROLE_HQ)
        db_session.add(supplier)
        db_session.commit()
        inventory_service.receive_stock(actor_id=supplier.id, product_id=product.id, quantity=4)
        monkeypatch.setitem(app.config, "HQ_ACTOR_ID", None)

        order = settlement_service.create_order(buyer_id=master_agent.id, product_id=product.id, quantity=4)
        settled = settlement_service.approve_order(order_id=order.id, hq_actor_id=supplier.id)

        assert settled.seller_id == supplier.id

    def test_missing_hq_configuration(self, db_session, app, master_agent, product, monkeypatch):
        monkeypatch.setitem(app.config, "HQ_ACTOR_ID", None)
        order = settlement_service.create_order(buyer_id=master_agent.id, product_id=product.id, quantity=1)

        with pytest.raises(ConfigurationMissing):
            settlement_service.approve_order(order_id=order.id)

        assert _status(db_session, order.id) == ORDER_STATUS_PENDING

    def test_unassigned_agent(self, db_session, product):
        loner = Actor(name="Loose Agent", role=ROLE_AGENT)
        db_session.add(loner)
        db_session.commit()
        order = settlement_service.create_order(buyer_id=loner.id, product_id=product.id, quantity=1)

        with pytest.raises(ConfigurationMissing):
            settlement_service.approve_order(order_id=order.id)

    def test_second_approve_fails_and_settles_once(self, db_session, stocked_hq, master_agent, product):
        order = settlement_service.create_order(buyer_id=master_agent.id, product_id=product.id, quantity=10)
        settlement_service.approve_order(order_id=order.id)

        with pytest.raises(OrderNotPending) as exc_info:
            settlement_service.approve_order(order_id=order.id)

        assert exc_info.value.status == ORDER_STATUS_COMPLETED
        assert settlement_service.transaction_count(order.id) == 1
        assert get_balance(stocked_hq.id, product.id) == 90
        assert get_balance(master_agent.id, product.id) == 10
        assert db_session.query(StockMovement).filter_by(actor_id=master_agent.id).count() == 1

    def test_insufficient_seller_stock_leaves_order_pending(self, db_session, hq, master_agent, product):
        inventory_service.receive_stock(actor_id=hq.id, product_id=product.id, quantity=3)
        order = settlement_service.create_order(buyer_id=master_agent.id, product_id=product.id, quantity=5)

        with pytest.raises(InsufficientInventory):
            settlement_service.approve_order(order_id=order.id)

        assert _status(db_session, order.id) == ORDER_STATUS_PENDING
        assert settlement_service.transaction_count(order.id) == 0
        assert get_balance(hq.id, product.id) == 3
        assert get_balance(master_agent.id, product.id) == 0

    def test_unknown_order(self, db_session):
        with pytest.raises(NotFound):
            settlement_service.approve_order(order_id=31337)


class TestReject:

    def test_reject_pending_order(self, db_session, hq, master_agent, product):
        order = settlement_service.create_order(buyer_id=master_agent.id, product_id=product.id, quantity=2)

        rejected = settlement_service.reject_order(order_id=order.id, reason="Payment slip unreadable")

        assert rejected.status == ORDER_STATUS_FAILED
        assert rejected.remarks == "Payment slip unreadable"
        assert settlement_service.transaction_count(order.id) == 0
        assert db_session.query(LedgerEvent).filter_by(event_type="order.rejected", order_id=order.id).count() == 1

    def test_cannot_approve_rejected_order(self, db_session, stocked_hq, master_agent, product):
        order = settlement_service.create_order(buyer_id=master_agent.id, product_id=product.id, quantity=2)
        settlement_service.reject_order(order_id=order.id)

        with pytest.raises(OrderNotPending):
            settlement_service.approve_order(order_id=order.id)

        assert get_balance(stocked_hq.id, product.id) == 100

    def test_cannot_reject_completed_order(self, db_session, stocked_hq, master_agent, product):
        order = settlement_service.create_order(buyer_id=master_agent.id, product_id=product.id, quantity=2)
        settlement_service.approve_order(order_id=order.id)

        with pytest.raises(OrderNotPending):
            settlement_service.reject_order(order_id=order.id)


class TestPaymentRecheck:

    def _order(self, buyer, product, reference="PAY-001"):
        return settlement_service.create_order(
            buyer_id=buyer.id,
            product_id=product.id,
            quantity=4,
            payment_reference=reference,
        )

    def test_completed_payment_settles(self, db_session, stocked_hq, master_agent, product, gateway):
        order = self._order(master_agent, product)
        gateway.statuses["PAY-001"] = GATEWAY_COMPLETED

        result = settlement_service.recheck_external_payment(order_id=order.id)

        assert result.settled is True
        assert result.gateway_status == GATEWAY_COMPLETED
        assert result.order.status == ORDER_STATUS_COMPLETED
        assert get_balance(master_agent.id, product.id) == 4

    def test_failed_payment_marks_failed(self, db_session, stocked_hq, master_agent, product, gateway):
        order = self._order(master_agent, product)
        gateway.statuses["PAY-001"] = GATEWAY_FAILED

        result = settlement_service.recheck_external_payment(order_id=order.id)

        assert result.settled is False
        assert result.order.status == ORDER_STATUS_FAILED
        assert get_balance(master_agent.id, product.id) == 0

    def test_pending_payment_changes_nothing(self, db_session, stocked_hq, master_agent, product, gateway):
        order = self._order(master_agent, product)
        gateway.statuses["PAY-001"] = GATEWAY_PENDING

        result = settlement_service.recheck_external_payment(order_id=order.id)

        assert result.order.status == ORDER_STATUS_PENDING
        assert settlement_service.transaction_count(order.id) == 0

    def test_failed_order_reopened_by_successful_payment(
        self, db_session, stocked_hq, master_agent, product, gateway
    ):
        order = self._order(master_agent, product)
        settlement_service.reject_order(order_id=order.id)
        gateway.statuses["PAY-001"] = GATEWAY_COMPLETED

        result = settlement_service.recheck_external_payment(order_id=order.id)

        assert result.settled is True
        assert result.order.status == ORDER_STATUS_COMPLETED
        assert settlement_service.transaction_count(order.id) == 1

    def test_completed_order_reports_status_without_settling_again(
        self, db_session, stocked_hq, master_agent, product, gateway
    ):
        order = self._order(master_agent, product)
        settlement_service.approve_order(order_id=order.id)
        gateway.statuses["PAY-001"] = GATEWAY_COMPLETED

        result = settlement_service.recheck_external_payment(order_id=order.id)

        assert result.settled is False
        assert result.gateway_status == GATEWAY_COMPLETED
        assert result.order.status == ORDER_STATUS_COMPLETED
        assert gateway.calls == ["PAY-001"]
        assert settlement_service.transaction_count(order.id) == 1
        assert get_balance(master_agent.id, product.id) == 4

    def test_completed_order_without_reference(self, db_session, stocked_hq, master_agent, product, gateway):
        order = settlement_service.create_order(buyer_id=master_agent.id, product_id=product.id, quantity=1)
        settlement_service.approve_order(order_id=order.id)

        result = settlement_service.recheck_external_payment(order_id=order.id)

        assert result.gateway_status is None
        assert gateway.calls == []

    def test_gateway_error_leaves_order_untouched(
        self, db_session, stocked_hq, master_agent, product, gateway, gateway_down
    ):
        order = self._order(master_agent, product)
        gateway.statuses["PAY-001"] = gateway_down

        with pytest.raises(ExternalGatewayError):
            settlement_service.recheck_external_payment(order_id=order.id)

        assert _status(db_session, order.id) == ORDER_STATUS_PENDING
        assert get_balance(stocked_hq.id, product.id) == 100

    def test_order_without_reference(self, db_session, master_agent, product, gateway):
        order = settlement_service.create_order(buyer_id=master_agent.id, product_id=product.id, quantity=1)

        with pytest.raises(ExternalGatewayError):
            settlement_service.recheck_external_payment(order_id=order.id)

        assert gateway.calls == []

    def test_batch_recheck_reports_each_order(
        self, db_session, stocked_hq, master_agent, product, gateway, gateway_down
    ):
        paid = self._order(master_agent, product, "PAY-OK")
        broken = self._order(master_agent, product, "PAY-DOWN")
        waiting = self._order(master_agent, product, "PAY-WAIT")
        settlement_service.create_order(buyer_id=master_agent.id, product_id=product.id, quantity=1)
        gateway.statuses.update({"PAY-OK": GATEWAY_COMPLETED, "PAY-DOWN": gateway_down})

        rows = {row["order_id"]: row for row in settlement_service.recheck_pending_orders()}

        assert set(rows) == {paid.id, broken.id, waiting.id}
        assert rows[paid.id]["settled"] is True
        assert rows[broken.id]["error"]
        assert rows[waiting.id]["status"] == ORDER_STATUS_PENDING
        assert get_balance(master_agent.id, product.id) == 4


class TestQueries:

    def test_list_orders_and_summary(self, db_session, stocked_hq, master_agent, product):
        first = settlement_service.create_order(buyer_id=master_agent.id, product_id=product.id, quantity=2)
        second = settlement_service.create_order(buyer_id=master_agent.id, product_id=product.id, quantity=3)
        settlement_service.approve_order(order_id=first.id)
        settlement_service.reject_order(order_id=second.id)
        settlement_service.create_order(buyer_id=master_agent.id, product_id=product.id, quantity=1)

        orders = settlement_service.list_orders(buyer_id=master_agent.id)
        summary = settlement_service.order_summary(orders)

        assert summary["total"] == 3
        assert summary[ORDER_STATUS_COMPLETED] == 1
        assert summary[ORDER_STATUS_FAILED] == 1
        assert summary[ORDER_STATUS_PENDING] == 1
        assert summary["completed_sales_cents"] == 2000
        assert summary["completed_units"] == 2

    def test_list_orders_bad_status(self, db_session):
        with pytest.raises(ValueError):
            settlement_service.list_orders(status="shipped")

    def test_save_remark(self, db_session, master_agent, product):
        order = settlement_service.create_order(buyer_id=master_agent.id, product_id=product.id, quantity=1)

        updated = settlement_service.save_remark(order_id=order.id, remark="  call buyer first  ")

        assert updated.remarks == "call buyer first"


def _status(db_session, order_id):
    return db_session.query(PendingOrder.status).filter_by(id=order_id).scalar()


def _legs(db_session, transfer_ref):
    return db_session.query(StockMovement).filter_by(transfer_ref=transfer_ref).count()
