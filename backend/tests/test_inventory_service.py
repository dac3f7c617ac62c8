# Overview: Pytest coverage for per-tier stock balances and movements.

"""
Inventory Ledger Tests

Covers:
- Receive/issue keep balance == sum(in) - sum(out)
- Issues never drive a balance negative
- Transfers conserve total stock and are atomic
- Reversal and amendment of movements
"""

import pytest
from sqlalchemy.exc import OperationalError

from tierstock.errors import (
    InsufficientInventory,
    InvalidQuantity,
    InvalidTransfer,
    InventoryCorruption,
    MovementLocked,
    NotFound,
)
from tierstock.models import LedgerEvent, PendingOrder, StockMovement, Transaction
from tierstock.models.inventory import DIRECTION_IN, DIRECTION_OUT
from tierstock.models.orders import ORDER_STATUS_COMPLETED
from tierstock.services import inventory_service
from tierstock.services.inventory_service import get_balance


def _movement_count(db_session, **filters):
    return db_session.query(StockMovement).filter_by(**filters).count()


class TestReceiveAndIssue:

    def test_receive_creates_balance(self, db_session, hq, product):
        movement = inventory_service.receive_stock(actor_id=hq.id, product_id=product.id, quantity=100)

        assert movement.direction == DIRECTION_IN
        assert movement.quantity == 100
        assert get_balance(hq.id, product.id) == 100

    def test_receive_accumulates(self, db_session, hq, product):
        inventory_service.receive_stock(actor_id=hq.id, product_id=product.id, quantity=10)
        inventory_service.receive_stock(actor_id=hq.id, product_id=product.id, quantity=15)

        assert get_balance(hq.id, product.id) == 25
        assert _movement_count(db_session, actor_id=hq.id, direction=DIRECTION_IN) == 2

    def test_balance_matches_movements(self, db_session, branch, product):
        inventory_service.receive_stock(actor_id=branch.id, product_id=product.id, quantity=40)
        inventory_service.issue_stock(actor_id=branch.id, product_id=product.id, quantity=12)
        inventory_service.receive_stock(actor_id=branch.id, product_id=product.id, quantity=5)
        inventory_service.issue_stock(actor_id=branch.id, product_id=product.id, quantity=3)

        movements = db_session.query(StockMovement).filter_by(actor_id=branch.id).all()
        stock_in = sum(m.quantity for m in movements if m.direction == DIRECTION_IN)
        stock_out = sum(m.quantity for m in movements if m.direction == DIRECTION_OUT)
        assert get_balance(branch.id, product.id) == stock_in - stock_out == 30

    def test_missing_balance_is_zero(self, db_session, agent, product):
        assert get_balance(agent.id, product.id) == 0

    def test_issue_more_than_balance_fails(self, db_session, branch, product):
        """balance=5, issue(7) fails and the balance stays 5."""
        inventory_service.receive_stock(actor_id=branch.id, product_id=product.id, quantity=5)

        with pytest.raises(InsufficientInventory) as exc_info:
            inventory_service.issue_stock(actor_id=branch.id, product_id=product.id, quantity=7)

        assert exc_info.value.available == 5
        assert exc_info.value.requested == 7
        assert get_balance(branch.id, product.id) == 5
        assert _movement_count(db_session, actor_id=branch.id, direction=DIRECTION_OUT) == 0

    def test_issue_without_any_balance_fails(self, db_session, branch, product):
        with pytest.raises(InsufficientInventory) as exc_info:
            inventory_service.issue_stock(actor_id=branch.id, product_id=product.id, quantity=1)

        assert exc_info.value.available == 0

    def test_issue_exact_balance_reaches_zero(self, db_session, branch, product):
        inventory_service.receive_stock(actor_id=branch.id, product_id=product.id, quantity=8)
        inventory_service.issue_stock(actor_id=branch.id, product_id=product.id, quantity=8)

        assert get_balance(branch.id, product.id) == 0

    @pytest.mark.parametrize("quantity", [0, -3, 2.5, "4", True])
    def test_invalid_quantity_rejected(self, db_session, hq, product, quantity):
        with pytest.raises(InvalidQuantity):
            inventory_service.receive_stock(actor_id=hq.id, product_id=product.id, quantity=quantity)

        assert get_balance(hq.id, product.id) == 0

    def test_unknown_product(self, db_session, hq):
        with pytest.raises(NotFound):
            inventory_service.receive_stock(actor_id=hq.id, product_id=9999, quantity=1)

    def test_issue_writes_ledger_event(self, db_session, branch, product):
        inventory_service.receive_stock(actor_id=branch.id, product_id=product.id, quantity=3)
        movement = inventory_service.issue_stock(
            actor_id=branch.id,
            product_id=product.id,
            quantity=2,
            description="Walk-in sale",
        )

        event = db_session.query(LedgerEvent).filter_by(
            event_type="inventory.issued", entity_id=movement.id
        ).one()
        assert event.actor_id == branch.id
        assert event.note == "Walk-in sale"


class TestTransfers:

    def test_transfer_conserves_stock(self, db_session, hq, branch, product):
        inventory_service.receive_stock(actor_id=hq.id, product_id=product.id, quantity=100)
        total_before = inventory_service.total_units(product.id)

        for qty in (10, 25, 5):
            inventory_service.transfer_stock(
                source_id=hq.id,
                destination_id=branch.id,
                product_id=product.id,
                quantity=qty,
            )

        assert get_balance(hq.id, product.id) == 60
        assert get_balance(branch.id, product.id) == 40
        assert inventory_service.total_units(product.id) == total_before == 100

    def test_transfer_legs_share_reference(self, db_session, hq, branch, product):
        inventory_service.receive_stock(actor_id=hq.id, product_id=product.id, quantity=10)
        result = inventory_service.transfer_stock(
            source_id=hq.id,
            destination_id=branch.id,
            product_id=product.id,
            quantity=4,
        )

        assert result.transfer_ref.startswith("TRF-")
        assert result.out_movement.transfer_ref == result.transfer_ref
        assert result.in_movement.transfer_ref == result.transfer_ref
        assert result.out_movement.counterparty_id == branch.id
        assert result.in_movement.counterparty_id == hq.id
        assert result.order is None

    def test_transfer_short_source_changes_nothing(self, db_session, hq, branch, product):
        inventory_service.receive_stock(actor_id=hq.id, product_id=product.id, quantity=3)

        with pytest.raises(InsufficientInventory):
            inventory_service.transfer_stock(
                source_id=hq.id,
                destination_id=branch.id,
                product_id=product.id,
                quantity=4,
            )

        assert get_balance(hq.id, product.id) == 3
        assert get_balance(branch.id, product.id) == 0
        assert _movement_count(db_session, product_id=product.id) == 1

    def test_failed_receive_leg_restores_source(self, db_session, hq, branch, product, monkeypatch):
        inventory_service.receive_stock(actor_id=hq.id, product_id=product.id, quantity=20)

        def failing_receive(**kwargs):
            raise InvalidTransfer("destination rejected the stock")

        monkeypatch.setattr(inventory_service, "_receive_inner", failing_receive)

        with pytest.raises(InvalidTransfer):
            inventory_service.transfer_stock(
                source_id=hq.id,
                destination_id=branch.id,
                product_id=product.id,
                quantity=5,
            )

        assert get_balance(hq.id, product.id) == 20
        assert get_balance(branch.id, product.id) == 0
        assert _movement_count(db_session, direction=DIRECTION_OUT) == 0

    def test_inactive_destination_rejected(self, db_session, hq, branch, product):
        inventory_service.receive_stock(actor_id=hq.id, product_id=product.id, quantity=20)
        branch.is_active = False
        db_session.commit()

        with pytest.raises(InvalidTransfer):
            inventory_service.transfer_stock(
                source_id=hq.id,
                destination_id=branch.id,
                product_id=product.id,
                quantity=5,
            )

        assert get_balance(hq.id, product.id) == 20

    def test_transfer_to_self_rejected(self, db_session, hq, product):
        inventory_service.receive_stock(actor_id=hq.id, product_id=product.id, quantity=20)

        with pytest.raises(InvalidTransfer):
            inventory_service.transfer_stock(
                source_id=hq.id,
                destination_id=hq.id,
                product_id=product.id,
                quantity=5,
            )

    def test_hq_to_master_agent_records_sale_at_tier_price(self, db_session, hq, master_agent, product):
        inventory_service.receive_stock(actor_id=hq.id, product_id=product.id, quantity=50)

        result = inventory_service.transfer_stock(
            source_id=hq.id,
            destination_id=master_agent.id,
            product_id=product.id,
            quantity=6,
        )

        assert result.order is not None
        assert result.order.status == ORDER_STATUS_COMPLETED
        assert result.order.transfer_ref == result.transfer_ref
        assert result.transaction.unit_price_cents == 1000
        assert result.transaction.total_price_cents == 6000
        assert result.transaction.seller_id == hq.id
        assert result.transaction.buyer_id == master_agent.id
        assert get_balance(master_agent.id, product.id) == 6

    def test_explicit_unit_price_records_sale(self, db_session, master_agent, agent, product):
        inventory_service.receive_stock(actor_id=master_agent.id, product_id=product.id, quantity=10)

        result = inventory_service.transfer_stock(
            source_id=master_agent.id,
            destination_id=agent.id,
            product_id=product.id,
            quantity=2,
            unit_price_cents=1450,
        )

        assert result.transaction.total_price_cents == 2900
        assert db_session.query(Transaction).count() == 1


class TestReversal:

    def test_reverse_stock_in(self, db_session, branch, product):
        movement = inventory_service.receive_stock(actor_id=branch.id, product_id=product.id, quantity=9)
        movement_id = movement.id

        legs = inventory_service.reverse_movement(movement_id=movement_id)

        assert [leg.id for leg in legs] == [movement_id]
        assert get_balance(branch.id, product.id) == 0
        assert db_session.get(StockMovement, movement_id) is None

    def test_reverse_stock_out_restores_balance(self, db_session, branch, product):
        inventory_service.receive_stock(actor_id=branch.id, product_id=product.id, quantity=9)
        movement = inventory_service.issue_stock(actor_id=branch.id, product_id=product.id, quantity=4)

        inventory_service.reverse_movement(movement_id=movement.id)

        assert get_balance(branch.id, product.id) == 9

    def test_reverse_stock_in_already_issued_is_corruption(self, db_session, branch, product):
        received = inventory_service.receive_stock(actor_id=branch.id, product_id=product.id, quantity=5)
        received_id = received.id
        inventory_service.issue_stock(actor_id=branch.id, product_id=product.id, quantity=4)

        with pytest.raises(InventoryCorruption):
            inventory_service.reverse_movement(movement_id=received_id)

        assert get_balance(branch.id, product.id) == 1
        assert db_session.get(StockMovement, received_id) is not None

    def test_reverse_transfer_leg_reverses_both(self, db_session, hq, branch, product):
        inventory_service.receive_stock(actor_id=hq.id, product_id=product.id, quantity=10)
        result = inventory_service.transfer_stock(
            source_id=hq.id,
            destination_id=branch.id,
            product_id=product.id,
            quantity=7,
        )
        out_id, in_id = result.out_movement.id, result.in_movement.id

        legs = inventory_service.reverse_movement(movement_id=out_id)

        assert sorted(leg.id for leg in legs) == sorted([out_id, in_id])
        assert get_balance(hq.id, product.id) == 10
        assert get_balance(branch.id, product.id) == 0
        assert _movement_count(db_session, transfer_ref=result.transfer_ref) == 0

    def test_settled_order_movement_is_locked(self, db_session, hq, master_agent, product):
        inventory_service.receive_stock(actor_id=hq.id, product_id=product.id, quantity=10)
        result = inventory_service.transfer_stock(
            source_id=hq.id,
            destination_id=master_agent.id,
            product_id=product.id,
            quantity=3,
        )

        with pytest.raises(MovementLocked):
            inventory_service.reverse_movement(movement_id=result.in_movement.id)

        assert get_balance(master_agent.id, product.id) == 3
        assert db_session.query(PendingOrder).count() == 1

    def test_reverse_unknown_movement(self, db_session):
        with pytest.raises(NotFound):
            inventory_service.reverse_movement(movement_id=424242)


class TestAmend:

    def test_amend_stock_in_quantity(self, db_session, branch, product):
        movement = inventory_service.receive_stock(
            actor_id=branch.id,
            product_id=product.id,
            quantity=10,
            description="Delivery",
        )
        old_id = movement.id

        replacement = inventory_service.amend_movement(movement_id=old_id, quantity=12)

        assert replacement.id != old_id
        assert replacement.quantity == 12
        assert replacement.description == "Delivery"
        assert get_balance(branch.id, product.id) == 12
        assert db_session.get(StockMovement, old_id) is None

    def test_amend_stock_out_respects_balance(self, db_session, branch, product):
        inventory_service.receive_stock(actor_id=branch.id, product_id=product.id, quantity=10)
        movement = inventory_service.issue_stock(actor_id=branch.id, product_id=product.id, quantity=4)
        movement_id = movement.id

        with pytest.raises(InsufficientInventory):
            inventory_service.amend_movement(movement_id=movement_id, quantity=11)

        assert get_balance(branch.id, product.id) == 6
        assert db_session.get(StockMovement, movement_id) is not None

    def test_amend_transfer_leg_rejected(self, db_session, hq, branch, product):
        inventory_service.receive_stock(actor_id=hq.id, product_id=product.id, quantity=10)
        result = inventory_service.transfer_stock(
            source_id=hq.id,
            destination_id=branch.id,
            product_id=product.id,
            quantity=2,
        )

        with pytest.raises(MovementLocked):
            inventory_service.amend_movement(movement_id=result.in_movement.id, quantity=3)


class TestQueries:

    def test_list_balances_hides_empty(self, db_session, branch, product, other_product):
        inventory_service.receive_stock(actor_id=branch.id, product_id=product.id, quantity=2)
        inventory_service.receive_stock(actor_id=branch.id, product_id=other_product.id, quantity=1)
        inventory_service.issue_stock(actor_id=branch.id, product_id=other_product.id, quantity=1)

        visible = inventory_service.list_balances(actor_id=branch.id)
        everything = inventory_service.list_balances(actor_id=branch.id, include_empty=True)

        assert [b.product_id for b in visible] == [product.id]
        assert len(everything) == 2

    def test_list_movements_filters_direction(self, db_session, branch, product):
        inventory_service.receive_stock(actor_id=branch.id, product_id=product.id, quantity=5)
        inventory_service.issue_stock(actor_id=branch.id, product_id=product.id, quantity=1)

        outs = inventory_service.list_movements(actor_id=branch.id, direction=DIRECTION_OUT)

        assert len(outs) == 1
        assert outs[0].quantity == 1

    def test_list_movements_bad_direction(self, db_session, branch):
        with pytest.raises(ValueError):
            inventory_service.list_movements(actor_id=branch.id, direction="sideways")


class TestCallerOwnedTransaction:
    """commit=False: the caller commits; a failing call only undoes its own writes."""

    def test_lock_error_keeps_earlier_work_and_is_not_retried(self, db_session, hq, branch, product, monkeypatch):
        inventory_service.receive_stock(actor_id=branch.id, product_id=product.id, quantity=5, commit=False)
        calls = []

        def locked_receive(**kwargs):
            calls.append(kwargs["actor_id"])
            raise OperationalError("UPDATE inventory_balances", {}, Exception("database is locked"))

        monkeypatch.setattr(inventory_service, "_receive_inner", locked_receive)

        with pytest.raises(OperationalError):
            inventory_service.receive_stock(actor_id=hq.id, product_id=product.id, quantity=7, commit=False)
        db_session.commit()

        assert calls == [hq.id]
        assert get_balance(branch.id, product.id) == 5
        assert get_balance(hq.id, product.id) == 0

    def test_failed_transfer_undoes_only_its_own_legs(self, db_session, hq, branch, product, monkeypatch):
        inventory_service.receive_stock(actor_id=hq.id, product_id=product.id, quantity=20)
        inventory_service.receive_stock(actor_id=branch.id, product_id=product.id, quantity=3, commit=False)

        def failing_receive(**kwargs):
            raise InvalidTransfer("destination rejected the stock")

        monkeypatch.setattr(inventory_service, "_receive_inner", failing_receive)

        with pytest.raises(InvalidTransfer):
            inventory_service.transfer_stock(
                source_id=hq.id,
                destination_id=branch.id,
                product_id=product.id,
                quantity=5,
                commit=False,
            )
        db_session.commit()

        assert get_balance(hq.id, product.id) == 20
        assert get_balance(branch.id, product.id) == 3
        assert _movement_count(db_session, direction=DIRECTION_OUT) == 0

    def test_nothing_persists_until_caller_commits(self, db_session, branch, product):
        inventory_service.receive_stock(actor_id=branch.id, product_id=product.id, quantity=4, commit=False)
        inventory_service.issue_stock(actor_id=branch.id, product_id=product.id, quantity=1, commit=False)

        db_session.rollback()

        assert get_balance(branch.id, product.id) == 0
        assert _movement_count(db_session, product_id=product.id) == 0
