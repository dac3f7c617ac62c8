from __future__ import annotations

from ..extensions import db
from tierstock.time_utils import to_utc_z


class LedgerEvent(db.Model):
    """
    Append-only audit trail for inventory and settlement mutations.

    Written in the same DB transaction as the change it records, so a
    rolled-back operation leaves no event behind.
    """
    __tablename__ = "ledger_events"
    __table_args__ = (
        db.Index("ix_ledger_events_actor_occurred", "actor_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # What happened
    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g. inventory.issued, order.settled
    event_category = db.Column(db.String(32), nullable=False, index=True)  # inventory, orders

    # What it refers to (generic pointer)
    entity_type = db.Column(db.String(64), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    actor_id = db.Column(db.Integer, db.ForeignKey("actors.id"), nullable=True, index=True)
    order_id = db.Column(db.Integer, nullable=True, index=True)
    transfer_ref = db.Column(db.String(64), nullable=True, index=True)

    # Business vs system time
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "event_category": self.event_category,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "order_id": self.order_id,
            "transfer_ref": self.transfer_ref,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "note": self.note,
            "payload": self.payload,
        }
