# Overview: Append-only audit events written alongside inventory and order mutations.

from __future__ import annotations

import json
from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import LedgerEvent
"""
Ledger event invariants

- Append-only audit log for cross-cutting domain events.
- No domain/business logic in the ledger itself.
- Events are written inside the same DB transaction as the domain event they record.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_ledger_event(
    *,
    event_type: str,
    event_category: str,
    entity_type: str,
    entity_id: int,
    actor_id: int | None = None,
    order_id: int | None = None,
    transfer_ref: str | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> LedgerEvent:
    ev = LedgerEvent(
        event_type=event_type,
        event_category=event_category,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        order_id=order_id,
        transfer_ref=transfer_ref,
        occurred_at=occurred_at,  # if None, db default applies
        note=note,
        payload=json.dumps(payload, sort_keys=True) if payload else None,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_ledger_events(
    *,
    actor_id: int | None = None,
    event_type: str | None = None,
    entity_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 200,
) -> list[LedgerEvent]:
    query = db.session.query(LedgerEvent).order_by(LedgerEvent.occurred_at.desc(), LedgerEvent.id.desc())
    if actor_id is not None:
        query = query.filter(LedgerEvent.actor_id == actor_id)
    if event_type:
        query = query.filter(LedgerEvent.event_type == event_type)
    if entity_type:
        query = query.filter(LedgerEvent.entity_type == entity_type)
    if start:
        query = query.filter(LedgerEvent.occurred_at >= start)
    if end:
        query = query.filter(LedgerEvent.occurred_at <= end)
    return query.limit(limit).all()
