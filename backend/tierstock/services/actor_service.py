# Overview: Tier identities and master agent -> agent assignments.

from __future__ import annotations

from ..extensions import db
from ..errors import LedgerError, NotFound
from ..models import Actor, ActorRelationship
from ..models.actors import VALID_ROLES, ROLE_MASTER_AGENT, ROLE_AGENT
from .concurrency import run_with_retry, finish
from .ledger_service import append_ledger_event


class ActorError(LedgerError):
    """Raised when actor data or assignments are invalid."""
    pass


def create_actor(*, name: str, role: str, staff_code: str | None = None, commit: bool = True) -> Actor:
    def _op():
        if not name or not name.strip():
            raise ActorError("name is required")
        if role not in VALID_ROLES:
            raise ActorError(f"role must be one of {', '.join(VALID_ROLES)}")
        if staff_code and db.session.query(Actor.id).filter_by(staff_code=staff_code).first():
            raise ActorError(f"Staff code {staff_code!r} already exists")

        actor = Actor(name=name.strip(), role=role, staff_code=staff_code or None)
        db.session.add(actor)
        db.session.flush()

        append_ledger_event(
            event_type="actor.created",
            event_category="actors",
            entity_type="actor",
            entity_id=actor.id,
            actor_id=actor.id,
            note=role,
        )
        finish(commit)
        return actor

    return run_with_retry(_op, commit=commit)


def assign_agent(*, master_agent_id: int, agent_id: int, commit: bool = True) -> ActorRelationship:
    """Attach an agent to the master agent it buys from. An agent has one master agent."""
    def _op():
        master = db.session.get(Actor, master_agent_id)
        agent = db.session.get(Actor, agent_id)
        if master is None or master.role != ROLE_MASTER_AGENT:
            raise NotFound(f"Master agent {master_agent_id} not found")
        if agent is None or agent.role != ROLE_AGENT:
            raise NotFound(f"Agent {agent_id} not found")

        existing = db.session.query(ActorRelationship).filter_by(agent_id=agent_id).first()
        if existing is not None:
            if existing.master_agent_id == master_agent_id:
                return existing
            raise ActorError(f"Agent {agent_id} is already assigned to master agent {existing.master_agent_id}")

        rel = ActorRelationship(master_agent_id=master_agent_id, agent_id=agent_id)
        db.session.add(rel)
        db.session.flush()

        append_ledger_event(
            event_type="actor.agent_assigned",
            event_category="actors",
            entity_type="actor_relationship",
            entity_id=rel.id,
            actor_id=master_agent_id,
            payload={"agent_id": agent_id},
        )
        finish(commit)
        return rel

    return run_with_retry(_op, commit=commit)


def list_actors(*, role: str | None = None, include_inactive: bool = False) -> list[Actor]:
    query = db.session.query(Actor).order_by(Actor.role.asc(), Actor.name.asc(), Actor.id.asc())
    if role:
        query = query.filter(Actor.role == role)
    if not include_inactive:
        query = query.filter(Actor.is_active.is_(True))
    return query.all()
