from __future__ import annotations

from ..extensions import db
from tierstock.time_utils import to_utc_z


ROLE_HQ = "hq"
ROLE_MASTER_AGENT = "master_agent"
ROLE_AGENT = "agent"
ROLE_BRANCH = "branch"
ROLE_MARKETER = "marketer"

VALID_ROLES = (ROLE_HQ, ROLE_MASTER_AGENT, ROLE_AGENT, ROLE_BRANCH, ROLE_MARKETER)

# Roles that pay for stock they receive from the tier above.
PAYING_ROLES = (ROLE_MASTER_AGENT, ROLE_AGENT)


class Actor(db.Model):
    """
    Any tier identity that holds inventory or places/receives orders.

    Authentication lives elsewhere; this row only carries the tier
    (role) used for seller resolution and tier pricing.
    """
    __tablename__ = "actors"
    __table_args__ = (
        db.Index("ix_actors_role_active", "role", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(160), nullable=False)
    role = db.Column(db.String(32), nullable=False, index=True)
    staff_code = db.Column(db.String(64), nullable=True, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Actor id={self.id} role={self.role!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "staff_code": self.staff_code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class ActorRelationship(db.Model):
    """Master agent -> agent assignment. An agent buys from its master agent."""
    __tablename__ = "actor_relationships"
    __table_args__ = (
        db.UniqueConstraint("master_agent_id", "agent_id", name="uq_actor_rel_pair"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    master_agent_id = db.Column(db.Integer, db.ForeignKey("actors.id"), nullable=False, index=True)
    agent_id = db.Column(db.Integer, db.ForeignKey("actors.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "master_agent_id": self.master_agent_id,
            "agent_id": self.agent_id,
            "created_at": to_utc_z(self.created_at),
        }
