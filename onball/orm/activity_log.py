"""
onball/orm/activity_log.py
League activity log - the reversible action ledger.

Rows are written once and never edited. A successful reversal deletes
the row and appends a `log_deleted` row in its place.
"""
import uuid

from sqlalchemy import Column, String, DateTime, Boolean, JSON, Index

from onball.orm.base import Base, utcnow


def _new_entry_id() -> str:
    return uuid.uuid4().hex


class LeagueActivityLog(Base):
    """
    One mutating action performed against a league.

    `action` holds an ActionKind value; `payload` carries whatever the
    compensating action needs (rosters, score, reviewer, player name).
    """
    __tablename__ = "league_activity_logs"

    id = Column(String(32), primary_key=True, default=_new_entry_id)

    league_id = Column(String(64), nullable=False, index=True)

    # Actor information (who performed the action)
    actor_id = Column(String(128), nullable=False, default="unknown")
    actor_name = Column(String(255), nullable=False, default="Anonymous")

    action = Column(String(50), nullable=False, index=True)

    payload = Column(JSON, nullable=False, default=dict)

    undoable = Column(Boolean, nullable=False, default=False)

    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("ix_league_activity_logs_league_ts", "league_id", "timestamp"),
    )

    def __repr__(self):
        return f"<LeagueActivityLog({self.action}, league={self.league_id}, actor={self.actor_id})>"
