"""
onball/orm/document.py
Path-addressed JSON documents (league, set and user documents).

Paths:
- league/{league_id}
- league/{league_id}/set/{set_id}
- user/{uid}

Each write replaces the whole document. There is no version column:
two overlapping read-modify-write sequences resolve as last-write-wins.
"""
from sqlalchemy import Column, String, DateTime, JSON

from onball.orm.base import Base, utcnow


class LeagueDocument(Base):
    """A single JSON document addressed by its slash-separated path."""
    __tablename__ = "league_documents"

    path = Column(String(255), primary_key=True)

    data = Column(JSON, nullable=False, default=dict)

    created_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        comment="Timestamp when the document was first written"
    )

    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
        comment="Timestamp of the last full overwrite"
    )

    def __repr__(self):
        return f"<LeagueDocument({self.path})>"
