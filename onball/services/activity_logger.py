"""
onball/services/activity_logger.py
League activity ledger

Every mutating league operation appends one entry here AFTER its state
write succeeded. Entries are never edited; a reversal deletes the entry
it consumed and appends a `log_deleted` entry in its place.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from onball.exceptions import StoreError
from onball.orm.activity_log import LeagueActivityLog
from onball.orm.base import utcnow
from onball.schemas.ledger import REVERSIBLE_ACTIONS, ActionKind, Actor, LedgerEntry

logger = logging.getLogger(__name__)


class ActivityLedger:
    """Append / read / delete access to `league_activity_logs`."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def append(
        self,
        league_id: str,
        action: ActionKind,
        actor: Actor,
        payload: Optional[Dict[str, Any]] = None,
        undoable: Optional[bool] = None,
    ) -> LedgerEntry:
        """
        Append one entry.

        Args:
            league_id: League scope
            action: ActionKind of the operation just performed
            actor: Who performed it
            payload: What the compensating action needs (rosters, score, reviewer)
            undoable: Defaults to whether the action kind is reversible

        Returns:
            The stored entry
        """
        action = ActionKind(action)
        if undoable is None:
            undoable = action in REVERSIBLE_ACTIONS

        row = LeagueActivityLog(
            league_id=league_id,
            actor_id=actor.id,
            actor_name=actor.name,
            action=action.value,
            payload=payload or {},
            undoable=undoable,
            timestamp=utcnow(),
        )
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(row)
                await session.refresh(row)
        except SQLAlchemyError as e:
            logger.error(f"Failed to log {action.value} for league {league_id}: {e}")
            raise StoreError(f"Failed to append {action.value} to the activity log", operation="append") from e

        logger.debug(f"Activity logged: {action.value} by {actor.id} in league {league_id}")
        return LedgerEntry.model_validate(row)

    async def get(self, league_id: str, entry_id: str) -> Optional[LedgerEntry]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(LeagueActivityLog).where(
                        LeagueActivityLog.league_id == league_id,
                        LeagueActivityLog.id == entry_id,
                    )
                )
                row = result.scalar_one_or_none()
                return LedgerEntry.model_validate(row) if row is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to read log entry {entry_id}: {e}")
            raise StoreError(f"Failed to read log entry {entry_id}", operation="get") from e

    async def delete(self, league_id: str, entry_id: str) -> bool:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(LeagueActivityLog).where(
                            LeagueActivityLog.league_id == league_id,
                            LeagueActivityLog.id == entry_id,
                        )
                    )
            return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete log entry {entry_id}: {e}")
            raise StoreError(f"Failed to delete log entry {entry_id}", operation="delete") from e

    async def list_entries(
        self,
        league_id: str,
        actions: Optional[Iterable[ActionKind]] = None,
        exclude: Optional[Iterable[ActionKind]] = None,
        limit: Optional[int] = 100,
    ) -> List[LedgerEntry]:
        """Entries for a league, newest first."""
        query = select(LeagueActivityLog).where(LeagueActivityLog.league_id == league_id)
        if actions:
            query = query.where(LeagueActivityLog.action.in_([ActionKind(a).value for a in actions]))
        if exclude:
            query = query.where(LeagueActivityLog.action.not_in([ActionKind(a).value for a in exclude]))
        query = query.order_by(LeagueActivityLog.timestamp.desc(), LeagueActivityLog.id.desc())
        if limit:
            query = query.limit(limit)

        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return [LedgerEntry.model_validate(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Failed to list log entries for league {league_id}: {e}")
            raise StoreError(f"Failed to list activity log for {league_id}", operation="list") from e
