"""
onball/services/document_store.py
Path-addressed JSON document store

Usage:
    store = SqlDocumentStore(AsyncSessionLocal)
    doc = await store.get("league/abc/set/default")
    await store.set("league/abc/set/default", doc)

Every call is one round trip in its own session and transaction. Writes
replace the whole document; there is no locking and no retry, so
overlapping read-modify-write sequences resolve as last-write-wins.
"""
import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from onball.exceptions import StoreError
from onball.orm.base import utcnow
from onball.orm.document import LeagueDocument

logger = logging.getLogger(__name__)


def league_path(league_id: str) -> str:
    return f"league/{league_id}"


def set_path(league_id: str, set_id: str) -> str:
    return f"league/{league_id}/set/{set_id}"


def user_path(uid: str) -> str:
    return f"user/{uid}"


# =============================================================================
# Store Interface
# =============================================================================

class DocumentStore(ABC):
    """
    Abstract document store.

    Implementations must support:
    - get: Read a document (None when absent)
    - set: Overwrite a document
    - delete: Remove a document
    - list: Documents whose path starts with a prefix
    """

    @abstractmethod
    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def set(self, path: str, data: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def delete(self, path: str) -> bool:
        pass

    @abstractmethod
    async def list(self, prefix: str) -> Dict[str, Dict[str, Any]]:
        pass


# =============================================================================
# SQL-backed Store
# =============================================================================

class SqlDocumentStore(DocumentStore):
    """Documents kept as JSON rows of `league_documents`."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        try:
            async with self._session_factory() as session:
                row = await session.get(LeagueDocument, path)
                if row is None:
                    return None
                return copy.deepcopy(row.data or {})
        except SQLAlchemyError as e:
            logger.error(f"Document read failed for {path}: {e}")
            raise StoreError(f"Failed to read document {path}", operation="get") from e

    async def set(self, path: str, data: Dict[str, Any]) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    row = await session.get(LeagueDocument, path)
                    if row is None:
                        session.add(LeagueDocument(path=path, data=copy.deepcopy(data)))
                    else:
                        # New object so the JSON column is seen as changed
                        row.data = copy.deepcopy(data)
                        row.updated_at = utcnow()
            logger.debug(f"Document written: {path}")
        except SQLAlchemyError as e:
            logger.error(f"Document write failed for {path}: {e}")
            raise StoreError(f"Failed to write document {path}", operation="set") from e

    async def delete(self, path: str) -> bool:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(LeagueDocument).where(LeagueDocument.path == path)
                    )
            return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error(f"Document delete failed for {path}: {e}")
            raise StoreError(f"Failed to delete document {path}", operation="delete") from e

    async def list(self, prefix: str) -> Dict[str, Dict[str, Any]]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(LeagueDocument)
                    .where(LeagueDocument.path.startswith(prefix, autoescape=True))
                    .order_by(LeagueDocument.path)
                )
                rows: List[LeagueDocument] = list(result.scalars().all())
                return {row.path: copy.deepcopy(row.data or {}) for row in rows}
        except SQLAlchemyError as e:
            logger.error(f"Document list failed for prefix {prefix}: {e}")
            raise StoreError(f"Failed to list documents under {prefix}", operation="list") from e
