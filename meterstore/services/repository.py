"""Per-backend insert primitives used inside a write transaction.

One :class:`EventRepository` subclass exists per physical backend and is
picked once through :func:`create_repository`. The only behavioural
difference between them is how a new row id comes back: PostgreSQL uses
``RETURNING``, MySQL and SQLite get a client-generated UUID before the
insert. Each also knows its dialect's insert-or-ignore statement and how
its driver reports a duplicate primary key.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Sequence
from typing import Any, ClassVar

from sqlalchemy import insert
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.dml import Insert

from meterstore.core.database import MYSQL, POSTGRES, SQLITE
from meterstore.core.errors import StorageError
from meterstore.core.identifiers import UserId
from meterstore.models.api_key import ApiKey
from meterstore.models.base import new_uuid
from meterstore.models.event import Event
from meterstore.models.user import User

logger = logging.getLogger(__name__)


class EventRepository:
    """Insert primitives shared by every event kind."""

    backend: ClassVar[str]
    supports_returning: ClassVar[bool] = False

    # Last-resort message fragments when the driver exposes no error code.
    duplicate_key_markers: ClassVar[tuple[str, ...]] = ()

    # ── Backend hooks ────────────────────────────────────────

    def insert_ignore(self, model: Any) -> Insert:
        """INSERT that silently skips rows whose primary key already exists."""
        raise NotImplementedError

    def duplicate_key_code(self, orig: BaseException) -> bool | None:
        """Structured duplicate-key check; ``None`` when the driver is silent."""
        return None

    # ── Error classification ─────────────────────────────────

    def is_duplicate_key(self, exc: BaseException) -> bool:
        orig = getattr(exc, "orig", None) or exc
        by_code = self.duplicate_key_code(orig)
        if by_code is not None:
            return by_code
        message = str(orig)
        return any(marker in message for marker in self.duplicate_key_markers)

    # ── Users ────────────────────────────────────────────────

    async def insert_or_skip_user(self, txn: AsyncSession, user_id: UserId) -> None:
        await self.insert_or_skip_users(txn, [user_id])

    async def insert_or_skip_users(self, txn: AsyncSession, user_ids: Iterable[UserId]) -> None:
        """Ensure every user exists with one multi-row statement.

        A duplicate primary key is success; any other failure is fatal.
        """
        unique_ids = list(dict.fromkeys(user_ids))
        if not unique_ids:
            return
        stmt = self.insert_ignore(User).values([{"id": uid} for uid in unique_ids])
        try:
            await txn.execute(stmt)
        except IntegrityError as exc:
            if self.is_duplicate_key(exc):
                logger.debug("Users %s already exist, skipping insert", unique_ids)
                return
            raise StorageError.user_insert_failed(_join_ids(unique_ids), exc) from exc
        except SQLAlchemyError as exc:
            raise StorageError.user_insert_failed(_join_ids(unique_ids), exc) from exc
        logger.debug("Ensured %d user(s) exist", len(unique_ids))

    # ── Generic event rows ───────────────────────────────────

    async def insert_event(
        self,
        txn: AsyncSession,
        reported_timestamp: str,
        user_id: UserId | None,
        api_key_id: uuid.UUID | None = None,
    ) -> uuid.UUID:
        """Insert one generic event row and return its id."""
        ids = await self.insert_events(
            txn,
            [{
                "reported_timestamp": reported_timestamp,
                "user_id": user_id,
                "api_key_id": api_key_id,
            }],
        )
        return ids[0]

    async def insert_events(
        self, txn: AsyncSession, rows: Sequence[dict[str, Any]]
    ) -> list[uuid.UUID]:
        """Insert generic event rows; ids come back in input order."""
        if not rows:
            return []
        try:
            ids = await self._insert_with_ids(txn, Event, rows)
        except IntegrityError as exc:
            raise StorageError.constraint_violation(
                f"event insert rejected: {exc.orig}", exc
            ) from exc
        except SQLAlchemyError as exc:
            raise StorageError.event_insert_failed(
                f"Failed to insert {len(rows)} event row(s)", exc
            ) from exc

        if not ids or any(event_id is None for event_id in ids):
            raise StorageError.empty_result("Event insert returned no ID")
        if len(ids) != len(rows):
            raise StorageError.insert_failed(
                f"Expected {len(rows)} event IDs but got {len(ids)}"
            )
        return ids

    # ── Detail rows ──────────────────────────────────────────

    async def insert_detail(
        self,
        txn: AsyncSession,
        table: Any,
        event_id: uuid.UUID,
        values: dict[str, Any],
    ) -> None:
        """Insert the kind-specific row sharing ``event_id`` as its key."""
        await self.insert_details(txn, table, [{"id": event_id, **values}])

    async def insert_details(
        self, txn: AsyncSession, table: Any, rows: Sequence[dict[str, Any]]
    ) -> None:
        if not rows:
            return
        name = table.__tablename__
        try:
            await txn.execute(insert(table), list(rows))
        except IntegrityError as exc:
            raise StorageError.constraint_violation(
                f"{name} insert rejected: {exc.orig}", exc
            ) from exc
        except SQLAlchemyError as exc:
            raise StorageError.insert_failed(
                f"Failed to insert {len(rows)} {name} row(s)", exc
            ) from exc

    # ── API keys ─────────────────────────────────────────────

    async def insert_api_key(self, txn: AsyncSession, values: dict[str, Any]) -> uuid.UUID:
        """Insert an ``api_keys`` row; duplicate name or key is a constraint violation."""
        try:
            ids = await self._insert_with_ids(txn, ApiKey, [values])
        except IntegrityError as exc:
            raise StorageError.constraint_violation(
                f"API key with name '{values.get('name')}' or key value already exists", exc
            ) from exc
        except SQLAlchemyError as exc:
            raise StorageError.insert_failed(
                f"Failed to insert API key '{values.get('name')}'", exc
            ) from exc
        if not ids or ids[0] is None:
            raise StorageError.empty_result("API key insert returned no record")
        return ids[0]

    # ── Id generation ────────────────────────────────────────

    async def _insert_with_ids(
        self, txn: AsyncSession, model: Any, rows: Sequence[dict[str, Any]]
    ) -> list[uuid.UUID]:
        if self.supports_returning:
            result = await txn.execute(
                insert(model).returning(model.id, sort_by_parameter_order=True),
                list(rows),
            )
            return list(result.scalars().all())

        ids = [new_uuid() for _ in rows]
        await txn.execute(
            insert(model),
            [{**row, "id": row_id} for row, row_id in zip(rows, ids)],
        )
        return ids


class PostgresEventRepository(EventRepository):
    backend = POSTGRES
    supports_returning = True
    duplicate_key_markers = ("duplicate key value",)

    def insert_ignore(self, model: Any) -> Insert:
        return pg_insert(model).on_conflict_do_nothing(index_elements=["id"])

    def duplicate_key_code(self, orig: BaseException) -> bool | None:
        code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if code is None:
            return None
        return code == "23505"


class MySQLEventRepository(EventRepository):
    backend = MYSQL
    duplicate_key_markers = ("Duplicate entry", "1062")

    def insert_ignore(self, model: Any) -> Insert:
        return mysql_insert(model).prefix_with("IGNORE")

    def duplicate_key_code(self, orig: BaseException) -> bool | None:
        args = getattr(orig, "args", ())
        if args and isinstance(args[0], int):
            return args[0] == 1062
        return None


class SQLiteEventRepository(EventRepository):
    backend = SQLITE
    duplicate_key_markers = ("UNIQUE constraint failed",)

    # SQLITE_CONSTRAINT_PRIMARYKEY, SQLITE_CONSTRAINT_UNIQUE
    _DUPLICATE_CODES = frozenset({1555, 2067})

    def insert_ignore(self, model: Any) -> Insert:
        return sqlite_insert(model).on_conflict_do_nothing(index_elements=["id"])

    def duplicate_key_code(self, orig: BaseException) -> bool | None:
        code = getattr(orig, "sqlite_errorcode", None)
        if code is None:
            return None
        return code in self._DUPLICATE_CODES


_REPOSITORIES: dict[str, type[EventRepository]] = {
    POSTGRES: PostgresEventRepository,
    MYSQL: MySQLEventRepository,
    SQLITE: SQLiteEventRepository,
}


def supported_backends() -> list[str]:
    return list(_REPOSITORIES)


def create_repository(backend: str) -> EventRepository:
    """Return the repository strategy for a dialect name."""
    try:
        return _REPOSITORIES[backend]()
    except KeyError:
        raise ValueError(f"Unsupported event repository backend: {backend}") from None


def _join_ids(ids: Sequence[UserId]) -> str:
    return ", ".join(str(uid) for uid in ids)
