"""Descriptor store: one optional face descriptor per identity.

The SQL store keeps the descriptor as JSON text on the identity row. Writes
are single-row overwrites keyed by identity and take no locks, so concurrent
enrollments of the same identity resolve as last writer wins.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from medirunner.db.models import IdentityRow
from medirunner.face.errors import IdentityNotFoundError, StorageError
from medirunner.face.matcher import Candidate

if TYPE_CHECKING:
    from collections.abc import Sequence

    from medirunner.db.session import Database

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """A console user. The descriptor itself is never exposed here."""

    id: int
    name: str
    role: str
    enrolled_at: datetime | None = None

    @property
    def has_enrolled_face(self) -> bool:
        return self.enrolled_at is not None


# ---------------------------------------------------------------------------
# Protocol (kept for test mocking)
# ---------------------------------------------------------------------------


class DescriptorStore(Protocol):
    """Storage contract consumed by the enrollment and authentication workflows."""

    async def get(self, identity_id: int) -> list[float] | None:
        """Return the enrolled descriptor, or None if the identity has none."""
        ...

    async def get_all_enrolled(self) -> list[Candidate]:
        """Return every identity that has a descriptor, ordered by identity id."""
        ...

    async def set(self, identity_id: int, descriptor: Sequence[float], enrolled_at: datetime) -> None:
        """Store ``descriptor`` for ``identity_id``, replacing any previous one."""
        ...

    async def get_identity(self, identity_id: int) -> Identity | None:
        """Return the identity, or None if it does not exist."""
        ...


# ---------------------------------------------------------------------------
# SQL implementation
# ---------------------------------------------------------------------------


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back out.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _to_identity(row: IdentityRow) -> Identity:
    return Identity(id=row.id, name=row.name, role=row.role, enrolled_at=_as_utc(row.face_enrolled_at))


class SqlDescriptorStore:
    """Descriptor and identity storage backed by SQLAlchemy."""

    def __init__(self, database: Database) -> None:
        self._database = database

    # -- Descriptor contract ------------------------------------------------

    async def get(self, identity_id: int) -> list[float] | None:
        try:
            async with self._database.session() as session:
                row = await session.get(IdentityRow, identity_id)
        except SQLAlchemyError as exc:
            raise self._storage_error("get", exc) from exc
        if row is None:
            raise IdentityNotFoundError(identity_id)
        if row.face_descriptor is None:
            return None
        return [float(value) for value in json.loads(row.face_descriptor)]

    async def get_all_enrolled(self) -> list[Candidate]:
        stmt = (
            select(IdentityRow.id, IdentityRow.face_descriptor)
            .where(IdentityRow.face_descriptor.is_not(None))
            .order_by(IdentityRow.id)
        )
        try:
            async with self._database.session() as session:
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as exc:
            raise self._storage_error("get_all_enrolled", exc) from exc
        return [Candidate(identity_id=row.id, descriptor=json.loads(row.face_descriptor)) for row in rows]

    async def set(self, identity_id: int, descriptor: Sequence[float], enrolled_at: datetime) -> None:
        payload = json.dumps([float(value) for value in descriptor])
        try:
            async with self._database.session() as session, session.begin():
                row = await session.get(IdentityRow, identity_id)
                if row is None:
                    raise IdentityNotFoundError(identity_id)
                row.face_descriptor = payload
                row.face_enrolled_at = enrolled_at
        except SQLAlchemyError as exc:
            raise self._storage_error("set", exc) from exc

    # -- Identities ---------------------------------------------------------

    async def create_identity(self, name: str, role: str) -> Identity:
        try:
            async with self._database.session() as session, session.begin():
                row = IdentityRow(name=name, role=role)
                session.add(row)
                await session.flush()
                identity = _to_identity(row)
        except SQLAlchemyError as exc:
            raise self._storage_error("create_identity", exc) from exc
        logger.info("Registered identity %s (role=%s)", identity.id, identity.role)
        return identity

    async def get_identity(self, identity_id: int) -> Identity | None:
        try:
            async with self._database.session() as session:
                row = await session.get(IdentityRow, identity_id)
        except SQLAlchemyError as exc:
            raise self._storage_error("get_identity", exc) from exc
        return None if row is None else _to_identity(row)

    async def list_identities(self) -> list[Identity]:
        stmt = select(IdentityRow).order_by(IdentityRow.name, IdentityRow.id)
        try:
            async with self._database.session() as session:
                rows = (await session.scalars(stmt)).all()
        except SQLAlchemyError as exc:
            raise self._storage_error("list_identities", exc) from exc
        return [_to_identity(row) for row in rows]

    async def count_enrolled(self) -> int:
        stmt = select(func.count()).select_from(IdentityRow).where(IdentityRow.face_descriptor.is_not(None))
        try:
            async with self._database.session() as session:
                return int(await session.scalar(stmt) or 0)
        except SQLAlchemyError as exc:
            raise self._storage_error("count_enrolled", exc) from exc

    # -- Internal -----------------------------------------------------------

    @staticmethod
    def _storage_error(operation: str, exc: SQLAlchemyError) -> StorageError:
        logger.error("Storage operation %s failed: %s", operation, exc)
        return StorageError(f"Storage operation {operation} failed")
