"""Tests for the SQL-backed descriptor store."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from medirunner.face.errors import IdentityNotFoundError, StorageError
from medirunner.face.store import SqlDescriptorStore


class TestIdentities:
    async def test_create_and_get(self, store: SqlDescriptorStore) -> None:
        created = await store.create_identity("pilot", "Pilot")
        fetched = await store.get_identity(created.id)

        assert fetched == created
        assert fetched is not None
        assert fetched.name == "pilot"
        assert fetched.role == "Pilot"
        assert fetched.has_enrolled_face is False

    async def test_get_unknown_returns_none(self, store: SqlDescriptorStore) -> None:
        assert await store.get_identity(404) is None

    async def test_list_ordered_by_name(self, store: SqlDescriptorStore) -> None:
        await store.create_identity("pilot", "Pilot")
        await store.create_identity("copilot", "CoPilot")
        await store.create_identity("innovation", "InnovationLead")

        names = [identity.name for identity in await store.list_identities()]

        assert names == ["copilot", "innovation", "pilot"]


class TestDescriptors:
    async def test_get_without_enrollment_is_none(self, store: SqlDescriptorStore) -> None:
        identity = await store.create_identity("pilot", "Pilot")
        assert await store.get(identity.id) is None

    async def test_get_unknown_identity_raises(self, store: SqlDescriptorStore) -> None:
        with pytest.raises(IdentityNotFoundError):
            await store.get(99)

    async def test_set_then_get(self, store: SqlDescriptorStore) -> None:
        identity = await store.create_identity("pilot", "Pilot")
        descriptor = [i / 1000 for i in range(128)]
        enrolled_at = datetime(2025, 11, 23, 3, 45, tzinfo=UTC)

        await store.set(identity.id, descriptor, enrolled_at)

        assert await store.get(identity.id) == descriptor
        refreshed = await store.get_identity(identity.id)
        assert refreshed is not None
        assert refreshed.enrolled_at == enrolled_at
        assert refreshed.has_enrolled_face is True

    async def test_set_overwrites(self, store: SqlDescriptorStore) -> None:
        identity = await store.create_identity("pilot", "Pilot")
        await store.set(identity.id, [0.0] * 128, datetime(2025, 1, 1, tzinfo=UTC))
        await store.set(identity.id, [0.5] * 128, datetime(2025, 1, 2, tzinfo=UTC))

        assert await store.get(identity.id) == [0.5] * 128
        enrolled = await store.get_all_enrolled()
        assert [c.identity_id for c in enrolled] == [identity.id]

    async def test_set_unknown_identity_raises(self, store: SqlDescriptorStore) -> None:
        with pytest.raises(IdentityNotFoundError):
            await store.set(12, [0.0] * 128, datetime.now(UTC))

    async def test_get_all_enrolled_skips_unenrolled(self, store: SqlDescriptorStore) -> None:
        first = await store.create_identity("a", "Pilot")
        await store.create_identity("b", "Pilot")
        third = await store.create_identity("c", "Pilot")
        await store.set(third.id, [0.3] * 128, datetime.now(UTC))
        await store.set(first.id, [0.1] * 128, datetime.now(UTC))

        enrolled = await store.get_all_enrolled()

        assert [c.identity_id for c in enrolled] == [first.id, third.id]
        assert list(enrolled[1].descriptor) == [0.3] * 128
        assert await store.count_enrolled() == 2


class TestStorageErrors:
    async def test_driver_errors_become_storage_errors(self, store: SqlDescriptorStore) -> None:
        failing_session = MagicMock(side_effect=OperationalError("SELECT 1", {}, Exception("disk I/O error")))
        store._database.session = failing_session  # type: ignore[method-assign]

        with pytest.raises(StorageError, match="get_all_enrolled"):
            await store.get_all_enrolled()
