"""Shared fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from medirunner.db.session import Database
from medirunner.face.store import SqlDescriptorStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path


@pytest.fixture()
async def store(tmp_path: Path) -> AsyncIterator[SqlDescriptorStore]:
    """A descriptor store over a fresh SQLite file."""
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'faces.db'}")
    await database.init()
    yield SqlDescriptorStore(database)
    await database.dispose()
