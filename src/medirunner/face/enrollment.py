"""Enrollment workflow: validate a captured descriptor and store it."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from medirunner.face.descriptor import as_embedding
from medirunner.face.errors import IdentityNotFoundError

if TYPE_CHECKING:
    from collections.abc import Callable

    from medirunner.face.store import DescriptorStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnrollmentReceipt:
    identity_id: int
    enrolled_at: datetime
    replaced: bool


@dataclass(frozen=True)
class EnrollmentStatus:
    identity_id: int
    name: str
    enrolled: bool
    enrolled_at: datetime | None


def _utcnow() -> datetime:
    return datetime.now(UTC)


class EnrollmentService:
    """Enrolls one face descriptor per identity, replacing any earlier one."""

    def __init__(self, store: DescriptorStore, clock: Callable[[], datetime] = _utcnow) -> None:
        self._store = store
        self._clock = clock

    async def enroll(self, identity_id: int, descriptor: Any) -> EnrollmentReceipt:
        """Store ``descriptor`` as the face of ``identity_id``.

        Nothing is written unless the identity exists and the descriptor is valid.

        Raises:
            IdentityNotFoundError: If the identity does not exist.
            DescriptorValidationError: If the descriptor is rejected.
        """
        identity = await self._store.get_identity(identity_id)
        if identity is None:
            raise IdentityNotFoundError(identity_id)

        embedding = as_embedding(descriptor)
        enrolled_at = self._clock()
        await self._store.set(identity_id, embedding.tolist(), enrolled_at)

        logger.info(
            "Enrolled face for identity %s (%s)",
            identity_id,
            "replaced previous descriptor" if identity.has_enrolled_face else "first enrollment",
        )
        return EnrollmentReceipt(identity_id=identity_id, enrolled_at=enrolled_at, replaced=identity.has_enrolled_face)

    async def status(self, identity_id: int) -> EnrollmentStatus:
        identity = await self._store.get_identity(identity_id)
        if identity is None:
            raise IdentityNotFoundError(identity_id)
        return EnrollmentStatus(
            identity_id=identity.id,
            name=identity.name,
            enrolled=identity.has_enrolled_face,
            enrolled_at=identity.enrolled_at,
        )
