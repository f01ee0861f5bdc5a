"""Authentication workflow: capture a probe, match it, report the identity.

Session issuance is left to the caller; this workflow only decides who, if
anyone, the probe belongs to.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from medirunner.face.errors import IdentityNotFoundError
from medirunner.face.matcher import MATCH_THRESHOLD, MatchResult, match

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from medirunner.face.store import DescriptorStore, Identity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticationResult:
    """Accepted when ``identity`` is set; otherwise a rejection with best-effort confidence."""

    identity: Identity | None
    confidence: int
    distance: float | None
    candidates_considered: int

    @property
    def accepted(self) -> bool:
        return self.identity is not None


class AuthenticationService:
    """Matches probe descriptors against every enrolled identity."""

    def __init__(self, store: DescriptorStore, threshold: float = MATCH_THRESHOLD) -> None:
        self._store = store
        self._threshold = threshold

    @property
    def threshold(self) -> float:
        return self._threshold

    async def authenticate(self, probe_capture: Awaitable[Any]) -> AuthenticationResult:
        """Await a capture and authenticate the descriptor it yields.

        Capture errors (no face, multiple faces, timeout) propagate unchanged.
        """
        descriptor = await probe_capture
        return await self.authenticate_descriptor(descriptor)

    async def authenticate_descriptor(self, descriptor: Any) -> AuthenticationResult:
        """Authenticate an already captured descriptor.

        Raises:
            InvalidProbeError: If ``descriptor`` is not a valid descriptor.
            DimensionMismatchError: If a stored descriptor has the wrong length.
        """
        candidates = await self._store.get_all_enrolled()
        result = match(descriptor, candidates, threshold=self._threshold)
        return await self._resolve(result)

    async def _resolve(self, result: MatchResult) -> AuthenticationResult:
        if not result.matched or result.identity_id is None:
            return AuthenticationResult(
                identity=None,
                confidence=result.confidence,
                distance=result.distance,
                candidates_considered=result.candidates_considered,
            )

        identity = await self._store.get_identity(result.identity_id)
        if identity is None:
            # Deleted between the scan and the lookup.
            raise IdentityNotFoundError(result.identity_id)

        logger.info("Authenticated identity %s with confidence %d", identity.id, result.confidence)
        return AuthenticationResult(
            identity=identity,
            confidence=result.confidence,
            distance=result.distance,
            candidates_considered=result.candidates_considered,
        )
