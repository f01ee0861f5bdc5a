"""Nearest-neighbour matching of a probe descriptor against enrolled faces.

The match is a full linear scan: every enrolled descriptor is compared with
the probe, the closest one is selected and accepted only when its distance is
strictly below the threshold. Any index structure would sit behind the same
``match(probe, candidates)`` call.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from medirunner.face.descriptor import as_embedding, confidence_from_distance, distances_to
from medirunner.face.errors import DescriptorValidationError, DimensionMismatchError, InvalidProbeError

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

MATCH_THRESHOLD: float = 0.6


@dataclass(frozen=True)
class Candidate:
    """An enrolled (identity, descriptor) pair considered during matching."""

    identity_id: int
    descriptor: Sequence[float] | NDArray[np.floating]


@dataclass(frozen=True)
class MatchResult:
    """Decision for one matching attempt. Never persisted."""

    matched: bool
    identity_id: int | None
    confidence: int
    distance: float | None
    candidates_considered: int

    @property
    def no_candidates(self) -> bool:
        return self.candidates_considered == 0


def _probe_embedding(probe: Any) -> NDArray[np.float64]:
    try:
        return as_embedding(probe)
    except DescriptorValidationError as exc:
        raise InvalidProbeError(exc.rejection, f"Invalid probe descriptor ({exc.reason})") from None


def _candidate_matrix(candidates: Sequence[Candidate], dim: int) -> NDArray[np.float64]:
    rows: list[NDArray[np.float64]] = []
    for candidate in candidates:
        row = np.asarray(candidate.descriptor, dtype=np.float64).reshape(-1)
        if row.shape[0] != dim:
            raise DimensionMismatchError(dim, row.shape[0])
        rows.append(row)
    return np.vstack(rows)


def match(probe: Any, candidates: Sequence[Candidate], threshold: float = MATCH_THRESHOLD) -> MatchResult:
    """Find the enrolled candidate closest to ``probe``.

    Args:
        probe: Descriptor captured at authentication time.
        candidates: Enrolled descriptors, in a stable order. Ties on the minimum
            distance go to the earliest candidate.
        threshold: Maximum distance (exclusive) at which a candidate is accepted.

    Returns:
        The match decision. Confidence is ``round((1 - distance) * 100)`` for the
        best candidate, unclamped, and 0 when there are no candidates.

    Raises:
        InvalidProbeError: If ``probe`` is not a valid descriptor.
        DimensionMismatchError: If a candidate descriptor differs in length.
    """
    embedding = _probe_embedding(probe)

    if not candidates:
        return MatchResult(matched=False, identity_id=None, confidence=0, distance=None, candidates_considered=0)

    matrix = _candidate_matrix(candidates, embedding.shape[0])
    distances = distances_to(matrix, embedding)

    # argmin returns the first index on ties
    best = int(np.argmin(distances))
    best_distance = float(distances[best])
    best_candidate = candidates[best]
    confidence = confidence_from_distance(best_distance)

    if best_distance < threshold:
        logger.info(
            "Matched identity %s (distance=%.4f, threshold=%.2f, candidates=%d)",
            best_candidate.identity_id,
            best_distance,
            threshold,
            len(candidates),
        )
        return MatchResult(
            matched=True,
            identity_id=best_candidate.identity_id,
            confidence=confidence,
            distance=best_distance,
            candidates_considered=len(candidates),
        )

    logger.info(
        "No match (best distance=%.4f, threshold=%.2f, candidates=%d)",
        best_distance,
        threshold,
        len(candidates),
    )
    return MatchResult(
        matched=False,
        identity_id=None,
        confidence=confidence,
        distance=best_distance,
        candidates_considered=len(candidates),
    )
