"""Tests for nearest-neighbour face matching."""

from __future__ import annotations

import math
import sys

import numpy as np
import pytest

from medirunner.face.errors import DescriptorValidationError, DimensionMismatchError, InvalidProbeError
from medirunner.face.matcher import MATCH_THRESHOLD, Candidate, match

ZEROS = [0.0] * 128
ONES = [1.0] * 128
TENTHS = [0.1] * 128


def _offset(base: list[float], delta: float, index: int = 0) -> list[float]:
    shifted = list(base)
    shifted[index] += delta
    return shifted


class TestMatchDecision:
    def test_default_threshold(self) -> None:
        assert MATCH_THRESHOLD == 0.6

    def test_no_candidates(self) -> None:
        result = match(ZEROS, [])
        assert result.matched is False
        assert result.identity_id is None
        assert result.confidence == 0
        assert result.distance is None
        assert result.no_candidates

    def test_close_probe_matches(self) -> None:
        result = match(_offset(ZEROS, 0.3), [Candidate(identity_id=1, descriptor=ZEROS)])
        assert result.matched is True
        assert result.identity_id == 1
        assert result.distance == pytest.approx(0.3)
        assert result.confidence == 70

    def test_distant_probe_rejected(self) -> None:
        result = match(_offset(ZEROS, 0.8), [Candidate(identity_id=1, descriptor=ZEROS)])
        assert result.matched is False
        assert result.identity_id is None
        assert result.distance == pytest.approx(0.8)
        assert result.confidence == 20
        assert not result.no_candidates

    def test_threshold_is_exclusive(self) -> None:
        # 0.5 is exact in binary, so the distance equals the threshold exactly.
        result = match(_offset(ZEROS, 0.5), [Candidate(identity_id=1, descriptor=ZEROS)], threshold=0.5)
        assert result.distance == 0.5
        assert result.matched is False

    def test_custom_threshold(self) -> None:
        candidates = [Candidate(identity_id=1, descriptor=ZEROS)]
        assert match(_offset(ZEROS, 0.5), candidates, threshold=0.4).matched is False
        assert match(_offset(ZEROS, 0.5), candidates, threshold=0.75).matched is True

    def test_numpy_candidates(self) -> None:
        candidates = [Candidate(identity_id=3, descriptor=np.zeros(128, dtype=np.float32))]
        result = match(np.zeros(128, dtype=np.float32), candidates)
        assert result.matched is True
        assert result.identity_id == 3


class TestMatchScenarios:
    def test_identical_zero_vector(self) -> None:
        result = match(ZEROS, [Candidate(identity_id=7, descriptor=ZEROS)])
        assert result.matched is True
        assert result.identity_id == 7
        assert result.distance == 0.0
        assert result.confidence == 100

    def test_all_ones_probe_against_zero_vector(self) -> None:
        result = match(ONES, [Candidate(identity_id=7, descriptor=ZEROS)])
        assert result.matched is False
        assert result.identity_id is None
        assert result.distance == pytest.approx(math.sqrt(128))
        # Unclamped: round((1 - 11.3137) * 100)
        assert result.confidence == -1031

    def test_nearest_of_two_wins(self) -> None:
        candidates = [
            Candidate(identity_id=2, descriptor=TENTHS),
            Candidate(identity_id=1, descriptor=ZEROS),
        ]
        result = match(ZEROS, candidates)
        assert result.matched is True
        assert result.identity_id == 1
        assert result.distance == 0.0
        assert result.candidates_considered == 2

    def test_second_candidate_distance(self) -> None:
        result = match(ZEROS, [Candidate(identity_id=2, descriptor=TENTHS)])
        assert result.distance == pytest.approx(math.sqrt(1.28))
        assert result.matched is False

    def test_tie_goes_to_first_candidate(self) -> None:
        candidates = [
            Candidate(identity_id=5, descriptor=_offset(ZEROS, 0.2, index=0)),
            Candidate(identity_id=9, descriptor=_offset(ZEROS, 0.2, index=1)),
        ]
        assert match(ZEROS, candidates).identity_id == 5
        assert match(ZEROS, list(reversed(candidates))).identity_id == 9

    def test_closest_among_many(self) -> None:
        rng = np.random.default_rng(42)
        enrolled = [rng.normal(0.0, 0.3, 128) for _ in range(20)]
        candidates = [Candidate(identity_id=i, descriptor=d) for i, d in enumerate(enrolled)]
        probe = enrolled[13] + rng.normal(0.0, 0.01, 128)

        result = match(probe, candidates)

        assert result.matched is True
        assert result.identity_id == 13


class TestExtremeMagnitudes:
    def test_huge_login_descriptor_is_a_plain_non_match(self) -> None:
        result = match([1e200] * 128, [Candidate(identity_id=7, descriptor=ZEROS)])

        assert result.matched is False
        assert result.identity_id is None
        assert result.distance == pytest.approx(1e200 * math.sqrt(128))
        assert result.confidence < 0

    def test_huge_enrolled_descriptor_does_not_block_login(self) -> None:
        candidates = [
            Candidate(identity_id=1, descriptor=[1e300] * 128),
            Candidate(identity_id=2, descriptor=ZEROS),
        ]
        result = match(ZEROS, candidates)

        assert result.matched is True
        assert result.identity_id == 2
        assert result.confidence == 100

    def test_distance_beyond_float_range_saturates(self) -> None:
        result = match([1.7e308] * 128, [Candidate(identity_id=1, descriptor=[-1.7e308] * 128)])

        assert result.matched is False
        assert result.distance == sys.float_info.max
        assert result.confidence < 0


class TestMatchFailures:
    @pytest.mark.parametrize(
        ("probe", "reason"),
        [
            ([0.0] * 127, "invalid_length"),
            ([math.nan] * 128, "invalid_value"),
            ("not a descriptor", "not_numeric"),
        ],
    )
    def test_invalid_probe_raises(self, probe: object, reason: str) -> None:
        with pytest.raises(InvalidProbeError) as excinfo:
            match(probe, [Candidate(identity_id=1, descriptor=ZEROS)])
        assert excinfo.value.reason == reason
        assert excinfo.value.kind == "invalid_probe"

    def test_invalid_probe_raises_even_without_candidates(self) -> None:
        with pytest.raises(InvalidProbeError):
            match([0.0] * 3, [])

    def test_invalid_probe_is_a_validation_error(self) -> None:
        with pytest.raises(DescriptorValidationError):
            match([], [])

    def test_candidate_dimension_mismatch(self) -> None:
        candidates = [
            Candidate(identity_id=1, descriptor=ZEROS),
            Candidate(identity_id=2, descriptor=[0.0] * 64),
        ]
        with pytest.raises(DimensionMismatchError):
            match(ZEROS, candidates)
