"""Face descriptor validation and distance.

A descriptor is the 128-dimension embedding produced by the upstream face
recognition model. Descriptors are used exactly as extracted: no rescaling
or normalization happens here.
"""

from __future__ import annotations

import math
import numbers
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from medirunner.face.errors import DescriptorValidationError, DimensionMismatchError, RejectionReason

if TYPE_CHECKING:
    from numpy.typing import NDArray

DESCRIPTOR_LENGTH = 128

_MAX_FLOAT = sys.float_info.max


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of :func:`validate_descriptor`. ``reason`` is None when valid."""

    reason: RejectionReason | None = None

    @property
    def ok(self) -> bool:
        return self.reason is None


def _is_real_number(value: object) -> bool:
    # bool is an Integral; a descriptor of True/False is a caller bug.
    if isinstance(value, bool | np.bool_):
        return False
    return isinstance(value, numbers.Real)


def validate_descriptor(descriptor: Any) -> ValidationResult:
    """Check that ``descriptor`` is 128 finite real numbers.

    Element types are checked first, then length, then finiteness, so a short
    vector holding NaN is reported as ``invalid_length``.
    """
    if isinstance(descriptor, np.ndarray):
        if descriptor.ndim != 1 or not np.issubdtype(descriptor.dtype, np.number):
            return ValidationResult(RejectionReason.NOT_NUMERIC)
        if np.issubdtype(descriptor.dtype, np.complexfloating):
            return ValidationResult(RejectionReason.NOT_NUMERIC)
        if descriptor.shape[0] != DESCRIPTOR_LENGTH:
            return ValidationResult(RejectionReason.INVALID_LENGTH)
        if not np.isfinite(descriptor).all():
            return ValidationResult(RejectionReason.INVALID_VALUE)
        return ValidationResult()

    if isinstance(descriptor, str | bytes) or not isinstance(descriptor, Sequence):
        return ValidationResult(RejectionReason.NOT_NUMERIC)
    if not all(_is_real_number(value) for value in descriptor):
        return ValidationResult(RejectionReason.NOT_NUMERIC)
    if len(descriptor) != DESCRIPTOR_LENGTH:
        return ValidationResult(RejectionReason.INVALID_LENGTH)
    if not all(math.isfinite(value) for value in descriptor):
        return ValidationResult(RejectionReason.INVALID_VALUE)
    return ValidationResult()


def as_embedding(descriptor: Any) -> NDArray[np.float64]:
    """Validate ``descriptor`` and return it as a float64 vector.

    Raises:
        DescriptorValidationError: If the descriptor is rejected.
    """
    result = validate_descriptor(descriptor)
    if result.reason is not None:
        raise DescriptorValidationError(result.reason)
    return np.asarray(descriptor, dtype=np.float64)


def distances_to(matrix: NDArray[np.float64], probe: NDArray[np.float64]) -> NDArray[np.float64]:
    """Return the Euclidean distance from each row of ``matrix`` to ``probe``.

    Each row and the probe are divided by a power of two near the pair's
    largest magnitude before subtracting. The division is exact and keeps the
    squares finite for any finite input. Distances beyond the largest float
    saturate at it.
    """
    peaks = np.maximum(np.max(np.abs(matrix), axis=1, initial=0.0), np.max(np.abs(probe), initial=0.0))
    _, exponents = np.frexp(peaks)
    scales = np.ldexp(1.0, exponents - 1)[:, np.newaxis]
    diff = matrix / scales - probe / scales
    with np.errstate(over="ignore"):
        distances = np.sqrt(np.sum(diff**2, axis=1)) * scales[:, 0]
    return np.minimum(distances, _MAX_FLOAT)


def euclidean_distance(a: Sequence[float] | NDArray[np.floating], b: Sequence[float] | NDArray[np.floating]) -> float:
    """Return the Euclidean distance between two descriptors of equal length.

    Raises:
        DimensionMismatchError: If the descriptors differ in length.
    """
    left = np.asarray(a, dtype=np.float64).reshape(-1)
    right = np.asarray(b, dtype=np.float64).reshape(-1)
    if left.shape[0] != right.shape[0]:
        raise DimensionMismatchError(left.shape[0], right.shape[0])
    return float(distances_to(left[np.newaxis, :], right)[0])


def confidence_from_distance(distance: float) -> int:
    """Convert a distance to a percentage, rounding halves up.

    The value is not clamped: distances above 1 give negative confidences and
    the UI branches on the raw magnitude. Only a percentage too large for a
    float is capped, at the largest finite one.

    Raises:
        ValueError: If ``distance`` is NaN.
    """
    if math.isnan(distance):
        raise ValueError("Distance is NaN")
    percent = (1.0 - distance) * 100.0 + 0.5
    if math.isinf(percent):
        percent = math.copysign(_MAX_FLOAT, percent)
    return math.floor(percent)
