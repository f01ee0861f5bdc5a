"""Error taxonomy for face enrollment and matching.

Every error carries a stable ``kind`` so callers can branch on the failure
class instead of inferring it from a generic negative result.
"""

from __future__ import annotations

from enum import StrEnum


class RejectionReason(StrEnum):
    NOT_NUMERIC = "not_numeric"
    INVALID_LENGTH = "invalid_length"
    INVALID_VALUE = "invalid_value"


class CaptureFailure(StrEnum):
    NO_FACE = "no_face"
    MULTIPLE_FACES = "multiple_faces"
    TIMEOUT = "timeout"


class FaceGateError(Exception):
    """Base class for all face gate errors."""

    kind: str = "face_gate_error"

    @property
    def reason(self) -> str | None:
        return None


class DescriptorValidationError(FaceGateError, ValueError):
    """A descriptor failed validation before any storage or matching work."""

    kind = "validation_error"

    def __init__(self, reason: RejectionReason, message: str | None = None) -> None:
        self.rejection = reason
        super().__init__(message or f"Invalid face descriptor ({reason})")

    @property
    def reason(self) -> str:
        return self.rejection.value


class InvalidProbeError(DescriptorValidationError):
    """The probe handed to the matcher is not a valid descriptor."""

    kind = "invalid_probe"


class DimensionMismatchError(FaceGateError, ValueError):
    """Two descriptors of different length were compared."""

    kind = "dimension_mismatch"

    def __init__(self, left: int, right: int) -> None:
        self.left = left
        self.right = right
        super().__init__(f"Descriptor lengths differ: {left} != {right}")


class IdentityNotFoundError(FaceGateError, LookupError):
    kind = "not_found"

    def __init__(self, identity_id: int) -> None:
        self.identity_id = identity_id
        super().__init__(f"User not found: {identity_id}")


class CaptureError(FaceGateError):
    """Raised by the capture collaborator; surfaced to callers unchanged."""

    kind = "capture_error"

    _MESSAGES = {
        CaptureFailure.NO_FACE: "No face detected. Please position your face in the frame.",
        CaptureFailure.MULTIPLE_FACES: "Multiple faces detected. Please ensure only one person is in frame.",
        CaptureFailure.TIMEOUT: "Face detection timed out.",
    }

    def __init__(self, failure: CaptureFailure) -> None:
        self.failure = failure
        super().__init__(self._MESSAGES[failure])

    @property
    def reason(self) -> str:
        return self.failure.value


class StorageError(FaceGateError):
    kind = "storage_error"
