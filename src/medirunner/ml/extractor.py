"""Face descriptor extractor boundary.

The extractor (detector + landmark model + 128-d recognition net) is supplied
by the deployment; this package only calls it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Sequence

    import numpy as np
    from numpy.typing import NDArray


@dataclass(frozen=True)
class FaceDetection:
    """One face found in a frame.

    ``descriptor`` is the raw embedding as produced by the model, ``score`` the
    detection confidence (0.0-1.0).
    """

    descriptor: Sequence[float] | NDArray[np.floating]
    score: float


class DescriptorExtractor(Protocol):
    """Protocol for frame -> face descriptor models."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    def extract(self, frame: bytes) -> list[FaceDetection]:
        """Detect every face in an encoded video frame and describe it.

        Args:
            frame: Encoded still image (JPEG/PNG) grabbed from the camera.

        Returns:
            One detection per face found; empty when there is none.
        """
        ...
