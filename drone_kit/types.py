from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned box in normalized [0, 1] coordinates of the square model input.
    """

    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    def as_ltrb(self) -> Tuple[float, float, float, float]:
        return self.left, self.top, self.right, self.bottom

    def to_pixels(self, width: int, height: int) -> Tuple[int, int, int, int]:
        """Scale to (x1, y1, x2, y2) pixel coordinates of a width x height image."""
        return (
            int(round(self.left * width)),
            int(round(self.top * height)),
            int(round(self.right * width)),
            int(round(self.bottom * height)),
        )


@dataclass(frozen=True)
class Detection:
    """
    A single decoded detection. Immutable once created by the decoder.
    """

    box: BoundingBox
    confidence: float

    def as_ltrb(self) -> Tuple[float, float, float, float]:
        return self.box.as_ltrb()
