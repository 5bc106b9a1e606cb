from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class Rect:
    """
    Axis-aligned rectangle in normalized [0, 1] image coordinates.

    (x, y) is the top-left corner, y grows downward.
    """

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_center(cls, cx: float, cy: float, width: float, height: float) -> "Rect":
        return cls(cx - 0.5 * width, cy - 0.5 * height, width, height)

    @property
    def x2(self) -> float:
        return self.x + self.width

    @property
    def y2(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return (self.x2 - self.x) * (self.y2 - self.y)

    def as_xywh(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.width, self.height

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.x2, self.y2


@dataclass(frozen=True)
class Detection:
    """
    One detected object: normalized rect, class label and objectness score.
    """

    rect: Rect
    label: str
    score: float
    class_id: Optional[int] = None


# Decode emits candidates; NMS survivors are returned unchanged as detections.
Candidate = Detection
