from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from .tensor import Shape4, TensorView, split_views


# Box params (cx, cy, w, h) + objectness, then one score per class.
BOX_CHANNELS = 5


@dataclass(frozen=True)
class ModelGeometry:
    """
    Fixed output layout of a YOLOv5 model.

    Each stride `s` yields a `height // s` x `width // s` grid, each cell has
    `anchors` anchors and each anchor has `5 + num_classes` channels. Scale
    outputs are stacked in stride order inside one flat buffer.
    """

    width: int = 640
    height: int = 640
    num_classes: int = 80
    strides: Tuple[int, ...] = (8, 16, 32)
    anchors: int = 3

    def __post_init__(self) -> None:
        for key in ("width", "height", "num_classes", "anchors"):
            value = getattr(self, key)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"{key} must be a positive integer")
        if not self.strides:
            raise ValueError("strides must not be empty")
        if any(isinstance(s, bool) or not isinstance(s, int) or s <= 0 for s in self.strides):
            raise ValueError("strides must be positive integers")
        if list(self.strides) != sorted(set(self.strides)):
            raise ValueError("strides must be strictly increasing")
        if self.width < self.strides[-1] or self.height < self.strides[-1]:
            raise ValueError(f"input size {self.width}x{self.height} is smaller than stride {self.strides[-1]}")

    @property
    def channels(self) -> int:
        return BOX_CHANNELS + self.num_classes

    def grid_shape(self, stride: int) -> Shape4:
        return (self.height // stride, self.width // stride, self.anchors, self.channels)

    def grid_shapes(self) -> List[Shape4]:
        return [self.grid_shape(s) for s in self.strides]

    @property
    def num_candidates(self) -> int:
        """Total anchor count across all scales (N in a 1 x N x (5 + C) output)."""
        return sum(rows * cols * anchors for rows, cols, anchors, _ in self.grid_shapes())

    @property
    def expected_element_count(self) -> int:
        return self.num_candidates * self.channels

    def views(self, buffer: np.ndarray) -> List[TensorView]:
        """
        Split a flat output buffer into one view per stride, smallest stride first.
        """

        return split_views(buffer, self.grid_shapes())
