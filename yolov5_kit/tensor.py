from __future__ import annotations

from typing import List, Sequence, Tuple

import numpy as np

from .errors import IndexOutOfRange, InvalidShape


Shape4 = Tuple[int, int, int, int]


def as_float_buffer(data) -> np.ndarray:
    """
    Return `data` as a flat float32 array, without copying when it already is one.
    """

    buf = np.asarray(data, dtype=np.float32)
    return buf.reshape(-1)


class TensorView:
    """
    Read-only 4-D view over a flat float32 buffer.

    The view does not own or copy the buffer. Element (j, i, c, k) lives at
    `offset + ((j * d1 + i) * d2 + c) * d3 + k`.
    """

    __slots__ = ("_buffer", "_offset", "_shape", "_count")

    def __init__(self, buffer: np.ndarray, offset: int, shape: Sequence[int]):
        if not isinstance(buffer, np.ndarray):
            raise InvalidShape(f"Expected a NumPy buffer, got {type(buffer).__name__}; see as_float_buffer()")
        if buffer.ndim != 1:
            raise InvalidShape(f"Expected a flat buffer, got shape {buffer.shape}")
        if len(shape) != 4:
            raise InvalidShape(f"Expected a 4-D shape, got {tuple(shape)}")
        dims = tuple(int(d) for d in shape)
        if any(d < 0 for d in dims):
            raise InvalidShape(f"Negative extent in shape {dims}")
        if offset < 0:
            raise InvalidShape(f"Negative offset {offset}")

        count = dims[0] * dims[1] * dims[2] * dims[3]
        if offset + count > buffer.shape[0]:
            raise InvalidShape(
                f"View of shape {dims} at offset {offset} needs {offset + count} elements, "
                f"buffer has {buffer.shape[0]}"
            )

        self._buffer = buffer
        self._offset = int(offset)
        self._shape: Shape4 = dims  # type: ignore[assignment]
        self._count = count

    @property
    def shape(self) -> Shape4:
        return self._shape

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def element_count(self) -> int:
        return self._count

    @property
    def end(self) -> int:
        """Buffer position right after the last element of this view."""
        return self._offset + self._count

    def get(self, j: int, i: int, c: int, k: int) -> float:
        d0, d1, d2, d3 = self._shape
        for name, idx, dim in (("j", j, d0), ("i", i, d1), ("c", c, d2), ("k", k, d3)):
            if idx < 0 or idx >= dim:
                raise IndexOutOfRange(f"Index {name}={idx} out of range for dimension of size {dim}")
        return float(self._buffer[self._offset + ((j * d1 + i) * d2 + c) * d3 + k])

    def __getitem__(self, index: Tuple[int, int, int, int]) -> float:
        if len(index) != 4:
            raise IndexOutOfRange(f"Expected 4 indices, got {len(index)}")
        return self.get(*index)

    def as_array(self) -> np.ndarray:
        """
        Zero-copy, read-only ndarray of this view with shape `self.shape`.
        """

        arr = self._buffer[self._offset:self.end].reshape(self._shape)
        if arr.flags.writeable:
            arr = arr.view()
            arr.flags.writeable = False
        return arr

    def __repr__(self) -> str:
        return f"TensorView(offset={self._offset}, shape={self._shape})"


def split_views(buffer: np.ndarray, shapes: Sequence[Sequence[int]]) -> List[TensorView]:
    """
    Lay out views back to back: each view starts where the previous one ends.
    """

    views: List[TensorView] = []
    offset = 0
    for shape in shapes:
        view = TensorView(buffer, offset, shape)
        views.append(view)
        offset = view.end
    return views
