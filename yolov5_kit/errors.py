from __future__ import annotations


class YoloKitError(Exception):
    """
    Base class for post-processing errors raised by yolov5_kit.
    """


class InvalidInput(YoloKitError, ValueError):
    """
    The model output does not match the configured geometry
    (wrong feature count, batch size or element count).
    """


class InvalidShape(YoloKitError, ValueError):
    """
    A tensor view whose extents do not fit inside its buffer.
    """


class IndexOutOfRange(YoloKitError, IndexError):
    """
    Tensor indexing outside the view's shape. Treat as a bug, not as bad input.
    """
