from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

import numpy as np

from .types import Rect


BoxesLike = Union[Sequence[Rect], np.ndarray]


@dataclass(frozen=True)
class NMSConfig:
    max_iou: float = 0.5
    max_detections: Optional[int] = None


def iou(a: Rect, b: Rect) -> float:
    """
    Intersection-over-union of two rects. Zero when the union is empty.
    """

    w = max(0.0, min(a.x2, b.x2) - max(a.x, b.x))
    h = max(0.0, min(a.y2, b.y2) - max(a.y, b.y))
    inter = w * h
    union = a.area + b.area - inter
    if not union > 0.0:
        return 0.0
    return inter / union


def _as_xyxy(boxes: BoxesLike) -> np.ndarray:
    if isinstance(boxes, np.ndarray):
        arr = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
        x1, y1 = arr[:, 0], arr[:, 1]
        return np.stack([x1, y1, x1 + arr[:, 2], y1 + arr[:, 3]], axis=1)
    if len(boxes) == 0:
        return np.empty((0, 4), dtype=np.float64)
    return np.array([b.as_xyxy() for b in boxes], dtype=np.float64)


def nms(
    boxes: BoxesLike,
    scores: Union[Sequence[float], np.ndarray],
    max_iou: float = 0.5,
    *,
    max_detections: Optional[int] = None,
) -> List[int]:
    """
    Greedy, class-agnostic non-max suppression.

    Boxes are `Rect`s or an (N, 4) array in xywh. Candidates are visited by
    descending score (stable, so equal scores keep input order); a candidate
    is kept when its IoU with every already kept box is <= `max_iou`.
    Returns kept indices in the order they were kept.
    """

    xyxy = _as_xyxy(boxes)
    scores_arr = np.asarray(scores, dtype=np.float64).reshape(-1)
    if xyxy.shape[0] != scores_arr.shape[0]:
        raise ValueError(f"Got {xyxy.shape[0]} boxes but {scores_arr.shape[0]} scores")
    if scores_arr.size == 0:
        return []

    x1, y1, x2, y2 = xyxy[:, 0], xyxy[:, 1], xyxy[:, 2], xyxy[:, 3]
    areas = (x2 - x1) * (y2 - y1)

    order = np.argsort(-scores_arr, kind="stable")
    keep: List[int] = []
    kept = np.empty((0,), dtype=np.intp)

    for i in order:
        if max_detections is not None and len(keep) >= max_detections:
            break
        if kept.size:
            w = np.maximum(0.0, np.minimum(x2[i], x2[kept]) - np.maximum(x1[i], x1[kept]))
            h = np.maximum(0.0, np.minimum(y2[i], y2[kept]) - np.maximum(y1[i], y1[kept]))
            inter = w * h
            union = areas[i] + areas[kept] - inter
            with np.errstate(divide="ignore", invalid="ignore"):
                overlap = np.where(union > 0.0, inter / union, 0.0)
            if not np.all(overlap <= max_iou):
                continue
        keep.append(int(i))
        kept = np.append(kept, i)

    return keep


def nms_with_config(boxes: BoxesLike, scores: Union[Sequence[float], np.ndarray], cfg: NMSConfig) -> List[int]:
    return nms(boxes, scores, cfg.max_iou, max_detections=cfg.max_detections)
