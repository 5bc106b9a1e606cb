from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Union

import numpy as np

from .errors import InvalidInput
from .geometry import BOX_CHANNELS, ModelGeometry
from .nms import NMSConfig, nms_with_config
from .tensor import TensorView, as_float_buffer
from .types import Candidate, Detection, Rect


logger = logging.getLogger(__name__)

RectTransformFn = Callable[[Rect], Rect]
ModelOutputs = Union[np.ndarray, Sequence[np.ndarray]]


@dataclass(frozen=True)
class YoloV5PostConfig:
    """
    Thresholds for YOLOv5 post-processing.

    min_score: anchors with objectness below this are dropped before NMS.
    max_iou: a candidate overlapping a kept box by more than this is suppressed.
    max_detections: optional cap on the number of boxes NMS keeps.
    """

    min_score: float = 0.4
    max_iou: float = 0.5
    max_detections: Optional[int] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.min_score <= 1.0:
            raise ValueError("min_score must be in [0, 1]")
        if not 0.0 <= self.max_iou <= 1.0:
            raise ValueError("max_iou must be in [0, 1]")
        if self.max_detections is not None and self.max_detections <= 0:
            raise ValueError("max_detections must be > 0 if provided")

    def nms_config(self) -> NMSConfig:
        return NMSConfig(max_iou=self.max_iou, max_detections=self.max_detections)


class YoloV5Postprocessor:
    """
    Turns the raw output of a YOLOv5 model into detections.

    The model output is one float tensor equivalent to (1, N, 5 + C), where the
    stride 8, 16 and 32 grids are stacked back to back. Per anchor the channels
    are [cx, cy, w, h, objectness, class scores...], with the box already
    normalized to [0, 1] and cy measured from the bottom of the image.

    Instances only hold configuration, so one postprocessor can be shared
    between threads.
    """

    def __init__(
        self,
        labels: Sequence[str],
        geometry: Optional[ModelGeometry] = None,
        cfg: Optional[YoloV5PostConfig] = None,
    ):
        self.labels = tuple(labels)
        if not self.labels:
            raise ValueError("labels must not be empty")
        if geometry is None:
            geometry = ModelGeometry(num_classes=len(self.labels))
        if geometry.num_classes != len(self.labels):
            raise ValueError(
                f"Model has {geometry.num_classes} classes but {len(self.labels)} labels were given"
            )
        self.geometry = geometry
        self.cfg = cfg if cfg is not None else YoloV5PostConfig()

    def __call__(self, outputs: ModelOutputs, transform: Optional[RectTransformFn] = None) -> List[Detection]:
        return self.decode(outputs, transform)

    def decode(self, outputs: ModelOutputs, transform: Optional[RectTransformFn] = None) -> List[Detection]:
        """
        Decode, threshold and de-duplicate one model output.

        Args:
            outputs: the model's output tensor, or the list of outputs returned
                by an inference call (which must hold exactly one tensor).
            transform: optional mapping from model-space rects to image-space
                rects, e.g. to undo letterboxing.
        """

        candidates = self.candidates(outputs, transform)
        if not candidates:
            return []

        keep = nms_with_config(
            [c.rect for c in candidates],
            [c.score for c in candidates],
            self.cfg.nms_config(),
        )
        logger.debug("NMS kept %d of %d candidates", len(keep), len(candidates))
        return [candidates[idx] for idx in keep]

    def candidates(self, outputs: ModelOutputs, transform: Optional[RectTransformFn] = None) -> List[Candidate]:
        """
        Decode every anchor that passes the objectness threshold, across all scales.
        """

        buffer = self._flatten(outputs)
        found: List[Candidate] = []
        for view in self.geometry.views(buffer):
            found.extend(self._decode_view(view, transform))
        return found

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _flatten(self, outputs: ModelOutputs) -> np.ndarray:
        # A list of floats is a flat buffer; a list of arrays is a list of output features.
        if isinstance(outputs, (list, tuple)) and (not outputs or not np.isscalar(outputs[0])):
            if len(outputs) != 1:
                raise InvalidInput(f"YOLOv5 postprocessor expects a single output feature, got {len(outputs)}")
            outputs = outputs[0]

        p = np.asarray(outputs)
        if p.ndim == 3 and p.shape[0] != 1:
            raise InvalidInput(f"Batch > 1 is not supported (got shape {p.shape}). Pass one image at a time.")

        buffer = as_float_buffer(p)
        expected = self.geometry.expected_element_count
        if buffer.shape[0] != expected:
            raise InvalidInput(
                f"Expected {expected} values for a {self.geometry.width}x{self.geometry.height} model "
                f"with {self.geometry.num_classes} classes, got {buffer.shape[0]} (shape {p.shape})"
            )
        return buffer

    def _decode_view(self, view: TensorView, transform: Optional[RectTransformFn]) -> List[Candidate]:
        logits = view.as_array().reshape(-1, view.shape[3])  # (rows * cols * anchors, 5 + C)

        # NaN objectness is not "< min_score", so it is not rejected here.
        objectness = logits[:, 4]
        selected = logits[~(objectness < self.cfg.min_score)].astype(np.float64)
        if selected.shape[0] == 0:
            return []

        # argmax returns the first maximum, so ties go to the lowest class id.
        class_ids = np.argmax(selected[:, BOX_CHANNELS:], axis=1)
        cx = selected[:, 0]
        cy = 1.0 - selected[:, 1]
        w = selected[:, 2]
        h = selected[:, 3]
        scores = selected[:, 4]

        out: List[Candidate] = []
        for k in range(selected.shape[0]):
            rect = Rect.from_center(float(cx[k]), float(cy[k]), float(w[k]), float(h[k]))
            if transform is not None:
                rect = transform(rect)
            class_id = int(class_ids[k])
            out.append(
                Detection(rect=rect, label=self.labels[class_id], score=float(scores[k]), class_id=class_id)
            )
        logger.debug("%r: %d candidates above min_score=%.3f", view, len(out), self.cfg.min_score)
        return out
