"""
YOLOv5 output decoding and non-max suppression.

Turns the flat multi-scale output tensor of a YOLOv5 model into normalized
boxes with labels and scores. Inference itself is left to the caller; the
only hard dependency is NumPy, OpenCV is needed for letterboxing.
"""

from .types import Candidate, Detection, Rect
from .errors import IndexOutOfRange, InvalidInput, InvalidShape, YoloKitError
from .tensor import TensorView, split_views
from .geometry import ModelGeometry
from .nms import NMSConfig, iou, nms
from .postprocess import YoloV5PostConfig, YoloV5Postprocessor
from .letterbox import AspectMode, RectTransform, letterbox
from .metadata import COCO_LABELS, load_labels
from .config import DetectorProfile, build_postprocessor, load_detector_profile
from .runtime import YoloV5Pipeline

__all__ = [
    "Candidate",
    "Detection",
    "Rect",
    "IndexOutOfRange",
    "InvalidInput",
    "InvalidShape",
    "YoloKitError",
    "TensorView",
    "split_views",
    "ModelGeometry",
    "NMSConfig",
    "iou",
    "nms",
    "YoloV5PostConfig",
    "YoloV5Postprocessor",
    "AspectMode",
    "RectTransform",
    "letterbox",
    "COCO_LABELS",
    "load_labels",
    "DetectorProfile",
    "build_postprocessor",
    "load_detector_profile",
    "YoloV5Pipeline",
]
