from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, List, Tuple

import numpy as np

from .letterbox import AspectMode, RectTransform, letterbox
from .postprocess import YoloV5Postprocessor
from .types import Detection


InferFn = Callable[[np.ndarray], Any]


@dataclass(frozen=True)
class PreprocessResult:
    blob: np.ndarray
    transform: RectTransform


class YoloV5Pipeline:
    """
    Plug-and-play pipeline: preprocess (fit to model input) -> inference -> postprocess.

    Inference is whatever `infer_fn` does with an NCHW float32 blob; it must
    return the model output (one array, or a list holding one array). The
    pipeline expects BGR images (OpenCV-style) and returns detections in
    normalized source-image coordinates.
    """

    def __init__(
        self,
        infer_fn: InferFn,
        postprocessor: YoloV5Postprocessor,
        *,
        aspect_mode: AspectMode = AspectMode.ASPECT_FIT,
        color: Tuple[int, int, int] = (114, 114, 114),
    ):
        self._infer_fn = infer_fn
        self.post = postprocessor
        self.aspect_mode = AspectMode(aspect_mode)
        self.color = color

    @property
    def model_size(self) -> Tuple[int, int]:
        return self.post.geometry.width, self.post.geometry.height

    def preprocess(self, image_bgr: np.ndarray) -> PreprocessResult:
        if image_bgr is None or not hasattr(image_bgr, "shape"):
            raise TypeError("image_bgr must be a NumPy array (BGR).")
        if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
            raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

        orig_h, orig_w = image_bgr.shape[:2]
        img, ratio, pad = letterbox(image_bgr, new_shape=self.model_size, color=self.color, mode=self.aspect_mode)

        # BGR -> RGB, normalize, HWC -> CHW, add batch
        blob = img[:, :, ::-1].astype(np.float32) / 255.0
        blob = np.ascontiguousarray(np.transpose(blob, (2, 0, 1))[None, ...])

        transform = RectTransform.from_letterbox((orig_w, orig_h), self.model_size, ratio, pad)
        return PreprocessResult(blob=blob, transform=transform)

    def __call__(self, image_bgr: np.ndarray) -> List[Detection]:
        prep = self.preprocess(image_bgr)
        outputs = self._infer_fn(prep.blob)
        return self.post.decode(outputs, prep.transform)
