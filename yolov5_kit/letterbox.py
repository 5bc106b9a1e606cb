from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple

import numpy as np

from .types import Rect


class AspectMode(str, Enum):
    """
    How a source image is fitted into the model's fixed input size.

    SCALE_TO_FIT stretches, ASPECT_FIT letterboxes (pads), ASPECT_FILL center crops.
    """

    SCALE_TO_FIT = "scale_to_fit"
    ASPECT_FIT = "aspect_fit"
    ASPECT_FILL = "aspect_fill"


def letterbox(
    image: np.ndarray,
    new_shape: Tuple[int, int] = (640, 640),
    color: Tuple[int, int, int] = (114, 114, 114),
    mode: AspectMode = AspectMode.ASPECT_FIT,
    scaleup: bool = True,
):
    """
    Fit an image into `new_shape` (width, height) according to `mode`.

    Returns:
        fitted: resized + padded (or cropped) image of exactly `new_shape`
        ratio: (w_ratio, h_ratio)
        pad: (dw, dh) offset of the resized image inside the output, left/top.
             Negative when the image was cropped.
    """
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for letterbox(). Install with `pip install opencv-python`.") from e

    if isinstance(new_shape, int):
        new_shape = (new_shape, new_shape)

    h, w = image.shape[:2]
    new_w, new_h = new_shape
    ratio, (dw, dh) = fit_params((w, h), (new_w, new_h), mode, scaleup=scaleup)
    resized_w, resized_h = int(round(w * ratio[0])), int(round(h * ratio[1]))

    if (w, h) != (resized_w, resized_h):
        image = cv2.resize(image, (resized_w, resized_h), interpolation=cv2.INTER_LINEAR)

    if mode == AspectMode.ASPECT_FILL and (dw < 0 or dh < 0):
        left = int(round(-dw))
        top = int(round(-dh))
        return image[top:top + new_h, left:left + new_w], ratio, (dw, dh)

    top, bottom = int(round(dh - 0.1)), int(round(dh + 0.1))
    left, right = int(round(dw - 0.1)), int(round(dw + 0.1))
    padded = cv2.copyMakeBorder(image, top, bottom, left, right, cv2.BORDER_CONSTANT, value=color)

    return padded, ratio, (dw, dh)


def fit_params(
    image_size: Tuple[int, int],
    model_size: Tuple[int, int],
    mode: AspectMode,
    *,
    scaleup: bool = True,
) -> Tuple[Tuple[float, float], Tuple[float, float]]:
    """
    Scale ratio and left/top offset used to place an image of `image_size`
    inside `model_size`, both given as (width, height).
    """

    w, h = image_size
    new_w, new_h = model_size
    if w <= 0 or h <= 0 or new_w <= 0 or new_h <= 0:
        raise ValueError(f"Sizes must be positive, got image {image_size} and model {model_size}")

    mode = AspectMode(mode)
    if mode == AspectMode.SCALE_TO_FIT:
        return (new_w / w, new_h / h), (0.0, 0.0)

    if mode == AspectMode.ASPECT_FIT:
        r = min(new_w / w, new_h / h)
        if not scaleup:  # only scale down
            r = min(r, 1.0)
    else:
        r = max(new_w / w, new_h / h)

    resized_w, resized_h = int(round(w * r)), int(round(h * r))
    return (r, r), ((new_w - resized_w) / 2, (new_h - resized_h) / 2)


@dataclass(frozen=True)
class RectTransform:
    """
    Maps a normalized rect in model-input space back to a normalized rect in
    source-image space, undoing the resize and pad/crop applied before inference.

    Instances are callables and can be passed as the `transform` of
    `YoloV5Postprocessor.decode`.
    """

    image_size: Tuple[int, int]
    model_size: Tuple[int, int]
    ratio: Tuple[float, float] = (1.0, 1.0)
    pad: Tuple[float, float] = (0.0, 0.0)

    @classmethod
    def for_mode(
        cls,
        image_size: Tuple[int, int],
        model_size: Tuple[int, int],
        mode: AspectMode = AspectMode.ASPECT_FIT,
    ) -> "RectTransform":
        ratio, pad = fit_params(image_size, model_size, mode)
        return cls(image_size=image_size, model_size=model_size, ratio=ratio, pad=pad)

    @classmethod
    def from_letterbox(
        cls,
        orig_size: Tuple[int, int],
        model_size: Tuple[int, int],
        ratio: Tuple[float, float],
        pad: Tuple[float, float],
    ) -> "RectTransform":
        return cls(image_size=orig_size, model_size=model_size, ratio=ratio, pad=pad)

    def __call__(self, rect: Rect) -> Rect:
        img_w, img_h = self.image_size
        model_w, model_h = self.model_size
        rw, rh = self.ratio
        dw, dh = self.pad

        x = (rect.x * model_w - dw) / rw / img_w
        y = (rect.y * model_h - dh) / rh / img_h
        w = rect.width * model_w / rw / img_w
        h = rect.height * model_h / rh / img_h
        return Rect(x, y, w, h)
