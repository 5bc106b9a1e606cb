from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .geometry import ModelGeometry
from .letterbox import AspectMode
from .metadata import COCO_LABELS, load_labels
from .postprocess import YoloV5PostConfig, YoloV5Postprocessor


@dataclass(frozen=True)
class DetectorProfile:
    schema_version: int = 1
    input_width: int = 640
    input_height: int = 640
    min_score: float = 0.4
    max_iou: float = 0.5
    max_detections: Optional[int] = None
    labels_path: Optional[str] = None
    aspect_mode: AspectMode = AspectMode.ASPECT_FIT

    def __post_init__(self) -> None:
        if self.schema_version != 1:
            raise ValueError("detector profile schema_version must be 1")
        if self.input_width <= 0 or self.input_height <= 0:
            raise ValueError("input_width and input_height must be > 0")
        if not 0.0 <= self.min_score <= 1.0:
            raise ValueError("min_score must be in [0, 1]")
        if not 0.0 <= self.max_iou <= 1.0:
            raise ValueError("max_iou must be in [0, 1]")
        if self.max_detections is not None and self.max_detections <= 0:
            raise ValueError("max_detections must be > 0 if provided")


def _require_number(payload: Dict[str, Any], key: str) -> float:
    if key not in payload:
        raise ValueError(f"Missing required key: {key}")
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _require_int(payload: Dict[str, Any], key: str) -> int:
    if key not in payload:
        raise ValueError(f"Missing required key: {key}")
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def load_detector_profile(path: Path) -> DetectorProfile:
    if not path.exists():
        raise FileNotFoundError(f"Detector profile not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid detector profile JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Detector profile must be a JSON object")

    allowed = {
        "schema_version",
        "input_width",
        "input_height",
        "min_score",
        "max_iou",
        "max_detections",
        "labels_path",
        "aspect_mode",
    }
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown detector profile keys: {unknown}")

    defaults = DetectorProfile()
    schema_version = _require_int(payload, "schema_version")
    input_width = _require_int(payload, "input_width") if "input_width" in payload else defaults.input_width
    input_height = _require_int(payload, "input_height") if "input_height" in payload else defaults.input_height
    min_score = _require_number(payload, "min_score") if "min_score" in payload else defaults.min_score
    max_iou = _require_number(payload, "max_iou") if "max_iou" in payload else defaults.max_iou

    max_detections = payload.get("max_detections")
    if max_detections is not None:
        max_detections = _require_int(payload, "max_detections")

    labels_path = payload.get("labels_path")
    if labels_path is not None and not isinstance(labels_path, str):
        raise ValueError("labels_path must be a string if provided")

    try:
        aspect_mode = AspectMode(payload.get("aspect_mode", defaults.aspect_mode.value))
    except ValueError as exc:
        choices = [m.value for m in AspectMode]
        raise ValueError(f"aspect_mode must be one of {choices}") from exc

    return DetectorProfile(
        schema_version=schema_version,
        input_width=input_width,
        input_height=input_height,
        min_score=min_score,
        max_iou=max_iou,
        max_detections=max_detections,
        labels_path=labels_path,
        aspect_mode=aspect_mode,
    )


def build_postprocessor(profile: DetectorProfile, base_dir: Optional[Path] = None) -> YoloV5Postprocessor:
    """
    Create a postprocessor from a profile. A relative `labels_path` resolves
    against `base_dir` (usually the profile's directory); no path means COCO labels.
    """

    if profile.labels_path is None:
        labels = list(COCO_LABELS)
    else:
        labels_path = Path(profile.labels_path)
        if not labels_path.is_absolute() and base_dir is not None:
            labels_path = base_dir / labels_path
        labels = load_labels(labels_path)

    geometry = ModelGeometry(width=profile.input_width, height=profile.input_height, num_classes=len(labels))
    cfg = YoloV5PostConfig(
        min_score=profile.min_score,
        max_iou=profile.max_iou,
        max_detections=profile.max_detections,
    )
    return YoloV5Postprocessor(labels, geometry=geometry, cfg=cfg)
