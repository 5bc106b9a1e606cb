from __future__ import annotations

import argparse
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional

import numpy as np

from yolov5_kit import AspectMode, DetectorProfile, RectTransform, build_postprocessor, load_detector_profile


def main() -> int:
    parser = argparse.ArgumentParser(description="Decode a saved YOLOv5 output tensor (.npy) into detections.")
    parser.add_argument("tensor", help="Path to a .npy file holding the raw model output (1, N, 5 + C).")
    parser.add_argument("--config", default=None, help="Detector profile JSON (thresholds, input size, labels).")
    parser.add_argument("--min-score", type=float, default=None, help="Override the profile's objectness threshold.")
    parser.add_argument("--max-iou", type=float, default=None, help="Override the profile's NMS IoU threshold.")
    parser.add_argument(
        "--image-size",
        default=None,
        help='Source image size as "WIDTHxHEIGHT"; maps boxes back through the profile aspect mode.',
    )
    parser.add_argument("--json", action="store_true", help="Print detections as JSON instead of text.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")

    base_dir: Optional[Path] = None
    if args.config:
        config_path = Path(args.config)
        profile = load_detector_profile(config_path)
        base_dir = config_path.parent
    else:
        profile = DetectorProfile()

    overrides = {}
    if args.min_score is not None:
        overrides["min_score"] = float(args.min_score)
    if args.max_iou is not None:
        overrides["max_iou"] = float(args.max_iou)
    if overrides:
        profile = replace(profile, **overrides)

    post = build_postprocessor(profile, base_dir=base_dir)

    transform = None
    if args.image_size:
        try:
            img_w, img_h = (int(v) for v in str(args.image_size).lower().split("x"))
        except ValueError as exc:
            raise ValueError('--image-size must look like "1280x720"') from exc
        transform = RectTransform.for_mode(
            (img_w, img_h),
            (post.geometry.width, post.geometry.height),
            AspectMode(profile.aspect_mode),
        )

    tensor_path = Path(args.tensor)
    if not tensor_path.exists():
        raise FileNotFoundError(f"Tensor file not found: {tensor_path}")
    output = np.load(tensor_path)

    detections = post.decode(output, transform)

    if args.json:
        payload = [
            {
                "rect": list(det.rect.as_xywh()),
                "label": det.label,
                "class_id": det.class_id,
                "score": det.score,
            }
            for det in detections
        ]
        print(json.dumps(payload, indent=2))
    else:
        for det in detections:
            x, y, w, h = det.rect.as_xywh()
            print(f"{det.label:<16} {det.score:.3f}  x={x:.4f} y={y:.4f} w={w:.4f} h={h:.4f}")
        print(f"detections={len(detections)}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
