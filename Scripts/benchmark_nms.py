from __future__ import annotations

import argparse
import statistics
import time
from dataclasses import dataclass
from typing import List

import numpy as np

from yolov5_kit import COCO_LABELS, ModelGeometry, YoloV5PostConfig, YoloV5Postprocessor


@dataclass(frozen=True)
class TimingSummary:
    n: int
    mean_ms: float
    p50_ms: float
    p90_ms: float
    p95_ms: float


def _percentile(sorted_values: List[float], q: float) -> float:
    if not sorted_values:
        raise ValueError("No values provided.")
    if q < 0.0 or q > 100.0:
        raise ValueError("q must be in [0, 100].")
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    # Linear interpolation between closest ranks.
    pos = (q / 100.0) * (len(sorted_values) - 1)
    lo = int(np.floor(pos))
    hi = int(np.ceil(pos))
    if lo == hi:
        return float(sorted_values[lo])
    t = pos - lo
    return float(sorted_values[lo] * (1.0 - t) + sorted_values[hi] * t)


def _summarize_ms(values_s: List[float]) -> TimingSummary:
    ms_sorted = sorted(v * 1000.0 for v in values_s)
    return TimingSummary(
        n=len(ms_sorted),
        mean_ms=float(statistics.fmean(ms_sorted)) if ms_sorted else 0.0,
        p50_ms=_percentile(ms_sorted, 50.0) if ms_sorted else 0.0,
        p90_ms=_percentile(ms_sorted, 90.0) if ms_sorted else 0.0,
        p95_ms=_percentile(ms_sorted, 95.0) if ms_sorted else 0.0,
    )


def _format_summary(label: str, s: TimingSummary) -> str:
    return (
        f"{label}: n={s.n} mean={s.mean_ms:.3f}ms p50={s.p50_ms:.3f}ms "
        f"p90={s.p90_ms:.3f}ms p95={s.p95_ms:.3f}ms"
    )


def _synthetic_output(geometry: ModelGeometry, positive_rate: float, seed: int) -> np.ndarray:
    """
    Random (1, N, 5 + C) output where roughly `positive_rate` of the anchors
    have objectness above any sane threshold.
    """

    rng = np.random.default_rng(seed)
    n = geometry.num_candidates
    out = np.empty((1, n, geometry.channels), dtype=np.float32)
    out[0, :, 0:2] = rng.uniform(0.05, 0.95, size=(n, 2))
    out[0, :, 2:4] = rng.uniform(0.01, 0.2, size=(n, 2))
    out[0, :, 4] = np.where(rng.uniform(size=n) < positive_rate, rng.uniform(0.5, 1.0, size=n), 0.01)
    out[0, :, 5:] = rng.uniform(0.0, 1.0, size=(n, geometry.num_classes))
    return out


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Benchmark YOLOv5 decode latency with NMS vs decode-only, on a synthetic output tensor."
    )
    parser.add_argument("--imgsz", type=int, default=640, help="Model input size (square).")
    parser.add_argument("--min-score", type=float, default=0.4, help="Objectness threshold (pre-NMS).")
    parser.add_argument("--max-iou", type=float, default=0.5, help="IoU threshold for NMS.")
    parser.add_argument(
        "--positive-rate",
        type=float,
        default=0.01,
        help="Fraction of anchors given a high objectness (controls candidate count).",
    )
    parser.add_argument("--seed", type=int, default=0, help="RNG seed for the synthetic tensor.")
    parser.add_argument("--warmup", type=int, default=5, help="Iterations to run but not record.")
    parser.add_argument("--repeats", type=int, default=50, help="Recorded iterations.")
    args = parser.parse_args()

    if args.imgsz < 32:
        raise ValueError("--imgsz must be >= 32")
    if not 0.0 <= args.positive_rate <= 1.0:
        raise ValueError("--positive-rate must be in [0, 1]")
    if args.warmup < 0:
        raise ValueError("--warmup must be >= 0")
    if args.repeats < 1:
        raise ValueError("--repeats must be >= 1")

    geometry = ModelGeometry(width=int(args.imgsz), height=int(args.imgsz), num_classes=len(COCO_LABELS))
    post = YoloV5Postprocessor(
        COCO_LABELS,
        geometry=geometry,
        cfg=YoloV5PostConfig(min_score=float(args.min_score), max_iou=float(args.max_iou)),
    )
    output = _synthetic_output(geometry, float(args.positive_rate), int(args.seed))

    t_decode: List[float] = []
    t_full: List[float] = []
    n_candidates = 0
    n_kept = 0
    for it in range(int(args.warmup) + int(args.repeats)):
        t0 = time.perf_counter()
        candidates = post.candidates(output)
        t1 = time.perf_counter()
        kept = post.decode(output)
        t2 = time.perf_counter()

        if it < int(args.warmup):
            continue
        t_decode.append(t1 - t0)
        t_full.append(t2 - t1)
        n_candidates = len(candidates)
        n_kept = len(kept)

    print(_format_summary("decode_only", _summarize_ms(t_decode)))
    print(_format_summary("decode_with_nms", _summarize_ms(t_full)))
    print(f"anchors={geometry.num_candidates} candidates={n_candidates} kept={n_kept} repeats={len(t_full)}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
