import math
import unittest

import numpy as np

from yolov5_kit.errors import InvalidInput
from yolov5_kit.geometry import ModelGeometry
from yolov5_kit.postprocess import YoloV5PostConfig, YoloV5Postprocessor
from yolov5_kit.types import Rect


LABELS = ["cat", "dog"]


def _make_output(geometry: ModelGeometry, anchors: dict) -> np.ndarray:
    """
    Build a (1, N, 5 + C) output of zeros, with `anchors` mapping
    (scale_index, row, col, anchor) -> channel values.
    """

    buf = np.zeros(geometry.expected_element_count, dtype=np.float32)
    views = geometry.views(buf)
    for (scale, j, i, c), values in anchors.items():
        view = views[scale]
        _, d1, d2, d3 = view.shape
        start = view.offset + ((j * d1 + i) * d2 + c) * d3
        buf[start:start + len(values)] = values
    return buf.reshape(1, geometry.num_candidates, geometry.channels)


class TestYoloV5Decode(unittest.TestCase):
    def setUp(self) -> None:
        self.geometry = ModelGeometry(width=64, height=64, num_classes=2)
        self.post = YoloV5Postprocessor(LABELS, geometry=self.geometry)

    def test_single_cell_single_anchor(self) -> None:
        geometry = ModelGeometry(width=32, height=32, num_classes=2, strides=(32,), anchors=1)
        post = YoloV5Postprocessor(LABELS, geometry=geometry, cfg=YoloV5PostConfig(min_score=0.4))
        raw = np.array([0.5, 0.5, 0.2, 0.2, 0.9, 0.1, 0.05], dtype=np.float32)

        dets = post.decode(raw)
        self.assertEqual(len(dets), 1)
        det = dets[0]
        self.assertEqual(det.class_id, 0)
        self.assertEqual(det.label, "cat")
        self.assertAlmostEqual(det.score, 0.9, places=6)
        for got, want in zip(det.rect.as_xywh(), (0.4, 0.4, 0.2, 0.2)):
            self.assertAlmostEqual(got, want, places=6)

    def test_all_below_threshold_is_empty(self) -> None:
        output = _make_output(self.geometry, {(0, 1, 1, 0): [0.5, 0.5, 0.1, 0.1, 0.39, 1.0, 0.0]})
        self.assertEqual(self.post.decode(output), [])
        self.assertEqual(self.post.decode(np.zeros_like(output)), [])

    def test_vertical_axis_is_flipped(self) -> None:
        output = _make_output(self.geometry, {(1, 0, 0, 0): [0.3, 0.2, 0.1, 0.2, 0.8, 0.0, 1.0]})
        (det,) = self.post.decode(output)
        self.assertEqual(det.label, "dog")
        self.assertAlmostEqual(det.rect.x, 0.25, places=6)
        self.assertAlmostEqual(det.rect.y, 0.7, places=6)
        self.assertAlmostEqual(det.rect.width, 0.1, places=6)
        self.assertAlmostEqual(det.rect.height, 0.2, places=6)

    def test_class_ties_pick_lowest_index(self) -> None:
        output = _make_output(self.geometry, {(0, 0, 0, 0): [0.5, 0.5, 0.1, 0.1, 0.9, 0.7, 0.7]})
        (det,) = self.post.decode(output)
        self.assertEqual(det.class_id, 0)

    def test_candidates_follow_stride_then_grid_order(self) -> None:
        output = _make_output(
            self.geometry,
            {
                (2, 1, 1, 2): [0.9, 0.9, 0.05, 0.05, 0.5, 1.0, 0.0],
                (0, 3, 2, 1): [0.5, 0.5, 0.05, 0.05, 0.6, 1.0, 0.0],
                (0, 0, 7, 0): [0.1, 0.1, 0.05, 0.05, 0.7, 1.0, 0.0],
            },
        )
        scores = [round(c.score, 3) for c in self.post.candidates(output)]
        self.assertEqual(scores, [0.7, 0.6, 0.5])

    def test_nms_runs_across_scales_and_classes(self) -> None:
        box = [0.5, 0.5, 0.2, 0.2]
        output = _make_output(
            self.geometry,
            {
                (0, 2, 2, 0): box + [0.6, 1.0, 0.0],
                (2, 0, 1, 1): box + [0.9, 0.0, 1.0],
                (1, 0, 0, 0): [0.1, 0.9, 0.1, 0.1, 0.5, 1.0, 0.0],
            },
        )
        dets = self.post.decode(output)
        self.assertEqual([d.label for d in dets], ["dog", "cat"])
        self.assertAlmostEqual(dets[0].score, 0.9, places=6)
        self.assertAlmostEqual(dets[1].score, 0.5, places=6)

    def test_transform_is_applied_before_nms(self) -> None:
        output = _make_output(self.geometry, {(0, 0, 0, 0): [0.5, 0.5, 0.2, 0.2, 0.9, 1.0, 0.0]})
        seen = []

        def transform(rect: Rect) -> Rect:
            seen.append(rect)
            return Rect(rect.x / 2, rect.y / 2, rect.width / 2, rect.height / 2)

        (det,) = self.post.decode(output, transform)
        self.assertEqual(len(seen), 1)
        self.assertAlmostEqual(det.rect.x, 0.2, places=6)
        self.assertAlmostEqual(det.rect.width, 0.1, places=6)

    def test_nan_objectness_does_not_raise(self) -> None:
        output = _make_output(self.geometry, {(0, 0, 0, 0): [0.5, 0.5, 0.2, 0.2, np.nan, 1.0, 0.0]})
        candidates = self.post.candidates(output)
        self.assertEqual(len(candidates), 1)
        self.assertTrue(math.isnan(candidates[0].score))
        self.assertEqual(len(self.post.decode(output)), 1)

    def test_accepts_list_with_one_output(self) -> None:
        output = _make_output(self.geometry, {(0, 0, 0, 0): [0.5, 0.5, 0.2, 0.2, 0.9, 1.0, 0.0]})
        self.assertEqual(len(self.post([output])), 1)
        self.assertEqual(len(self.post(output[0])), 1)

    def test_accepts_plain_list_of_floats(self) -> None:
        geometry = ModelGeometry(width=32, height=32, num_classes=2, strides=(32,), anchors=1)
        post = YoloV5Postprocessor(LABELS, geometry=geometry)
        values = [0.5, 0.5, 0.2, 0.2, 0.9, 0.1, 0.05]

        from_list = post.decode(values)
        from_tuple = post.decode(tuple(values))
        from_array = post.decode(np.array(values, dtype=np.float32))
        self.assertEqual(len(from_list), 1)
        self.assertEqual(from_list, from_array)
        self.assertEqual(from_tuple, from_array)
        self.assertEqual(from_list[0].label, "cat")

    def test_wrong_feature_count(self) -> None:
        output = _make_output(self.geometry, {})
        with self.assertRaises(InvalidInput):
            self.post.decode([output, output])
        with self.assertRaises(InvalidInput):
            self.post.decode([])

    def test_wrong_element_count(self) -> None:
        output = _make_output(self.geometry, {})
        with self.assertRaises(InvalidInput):
            self.post.decode(output[:, :-1, :])
        with self.assertRaises(ValueError):
            self.post.decode(np.zeros(10, dtype=np.float32))

    def test_batch_of_two_rejected(self) -> None:
        output = _make_output(self.geometry, {})
        with self.assertRaises(InvalidInput):
            self.post.decode(np.concatenate([output, output], axis=0))

    def test_labels_must_match_class_count(self) -> None:
        with self.assertRaises(ValueError):
            YoloV5Postprocessor(["only-one"], geometry=self.geometry)
        with self.assertRaises(ValueError):
            YoloV5Postprocessor([])

    def test_default_geometry_uses_label_count(self) -> None:
        post = YoloV5Postprocessor(LABELS)
        self.assertEqual(post.geometry.num_classes, 2)
        self.assertEqual(post.geometry.width, 640)
        self.assertEqual(post.cfg.min_score, 0.4)
        self.assertEqual(post.cfg.max_iou, 0.5)

    def test_config_validation(self) -> None:
        with self.assertRaises(ValueError):
            YoloV5PostConfig(min_score=1.5)
        with self.assertRaises(ValueError):
            YoloV5PostConfig(max_iou=-0.1)
        with self.assertRaises(ValueError):
            YoloV5PostConfig(max_detections=0)


if __name__ == "__main__":
    unittest.main()
