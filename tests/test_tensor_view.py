import math
import unittest

import numpy as np

from yolov5_kit.errors import IndexOutOfRange, InvalidShape
from yolov5_kit.geometry import ModelGeometry
from yolov5_kit.tensor import TensorView, as_float_buffer, split_views


class TestTensorView(unittest.TestCase):
    def test_get_matches_row_major_layout(self) -> None:
        buf = np.arange(2 * 3 * 4 * 5 + 7, dtype=np.float32)
        view = TensorView(buf, 7, (2, 3, 4, 5))
        self.assertEqual(view.element_count, 120)
        self.assertEqual(view.get(0, 0, 0, 0), 7.0)
        self.assertEqual(view.get(1, 2, 3, 4), float(7 + ((1 * 3 + 2) * 4 + 3) * 5 + 4))
        self.assertEqual(view[1, 0, 2, 1], view.get(1, 0, 2, 1))

    def test_view_must_fit_buffer(self) -> None:
        buf = np.zeros(10, dtype=np.float32)
        TensorView(buf, 2, (1, 1, 2, 4))
        with self.assertRaises(InvalidShape):
            TensorView(buf, 3, (1, 1, 2, 4))
        with self.assertRaises(InvalidShape):
            TensorView(buf, 0, (1, 2, 3))
        with self.assertRaises(InvalidShape):
            TensorView(buf, -1, (1, 1, 1, 1))

    def test_non_array_buffer_rejected(self) -> None:
        with self.assertRaises(InvalidShape):
            TensorView([0.0] * 8, 0, (1, 1, 2, 4))
        view = TensorView(as_float_buffer([0.0] * 8), 0, (1, 1, 2, 4))
        self.assertEqual(view.element_count, 8)

    def test_index_out_of_range(self) -> None:
        view = TensorView(np.zeros(24, dtype=np.float32), 0, (2, 3, 1, 4))
        with self.assertRaises(IndexOutOfRange):
            view.get(2, 0, 0, 0)
        with self.assertRaises(IndexOutOfRange):
            view.get(0, 0, 1, 0)
        with self.assertRaises(IndexOutOfRange):
            view.get(0, -1, 0, 0)
        with self.assertRaises(IndexError):
            view.get(0, 0, 0, 4)

    def test_nan_passes_through(self) -> None:
        buf = np.array([np.nan, np.inf], dtype=np.float32)
        view = TensorView(buf, 0, (1, 1, 1, 2))
        self.assertTrue(math.isnan(view.get(0, 0, 0, 0)))
        self.assertTrue(math.isinf(view.get(0, 0, 0, 1)))

    def test_as_array_is_a_read_only_view(self) -> None:
        buf = np.arange(12, dtype=np.float32)
        view = TensorView(buf, 4, (1, 2, 1, 4))
        arr = view.as_array()
        self.assertEqual(arr.shape, (1, 2, 1, 4))
        self.assertTrue(np.shares_memory(arr, buf))
        self.assertFalse(arr.flags.writeable)
        self.assertEqual(float(arr[0, 1, 0, 3]), view.get(0, 1, 0, 3))

    def test_split_views_are_consecutive(self) -> None:
        buf = np.zeros(100, dtype=np.float32)
        views = split_views(buf, [(2, 2, 1, 5), (1, 1, 3, 5)])
        self.assertEqual([v.offset for v in views], [0, 20])
        self.assertEqual(views[1].end, 35)


class TestModelGeometry(unittest.TestCase):
    def test_default_yolov5_layout(self) -> None:
        g = ModelGeometry()
        self.assertEqual(g.channels, 85)
        self.assertEqual(g.grid_shapes(), [(80, 80, 3, 85), (40, 40, 3, 85), (20, 20, 3, 85)])
        self.assertEqual(g.num_candidates, 25200)
        self.assertEqual(g.expected_element_count, 25200 * 85)

    def test_320_model_has_6300_anchors(self) -> None:
        self.assertEqual(ModelGeometry(width=320, height=320).num_candidates, 6300)

    def test_views_follow_stride_order(self) -> None:
        g = ModelGeometry(width=64, height=32, num_classes=2)
        buf = np.zeros(g.expected_element_count, dtype=np.float32)
        v8, v16, v32 = g.views(buf)
        self.assertEqual(v8.shape, (4, 8, 3, 7))
        self.assertEqual(v16.offset, v8.element_count)
        self.assertEqual(v32.offset, v8.element_count + v16.element_count)
        self.assertEqual(v32.end, buf.shape[0])

    def test_invalid_geometry(self) -> None:
        with self.assertRaises(ValueError):
            ModelGeometry(num_classes=0)
        with self.assertRaises(ValueError):
            ModelGeometry(strides=(16, 8))
        with self.assertRaises(ValueError):
            ModelGeometry(width=16, height=640)


if __name__ == "__main__":
    unittest.main()
