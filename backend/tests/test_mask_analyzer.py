import unittest

import numpy as np

from mockup.domain.models import MaskBounds, PixelBuffer
from mockup.services.mask_analyzer import bounds, mask_alpha, qualifying_mask


def _mask(w, h, fill=(0, 0, 0, 0)):
    arr = np.zeros((h, w, 4), dtype=np.uint8)
    arr[...] = fill
    return arr


class TestMaskBounds(unittest.TestCase):
    def test_single_block(self):
        arr = _mask(10, 8)
        arr[2:5, 3:7] = (255, 255, 255, 255)  # rows 2..4, cols 3..6

        b = bounds(PixelBuffer(arr))
        self.assertEqual(b, MaskBounds(left=3, top=2, right=6, bottom=4))
        self.assertEqual((b.width, b.height), (4, 3))

    def test_disconnected_blobs_share_one_box(self):
        arr = _mask(12, 12)
        arr[1, 1] = (255, 255, 255, 255)
        arr[9, 10] = (200, 0, 0, 200)

        b = bounds(PixelBuffer(arr))
        self.assertEqual(b, MaskBounds(left=1, top=1, right=10, bottom=9))

    def test_transparent_mask_returns_inverted_box(self):
        b = bounds(PixelBuffer(_mask(7, 5)))
        self.assertEqual(b, MaskBounds(left=7, top=5, right=0, bottom=0))
        self.assertTrue(b.is_empty)
        self.assertEqual(b.width, 0)

    def test_red_without_alpha_does_not_qualify(self):
        arr = _mask(6, 6)
        arr[0, 0] = (255, 0, 0, 100)  # red but mostly transparent
        arr[3, 3] = (255, 0, 0, 255)
        arr[5, 5] = (100, 0, 0, 255)  # opaque but dark

        b = bounds(PixelBuffer(arr))
        self.assertEqual(b, MaskBounds(left=3, top=3, right=3, bottom=3))

    def test_threshold_is_strict(self):
        arr = _mask(4, 4)
        arr[1, 1] = (128, 0, 0, 255)
        arr[2, 2] = (255, 0, 0, 128)
        self.assertFalse(qualifying_mask(PixelBuffer(arr)).any())

    def test_box_is_minimal(self):
        rng = np.random.default_rng(3)
        arr = rng.integers(0, 256, size=(20, 30, 4), dtype=np.uint8)
        buf = PixelBuffer(arr)
        q = qualifying_mask(buf)
        b = bounds(buf)

        ys, xs = np.nonzero(q)
        self.assertEqual((b.left, b.right), (xs.min(), xs.max()))
        self.assertEqual((b.top, b.bottom), (ys.min(), ys.max()))

    def test_mask_alpha_combines_red_and_alpha(self):
        arr = _mask(2, 1)
        arr[0, 0] = (255, 0, 0, 255)
        arr[0, 1] = (255, 0, 0, 51)
        a = mask_alpha(PixelBuffer(arr))
        self.assertAlmostEqual(float(a[0, 0]), 1.0, places=6)
        self.assertAlmostEqual(float(a[0, 1]), 0.2, places=6)


if __name__ == "__main__":
    unittest.main()
