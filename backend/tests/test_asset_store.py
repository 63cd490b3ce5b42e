import io
import tempfile
import threading
import unittest
from unittest import mock
from pathlib import Path

import httpx
from PIL import Image

from mockup.core.errors import DesignRejected, MissingRequiredAsset
from mockup.services.asset_store import ASSET_NAMES, AssetStore, decode_design


def _png_bytes(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class TestAssetStoreFiles(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        Image.new("RGB", (20, 10), (200, 190, 180)).save(self.root / "base.png")
        Image.new("RGBA", (10, 5), (255, 255, 255, 255)).save(self.root / "mask.png")
        self.sources = {
            "base": str(self.root / "base.png"),
            "mask": str(self.root / "mask.png"),
            "displacement": str(self.root / "disp.png"),
            "shadow": str(self.root / "shadow.png"),
        }

    def tearDown(self):
        self._tmp.cleanup()

    def test_optional_assets_recorded_as_absent(self):
        assets = AssetStore().load(self.sources)

        self.assertEqual(assets.size, (20, 10))
        self.assertIsNone(assets.displacement)
        self.assertIsNone(assets.shadow)
        self.assertEqual(set(assets.absent), {"displacement", "shadow"})
        # RGB base decodes to opaque RGBA
        self.assertEqual(tuple(assets.base.data[0, 0]), (200, 190, 180, 255))

    def test_secondary_assets_stretched_to_base_size(self):
        Image.new("RGBA", (5, 5), (0, 0, 0, 128)).save(self.root / "shadow.png")
        Image.new("L", (40, 20), 100).save(self.root / "disp.png")
        assets = AssetStore().load(self.sources)

        self.assertEqual(assets.mask.size, (20, 10))
        self.assertEqual(assets.shadow.size, (20, 10))
        self.assertEqual(assets.displacement.size, (20, 10))
        self.assertEqual(assets.absent, {})

    def test_missing_base_raises(self):
        (self.root / "base.png").unlink()
        with self.assertRaises(MissingRequiredAsset) as ctx:
            AssetStore().load(self.sources)
        self.assertEqual(ctx.exception.name, "base")

    def test_corrupt_mask_raises(self):
        (self.root / "mask.png").write_bytes(b"not an image")
        with self.assertRaises(MissingRequiredAsset) as ctx:
            AssetStore().load(self.sources)
        self.assertEqual(ctx.exception.name, "mask")

    def test_corrupt_optional_asset_is_not_fatal(self):
        (self.root / "shadow.png").write_bytes(b"garbage")
        assets = AssetStore().load(self.sources)
        self.assertIsNone(assets.shadow)
        self.assertIn("undecodable", assets.absent["shadow"])

    def test_unconfigured_optional_asset(self):
        sources = {"base": self.sources["base"], "mask": self.sources["mask"]}
        assets = AssetStore().load(sources)
        self.assertEqual(assets.absent["displacement"], "no location configured")


class TestAssetStoreUrls(unittest.TestCase):
    def test_loads_over_http_and_treats_404_as_absent(self):
        files = {
            "/assets/bag-base.png": _png_bytes(Image.new("RGB", (8, 6), (10, 20, 30))),
            "/assets/bag-mask.png": _png_bytes(Image.new("RGBA", (8, 6), (255, 255, 255, 255))),
        }

        def handler(request: httpx.Request) -> httpx.Response:
            body = files.get(request.url.path)
            if body is None:
                return httpx.Response(404)
            return httpx.Response(200, content=body)

        store = AssetStore(transport=httpx.MockTransport(handler))
        prefix = "http://cdn.example/assets/"
        assets = store.load({
            "base": prefix + "bag-base.png",
            "mask": prefix + "bag-mask.png",
            "displacement": prefix + "bag-displacement.png",
            "shadow": prefix + "bag-shadow.png",
        })

        self.assertEqual(assets.size, (8, 6))
        self.assertEqual(assets.absent, {"displacement": "not found", "shadow": "not found"})

    def test_server_error_on_required_asset(self):
        store = AssetStore(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
        with self.assertRaises(MissingRequiredAsset):
            store.load({"base": "http://cdn.example/base.png", "mask": "http://cdn.example/mask.png"})


class TestDecodeDesign(unittest.TestCase):
    def test_decodes_to_rgba(self):
        design = decode_design(_png_bytes(Image.new("P", (3, 2))))
        self.assertEqual(design.size, (3, 2))
        self.assertEqual(design.data.shape, (2, 3, 4))

    def test_rejects_non_image(self):
        with self.assertRaises(DesignRejected):
            decode_design(b"%PDF-1.4 not an image")

    def test_rejects_empty(self):
        with self.assertRaises(DesignRejected):
            decode_design(b"")


class TestOversizedImages(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        Image.new("RGB", (4, 4), (200, 190, 180)).save(self.root / "base.png")
        Image.new("RGBA", (4, 4), (255, 255, 255, 255)).save(self.root / "mask.png")
        self.large = _png_bytes(Image.new("RGBA", (20, 20), (0, 0, 0, 255)))
        patcher = mock.patch.object(Image, "MAX_IMAGE_PIXELS", 50)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        self._tmp.cleanup()

    def test_oversized_optional_asset_recorded_as_absent(self):
        (self.root / "shadow.png").write_bytes(self.large)
        assets = AssetStore().load({
            "base": str(self.root / "base.png"),
            "mask": str(self.root / "mask.png"),
            "shadow": str(self.root / "shadow.png"),
        })
        self.assertIsNone(assets.shadow)
        self.assertIn("undecodable", assets.absent["shadow"])

    def test_oversized_design_rejected(self):
        with self.assertRaises(DesignRejected):
            decode_design(self.large)


class _GatedStore(AssetStore):
    """Holds every fetch until all four have started."""

    def __init__(self):
        super().__init__()
        self.started = threading.Barrier(len(ASSET_NAMES), timeout=5)
        self.finished = []

    def _fetch(self, name, source):
        self.started.wait()
        outcome = super()._fetch(name, source)
        self.finished.append(name)
        return outcome


class TestConcurrentLoad(unittest.TestCase):
    def test_all_four_fetches_overlap_and_settle(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            Image.new("RGB", (4, 4)).save(root / "base.png")
            Image.new("RGBA", (4, 4), (255, 255, 255, 255)).save(root / "mask.png")
            store = _GatedStore()
            assets = store.load({
                "base": str(root / "base.png"),
                "mask": str(root / "mask.png"),
                "displacement": str(root / "disp.png"),
                "shadow": str(root / "shadow.png"),
            })

        # A serial loader would break the barrier on the first fetch.
        self.assertFalse(store.started.broken)
        self.assertEqual(sorted(store.finished), sorted(ASSET_NAMES))
        self.assertEqual(set(assets.absent), {"displacement", "shadow"})


if __name__ == "__main__":
    unittest.main()
