import tempfile
import unittest
from pathlib import Path

import numpy as np
from PIL import Image

from docscan.blobs import LocalBlobStore
from docscan.errors import InvalidArgument, NotFound
from docscan.imaging import PillowImageProcessor, load_image


class LocalBlobStoreTests(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.root = Path(self.temp_dir.name)
        self.blobs = LocalBlobStore()

    def test_ensure_directory_creates_intermediate_segments(self):
        target = self.root / "a" / "b" / "c"

        self.blobs.ensure_directory(str(target))
        self.blobs.ensure_directory(str(target))

        self.assertTrue(target.is_dir())

    def test_move_transfers_blob(self):
        src = self.root / "staging" / "doc.jpg"
        self.blobs.write_bytes(str(src), b"12345")
        dest = self.root / "managed" / "doc.jpg"

        self.blobs.move(str(src), str(dest))

        self.assertFalse(self.blobs.exists(str(src)))
        self.assertTrue(self.blobs.exists(str(dest)))
        self.assertEqual(self.blobs.stat(str(dest)).size, 5)
        self.assertEqual(self.blobs.read_bytes(str(dest)), b"12345")

    def test_move_missing_source(self):
        with self.assertRaises(NotFound):
            self.blobs.move(str(self.root / "nope"), str(self.root / "dest"))

    def test_delete_is_idempotent(self):
        path = self.blobs.write_bytes(str(self.root / "x.jpg"), b"x")

        self.assertTrue(self.blobs.delete(path))
        self.assertFalse(self.blobs.delete(path))
        self.assertFalse(self.blobs.delete(None))

    def test_stat_missing(self):
        with self.assertRaises(NotFound):
            self.blobs.stat(str(self.root / "ghost.jpg"))


class PillowImageProcessorTests(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.root = Path(self.temp_dir.name)
        self.images = PillowImageProcessor()

    def _source(self, size=(300, 200), mode="RGB"):
        path = self.root / f"src_{mode}.png"
        Image.new(mode, size).save(path)
        return str(path)

    def test_normalize_scales_to_target_width(self):
        out = self.images.normalize(self._source((300, 200)), str(self.root / "out" / "full.jpg"), target_width=600)

        with Image.open(out) as img:
            self.assertEqual(img.format, "JPEG")
            self.assertEqual(img.size, (600, 400))

    def test_thumbnail_has_fixed_box(self):
        out = self.images.thumbnail(self._source((900, 300)), str(self.root / "thumb.jpg"))

        with Image.open(out) as img:
            self.assertEqual(img.size, (200, 300))

    def test_transparent_input_is_flattened(self):
        out = self.images.normalize(self._source(mode="RGBA"), str(self.root / "flat.jpg"), target_width=100)

        with Image.open(out) as img:
            self.assertEqual(img.mode, "RGB")

    def test_enhance_grayscale(self):
        out = self.images.enhance(self._source(), str(self.root / "enhanced.jpg"), grayscale=True)

        with Image.open(out) as img:
            self.assertEqual(img.size, (300, 200))
            r, g, b = img.convert("RGB").getpixel((10, 10))
            self.assertEqual(r, g)
            self.assertEqual(g, b)

    def test_load_image_from_arrays(self):
        gray = np.zeros((20, 10), dtype=np.uint8)
        batch = np.ones((1, 20, 10, 4), dtype=np.float32)

        self.assertEqual(load_image(gray).size, (10, 20))
        img = load_image(batch)
        self.assertEqual(img.mode, "RGB")
        self.assertEqual(img.getpixel((0, 0)), (255, 255, 255))

    def test_load_image_rejects_bad_input(self):
        with self.assertRaises(InvalidArgument):
            load_image(None)
        with self.assertRaises(InvalidArgument):
            load_image(str(self.root / "missing.png"))
        with self.assertRaises(InvalidArgument):
            load_image(np.zeros(5))


if __name__ == "__main__":
    unittest.main()
