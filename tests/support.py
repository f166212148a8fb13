import tempfile
from pathlib import Path

from PIL import Image

from docscan.blobs import LocalBlobStore
from docscan.db import DocumentStore
from docscan.imaging import PillowImageProcessor


class StoreTestMixin:
    def make_store(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.data_dir = self.temp_dir.name
        self.db_path = str(Path(self.data_dir) / "documents.db")
        store = DocumentStore(
            self.db_path,
            LocalBlobStore(),
            PillowImageProcessor(),
            data_dir=self.data_dir,
        )
        store.initialize()
        return store

    def make_image(self, name="capture.png", size=(800, 1000), color=(200, 180, 160)):
        path = Path(self.data_dir) / "camera" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGB", size, color).save(path)
        return str(path)

    def listdir(self, path):
        p = Path(path)
        return sorted(x.name for x in p.iterdir()) if p.exists() else []
