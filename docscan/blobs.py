import errno
import os
import shutil
from collections import namedtuple

from .errors import IOFailure, NotFound

BlobInfo = namedtuple("BlobInfo", ["size"])


class LocalBlobStore:
    """Blob persistence on the local filesystem, keyed by absolute path."""

    def exists(self, path):
        return bool(path) and os.path.isfile(path)

    def ensure_directory(self, path):
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as exc:
            raise IOFailure(f"cannot create directory {path}: {exc}") from exc

    def move(self, from_path, to_path):
        parent = os.path.dirname(to_path)
        if parent:
            self.ensure_directory(parent)
        try:
            shutil.move(from_path, to_path)
        except FileNotFoundError as exc:
            raise NotFound(f"blob not found: {from_path}") from exc
        except OSError as exc:
            raise IOFailure(f"cannot move {from_path} -> {to_path}: {exc}") from exc
        return to_path

    def delete(self, path):
        if not path:
            return False
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as exc:
            if exc.errno == errno.ENOENT:
                return False
            raise IOFailure(f"cannot delete {path}: {exc}") from exc
        return True

    def stat(self, path):
        try:
            return BlobInfo(size=os.path.getsize(path))
        except FileNotFoundError as exc:
            raise NotFound(f"blob not found: {path}") from exc
        except OSError as exc:
            raise IOFailure(f"cannot stat {path}: {exc}") from exc

    def write_bytes(self, path, data):
        parent = os.path.dirname(path)
        if parent:
            self.ensure_directory(parent)
        try:
            with open(path, "wb") as f:
                f.write(data)
        except OSError as exc:
            raise IOFailure(f"cannot write {path}: {exc}") from exc
        return path

    def read_bytes(self, path):
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError as exc:
            raise NotFound(f"blob not found: {path}") from exc
        except OSError as exc:
            raise IOFailure(f"cannot read {path}: {exc}") from exc
