from .blobs import LocalBlobStore
from .constants import APP_NAME, SCHEMA_VERSION
from .db import DocumentStore
from .imaging import PillowImageProcessor

VERSION = "1.0.0"

__all__ = ["APP_NAME", "SCHEMA_VERSION", "VERSION", "DocumentStore", "LocalBlobStore", "PillowImageProcessor"]
