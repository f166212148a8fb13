import logging
import os

from aiohttp import web

from . import VERSION
from .api import create_app
from .blobs import LocalBlobStore
from .constants import APP_NAME, SCHEMA_VERSION
from .db import DocumentStore
from .imaging import PillowImageProcessor
from .paths import get_data_dir, get_db_path

logger = logging.getLogger("DocScan")


def build_store(data_dir=None):
    data_dir = data_dir or get_data_dir()
    store = DocumentStore(
        get_db_path(data_dir),
        LocalBlobStore(),
        PillowImageProcessor(),
        data_dir=data_dir,
    )
    store.initialize()
    return store


def main():
    logging.basicConfig(
        level=getattr(logging, os.environ.get("DOCSCAN_LOG_LEVEL", "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    _banner = f" {APP_NAME} Initialization "
    logger.info("=" * 40 + _banner + "=" * 40)
    logger.info(f"Version: {VERSION}")
    logger.info(f"Schema version: {SCHEMA_VERSION}")

    # Initialization failure is fatal: nothing is served without a usable store.
    store = build_store()
    logger.info("=" * (80 + len(_banner)))

    host = os.environ.get("DOCSCAN_HOST", "127.0.0.1")
    port = int(os.environ.get("DOCSCAN_PORT", "8188"))
    web.run_app(create_app(store), host=host, port=port)


if __name__ == "__main__":
    main()
