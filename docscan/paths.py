import os

from .constants import DEFAULT_MAX_UPLOAD_MB, DOCUMENTS_DIRNAME, STAGING_DIRNAME, THUMBNAILS_DIRNAME


def get_data_dir():
    base = os.environ.get("DOCSCAN_DATA_DIR") or os.path.join(os.path.expanduser("~"), ".docscan")
    os.makedirs(base, exist_ok=True)
    return base


def get_db_path(data_dir=None):
    explicit = os.environ.get("DOCSCAN_DB_PATH")
    if explicit:
        return explicit
    return os.path.join(data_dir or get_data_dir(), "documents.db")


def get_documents_dir(data_dir=None):
    return os.path.join(data_dir or get_data_dir(), DOCUMENTS_DIRNAME)


def get_thumbnails_dir(data_dir=None):
    return os.path.join(data_dir or get_data_dir(), THUMBNAILS_DIRNAME)


def get_staging_dir(data_dir=None):
    return os.path.join(data_dir or get_data_dir(), STAGING_DIRNAME)


def get_max_upload_bytes():
    mb = float(os.environ.get("DOCSCAN_MAX_UPLOAD_MB") or DEFAULT_MAX_UPLOAD_MB)
    return int(mb * 1024 * 1024)
