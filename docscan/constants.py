APP_NAME = "DocScan"

SCHEMA_VERSION = 2

DEFAULT_CATEGORY = "general"

DOCUMENTS_DIRNAME = "scanned_documents"
THUMBNAILS_DIRNAME = "thumbnails"
STAGING_DIRNAME = "staging"

# Full page image
DOCUMENT_TARGET_WIDTH = 1200
DOCUMENT_QUALITY = 90

# Grid thumbnail
THUMBNAIL_TARGET_WIDTH = 200
THUMBNAIL_TARGET_HEIGHT = 300
THUMBNAIL_QUALITY = 70

# Phone captures are several MB; aiohttp's own default is 1 MiB.
DEFAULT_MAX_UPLOAD_MB = 50
