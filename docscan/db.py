import logging
import os
import sqlite3
from contextlib import contextmanager

from .constants import (
    DEFAULT_CATEGORY,
    DOCUMENT_QUALITY,
    DOCUMENT_TARGET_WIDTH,
    THUMBNAIL_QUALITY,
    THUMBNAIL_TARGET_HEIGHT,
    THUMBNAIL_TARGET_WIDTH,
)
from .errors import (
    ConstraintViolation,
    DocScanError,
    InvalidArgument,
    IOFailure,
    NotFound,
    NotInitialized,
    StoreFailure,
)
from .migrations import current_version, run_migrations
from .paths import get_documents_dir, get_staging_dir, get_thumbnails_dir
from .schema import SCHEMA_SQL
from .utils import blob_names, default_document_title, escape_like, normalize_text, now_iso, to_id

logger = logging.getLogger("DocScan")

_SUBTREE_SQL = """
WITH RECURSIVE subtree(id) AS (
  SELECT id FROM folders WHERE id = ?
  UNION
  SELECT f.id FROM folders f JOIN subtree s ON f.parent_id = s.id
)
SELECT id FROM subtree
"""

_ANCESTORS_SQL = """
WITH RECURSIVE chain(id, name, parent_id, created_at, updated_at, depth) AS (
  SELECT id, name, parent_id, created_at, updated_at, 0 FROM folders WHERE id = ?
  UNION ALL
  SELECT f.id, f.name, f.parent_id, f.created_at, f.updated_at, c.depth + 1
  FROM folders f JOIN chain c ON f.id = c.parent_id
  WHERE c.depth < (SELECT COUNT(*) FROM folders)
)
SELECT id, name, parent_id, created_at, updated_at FROM chain ORDER BY depth DESC
"""


class DocumentStore:
    """Folders and scanned documents in SQLite, page images in a blob store.

    The store is built with its collaborators and must be initialized once
    before use::

        store = DocumentStore(db_path, LocalBlobStore(), PillowImageProcessor(), data_dir=...)
        store.initialize()

    Every public method opens a short-lived connection and runs as one
    transaction. Blobs are always written before the row that owns them is
    inserted, and removed only after that row is deleted.
    """

    def __init__(self, db_path, blob_store, image_processor, data_dir=None):
        self.db_path = db_path
        self.blobs = blob_store
        self.images = image_processor
        data_dir = data_dir or os.path.dirname(os.path.abspath(db_path))
        self.documents_dir = get_documents_dir(data_dir)
        self.thumbnails_dir = get_thumbnails_dir(data_dir)
        self.staging_dir = get_staging_dir(data_dir)
        self._initialized = False

    # ── lifecycle ──

    def _connect(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA busy_timeout = 5000")
        return conn

    @contextmanager
    def _db(self):
        if not self._initialized:
            raise NotInitialized("document store is not initialized")
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StoreFailure(f"cannot open database {self.db_path}: {exc}") from exc
        try:
            yield conn
        except sqlite3.IntegrityError as exc:
            conn.rollback()
            raise ConstraintViolation(str(exc)) from exc
        except sqlite3.Error as exc:
            conn.rollback()
            raise StoreFailure(str(exc)) from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def initialize(self):
        self._initialized = False
        for path in (self.documents_dir, self.thumbnails_dir, self.staging_dir):
            self.blobs.ensure_directory(path)

        parent = os.path.dirname(os.path.abspath(self.db_path))
        self.blobs.ensure_directory(parent)
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StoreFailure(f"storage initialization failed: {exc}") from exc
        try:
            conn.executescript(SCHEMA_SQL)
            version = run_migrations(conn)
            conn.commit()
        except StoreFailure:
            logger.exception("Failed to initialize storage service")
            raise
        except sqlite3.Error as exc:
            logger.exception("Failed to initialize storage service")
            raise StoreFailure(f"storage initialization failed: {exc}") from exc
        finally:
            conn.close()

        self._initialized = True
        logger.info("Document storage initialized: db=%s schema_version=%d", self.db_path, version)
        return version

    @property
    def initialized(self):
        return self._initialized

    def schema_version(self):
        with self._db() as conn:
            return current_version(conn)

    # ── folders ──

    def create_folder(self, name, parent_id=None):
        name = normalize_text(name)
        if not name:
            raise InvalidArgument("folder name must not be empty")
        parent_id = None if parent_id is None else to_id(parent_id)
        now = now_iso()

        with self._db() as conn:
            if parent_id is not None:
                self._require_folder(conn, parent_id)
            cur = conn.execute(
                "INSERT INTO folders(name,parent_id,created_at,updated_at) VALUES(?,?,?,?)",
                (name, parent_id, now, now),
            )
            conn.commit()
            folder = self._require_folder(conn, cur.lastrowid)
        logger.info("Created folder id=%s name=%r parent_id=%s", folder["id"], name, parent_id)
        return folder

    def rename_folder(self, folder_id, new_name):
        new_name = normalize_text(new_name)
        if not new_name:
            raise InvalidArgument("folder name must not be empty")

        with self._db() as conn:
            self._require_folder(conn, folder_id)
            conn.execute(
                "UPDATE folders SET name = ?, updated_at = ? WHERE id = ?",
                (new_name, now_iso(), folder_id),
            )
            conn.commit()
            return self._require_folder(conn, folder_id)

    def move_folder(self, folder_id, new_parent_id):
        folder_id = to_id(folder_id)
        new_parent_id = None if new_parent_id is None else to_id(new_parent_id)
        with self._db() as conn:
            self._require_folder(conn, folder_id)
            if new_parent_id is not None:
                self._require_folder(conn, new_parent_id)
                subtree = self._subtree_ids(conn, folder_id)
                if new_parent_id in subtree:
                    raise ConstraintViolation(
                        f"cannot move folder {folder_id} into itself or one of its descendants"
                    )
            conn.execute(
                "UPDATE folders SET parent_id = ?, updated_at = ? WHERE id = ?",
                (new_parent_id, now_iso(), folder_id),
            )
            conn.commit()
            return self._require_folder(conn, folder_id)

    def delete_folder(self, folder_id):
        """Delete a folder, its whole subtree, every document inside it and their blobs.

        Returns False when the folder does not exist.
        """
        with self._db() as conn:
            row = conn.execute("SELECT id FROM folders WHERE id = ?", (folder_id,)).fetchone()
            if not row:
                return False

            # Sub-folder rows go with ON DELETE CASCADE, their documents' blobs do not:
            # collect blob paths from every depth before the rows disappear.
            folder_ids = self._subtree_ids(conn, folder_id)
            placeholders = ",".join(["?"] * len(folder_ids))
            docs = conn.execute(
                f"SELECT id, file_path, thumbnail_path FROM documents WHERE folder_id IN ({placeholders})",
                folder_ids,
            ).fetchall()
            paths = []
            for d in docs:
                paths.append(d["file_path"])
                if d["thumbnail_path"]:
                    paths.append(d["thumbnail_path"])

            conn.execute(f"DELETE FROM documents WHERE folder_id IN ({placeholders})", folder_ids)
            conn.execute("DELETE FROM folders WHERE id = ?", (folder_id,))
            conn.commit()

        logger.info(
            "Deleted folder id=%s (%d folders, %d documents)", folder_id, len(folder_ids), len(docs)
        )
        self._delete_blobs(paths)
        return True

    def get_folder(self, folder_id):
        with self._db() as conn:
            return self._require_folder(conn, folder_id)

    def get_folders(self, parent_id=None):
        with self._db() as conn:
            if parent_id is None:
                rows = conn.execute(
                    "SELECT * FROM folders WHERE parent_id IS NULL ORDER BY name ASC, id ASC"
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM folders WHERE parent_id = ? ORDER BY name ASC, id ASC",
                    (parent_id,),
                ).fetchall()
            return [self._row_to_folder(r) for r in rows]

    def get_folder_path(self, folder_id):
        """Folders from the root down to ``folder_id``, for breadcrumbs."""
        with self._db() as conn:
            rows = conn.execute(_ANCESTORS_SQL, (folder_id,)).fetchall()
            if not rows:
                raise NotFound(f"folder {folder_id} not found")
            return [self._row_to_folder(r) for r in rows]

    # ── documents ──

    def save_document(self, source, title=None, category=DEFAULT_CATEGORY, folder_id=None, tags=None):
        """Process a captured image into a stored document.

        ``source`` is an image path or an HWC pixel array. The full page is
        normalized to the document width and a thumbnail derived from it; both
        are staged, moved into managed storage and only then is the row
        inserted. On any failure every blob written so far is removed again.
        """
        title = normalize_text(title) or default_document_title()
        category = normalize_text(category) or DEFAULT_CATEGORY
        tags = normalize_text(tags) or None

        if folder_id is not None:
            with self._db() as conn:
                self._require_folder(conn, folder_id)
        elif not self._initialized:
            raise NotInitialized("document store is not initialized")

        file_name, thumb_name = blob_names()
        staged_file = os.path.join(self.staging_dir, file_name)
        staged_thumb = os.path.join(self.staging_dir, thumb_name)
        file_path = os.path.join(self.documents_dir, file_name)
        thumbnail_path = os.path.join(self.thumbnails_dir, thumb_name)

        written = []
        try:
            self.images.normalize(
                source, staged_file, target_width=DOCUMENT_TARGET_WIDTH, quality=DOCUMENT_QUALITY
            )
            written.append(staged_file)
            self.images.thumbnail(
                staged_file,
                staged_thumb,
                target_width=THUMBNAIL_TARGET_WIDTH,
                target_height=THUMBNAIL_TARGET_HEIGHT,
                quality=THUMBNAIL_QUALITY,
            )
            written.append(staged_thumb)

            self.blobs.move(staged_file, file_path)
            written.append(file_path)
            self.blobs.move(staged_thumb, thumbnail_path)
            written.append(thumbnail_path)

            file_size = self.blobs.stat(file_path).size
            now = now_iso()
            with self._db() as conn:
                cur = conn.execute(
                    """
                    INSERT INTO documents(
                      title,file_path,thumbnail_path,created_at,updated_at,
                      file_size,page_count,category,tags,folder_id
                    ) VALUES(?,?,?,?,?,?,?,?,?,?)
                    """,
                    (title, file_path, thumbnail_path, now, now, file_size, 1, category, tags, folder_id),
                )
                conn.commit()
                document = self._require_document(conn, cur.lastrowid)
        except Exception:
            logger.error("Saving document failed, removing %d written blob(s)", len(written))
            self.discard_blobs(written)
            raise

        logger.info(
            "Saved document id=%s title=%r size=%d folder_id=%s",
            document["id"],
            title,
            file_size,
            folder_id,
        )
        return document

    def move_document_to_folder(self, document_id, folder_id):
        with self._db() as conn:
            self._require_document(conn, document_id)
            if folder_id is not None:
                self._require_folder(conn, folder_id)
            conn.execute(
                "UPDATE documents SET folder_id = ?, updated_at = ? WHERE id = ?",
                (folder_id, now_iso(), document_id),
            )
            conn.commit()
            return self._require_document(conn, document_id)

    def get_documents_in_folder(self, folder_id=None):
        with self._db() as conn:
            if folder_id is None:
                rows = conn.execute(
                    "SELECT * FROM documents WHERE folder_id IS NULL ORDER BY created_at DESC, id DESC"
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM documents WHERE folder_id = ? ORDER BY created_at DESC, id DESC",
                    (folder_id,),
                ).fetchall()
            return [self._row_to_document(r) for r in rows]

    def get_all_documents(self):
        with self._db() as conn:
            rows = conn.execute("SELECT * FROM documents ORDER BY created_at DESC, id DESC").fetchall()
            return [self._row_to_document(r) for r in rows]

    def get_all_items(self, folder_id=None):
        # Folders always list above documents.
        return self.get_folders(folder_id) + self.get_documents_in_folder(folder_id)

    def search_items(self, query):
        q = normalize_text(query)
        like_q = f"%{escape_like(q)}%"
        with self._db() as conn:
            folders = conn.execute(
                "SELECT * FROM folders WHERE name LIKE ? ESCAPE '\\' ORDER BY name ASC, id ASC",
                (like_q,),
            ).fetchall()
            documents = conn.execute(
                "SELECT * FROM documents WHERE title LIKE ? ESCAPE '\\' ORDER BY created_at DESC, id DESC",
                (like_q,),
            ).fetchall()
        logger.debug("search_items q=%r folders=%d documents=%d", q, len(folders), len(documents))
        return [self._row_to_folder(r) for r in folders] + [self._row_to_document(r) for r in documents]

    def update_document(self, document_id, updates):
        """Overwrite title, category and tags; fields left out are cleared, not kept."""
        updates = updates or {}
        title = normalize_text(updates.get("title"))
        if not title:
            raise InvalidArgument("document title must not be empty")
        category = normalize_text(updates.get("category")) or DEFAULT_CATEGORY
        tags = normalize_text(updates.get("tags")) or None

        with self._db() as conn:
            self._require_document(conn, document_id)
            conn.execute(
                "UPDATE documents SET title = ?, category = ?, tags = ?, updated_at = ? WHERE id = ?",
                (title, category, tags, now_iso(), document_id),
            )
            conn.commit()
            return self._require_document(conn, document_id)

    def delete_document(self, document_id):
        """Delete a document row and its blobs. Returns False when it does not exist."""
        with self._db() as conn:
            row = conn.execute(
                "SELECT file_path, thumbnail_path FROM documents WHERE id = ?", (document_id,)
            ).fetchone()
            if not row:
                return False
            conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            conn.commit()

        logger.info("Deleted document id=%s", document_id)
        self._delete_blobs([p for p in (row["file_path"], row["thumbnail_path"]) if p])
        return True

    def get_document_by_id(self, document_id):
        with self._db() as conn:
            return self._require_document(conn, document_id)

    def get_storage_stats(self):
        with self._db() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS document_count, COALESCE(SUM(file_size), 0) AS total_size FROM documents"
            ).fetchone()
        total_size = int(row["total_size"])
        return {
            "document_count": int(row["document_count"]),
            "total_size": total_size,
            "total_size_mb": round(total_size / (1024 * 1024), 2),
        }

    # ── helpers ──

    def _delete_blobs(self, paths):
        failures = []
        for path in paths:
            try:
                self.blobs.delete(path)
            except IOFailure as exc:
                logger.warning("Could not delete blob %s: %s", path, exc)
                failures.append(path)
        if failures:
            raise IOFailure(f"could not delete {len(failures)} blob(s): {', '.join(failures)}")

    def discard_blobs(self, paths):
        # Best-effort: failures are logged, never raised over the caller's own outcome.
        for path in paths:
            try:
                self.blobs.delete(path)
            except DocScanError as exc:
                logger.warning("Could not discard blob %s: %s", path, exc)

    @staticmethod
    def _subtree_ids(conn, folder_id):
        return [r["id"] for r in conn.execute(_SUBTREE_SQL, (folder_id,)).fetchall()]

    def _require_folder(self, conn, folder_id):
        row = conn.execute("SELECT * FROM folders WHERE id = ?", (folder_id,)).fetchone()
        if not row:
            raise NotFound(f"folder {folder_id} not found")
        return self._row_to_folder(row)

    def _require_document(self, conn, document_id):
        row = conn.execute("SELECT * FROM documents WHERE id = ?", (document_id,)).fetchone()
        if not row:
            raise NotFound(f"document {document_id} not found")
        return self._row_to_document(row)

    @staticmethod
    def _row_to_folder(row):
        return {
            "id": row["id"],
            "name": row["name"],
            "parent_id": row["parent_id"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
            "type": "folder",
        }

    @staticmethod
    def _row_to_document(row):
        return {
            "id": row["id"],
            "title": row["title"],
            "file_path": row["file_path"],
            "thumbnail_path": row["thumbnail_path"],
            "file_size": row["file_size"],
            "page_count": int(row["page_count"] or 1),
            "category": row["category"] or DEFAULT_CATEGORY,
            "tags": row["tags"],
            "ocr_text": row["ocr_text"],
            "folder_id": row["folder_id"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
            "type": "document",
        }
