import sqlite3
import tempfile
import unittest
from pathlib import Path

from docscan.blobs import LocalBlobStore
from docscan.constants import SCHEMA_VERSION
from docscan.db import DocumentStore
from docscan.errors import NotInitialized, StoreFailure
from docscan.imaging import PillowImageProcessor
from docscan.migrations import MIGRATIONS, current_version, run_migrations

LEGACY_SCHEMA = """
CREATE TABLE db_version (version INTEGER PRIMARY KEY);
CREATE TABLE folders (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT NOT NULL,
  parent_id INTEGER,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  FOREIGN KEY (parent_id) REFERENCES folders(id) ON DELETE CASCADE
);
CREATE TABLE documents (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  title TEXT NOT NULL,
  file_path TEXT NOT NULL,
  thumbnail_path TEXT,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  file_size INTEGER,
  page_count INTEGER DEFAULT 1,
  category TEXT DEFAULT 'general',
  tags TEXT,
  ocr_text TEXT
);
"""


class SchemaMigrationTests(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.data_dir = self.temp_dir.name
        self.db_path = str(Path(self.data_dir) / "documents.db")

    def _store(self):
        return DocumentStore(self.db_path, LocalBlobStore(), PillowImageProcessor(), data_dir=self.data_dir)

    def _raw(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        self.addCleanup(conn.close)
        return conn

    def _document_columns(self):
        conn = sqlite3.connect(self.db_path)
        try:
            return {row[1] for row in conn.execute("PRAGMA table_info(documents)").fetchall()}
        finally:
            conn.close()

    def test_fresh_database_reaches_target_version(self):
        store = self._store()

        version = store.initialize()

        self.assertEqual(version, SCHEMA_VERSION)
        self.assertEqual(store.schema_version(), SCHEMA_VERSION)
        self.assertIn("folder_id", self._document_columns())
        self.assertTrue(Path(store.documents_dir).is_dir())
        self.assertTrue(Path(store.thumbnails_dir).is_dir())

    def test_initialize_twice_is_idempotent(self):
        store = self._store()
        store.initialize()
        store.create_folder("Receipts")

        second = self._store()
        version = second.initialize()

        self.assertEqual(version, SCHEMA_VERSION)
        self.assertEqual([f["name"] for f in second.get_folders()], ["Receipts"])

    def test_legacy_database_gains_folder_column_with_root_default(self):
        conn = self._raw()
        conn.executescript(LEGACY_SCHEMA)
        conn.execute(
            "INSERT INTO documents(title,file_path,created_at,updated_at,file_size) VALUES(?,?,?,?,?)",
            ("Old scan", "/nowhere/doc_1.jpg", "2024-01-01T00:00:00+00:00", "2024-01-01T00:00:00+00:00", 10),
        )
        conn.commit()
        conn.close()

        store = self._store()
        store.initialize()

        docs = store.get_documents_in_folder(None)
        self.assertEqual(len(docs), 1)
        self.assertEqual(docs[0]["title"], "Old scan")
        self.assertIsNone(docs[0]["folder_id"])
        self.assertEqual(store.schema_version(), SCHEMA_VERSION)

    def test_rerun_after_interrupted_migration_does_not_fail(self):
        # Column added but the version was never recorded.
        conn = self._raw()
        conn.executescript(LEGACY_SCHEMA)
        conn.execute("ALTER TABLE documents ADD COLUMN folder_id INTEGER")
        conn.commit()
        conn.close()

        store = self._store()
        version = store.initialize()

        self.assertEqual(version, SCHEMA_VERSION)

    def test_running_migrations_twice_keeps_version(self):
        self._store().initialize()
        conn = self._raw()

        first = current_version(conn)
        second = run_migrations(conn)

        self.assertEqual(first, SCHEMA_VERSION)
        self.assertEqual(second, SCHEMA_VERSION)
        rows = conn.execute("SELECT version FROM db_version ORDER BY version").fetchall()
        self.assertEqual([r["version"] for r in rows], [v for v, _, _ in MIGRATIONS])

    def test_failed_step_is_not_recorded(self):
        conn = self._raw()
        conn.executescript(LEGACY_SCHEMA)

        def broken(c):
            c.execute("ALTER TABLE no_such_table ADD COLUMN x INTEGER")

        steps = [MIGRATIONS[0], (2, "broken", broken)]
        with self.assertRaises(StoreFailure) as ctx:
            run_migrations(conn, steps)

        self.assertIn("migration 2 (broken)", str(ctx.exception))
        self.assertEqual(current_version(conn), 1)

    def test_missing_version_table_reads_as_zero(self):
        conn = self._raw()
        self.assertEqual(current_version(conn), 0)

    def test_operations_before_initialize_are_rejected(self):
        store = self._store()

        with self.assertRaises(NotInitialized):
            store.get_folders()
        with self.assertRaises(NotInitialized):
            store.save_document(b"not used")

    def test_failed_initialize_leaves_store_unusable(self):
        # A directory where the database file should be cannot be opened.
        Path(self.db_path).mkdir()
        store = self._store()

        with self.assertRaises(StoreFailure):
            store.initialize()

        self.assertFalse(store.initialized)
        with self.assertRaises(NotInitialized):
            store.get_storage_stats()


if __name__ == "__main__":
    unittest.main()
