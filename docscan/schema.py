# documents.folder_id is added by migration 1 so databases from the first
# release and fresh ones converge on the same layout.
SCHEMA_SQL = r"""
CREATE TABLE IF NOT EXISTS db_version (
  version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS folders (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT NOT NULL,
  parent_id INTEGER,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  FOREIGN KEY (parent_id) REFERENCES folders(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS documents (
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
