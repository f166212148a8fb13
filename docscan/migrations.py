import logging
import sqlite3

from .errors import StoreFailure

logger = logging.getLogger("DocScan")


def _add_document_folder_id(conn):
    cols = {row["name"] for row in conn.execute("PRAGMA table_info(documents)").fetchall()}
    if "folder_id" in cols:
        logger.debug("documents.folder_id already present")
        return
    conn.execute(
        "ALTER TABLE documents ADD COLUMN folder_id INTEGER REFERENCES folders(id) ON DELETE SET NULL"
    )


def _add_lookup_indexes(conn):
    conn.execute("CREATE INDEX IF NOT EXISTS idx_folders_parent_name ON folders(parent_id, name)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_documents_folder_created ON documents(folder_id, created_at)")


# (version, name, step). Append only; never renumber.
MIGRATIONS = [
    (1, "add_document_folder_id", _add_document_folder_id),
    (2, "add_lookup_indexes", _add_lookup_indexes),
]


def current_version(conn):
    try:
        row = conn.execute("SELECT MAX(version) AS version FROM db_version").fetchone()
    except sqlite3.OperationalError:
        return 0
    if not row or row["version"] is None:
        return 0
    return int(row["version"])


def run_migrations(conn, migrations=None):
    """Apply every registered step newer than the recorded version.

    Each step commits together with its version record; a failing step is
    rolled back and leaves the recorded version where it was. Steps must be
    safe to re-run because an interrupted earlier run may already have
    altered the schema without recording the version.
    """
    migrations = MIGRATIONS if migrations is None else migrations
    version = current_version(conn)
    target = max((v for v, _, _ in migrations), default=0)
    logger.info("Schema version: current=%d target=%d", version, target)

    for step_version, name, step in migrations:
        if version >= step_version:
            continue
        logger.info("Applying migration %d (%s)", step_version, name)
        try:
            step(conn)
            conn.execute("INSERT OR REPLACE INTO db_version(version) VALUES(?)", (step_version,))
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StoreFailure(f"migration {step_version} ({name}) failed: {exc}") from exc
        version = step_version
    return version
