"""
Gallery Store Module

Durable storage of registered face descriptors in a SQLite database.

Each row of the `faces` table holds one gallery entry:
    - identity: the user-supplied label (several rows may share one)
    - source_reference: where the descriptor came from (image path, capture id).
      UNIQUE, which makes registration idempotent ("insert or ignore").
    - descriptor: N little-endian float32 values

The GalleryStore class provides:
    - put: append an entry (no-op if the source was already registered)
    - list_all: every stored entry, in insertion order
    - exists: check whether a source reference is registered
    - identities / get_stats: summaries for operators

Usage:
    from facematch.gallery_store import GalleryStore, GalleryEntry

    with GalleryStore("storage/gallery.sqlite", dimension=128) as store:
        created = store.put(GalleryEntry("alice", descriptor, "images/alice.jpg"))
        entries = store.list_all()
"""

import logging
import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from facematch.descriptor import Descriptor
from facematch.errors import DimensionMismatch, StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GalleryEntry:
    """
    One registered face.

    Attributes:
        identity: Non-empty label of the person (e.g. "alice").
        descriptor: The face descriptor produced by the extractor.
        source: Opaque reference to the origin of the descriptor
                (file path or capture id). Unique within a gallery.
    """

    identity: str
    descriptor: Descriptor
    source: str

    def __post_init__(self):
        if not isinstance(self.identity, str) or not self.identity.strip():
            raise ValueError("GalleryEntry identity must be a non-empty string")
        if not isinstance(self.source, str) or not self.source.strip():
            raise ValueError("GalleryEntry source must be a non-empty string")
        if not isinstance(self.descriptor, Descriptor):
            raise TypeError(
                f"GalleryEntry descriptor must be a Descriptor, got {type(self.descriptor).__name__}"
            )

    def to_dict(self, include_descriptor: bool = False) -> Dict[str, Any]:
        data = {
            "identity": self.identity,
            "source": self.source,
            "dimension": self.descriptor.dimension,
        }
        if include_descriptor:
            data["descriptor"] = self.descriptor.tolist()
        return data


class GalleryStore:
    """
    SQLite-backed gallery of face descriptors.

    A single connection is shared by all threads of the process and guarded
    by a lock, so concurrent put() calls for the same source can never
    create duplicate rows. Each put() commits before returning, with
    synchronous=FULL, so a reported success survives a process crash.

    Args:
        db_path: Path to the SQLite database file (":memory:" for tests).
        dimension: Expected descriptor length. If set, put() rejects other
                   lengths with DimensionMismatch. If None, any length is stored.

    Raises:
        StorageError: If the database cannot be opened or initialized.
    """

    def __init__(self, db_path: Union[str, Path], dimension: Optional[int] = None):
        self.db_path = str(db_path)
        self.dimension = dimension
        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._init_database()
        logger.info(f"GalleryStore initialized: db={self.db_path}, dimension={self.dimension}")

    def _get_connection(self) -> sqlite3.Connection:
        """Lazily open the shared connection."""
        if self._conn is None:
            try:
                self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
                self._conn.row_factory = sqlite3.Row
                self._conn.execute("PRAGMA synchronous=FULL")
            except sqlite3.Error as e:
                self._conn = None
                raise StorageError(f"Cannot open gallery database {self.db_path}: {e}") from e
        return self._conn

    def _init_database(self) -> None:
        with self._lock:
            try:
                conn = self._get_connection()
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS faces (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        identity TEXT NOT NULL,
                        source_reference TEXT NOT NULL UNIQUE,
                        descriptor BLOB,
                        dimension INTEGER,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)
                conn.commit()
            except sqlite3.Error as e:
                raise StorageError(f"Cannot initialize gallery schema: {e}") from e
        logger.debug("Gallery schema initialized")

    def put(self, entry: GalleryEntry) -> bool:
        """
        Durably append an entry to the gallery.

        Registering a source reference that already exists is a successful
        no-op: the stored row is kept unchanged.

        Args:
            entry: The entry to store.

        Returns:
            True if a new row was written, False if the source already existed.

        Raises:
            DimensionMismatch: If the store has a fixed dimension and the
                               descriptor has another length.
            StorageError: If the write fails.
        """
        if self.dimension is not None and entry.descriptor.dimension != self.dimension:
            raise DimensionMismatch(self.dimension, entry.descriptor.dimension)

        with self._lock:
            conn = self._get_connection()
            try:
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO faces (identity, source_reference, descriptor, dimension)
                    VALUES (?, ?, ?, ?)
                    """,
                    (
                        entry.identity,
                        entry.source,
                        sqlite3.Binary(entry.descriptor.to_bytes()),
                        entry.descriptor.dimension,
                    ),
                )
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                logger.error(f"Failed to store entry for {entry.identity} ({entry.source}): {e}")
                raise StorageError(f"Failed to store gallery entry: {e}") from e

            if cursor.rowcount == 1:
                logger.info(f"Stored gallery entry: {entry.identity} <- {entry.source}")
                return True

            existing = conn.execute(
                "SELECT identity FROM faces WHERE source_reference = ?", (entry.source,)
            ).fetchone()

        if existing is not None and existing["identity"] != entry.identity:
            logger.warning(
                f"Source {entry.source} is already registered as '{existing['identity']}', "
                f"ignoring registration as '{entry.identity}'"
            )
        else:
            logger.info(f"Gallery entry already exists: {entry.identity} <- {entry.source}")
        return False

    def list_all(self) -> List[GalleryEntry]:
        """
        Return every stored entry with a descriptor, in insertion order.

        Raises:
            StorageError: If the database cannot be read or a stored
                          descriptor cannot be decoded.
        """
        with self._lock:
            try:
                rows = self._get_connection().execute(
                    """
                    SELECT identity, source_reference, descriptor
                    FROM faces
                    WHERE descriptor IS NOT NULL
                    ORDER BY id ASC
                    """
                ).fetchall()
            except sqlite3.Error as e:
                logger.error(f"Failed to read gallery: {e}")
                raise StorageError(f"Failed to read gallery: {e}") from e

        entries = []
        for row in rows:
            try:
                descriptor = Descriptor.from_bytes(bytes(row["descriptor"]))
            except ValueError as e:
                raise StorageError(
                    f"Corrupt descriptor for source {row['source_reference']}: {e}"
                ) from e
            entries.append(GalleryEntry(row["identity"], descriptor, row["source_reference"]))

        logger.debug(f"Loaded {len(entries)} gallery entries")
        return entries

    def exists(self, source: str) -> bool:
        """Check whether a source reference has been registered."""
        with self._lock:
            try:
                row = self._get_connection().execute(
                    "SELECT 1 FROM faces WHERE source_reference = ?", (source,)
                ).fetchone()
            except sqlite3.Error as e:
                raise StorageError(f"Failed to query gallery: {e}") from e
        return row is not None

    def identities(self) -> List[str]:
        """Distinct identity labels, sorted."""
        with self._lock:
            try:
                rows = self._get_connection().execute(
                    "SELECT DISTINCT identity FROM faces ORDER BY identity"
                ).fetchall()
            except sqlite3.Error as e:
                raise StorageError(f"Failed to query gallery: {e}") from e
        return [row["identity"] for row in rows]

    def get_stats(self) -> Dict[str, Any]:
        """
        Summary of the gallery.

        Returns:
            Dictionary with total_entries, total_identities, dimension, db_path.
        """
        with self._lock:
            try:
                row = self._get_connection().execute(
                    "SELECT COUNT(*) AS total, COUNT(DISTINCT identity) AS identities FROM faces"
                ).fetchone()
            except sqlite3.Error as e:
                raise StorageError(f"Failed to query gallery: {e}") from e

        return {
            "total_entries": row["total"] or 0,
            "total_identities": row["identities"] or 0,
            "dimension": self.dimension,
            "db_path": self.db_path,
        }

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.debug("Gallery database connection closed")

    def __enter__(self) -> "GalleryStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
