"""SQLite-based IP location cache."""

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Callable, Optional

from .errors import CacheError
from .models import CacheEntry, LocationRecord

logger = logging.getLogger(__name__)

_DAY_SECONDS = 86400


class LocationCache:
    """
    SQLite cache for resolved IP locations.

    Entries are served only while younger than the TTL. Expired rows stay on
    disk until overwritten or removed by clear_expired(). Store failures never
    escape get()/put(): a broken store behaves like an empty one.
    """

    def __init__(self, db_path: Path, ttl_days: int = 30,
                 clock: Callable[[], float] = time.time):
        self.db_path = Path(db_path)
        self.ttl_days = ttl_days
        self._clock = clock
        self._conn: Optional[sqlite3.Connection] = None
        try:
            self._init_db()
        except (OSError, sqlite3.Error) as e:
            logger.warning(f"Cache unavailable at {self.db_path}, continuing without it: {e}")
            self._conn = None

    def _init_db(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS locations (
                ip TEXT PRIMARY KEY,
                location_json TEXT NOT NULL,
                stored_at REAL NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_stored_at ON locations(stored_at)
        """)
        self._conn.commit()

    @property
    def ttl_seconds(self) -> float:
        return self.ttl_days * _DAY_SECONDS

    def _execute(self, sql: str, params: tuple = (), commit: bool = False) -> sqlite3.Cursor:
        if self._conn is None:
            raise CacheError("cache store is not open")
        try:
            cursor = self._conn.execute(sql, params)
            if commit:
                self._conn.commit()
            return cursor
        except sqlite3.Error as e:
            raise CacheError(str(e)) from e

    def get_entry(self, ip: str) -> Optional[CacheEntry]:
        """Raw entry for ip regardless of age. Raises CacheError if the store fails."""
        row = self._execute(
            "SELECT location_json, stored_at FROM locations WHERE ip = ?", (ip,)
        ).fetchone()
        if not row:
            return None
        try:
            location = LocationRecord.from_dict(json.loads(row[0]))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Cache: unreadable entry for {ip}: {e}")
            return None
        if not location.is_resolved:
            return None
        return CacheEntry(ip=ip, location=location, stored_at=row[1])

    def get(self, ip: str) -> Optional[LocationRecord]:
        """Cached location for ip, or None if absent, expired or the store failed."""
        try:
            entry = self.get_entry(ip)
        except CacheError as e:
            logger.warning(f"Cache read failed for {ip}, treating as miss: {e}")
            return None
        if entry is None:
            logger.debug(f"Cache MISS for {ip}")
            return None
        if not entry.is_fresh(self._clock(), self.ttl_seconds):
            logger.debug(f"Cache EXPIRED for {ip}")
            return None
        logger.debug(f"Cache HIT for {ip}")
        return entry.location

    def put(self, ip: str, location: LocationRecord):
        """Upsert the location for ip, stamped with the current time."""
        try:
            self._execute(
                "INSERT OR REPLACE INTO locations (ip, location_json, stored_at) VALUES (?, ?, ?)",
                (ip, json.dumps(location.to_dict()), self._clock()),
                commit=True,
            )
        except CacheError as e:
            logger.warning(f"Cache write failed for {ip}: {e}")

    def count(self) -> int:
        """Number of stored entries, expired ones included. Raises CacheError."""
        row = self._execute("SELECT COUNT(*) FROM locations").fetchone()
        return row[0] if row else 0

    def clear(self):
        """Remove every entry. Raises CacheError."""
        self._execute("DELETE FROM locations", commit=True)
        logger.info("Cache cleared")

    def clear_expired(self) -> int:
        """Remove all expired entries, returning how many were deleted."""
        cutoff = self._clock() - self.ttl_seconds
        deleted = self._execute(
            "DELETE FROM locations WHERE stored_at <= ?", (cutoff,), commit=True
        ).rowcount
        if deleted:
            logger.info(f"Cache: cleared {deleted} expired entries")
        return deleted

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None
