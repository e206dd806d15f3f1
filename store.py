"""Document store backing every piece of network state.

Each concern (registry, signals log, inboxes, claims, ...) is one JSON
document stored as a row in sqlite. Mutations are full read-modify-write
cycles run inside ``DocumentStore.transaction``, which holds a per-document
lock for the duration of the block and commits all touched documents in a
single sqlite transaction.
"""

import copy
import json
import logging
import sqlite3
import threading
from contextlib import contextmanager

logger = logging.getLogger("sigmine.store")

SIGNALS = "signals"
REGISTRY = "registry"
AGENT_STATS = "agent_stats"
MESSAGES = "messages"
RATE_LIMITS = "rate_limits"
CLAIMS = "claims"
MARKET_CACHE = "market_cache"
FEED_TASKS = "feed_tasks"

DEFAULT_DOCUMENTS = {
    SIGNALS: [],
    REGISTRY: {"agents": {}, "api_keys": {}},
    AGENT_STATS: {},
    MESSAGES: {},
    RATE_LIMITS: {},
    CLAIMS: {"claims": {}, "history": []},
    MARKET_CACHE: {"markets": [], "last_fetch": 0},
    FEED_TASKS: {"tasks": [], "last_fetch": 0},
}


class DocumentStore:
    """sqlite-backed key -> JSON document store with per-key locking."""

    def __init__(self, db_path, defaults=None):
        self.db_path = str(db_path)
        self.defaults = dict(DEFAULT_DOCUMENTS)
        if defaults:
            self.defaults.update(defaults)
        self._locks = {}
        self._locks_guard = threading.Lock()
        self._init_db()

    def _connect(self):
        db = sqlite3.connect(self.db_path, timeout=30)
        db.row_factory = sqlite3.Row
        return db

    def _init_db(self):
        db = self._connect()
        try:
            db.executescript("""
                CREATE TABLE IF NOT EXISTS documents (
                    key TEXT PRIMARY KEY,
                    body TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );
            """)
            db.commit()
        finally:
            db.close()

    def _lock_for(self, key):
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    def _default(self, key):
        if key not in self.defaults:
            raise KeyError(f"Unknown document: {key}")
        return copy.deepcopy(self.defaults[key])

    def _read(self, db, key):
        row = db.execute("SELECT body FROM documents WHERE key = ?", (key,)).fetchone()
        if not row:
            return self._default(key)
        return json.loads(row["body"])

    def load(self, key):
        """Return a private copy of the document (or its default)."""
        with self._lock_for(key):
            db = self._connect()
            try:
                return self._read(db, key)
            finally:
                db.close()

    def save(self, key, doc):
        with self.transaction(key) as docs:
            docs[key] = doc

    @contextmanager
    def transaction(self, *keys):
        """Lock, load and atomically commit one or more documents.

        Yields a dict ``{key: document}``. Documents may be mutated in place or
        replaced by assigning to the dict. Nothing is written if the block
        raises. Locks are taken in sorted key order.
        """
        ordered = sorted(set(keys))
        locks = [self._lock_for(k) for k in ordered]
        for lock in locks:
            lock.acquire()
        try:
            db = self._connect()
            try:
                docs = {k: self._read(db, k) for k in ordered}
                yield docs
                rows = [(k, json.dumps(docs[k])) for k in ordered]
                with db:
                    db.executemany(
                        "INSERT OR REPLACE INTO documents (key, body, updated_at) "
                        "VALUES (?, ?, CURRENT_TIMESTAMP)",
                        rows,
                    )
            finally:
                db.close()
        finally:
            for lock in reversed(locks):
                lock.release()
