"""Durable key -> secret storage backed by a single sqlite file.

The file is held under an exclusive ``flock`` for as long as the handle is
open, so concurrent invocations of the tool are serialized rather than racing
each other. Every mutation runs in its own transaction and is committed
(``synchronous=FULL``) before the call returns.
"""
import fcntl
import logging
import math
import os
import sqlite3
import time
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple, Union

from .utils import InvalidKey, StorageUnavailable, WriteFailed

logger = logging.getLogger(__name__)

TABLE = "secret"
LOCK_POLL_INTERVAL = 0.05


class SecretStore:
    def __init__(self, path: Path, conn: sqlite3.Connection, lock_fd: int):
        self.path = path
        self._conn: Optional[sqlite3.Connection] = conn
        self._lock_fd: Optional[int] = lock_fd

    @classmethod
    def open(cls, path: Union[str, Path], lock_timeout: float = 0.0) -> "SecretStore":
        """Open (or create) the store at ``path`` and take the exclusive lock.

        Parent directories are created as needed. If another process holds the
        lock, wait up to ``lock_timeout`` seconds before giving up with
        :class:`StorageUnavailable`.
        """
        if not math.isfinite(lock_timeout):
            raise ValueError(f"lock timeout must be a finite number: {lock_timeout!r}")
        path = Path(path).expanduser()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            lock_fd = os.open(str(path), os.O_RDWR | os.O_CREAT, 0o600)
        except OSError as e:
            raise StorageUnavailable(f"cannot create store at {path}: {e}") from e

        try:
            _acquire_lock(lock_fd, path, lock_timeout)
        except BaseException:
            os.close(lock_fd)
            raise

        conn = None
        try:
            conn = sqlite3.connect(str(path))
            conn.execute("PRAGMA synchronous=FULL")
            with conn:
                conn.execute(
                    f"CREATE TABLE IF NOT EXISTS {TABLE} ("
                    "key TEXT PRIMARY KEY NOT NULL, secret TEXT NOT NULL)")
        except sqlite3.Error as e:
            if conn is not None:
                conn.close()
            fcntl.flock(lock_fd, fcntl.LOCK_UN)
            os.close(lock_fd)
            raise StorageUnavailable(f"cannot open store at {path}: {e}") from e

        logger.debug("opened secret store %s", path)
        return cls(path, conn, lock_fd)

    def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            conn.close()
        finally:
            # the sqlite connection goes first: closing any descriptor on the
            # file drops the process's POSIX locks on it
            if self._lock_fd is not None:
                fcntl.flock(self._lock_fd, fcntl.LOCK_UN)
                os.close(self._lock_fd)
                self._lock_fd = None
        logger.debug("closed secret store %s", self.path)

    @property
    def closed(self) -> bool:
        return self._conn is None

    def __enter__(self) -> "SecretStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageUnavailable(f"secret store {self.path} is closed")
        return self._conn

    # reads ----------------------------------------------------------------
    def get(self, key: str) -> Optional[str]:
        """Return the secret stored under ``key``, or None if there is none."""
        conn = self._connection()
        if not _storable(key):
            return None
        row = conn.execute(
            f"SELECT secret FROM {TABLE} WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def _scan(self) -> List[Tuple[str, str]]:
        # snapshot the table so visitors never see a half-iterated cursor
        return self._connection().execute(
            f"SELECT key, secret FROM {TABLE} ORDER BY key").fetchall()

    def for_each(self, visit: Callable[[str, str], Optional[bool]]) -> None:
        """Call ``visit(key, secret)`` for every entry in key order.

        Iteration stops early when ``visit`` returns a truthy value.
        """
        for key, secret in self._scan():
            if visit(key, secret):
                break

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self._scan())

    def keys(self) -> List[str]:
        return [k for k, _ in self._scan()]

    # writes ---------------------------------------------------------------
    def put(self, key: str, secret: str) -> None:
        """Insert ``secret`` under ``key``, replacing any previous value."""
        if not key:
            raise InvalidKey("key must not be empty")
        if not _storable(key):
            raise InvalidKey(f"key {key!r} is not valid UTF-8")
        conn = self._connection()
        try:
            with conn:
                conn.execute(
                    f"INSERT OR REPLACE INTO {TABLE} (key, secret) VALUES (?, ?)",
                    (key, secret))
        except sqlite3.Error as e:
            raise WriteFailed(f"failed to store [{key}]: {e}") from e
        logger.info("stored secret for [%s]", key)

    def delete(self, key: str) -> None:
        """Remove ``key``; removing a key that does not exist is not an error."""
        conn = self._connection()
        if not _storable(key):
            logger.debug("key %r cannot be stored, nothing deleted", key)
            return
        try:
            with conn:
                cur = conn.execute(f"DELETE FROM {TABLE} WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise WriteFailed(f"failed to delete [{key}]: {e}") from e
        if cur.rowcount:
            logger.info("deleted secret for [%s]", key)
        else:
            logger.debug("no secret stored for [%s], nothing deleted", key)


def _storable(key: str) -> bool:
    # keys decoded from non-UTF-8 argv carry lone surrogates sqlite cannot bind
    try:
        key.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def _acquire_lock(fd: int, path: Path, timeout: float) -> None:
    deadline = time.monotonic() + max(timeout, 0.0)
    waited = False
    while True:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            return
        except BlockingIOError:
            pass
        except OSError as e:
            raise StorageUnavailable(f"cannot lock store {path}: {e}") from e
        if time.monotonic() >= deadline:
            raise StorageUnavailable(
                f"store {path} is locked by another process")
        if not waited:
            logger.debug("waiting up to %.1fs for lock on %s", timeout, path)
            waited = True
        time.sleep(LOCK_POLL_INTERVAL)
