from abc import ABC, abstractmethod
from contextlib import contextmanager
import logging
import os
from pathlib import Path
import sqlite3
import threading
from typing import Iterator, List, Optional, Set, Union

from .errors import StoreOpenError, StoreReadError, StoreWriteError


logger = logging.getLogger(__name__)

DEFAULT_BUCKET = 'memory'


class Store(ABC):
    """
    An abstraction of a durable byte store.

    A store maps opaque byte keys to opaque byte values inside a single bucket.
    Each `get()` sees a consistent snapshot and each `put()` is atomic: either
    the whole value is persisted or nothing is. Only one write is in progress at
    a time, but reads never wait on it.
    """

    @abstractmethod
    def get(self, key: bytes) -> Optional[bytes]:
        """
        Read the value stored under `key`.

        @param key
          The key to look up.
        @return
          The stored value, or `None` if there is none.
        @throws StoreReadError
          If the read transaction fails.
        """

    @abstractmethod
    def put(self, key: bytes, value: bytes) -> None:
        """
        Store `value` under `key`, replacing any prior value.

        @throws StoreWriteError
          If the write transaction fails. Nothing is written in that case.
        """

    def close(self) -> None:
        """
        Close any resources associated with the store.
        """

    def __enter__(self) -> 'Store':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class SqliteStore(Store):
    """
    A store kept in a single SQLite database file.

    The database runs in WAL mode, so readers work from a snapshot while a
    writer is active. Writes take SQLite's write lock up front with
    `BEGIN IMMEDIATE`, which leaves exactly one writer at a time. A SQLite
    transaction belongs to its connection, so each transaction borrows one
    from a pool and hands it back when done. The pool only grows to the number
    of transactions that were ever in flight at once.
    """

    def __init__(self, path: Union[str, Path], bucket: str = DEFAULT_BUCKET, timeout: float = 30.0) -> None:
        """
        Open the store, creating the database file and bucket if absent.

        @param path
          The path to the database file.
        @param bucket
          The namespace holding this store's entries. Stores sharing a file but
          not a bucket never see each other's entries.
        @param timeout
          How many seconds to wait for the write lock before failing.
        @throws StoreOpenError
          If the file cannot be created or initialized.
        """
        self.__path = Path(path)
        self.__bucket = bucket
        self.__timeout = timeout
        self.__idle: List[sqlite3.Connection] = []
        self.__open: Set[sqlite3.Connection] = set()
        self.__lock = threading.Lock()
        self.__closed = False

        try:
            logger.info('Opening store at {} with bucket {!r}'.format(self.__path, bucket))
            self.__path.parent.mkdir(parents=True, exist_ok=True)
            # Only the owner may read the remembered responses. SQLite gives the
            # -wal and -shm files the mode of the database file.
            os.close(os.open(str(self.__path), os.O_RDWR | os.O_CREAT, 0o600))
            connection = self._acquire()
            try:
                connection.execute('PRAGMA journal_mode=WAL')
            finally:
                self._release(connection)
            with self._transaction('IMMEDIATE') as connection:
                connection.execute(
                    'CREATE TABLE IF NOT EXISTS entries ('
                    ' bucket TEXT NOT NULL,'
                    ' key BLOB NOT NULL,'
                    ' value BLOB NOT NULL,'
                    ' PRIMARY KEY (bucket, key)'
                    ') WITHOUT ROWID')
        except (OSError, sqlite3.Error) as e:
            logger.warning('Unable to open store at {}: {}'.format(self.__path, e))
            self.close()
            raise StoreOpenError('Unable to open store at {}'.format(self.__path)) from e

    @property
    def path(self) -> Path:
        return self.__path

    @property
    def bucket(self) -> str:
        return self.__bucket

    def get(self, key: bytes) -> Optional[bytes]:
        try:
            with self._transaction('DEFERRED') as connection:
                row = connection.execute('SELECT value FROM entries WHERE bucket = ? AND key = ?',
                                         (self.__bucket, bytes(key))).fetchone()
        except sqlite3.Error as e:
            logger.warning('Read transaction failed: {}'.format(e))
            raise StoreReadError('Unable to read from store at {}'.format(self.__path)) from e

        if row is None:
            logger.info('{!r} not found'.format(key))
            return None
        return bytes(row[0])

    def put(self, key: bytes, value: bytes) -> None:
        try:
            with self._transaction('IMMEDIATE') as connection:
                connection.execute('INSERT OR REPLACE INTO entries (bucket, key, value) VALUES (?, ?, ?)',
                                   (self.__bucket, bytes(key), bytes(value)))
        except sqlite3.Error as e:
            logger.warning('Write transaction failed: {}'.format(e))
            raise StoreWriteError('Unable to write to store at {}'.format(self.__path)) from e

    def close(self) -> None:
        with self.__lock:
            if self.__closed:
                return
            self.__closed = True
            idle, self.__idle = self.__idle, []
        logger.info('Closing store at {}'.format(self.__path))
        for connection in idle:
            self._discard(connection)

    @property
    def open_connections(self) -> int:
        """
        The number of connections currently open, lent out or idle.
        """
        with self.__lock:
            return len(self.__open)

    def _acquire(self) -> sqlite3.Connection:
        with self.__lock:
            if self.__closed:
                raise sqlite3.ProgrammingError('Cannot operate on a closed store.')
            if self.__idle:
                return self.__idle.pop()
        # Transactions are managed by hand, hence no isolation level.
        connection = sqlite3.connect(str(self.__path),
                                     timeout=self.__timeout,
                                     isolation_level=None,
                                     check_same_thread=False)
        with self.__lock:
            self.__open.add(connection)
        return connection

    def _release(self, connection: sqlite3.Connection) -> None:
        with self.__lock:
            if not self.__closed and not connection.in_transaction:
                self.__idle.append(connection)
                return
        self._discard(connection)

    def _discard(self, connection: sqlite3.Connection) -> None:
        with self.__lock:
            self.__open.discard(connection)
        connection.close()

    @contextmanager
    def _transaction(self, mode: str) -> Iterator[sqlite3.Connection]:
        connection = self._acquire()
        try:
            connection.execute('BEGIN {}'.format(mode))
            try:
                yield connection
                connection.execute('COMMIT')
            except BaseException:
                if connection.in_transaction:
                    connection.execute('ROLLBACK')
                raise
        finally:
            self._release(connection)
