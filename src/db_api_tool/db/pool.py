from __future__ import annotations

import logging
import time
from collections import deque
from contextlib import contextmanager
from threading import Condition
from typing import Any, Callable, Iterator

import mysql.connector

from ..config import AppConfig
from ..errors import DbApiError, EngineError, PoolExhausted
from ..logging_utils import log_extra


class Lease:
    """Exclusive use of one pooled connection until it is released."""

    def __init__(self, pool: "ConnectionPool", connection: Any) -> None:
        self._pool = pool
        self._connection = connection
        self._released = False
        self._discard = False

    @property
    def connection(self) -> Any:
        if self._released:
            raise RuntimeError("Lease used after release")
        return self._connection

    @property
    def released(self) -> bool:
        return self._released

    @property
    def discarded(self) -> bool:
        return self._discard

    def discard(self) -> None:
        """Mark the connection as broken so release closes it instead of reusing it."""
        self._discard = True


class ConnectionPool:
    """Bounded, lazily filled pool of database connections.

    ``connect`` opens one new connection. At most ``max_size`` connections are
    open at any time; callers beyond that wait in :meth:`acquire` until one is
    released or the timeout elapses.
    """

    def __init__(
        self,
        connect: Callable[[], Any],
        max_size: int = 10,
        acquire_timeout: float = 5.0,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._connect = connect
        self._max_size = max_size
        self._acquire_timeout = acquire_timeout
        self._idle: deque[Any] = deque()
        self._open = 0
        self._closed = False
        self._cond = Condition()
        self._log = logging.getLogger(__name__)

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def size(self) -> int:
        with self._cond:
            return self._open

    @property
    def idle_count(self) -> int:
        with self._cond:
            return len(self._idle)

    @property
    def in_use(self) -> int:
        with self._cond:
            return self._open - len(self._idle)

    def acquire(self, timeout: float | None = None) -> Lease:
        timeout = self._acquire_timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout
        connection = None

        with self._cond:
            while True:
                if self._closed:
                    raise EngineError("Connection pool is closed")
                if self._idle:
                    connection = self._idle.pop()
                    break
                if self._open < self._max_size:
                    # Reserve the slot now, connect outside the lock.
                    self._open += 1
                    break
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise PoolExhausted(
                        f"No database connection available within {timeout:g}s"
                    )
                self._cond.wait(remaining)

        if connection is not None and not self._is_alive(connection):
            # The slot stays reserved for the replacement.
            self._close_connection(connection, reason="stale")
            connection = None
        if connection is None:
            connection = self._open_connection()
        return Lease(self, connection)

    def release(self, lease: Lease, discard: bool = False) -> None:
        if lease._pool is not self:
            raise RuntimeError("Lease belongs to a different pool")

        to_close = None
        with self._cond:
            if lease._released:
                raise RuntimeError("Lease released twice")
            lease._released = True
            connection = lease._connection
            if discard or lease._discard or self._closed:
                self._open -= 1
                to_close = connection
            else:
                self._idle.append(connection)
            self._cond.notify()

        if to_close is not None:
            self._close_connection(to_close, reason="discarded")

    @contextmanager
    def lease(self, timeout: float | None = None) -> Iterator[Lease]:
        """Acquire a connection and release it on every exit path.

        Exceptions other than :class:`DbApiError` discard the connection; a
        :class:`DbApiError` discards it only when the lease was marked.
        """
        lease = self.acquire(timeout)
        try:
            yield lease
        except DbApiError:
            self.release(lease)
            raise
        except BaseException:
            self.release(lease, discard=True)
            raise
        else:
            self.release(lease)

    def close(self) -> None:
        with self._cond:
            self._closed = True
            idle = list(self._idle)
            self._idle.clear()
            self._open -= len(idle)
            self._cond.notify_all()

        for connection in idle:
            self._close_connection(connection, reason="shutdown")

    def _open_connection(self) -> Any:
        try:
            connection = self._connect()
        except Exception as exc:
            with self._cond:
                self._open -= 1
                self._cond.notify()
            self._log.error(
                "Failed to open database connection",
                extra=log_extra(error_message=str(exc)),
            )
            raise EngineError(f"Failed to connect to database: {exc}") from exc

        self._log.info(
            "Opened database connection",
            extra=log_extra(pool_size=self.size, max_size=self._max_size),
        )
        return connection

    def _is_alive(self, connection: Any) -> bool:
        # is_connected() pings the server and reports False instead of raising.
        try:
            return bool(connection.is_connected())
        except Exception as exc:
            self._log.debug(
                "Idle connection failed liveness check",
                extra=log_extra(error_message=str(exc)),
            )
            return False

    def _close_connection(self, connection: Any, reason: str) -> None:
        try:
            connection.close()
        except Exception as exc:
            self._log.debug(
                "Error closing database connection",
                extra=log_extra(reason=reason, error_message=str(exc)),
            )
        else:
            self._log.info("Closed database connection", extra=log_extra(reason=reason))


def mysql_connect_factory(config: AppConfig) -> Callable[[], Any]:
    """Return a callable that opens one autocommit MySQL connection."""
    database = config.database
    limits = config.limits

    def connect() -> Any:
        connection = mysql.connector.connect(
            host=database.host,
            port=database.port,
            user=database.user,
            password=database.password,
            database=database.name,
            connection_timeout=limits.connect_timeout_seconds,
            autocommit=True,
        )
        try:
            cursor = connection.cursor()
            try:
                cursor.execute(
                    "SET SESSION max_execution_time = %s",
                    (limits.query_timeout_seconds * 1000,),
                )
            finally:
                cursor.close()
        except Exception:
            connection.close()
            raise
        return connection

    return connect


def create_pool(config: AppConfig) -> ConnectionPool:
    return ConnectionPool(
        mysql_connect_factory(config),
        max_size=config.limits.pool_size,
        acquire_timeout=config.limits.acquire_timeout_seconds,
    )
