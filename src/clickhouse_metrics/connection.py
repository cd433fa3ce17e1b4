"""ClickHouse connection lifecycle: open, ping, hand out cursors, close."""

from __future__ import annotations

import logging
import threading
from typing import Any

from clickhouse_driver import dbapi

from .config import ClickHouseConfig
from .errors import StoreConnectionError

logger = logging.getLogger(__name__)


class ClickHouseConnection:
    """Owns one DB-API connection to ClickHouse for an exporter's lifetime.

    Use :meth:`open` to connect; it pings the server and fails fast when the
    server is unreachable or rejects the credentials. Each cursor handed out
    by :meth:`cursor` carries its own native-protocol client, so concurrent
    export calls never share a statement.
    """

    def __init__(self, raw: Any, description: str = "") -> None:
        self._raw = raw
        self._description = description
        self._closed = False
        self._lock = threading.Lock()

    @classmethod
    def open(cls, config: ClickHouseConfig) -> "ClickHouseConnection":
        """Connect using *config* and verify the server answers."""
        config.validate()
        description = f"{config.host}:{config.port}/{config.database}"
        try:
            raw = dbapi.connect(
                host=config.host,
                port=config.port,
                user=config.username,
                password=config.password,
                database=config.database,
                secure=config.secure,
                compression=config.compression or False,
                connect_timeout=config.connect_timeout,
                settings=dict(config.settings),
            )
        except Exception as exc:
            raise StoreConnectionError(f"failed to connect to ClickHouse at {description}: {exc}") from exc

        conn = cls(raw, description)
        try:
            conn.ping()
        except StoreConnectionError:
            conn.close()
            raise
        logger.info("Connected to ClickHouse at %s (secure=%s)", description, config.secure)
        return conn

    @property
    def closed(self) -> bool:
        return self._closed

    def cursor(self) -> Any:
        """Return a new DB-API cursor."""
        with self._lock:
            if self._closed:
                raise StoreConnectionError("connection already closed")
            try:
                return self._raw.cursor()
            except Exception as exc:
                raise StoreConnectionError(f"failed to open cursor: {exc}") from exc

    def ping(self) -> None:
        """Run a trivial query; raise :class:`StoreConnectionError` on failure."""
        cursor = self.cursor()
        try:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        except Exception as exc:
            raise StoreConnectionError(f"failed to ping ClickHouse at {self._description}: {exc}") from exc
        finally:
            cursor.close()

    def close(self) -> None:
        """Release the connection. Closing twice is a no-op."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._raw.close()
        except dbapi.InterfaceError:
            # the driver refuses to close an already-closed connection
            logger.debug("ClickHouse connection %s was already closed", self._description)
        logger.info("ClickHouse connection %s closed", self._description)
