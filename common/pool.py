"""Fixed-size connection pool with FIFO waiters."""

import asyncio
import logging
from collections import deque
from contextlib import asynccontextmanager
from typing import Any, Callable, Deque, List

logger = logging.getLogger(__name__)


class PoolClosedError(RuntimeError):
    """Raised when acquiring from a pool after close_all()."""

    pass


class ConnectionPool:
    """
    Bounds the number of concurrent database connections.

    All connections are opened up front by ``factory``. When every connection
    is in use, ``acquire()`` suspends the caller in a FIFO queue; ``release()``
    hands the connection straight to the longest-waiting caller.
    """

    def __init__(self, factory: Callable[[], Any], size: int):
        if size < 1:
            raise ValueError("Pool size must be at least 1")

        self.size = size
        self._connections: List[Any] = []
        self._available: Deque[Any] = deque()
        self._waiters: Deque[asyncio.Future] = deque()
        self._closed = False

        for slot in range(size):
            try:
                conn = factory()
            except Exception as e:
                # Slot stays unusable, no retry
                logger.error(f"Failed to open pooled connection {slot + 1}/{size}: {e}")
                continue
            self._connections.append(conn)
            self._available.append(conn)

        logger.info(f"Connection pool created with {len(self._connections)}/{size} connections")

    @property
    def open_count(self) -> int:
        return len(self._connections)

    @property
    def available_count(self) -> int:
        return len(self._available)

    @property
    def waiting_count(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def acquire(self) -> Any:
        """Return a free connection, waiting in line when none is available."""
        if self._closed:
            raise PoolClosedError("Connection pool is closed")

        if self._available:
            return self._available.popleft()

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Served and cancelled in the same tick: give it back
                self.release(waiter.result())
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise

    def release(self, conn: Any) -> None:
        """Return a connection, serving the oldest waiter first."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(conn)
                return
        self._available.append(conn)

    @asynccontextmanager
    async def connection(self):
        conn = await self.acquire()
        try:
            yield conn
        finally:
            self.release(conn)

    def close_all(self) -> None:
        """Close every tracked connection. The pool is unusable afterwards."""
        if self._closed:
            return
        self._closed = True

        for conn in self._connections:
            try:
                conn.close()
            except Exception as e:
                logger.warning(f"Error closing pooled connection: {e}")

        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_exception(PoolClosedError("Connection pool is closed"))

        self._connections.clear()
        self._available.clear()
        self._waiters.clear()
        logger.info("Connection pool closed")
