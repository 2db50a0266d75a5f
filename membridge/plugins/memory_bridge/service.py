"""Background service managing the memory backend connection lifecycle.

The service resolves and connects the backend once at start, keeps a
periodically refreshed stats snapshot, and releases the connection at stop.
A backend that cannot be loaded or reached leaves the service in the
``error`` state; it never raises out of start(), so the rest of the plugin
keeps running in degraded mode.
"""

import asyncio
import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..base import PluginLogger
from .backend import MemoryBackend
from .config_loader import MemoryBridgeConfig, build_connection_params
from .models import BridgeStatus, ConnectionState, LogEntry, StatsSnapshot
from .resolver import BackendResolver, ResolutionFailure

SERVICE_ID = "memory-bridge-service"

# Log entry levels
LOG_INFO = 'INFO'
LOG_DEBUG = 'DEBUG'
LOG_ERROR = 'ERROR'
LOG_WARN = 'WARN'

# Maximum log entries to keep
MAX_LOG_ENTRIES = 500


class BackendResolutionError(Exception):
    """No backend candidate could be loaded."""

    def __init__(self, failure: ResolutionFailure):
        self.failure = failure
        super().__init__(failure.message)


@dataclass(frozen=True)
class ConnectionSnapshot:
    """Connection state, handle, stats and error captured together."""
    state: ConnectionState = ConnectionState.DISCONNECTED
    handle: Optional[MemoryBackend] = None
    stats: Optional[StatsSnapshot] = None
    error: Optional[str] = None


class StatusCache:
    """Last known connectivity, readable without touching the network.

    The whole record is swapped in one assignment, so a reader always sees
    a state and handle that belong together.
    """

    def __init__(self):
        self._snapshot = ConnectionSnapshot()

    def snapshot(self) -> ConnectionSnapshot:
        return self._snapshot

    def status(self) -> BridgeStatus:
        snap = self._snapshot
        return BridgeStatus(
            connected=snap.handle is not None,
            state=snap.state,
            stats=snap.stats,
            error=snap.error,
        )

    def _publish(self, snapshot: ConnectionSnapshot) -> None:
        self._snapshot = snapshot


class MemoryBridgeService:
    """Owns the single backend connection and its stats refresh task.

    Lifecycle: construct, start(), stop(). stop() may be followed by another
    start(), which creates a new connection.
    """

    def __init__(
        self,
        config: MemoryBridgeConfig,
        logger: Optional[PluginLogger] = None,
        resolver: Optional[BackendResolver] = None,
        environ: Optional[Dict[str, str]] = None,
    ):
        self._config = config
        self._logger = logger or logging.getLogger(__name__)
        # Interaction log
        self._log: deque = deque(maxlen=MAX_LOG_ENTRIES)
        self._log_lock = threading.Lock()
        self._resolver = resolver or BackendResolver(
            log=lambda message: self._log_event(LOG_INFO, message)
        )
        self._environ = environ
        self._cache = StatusCache()
        self._lock = asyncio.Lock()
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def id(self) -> str:
        return SERVICE_ID

    @property
    def cache(self) -> StatusCache:
        return self._cache

    def status(self) -> BridgeStatus:
        """Current status from the cache. No network I/O."""
        return self._cache.status()

    def get_backend(self) -> Optional[MemoryBackend]:
        """Return the connected backend handle, or None when not connected."""
        return self._cache.snapshot().handle

    def get_log_entries(self) -> List[LogEntry]:
        with self._log_lock:
            return list(self._log)

    def clear_log(self) -> None:
        with self._log_lock:
            self._log.clear()

    def _log_event(self, level: str, event: str, details: Optional[str] = None) -> None:
        """Record an event in the interaction log and forward it to the logger."""
        entry = LogEntry(timestamp=datetime.now(), level=level, event=event, details=details)
        with self._log_lock:
            self._log.append(entry)
        message = f"{event}: {details}" if details else event
        if level == LOG_ERROR:
            self._logger.error(message)
        elif level == LOG_WARN:
            self._logger.warning(message)
        elif level == LOG_INFO:
            self._logger.info(message)
        else:
            self._logger.debug(message)

    # ==================== Lifecycle ====================

    async def start(self, ctx: Optional[Dict[str, Any]] = None) -> None:
        """Resolve and connect the backend. Never raises on backend failure."""
        async with self._lock:
            if self._cache.snapshot().handle is not None:
                self._log_event(LOG_DEBUG, "Start requested while connected, ignoring")
                return

            self._log_event(LOG_INFO, "Starting Memory Bridge service")
            try:
                handle = await self._connect()
            except Exception as exc:
                message = str(exc) or type(exc).__name__
                self._cache._publish(ConnectionSnapshot(state=ConnectionState.ERROR, error=message))
                self._log_event(LOG_ERROR, "Failed to start Memory Bridge", details=message)
                return

            self._cache._publish(ConnectionSnapshot(state=ConnectionState.CONNECTED, handle=handle))

            try:
                stats = StatsSnapshot.from_backend(await handle.stats())
            except Exception as exc:
                self._log_event(LOG_WARN, "Failed to fetch initial stats", details=str(exc))
            else:
                self._cache._publish(ConnectionSnapshot(
                    state=ConnectionState.CONNECTED, handle=handle, stats=stats,
                ))
                self._log_event(
                    LOG_INFO, f"Memory Bridge connected. Total entries: {stats.total_entries}"
                )

            self._refresh_task = asyncio.create_task(self._refresh_loop(handle))

    async def _connect(self) -> MemoryBackend:
        params = build_connection_params(self._config, self._environ)

        outcome = self._resolver.resolve()
        if isinstance(outcome, ResolutionFailure):
            raise BackendResolutionError(outcome)

        self._log_event(LOG_INFO, f"Connecting to PostgreSQL at {params.describe()}")
        connecting = outcome.factory(params)
        if self._config.connect_timeout:
            try:
                return await asyncio.wait_for(connecting, timeout=self._config.connect_timeout)
            except asyncio.TimeoutError:
                raise TimeoutError(
                    f"Connection timed out ({self._config.connect_timeout:g}s)"
                ) from None
        return await connecting

    async def stop(self, ctx: Optional[Dict[str, Any]] = None) -> None:
        """Cancel the refresh task and release the connection. Idempotent.

        Waits for an in-flight start() to finish, so a refresh task created
        by that start() is cancelled here too.
        """
        async with self._lock:
            await self._cancel_refresh()
            handle = self._cache.snapshot().handle
            if handle is not None:
                self._log_event(LOG_INFO, "Stopping Memory Bridge service")
                try:
                    await handle.disconnect()
                except Exception as exc:
                    self._log_event(LOG_WARN, "Error during disconnect", details=str(exc))
                else:
                    self._log_event(LOG_INFO, "Memory Bridge disconnected")
            self._cache._publish(ConnectionSnapshot())

    async def _cancel_refresh(self) -> None:
        task, self._refresh_task = self._refresh_task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # ==================== Stats refresh ====================

    async def refresh_stats(self) -> bool:
        """Fetch stats once and replace the cached snapshot.

        Failures leave the previous snapshot and the connection state alone.

        Returns:
            True if a new snapshot was stored.
        """
        handle = self._cache.snapshot().handle
        if handle is None:
            return False
        try:
            stats = StatsSnapshot.from_backend(await handle.stats())
        except Exception as exc:
            self._log_event(LOG_DEBUG, "Stats refresh failed", details=str(exc))
            return False

        async with self._lock:
            current = self._cache.snapshot()
            # Connection may have been replaced or dropped while waiting
            if current.handle is not handle:
                return False
            self._cache._publish(ConnectionSnapshot(
                state=current.state, handle=handle, stats=stats, error=current.error,
            ))
        return True

    async def _refresh_loop(self, handle: MemoryBackend) -> None:
        interval = self._config.refresh_interval
        while True:
            await asyncio.sleep(interval)
            if self._cache.snapshot().handle is not handle:
                return
            await self.refresh_stats()
