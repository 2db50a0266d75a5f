"""Data models for the memory bridge plugin."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class ConnectionState(str, Enum):
    """Connection state of the memory bridge service."""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    ERROR = "error"


def _field(source: Any, *names: str, default: Any = None) -> Any:
    """Read the first present field from a mapping or attribute object."""
    for name in names:
        if isinstance(source, Mapping):
            if name in source:
                return source[name]
        elif hasattr(source, name):
            return getattr(source, name)
    return default


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


@dataclass(frozen=True)
class StatsSnapshot:
    """Backend statistics at one point in time.

    Snapshots are never updated in place; each refresh produces a new one.

    Attributes:
        total_entries: Total number of stored entries.
        by_namespace: Entry count per namespace.
        oldest_entry: Timestamp of the oldest entry, if reported.
        newest_entry: Timestamp of the newest entry, if reported.
    """
    total_entries: int
    by_namespace: Mapping[str, int] = field(default_factory=dict)
    oldest_entry: Optional[datetime] = None
    newest_entry: Optional[datetime] = None

    @classmethod
    def from_backend(cls, raw: Any) -> "StatsSnapshot":
        """Build a snapshot from what a backend's stats() returned.

        Backends report either a mapping (camelCase or snake_case keys) or an
        object with matching attributes.

        Raises:
            ValueError: If the total entry count is missing or not a number.
        """
        if isinstance(raw, cls):
            return raw
        total = _field(raw, "total_entries", "totalEntries")
        if total is None:
            raise ValueError("Backend stats missing total entry count")
        by_namespace = _field(raw, "by_namespace", "byNamespace", default={}) or {}
        return cls(
            total_entries=int(total),
            by_namespace={str(k): int(v) for k, v in dict(by_namespace).items()},
            oldest_entry=_parse_timestamp(_field(raw, "oldest_entry", "oldestEntry")),
            newest_entry=_parse_timestamp(_field(raw, "newest_entry", "newestEntry")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_entries": self.total_entries,
            "by_namespace": dict(self.by_namespace),
            "oldest_entry": self.oldest_entry.isoformat() if self.oldest_entry else None,
            "newest_entry": self.newest_entry.isoformat() if self.newest_entry else None,
        }


@dataclass
class SearchResult:
    """A memory record returned by a similarity search."""
    key: str
    content: str
    score: float
    namespace: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def from_backend(cls, raw: Any) -> "SearchResult":
        if isinstance(raw, cls):
            return raw
        return cls(
            key=_field(raw, "key"),
            content=_field(raw, "content"),
            score=_field(raw, "score", default=0.0),
            namespace=_field(raw, "namespace"),
            metadata=_field(raw, "metadata"),
        )

    def to_dict(self, include_metadata: bool = False) -> Dict[str, Any]:
        result = {
            "key": self.key,
            "content": self.content,
            "score": self.score,
            "namespace": self.namespace,
        }
        if include_metadata and self.metadata:
            result["metadata"] = self.metadata
        return result


@dataclass
class SearchOptions:
    limit: int = 5
    namespace: Optional[str] = None
    threshold: Optional[float] = None
    include_metadata: bool = False


@dataclass
class ListOptions:
    namespace: Optional[str] = None
    limit: int = 100
    offset: int = 0


@dataclass
class WriteMetadata:
    namespace: Optional[str] = None
    tags: Optional[List[str]] = None


@dataclass(frozen=True)
class BridgeStatus:
    """Last known connectivity of the memory bridge.

    Attributes:
        connected: True while a backend handle is held.
        state: Current connection state.
        stats: Last successful stats snapshot, if any.
        error: Message of the last start failure, if any.
    """
    connected: bool
    state: ConnectionState
    stats: Optional[StatsSnapshot] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "connected": self.connected,
            "state": self.state.value,
            "stats": self.stats.to_dict() if self.stats else None,
            "error": self.error,
        }


@dataclass
class LogEntry:
    """A single entry in the memory bridge interaction log."""
    timestamp: datetime
    level: str
    event: str
    details: Optional[str] = None

    def format(self, include_timestamp: bool = True) -> str:
        parts = []
        if include_timestamp:
            parts.append(self.timestamp.strftime('%H:%M:%S.%f')[:-3])
        parts.append(f"[{self.level}]")
        parts.append(self.event)
        if self.details:
            parts.append(f"- {self.details}")
        return ' '.join(parts)
