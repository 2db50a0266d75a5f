"""Contract between the memory bridge and the backend package it loads.

The backend package does the actual storage and vector search. The bridge
only needs a factory that returns a connected handle with the operations
declared below.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, runtime_checkable

from .models import ListOptions, SearchOptions, WriteMetadata


@dataclass(frozen=True)
class ConnectionParams:
    """Parameters handed to the backend factory.

    Attributes:
        host: PostgreSQL host.
        port: PostgreSQL port.
        database: Database name.
        user_id: Identity that memory entries are attributed to.
        user: Database user.
        password: Database password, if any.
        ssl: Whether to use SSL/TLS.
    """
    host: str
    port: int
    database: str
    user_id: str
    user: str
    password: Optional[str] = None
    ssl: bool = False

    def as_dict(self) -> Dict[str, Any]:
        """Database settings block for backend classes that take a mapping.

        The user id is not part of it; backends receive that separately.
        """
        return {
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "user": self.user,
            "password": self.password,
            "ssl": self.ssl,
        }

    def describe(self) -> str:
        """Connection target without credentials, for log lines."""
        return f"{self.host}:{self.port}/{self.database}"


@runtime_checkable
class MemoryBackend(Protocol):
    """Live connection to the memory store."""

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def read(self, key: str) -> Optional[str]: ...

    async def write(self, key: str, content: str,
                    metadata: Optional[WriteMetadata] = None) -> None: ...

    async def search(self, query: str, options: Optional[SearchOptions] = None) -> List[Any]: ...

    async def list(self, options: Optional[ListOptions] = None) -> List[str]: ...

    async def delete(self, key: str) -> bool: ...

    async def stats(self) -> Any: ...


# Asynchronous constructor returning a connected handle
BackendFactory = Callable[[ConnectionParams], Awaitable[MemoryBackend]]
