"""Degraded-mode dispatch of memory operations.

Every operation returns an OperationResult instead of raising. Callers get
the same Failure shape whether the backend is missing, the backend raised,
the call timed out, or the input was rejected before reaching the backend.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable, Generic, Iterable, List, Optional, TypeVar, Union

from .backend import MemoryBackend
from .models import ListOptions, SearchOptions, SearchResult, StatsSnapshot, WriteMetadata

logger = logging.getLogger(__name__)

NOT_CONNECTED_MESSAGE = "Memory bridge not connected"

T = TypeVar("T")


class FailureKind(str, Enum):
    NOT_CONNECTED = "not_connected"
    BACKEND_ERROR = "backend_error"
    VALIDATION = "validation"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T
    ok = True


@dataclass(frozen=True)
class Failure:
    error: str
    kind: FailureKind
    ok = False


OperationResult = Union[Success[T], Failure]


def normalize_namespace(namespace: str) -> str:
    return namespace.strip().lower()


class DegradedModeDispatcher:
    """Runs memory operations against whatever backend is currently held.

    The dispatcher never connects, reconnects or keeps the handle; it asks
    handle_provider for the current one on every call.
    """

    def __init__(
        self,
        handle_provider: Callable[[], Optional[MemoryBackend]],
        allowed_namespaces: Iterable[str],
        default_namespace: str,
        operation_timeout: Optional[float] = None,
    ):
        self._handle_provider = handle_provider
        self._allowed = frozenset(normalize_namespace(n) for n in allowed_namespaces)
        self._default_namespace = default_namespace
        self._operation_timeout = operation_timeout

    @property
    def default_namespace(self) -> str:
        return self._default_namespace

    def validate_namespace(self, namespace: Optional[str]) -> OperationResult[str]:
        """Normalize a namespace and check it against the allow-list.

        None means the default namespace.
        """
        raw = self._default_namespace if namespace is None else namespace
        normalized = normalize_namespace(raw)
        if normalized not in self._allowed:
            return Failure(f"Invalid schema: {raw}", FailureKind.VALIDATION)
        return Success(normalized)

    async def run(
        self,
        name: str,
        operation: Callable[[MemoryBackend], Awaitable[T]],
    ) -> OperationResult[T]:
        """Run one operation against the current handle.

        No namespace policy is applied here; callers that touch a namespace
        validate it first.
        """
        handle = self._handle_provider()
        if handle is None:
            return Failure(NOT_CONNECTED_MESSAGE, FailureKind.NOT_CONNECTED)
        try:
            if self._operation_timeout:
                # A TimeoutError raised by the backend is a backend error
                task = asyncio.ensure_future(operation(handle))
                try:
                    done, _ = await asyncio.wait({task}, timeout=self._operation_timeout)
                finally:
                    if not task.done():
                        task.cancel()
                if not done:
                    logger.warning("Memory operation %s timed out", name)
                    return Failure(
                        f"Operation timed out after {self._operation_timeout:g}s",
                        FailureKind.TIMEOUT,
                    )
                value = task.result()
            else:
                value = await operation(handle)
        except Exception as exc:
            logger.debug("Memory operation %s failed: %s", name, exc)
            return Failure(str(exc) or type(exc).__name__, FailureKind.BACKEND_ERROR)
        return Success(value)

    async def store(self, key: str, content: str, namespace: Optional[str] = None,
                    tags: Optional[List[str]] = None) -> OperationResult[str]:
        """Write an entry. The Success value is the namespace written to."""
        checked = self.validate_namespace(namespace)
        if not checked.ok:
            return checked
        schema = checked.value

        async def write(handle: MemoryBackend) -> str:
            await handle.write(key, content, WriteMetadata(namespace=schema, tags=tags))
            return schema

        return await self.run("write", write)

    async def search(self, query: str, limit: int = 5, namespace: Optional[str] = None,
                     threshold: Optional[float] = None,
                     include_metadata: bool = False) -> OperationResult[List[SearchResult]]:
        checked = self.validate_namespace(namespace)
        if not checked.ok:
            return checked
        options = SearchOptions(
            limit=limit,
            namespace=checked.value,
            threshold=threshold,
            include_metadata=include_metadata,
        )

        async def search(handle: MemoryBackend) -> List[SearchResult]:
            results = [SearchResult.from_backend(r) for r in await handle.search(query, options)]
            if include_metadata:
                return results
            return [replace(r, metadata=None) for r in results]

        return await self.run("search", search)

    async def read(self, key: str, namespace: Optional[str] = None) -> OperationResult[Optional[str]]:
        checked = self.validate_namespace(namespace)
        if not checked.ok:
            return checked
        return await self.run("read", lambda handle: handle.read(key))

    async def delete(self, key: str, namespace: Optional[str] = None) -> OperationResult[bool]:
        checked = self.validate_namespace(namespace)
        if not checked.ok:
            return checked

        async def delete(handle: MemoryBackend) -> bool:
            return bool(await handle.delete(key))

        return await self.run("delete", delete)

    async def list_keys(self, namespace: Optional[str] = None, limit: int = 100,
                        offset: int = 0) -> OperationResult[List[str]]:
        """List keys. Without a namespace, keys from every namespace are listed."""
        schema = None
        if namespace is not None:
            checked = self.validate_namespace(namespace)
            if not checked.ok:
                return checked
            schema = checked.value
        options = ListOptions(namespace=schema, limit=limit, offset=offset)

        async def list_keys(handle: MemoryBackend) -> List[str]:
            return [str(key) for key in await handle.list(options)]

        return await self.run("list", list_keys)

    async def stats(self) -> OperationResult[StatsSnapshot]:
        async def stats(handle: MemoryBackend) -> StatsSnapshot:
            return StatsSnapshot.from_backend(await handle.stats())

        return await self.run("stats", stats)
