"""Agent tools for the memory bridge.

Each tool pairs a ToolSchema with an async executor. Executors always return
a JSON-serializable dict; failures are reported in its ``error`` field.
"""

import math
from typing import Any, Dict, List, Optional, Tuple

from ..base import ToolExecutor, ToolSchema
from .dispatcher import DegradedModeDispatcher, Failure

DEFAULT_SEARCH_LIMIT = 5
DEFAULT_LIST_LIMIT = 100


class ParameterError(ValueError):
    """A required tool parameter is missing or malformed."""


def read_string_param(params: Dict[str, Any], key: str, required: bool = False,
                      trim: bool = True) -> Optional[str]:
    raw = params.get(key)
    if not isinstance(raw, str):
        if required:
            raise ParameterError(f"{key} required")
        return None
    value = raw.strip() if trim else raw
    if not value:
        if required:
            raise ParameterError(f"{key} required")
        return None
    return value


def read_number_param(params: Dict[str, Any], key: str,
                      required: bool = False) -> Optional[float]:
    raw = params.get(key)
    value = None
    if isinstance(raw, bool):
        pass
    elif isinstance(raw, int):
        value = raw
    elif isinstance(raw, float) and math.isfinite(raw):
        value = raw
    elif isinstance(raw, str):
        try:
            parsed = float(raw.strip())
        except ValueError:
            parsed = None
        if parsed is not None and math.isfinite(parsed):
            value = parsed
    if value is None and required:
        raise ParameterError(f"{key} required")
    return value


def read_string_array_param(params: Dict[str, Any], key: str) -> Optional[List[str]]:
    raw = params.get(key)
    if isinstance(raw, list):
        return [entry.strip() for entry in raw if isinstance(entry, str) and entry.strip()]
    if isinstance(raw, str):
        value = raw.strip()
        return [value] if value else None
    return None


def _int_param(params: Dict[str, Any], key: str, default: int) -> int:
    value = read_number_param(params, key)
    return default if value is None else int(value)


# ==================== Schemas ====================

MEMORY_STORE_SCHEMA = ToolSchema(
    name='memory_store',
    label='Memory Store',
    description=(
        'Store information in persistent enterprise memory (PostgreSQL vector store). '
        'Use for saving important context, decisions, patterns, or knowledge '
        'that should persist across sessions.'
    ),
    parameters={
        "type": "object",
        "properties": {
            "key": {"type": "string", "description": "Unique key for the memory entry"},
            "content": {"type": "string", "description": "Content to store"},
            "namespace": {"type": "string", "description": "Optional namespace (schema)"},
            "tags": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Optional tags for categorization",
            },
        },
        "required": ["key", "content"],
    },
)

MEMORY_SEARCH_SCHEMA = ToolSchema(
    name='memory_search_enterprise',
    label='Memory Search (Enterprise)',
    description=(
        'Semantically search enterprise memory using vector similarity. '
        'Returns relevant memories ranked by similarity score. Use before answering '
        'questions about prior work, decisions, patterns, or knowledge.'
    ),
    parameters={
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "Semantic search query"},
            "limit": {
                "type": "number",
                "description": f"Maximum number of results (default: {DEFAULT_SEARCH_LIMIT})",
            },
            "namespace": {"type": "string", "description": "Optional namespace to search in"},
            "threshold": {"type": "number", "description": "Minimum similarity threshold (0-1)"},
            "includeMetadata": {"type": "boolean", "description": "Include full metadata in results"},
        },
        "required": ["query"],
    },
)

MEMORY_READ_SCHEMA = ToolSchema(
    name='memory_read',
    label='Memory Read',
    description='Read a specific memory entry by key from enterprise storage.',
    parameters={
        "type": "object",
        "properties": {
            "key": {"type": "string", "description": "Memory key to read"},
            "namespace": {"type": "string", "description": "Optional namespace"},
        },
        "required": ["key"],
    },
)

MEMORY_DELETE_SCHEMA = ToolSchema(
    name='memory_delete',
    label='Memory Delete',
    description='Delete a memory entry by key from enterprise storage.',
    parameters={
        "type": "object",
        "properties": {
            "key": {"type": "string", "description": "Memory key to delete"},
            "namespace": {"type": "string", "description": "Optional namespace"},
        },
        "required": ["key"],
    },
)

MEMORY_LIST_SCHEMA = ToolSchema(
    name='memory_list',
    label='Memory List',
    description='List memory entry keys in a namespace.',
    parameters={
        "type": "object",
        "properties": {
            "namespace": {"type": "string", "description": "Optional namespace to list"},
            "limit": {"type": "number", "description": "Maximum number of keys to return"},
            "offset": {"type": "number", "description": "Offset for pagination"},
        },
        "required": [],
    },
)

MEMORY_STATS_SCHEMA = ToolSchema(
    name='memory_stats',
    label='Memory Stats',
    description='Get statistics about enterprise memory storage.',
    parameters={"type": "object", "properties": {}, "required": []},
)


class MemoryBridgeTools:
    """Tool executors backed by a DegradedModeDispatcher."""

    def __init__(self, dispatcher: DegradedModeDispatcher):
        self._dispatcher = dispatcher

    def get_tools(self) -> List[Tuple[ToolSchema, ToolExecutor]]:
        return [
            (MEMORY_STORE_SCHEMA, self.execute_store),
            (MEMORY_SEARCH_SCHEMA, self.execute_search),
            (MEMORY_READ_SCHEMA, self.execute_read),
            (MEMORY_DELETE_SCHEMA, self.execute_delete),
            (MEMORY_LIST_SCHEMA, self.execute_list),
            (MEMORY_STATS_SCHEMA, self.execute_stats),
        ]

    async def execute_store(self, args: Dict[str, Any]) -> Dict[str, Any]:
        try:
            key = read_string_param(args, "key", required=True)
            content = read_string_param(args, "content", required=True, trim=False)
        except ParameterError as exc:
            return {"success": False, "error": str(exc)}
        namespace = read_string_param(args, "namespace")
        tags = read_string_array_param(args, "tags")

        result = await self._dispatcher.store(key, content, namespace=namespace, tags=tags)
        if isinstance(result, Failure):
            return {"success": False, "error": result.error}
        return {"success": True, "key": key, "namespace": result.value}

    async def execute_search(self, args: Dict[str, Any]) -> Dict[str, Any]:
        try:
            query = read_string_param(args, "query", required=True)
        except ParameterError as exc:
            return {"results": [], "error": str(exc)}
        include_metadata = args.get("includeMetadata") is True

        result = await self._dispatcher.search(
            query,
            limit=_int_param(args, "limit", DEFAULT_SEARCH_LIMIT),
            namespace=read_string_param(args, "namespace"),
            threshold=read_number_param(args, "threshold"),
            include_metadata=include_metadata,
        )
        if isinstance(result, Failure):
            return {"results": [], "error": result.error}
        return {
            "results": [r.to_dict(include_metadata=include_metadata) for r in result.value],
            "count": len(result.value),
        }

    async def execute_read(self, args: Dict[str, Any]) -> Dict[str, Any]:
        try:
            key = read_string_param(args, "key", required=True)
        except ParameterError as exc:
            return {"found": False, "error": str(exc)}

        result = await self._dispatcher.read(key, namespace=read_string_param(args, "namespace"))
        if isinstance(result, Failure):
            return {"key": key, "found": False, "error": result.error}
        if result.value is None:
            return {"key": key, "found": False, "error": "Memory not found"}
        return {"key": key, "found": True, "content": result.value}

    async def execute_delete(self, args: Dict[str, Any]) -> Dict[str, Any]:
        try:
            key = read_string_param(args, "key", required=True)
        except ParameterError as exc:
            return {"success": False, "error": str(exc)}

        result = await self._dispatcher.delete(key, namespace=read_string_param(args, "namespace"))
        if isinstance(result, Failure):
            return {"success": False, "key": key, "error": result.error}
        return {"success": result.value, "key": key}

    async def execute_list(self, args: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._dispatcher.list_keys(
            namespace=read_string_param(args, "namespace"),
            limit=_int_param(args, "limit", DEFAULT_LIST_LIMIT),
            offset=_int_param(args, "offset", 0),
        )
        if isinstance(result, Failure):
            return {"keys": [], "error": result.error}
        return {"keys": result.value, "count": len(result.value)}

    async def execute_stats(self, args: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._dispatcher.stats()
        if isinstance(result, Failure):
            return {"error": result.error}
        return result.value.to_dict()
