"""Backend resolution for the memory bridge.

The backend package can live in several places depending on how the agent
runtime was installed. Each place is described by a factory provider; the
resolver asks the providers in order and the first one that yields a usable
factory wins.
"""

import importlib
import importlib.metadata
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union

from .backend import BackendFactory, ConnectionParams, MemoryBackend

logger = logging.getLogger(__name__)

# Name of the factory function a backend module is expected to export
FACTORY_ATTRIBUTE = "create_memory_bridge"

# Entry point group backend packages may register their factory under
BACKEND_ENTRY_POINT_GROUP = "membridge.backends"

# Connection pool settings used when building a backend class directly
DIRECT_POOL_SETTINGS = {"min": 2, "max": 10, "idle_timeout": 30000}


class ProviderUnavailable(Exception):
    """Raised by a provider that cannot supply a factory."""


class FactoryProvider:
    """A resolution candidate: one place a backend factory may come from."""

    identifier: str = ""

    def load(self) -> BackendFactory:
        """Return the backend factory.

        Raises:
            ProviderUnavailable: If this candidate has no usable factory.
        """
        raise NotImplementedError


def _import(module_path: str) -> Any:
    try:
        return importlib.import_module(module_path)
    except ImportError as exc:
        raise ProviderUnavailable(f"cannot import {module_path}: {exc}") from exc
    except Exception as exc:
        raise ProviderUnavailable(f"error loading {module_path}: {exc}") from exc


class ModuleFactoryProvider(FactoryProvider):
    """Loads the factory function exported by a backend module."""

    def __init__(self, module_path: str, attribute: str = FACTORY_ATTRIBUTE):
        self.module_path = module_path
        self.attribute = attribute
        self.identifier = module_path

    def load(self) -> BackendFactory:
        module = _import(self.module_path)
        factory = getattr(module, self.attribute, None)
        if not callable(factory):
            raise ProviderUnavailable(f"{self.module_path} does not export {self.attribute}()")
        return factory


class EntryPointFactoryProvider(FactoryProvider):
    """Loads a factory registered by an installed backend package.

    Backend packages register their factory in pyproject.toml:
        [project.entry-points."membridge.backends"]
        postgres = "my_backend:create_memory_bridge"
    """

    def __init__(self, group: str = BACKEND_ENTRY_POINT_GROUP, name: Optional[str] = None):
        self.group = group
        self.name = name
        self.identifier = f"entry-point:{group}" + (f":{name}" if name else "")

    def load(self) -> BackendFactory:
        eps = [
            ep for ep in importlib.metadata.entry_points(group=self.group)
            if self.name is None or ep.name == self.name
        ]
        if not eps:
            raise ProviderUnavailable(f"no entry points in group {self.group}")
        ep = eps[0]
        try:
            factory = ep.load()
        except Exception as exc:
            raise ProviderUnavailable(f"error loading entry point {ep.name}: {exc}") from exc
        if not callable(factory):
            raise ProviderUnavailable(f"entry point {ep.name} is not callable")
        return factory


class DirectConstructionProvider(FactoryProvider):
    """Builds a factory around a concrete backend class.

    Used when the backend package ships its implementation class but not the
    higher-level factory. The class is constructed with a database settings
    block and connected before being handed back.
    """

    def __init__(self, module_path: str, class_name: str = "PostgresMemoryPlugin"):
        self.module_path = module_path
        self.class_name = class_name
        self.identifier = f"{module_path}:{class_name}"

    def load(self) -> BackendFactory:
        module = _import(self.module_path)
        backend_cls = getattr(module, self.class_name, None)
        if backend_cls is None:
            raise ProviderUnavailable(f"{self.module_path} has no {self.class_name}")

        async def create_memory_bridge(params: ConnectionParams) -> MemoryBackend:
            backend = backend_cls(
                database={**params.as_dict(), "pool": dict(DIRECT_POOL_SETTINGS)},
                user_id=params.user_id,
            )
            await backend.connect()
            return backend

        return create_memory_bridge


class CallableFactoryProvider(FactoryProvider):
    """Supplies a factory object directly, without any import."""

    def __init__(self, identifier: str, factory: BackendFactory):
        self.identifier = identifier
        self._factory = factory

    def load(self) -> BackendFactory:
        return self._factory


@dataclass
class ResolvedBackend:
    """Successful resolution: the factory and the candidate it came from."""
    identifier: str
    factory: BackendFactory


@dataclass
class ResolutionFailure:
    """Every candidate failed.

    Attributes:
        attempts: (identifier, reason) for each candidate, in order tried.
    """
    attempts: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def message(self) -> str:
        tried = ", ".join(identifier for identifier, _ in self.attempts) or "no candidates"
        return f"Failed to load memory bridge backend (tried: {tried})"


ResolutionOutcome = Union[ResolvedBackend, ResolutionFailure]


def default_providers() -> List[FactoryProvider]:
    """Candidate locations for the backend, in priority order.

    The direct-construction provider comes last; it is only reached when no
    module or installed package exposes the factory itself.
    """
    return [
        ModuleFactoryProvider("novusflow_memory_bridge"),
        ModuleFactoryProvider("memory_bridge_backend"),
        EntryPointFactoryProvider(),
        DirectConstructionProvider("novusflow_memory_bridge.postgres"),
    ]


class BackendResolver:
    """Finds the backend factory among an ordered list of providers."""

    def __init__(self, providers: Optional[Sequence[FactoryProvider]] = None,
                 log: Optional[Callable[..., None]] = None):
        """
        Args:
            providers: Candidates in priority order (default: default_providers()).
            log: Optional info-level log function for the winning candidate;
                defaults to this module's logger.
        """
        self._providers: Tuple[FactoryProvider, ...] = tuple(
            default_providers() if providers is None else providers
        )
        self._log = log or logger.info

    @property
    def providers(self) -> Tuple[FactoryProvider, ...]:
        return self._providers

    def resolve(self) -> ResolutionOutcome:
        """Return the first usable factory, or a failure. Never raises."""
        failure = ResolutionFailure()
        for provider in self._providers:
            try:
                factory = provider.load()
            except ProviderUnavailable as exc:
                logger.debug("Backend candidate %s skipped: %s", provider.identifier, exc)
                failure.attempts.append((provider.identifier, str(exc)))
                continue
            except Exception as exc:
                logger.debug("Backend candidate %s failed: %s", provider.identifier, exc)
                failure.attempts.append((provider.identifier, f"{type(exc).__name__}: {exc}"))
                continue
            self._log(f"Loaded memory bridge backend from: {provider.identifier}")
            return ResolvedBackend(identifier=provider.identifier, factory=factory)
        return failure
