"""Remote resource API contract and the session that owns it.

The transport itself (HTTP, authentication, the remote wire schema) is
provided by an implementation of RemoteAPI. This module bounds every call
with an explicit deadline, folds transport failures into RemoteAPIError and
ties the identifier cache to the lifetime of one API client.

SECURITY: Timeouts are enforced on all remote calls to prevent indefinite hangs.
"""

from __future__ import annotations

import asyncio
import functools
import importlib
import logging
from collections.abc import Callable
from typing import Any, Protocol, TypeVar, runtime_checkable

from .cache import IdentifierCache
from .config import DEFAULT_REMOTE_CALL_TIMEOUT_SECONDS, Config, ConfigurationError
from .errors import RemoteAPIError, SeedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Entity = dict[str, Any]


@runtime_checkable
class RemoteAPI(Protocol):
    """Per-entity-type operations the synchronizer needs from the remote store.

    Implementations block; the session runs them off the event loop.
    ``filters`` use remote attribute names (e.g. {"name": ..., "domain_id": ...}).
    ``extra`` is the free-form attribute bag, passed through unchanged.
    """

    def list(self, entity_type: str, filters: dict[str, Any]) -> list[Entity]: ...

    def get(self, entity_type: str, entity_id: str) -> Entity | None: ...

    def create(
        self, entity_type: str, attributes: dict[str, Any], extra: dict[str, Any]
    ) -> Entity: ...

    def update(
        self,
        entity_type: str,
        entity_id: str,
        attributes: dict[str, Any],
        extra: dict[str, Any],
    ) -> Entity: ...

    def assign_role(self, role_id: str, assignment: dict[str, Any]) -> None: ...


class RemoteSession:
    """One API client plus its identifier cache.

    The cache lives and dies with the session: start() launches its sweep,
    stop() ends it. Sessions never share entries.

    Usage:
        async with RemoteSession(api) as session:
            domains = await session.list("domain", {"name": "acme"})
    """

    def __init__(
        self,
        api: RemoteAPI,
        cache: IdentifierCache | None = None,
        timeout_seconds: float = DEFAULT_REMOTE_CALL_TIMEOUT_SECONDS,
    ) -> None:
        self._api = api
        self._cache = cache or IdentifierCache()
        self._timeout_seconds = timeout_seconds

    @classmethod
    def from_config(cls, api: RemoteAPI, config: Config) -> RemoteSession:
        cache = IdentifierCache(
            default_expiration_seconds=config.cache_expiration_seconds,
            cleanup_interval_seconds=config.cache_cleanup_interval_seconds,
        )
        return cls(api, cache=cache, timeout_seconds=config.remote_call_timeout_seconds)

    @property
    def api(self) -> RemoteAPI:
        return self._api

    @property
    def cache(self) -> IdentifierCache:
        return self._cache

    async def start(self) -> None:
        await self._cache.start()

    async def stop(self) -> None:
        await self._cache.stop()
        self._cache.clear()

    async def __aenter__(self) -> RemoteSession:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def call(
        self,
        operation: str,
        entity_type: str,
        fn: Callable[..., T],
        *args: Any,
    ) -> T:
        """Run a blocking remote call with a deadline.

        The deadline bounds the wait only: a timed-out call keeps running in
        its worker thread and may still take effect remotely.

        Raises:
            RemoteAPIError: On timeout or any transport/remote failure.
        """
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, functools.partial(fn, *args)),
                timeout=self._timeout_seconds,
            )
        except TimeoutError as e:
            logger.error(
                "Remote call timed out",
                extra={
                    "operation": operation,
                    "entity_type": entity_type,
                    "timeout_seconds": self._timeout_seconds,
                },
            )
            raise RemoteAPIError(
                operation, entity_type, f"timed out after {self._timeout_seconds}s"
            ) from e
        except SeedError:
            raise
        except Exception as e:
            raise RemoteAPIError(operation, entity_type, str(e)) from e

    async def list(self, entity_type: str, filters: dict[str, Any]) -> list[Entity]:
        return await self.call("list", entity_type, self._api.list, entity_type, filters)

    async def get(self, entity_type: str, entity_id: str) -> Entity | None:
        return await self.call("get", entity_type, self._api.get, entity_type, entity_id)

    async def create(
        self, entity_type: str, attributes: dict[str, Any], extra: dict[str, Any]
    ) -> Entity:
        return await self.call(
            "create", entity_type, self._api.create, entity_type, attributes, extra
        )

    async def update(
        self,
        entity_type: str,
        entity_id: str,
        attributes: dict[str, Any],
        extra: dict[str, Any],
    ) -> Entity:
        return await self.call(
            "update", entity_type, self._api.update, entity_type, entity_id, attributes, extra
        )

    async def assign_role(self, role_id: str, assignment: dict[str, Any]) -> None:
        await self.call("assign", "role_assignment", self._api.assign_role, role_id, assignment)


def load_api_factory(path: str) -> Callable[[Config], RemoteAPI]:
    """Import a ``module:callable`` API factory.

    Raises:
        ConfigurationError: If the path cannot be imported or is not callable.
    """
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ConfigurationError(f"SEEDER_API_FACTORY must be 'module:callable': {path}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import API factory module '{module_name}': {e}") from e
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ConfigurationError(f"API factory '{path}' is not callable")
    return factory
