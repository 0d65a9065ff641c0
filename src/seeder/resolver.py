"""Cross-reference resolution through the session's identifier cache.

Seeds refer to other entities by human-readable names (``"acme@alice"`` for
user alice in domain acme). Each lookup checks the cache first, falls back
to a remote list on a miss and caches only a unique match.
"""

from __future__ import annotations

import logging
from typing import Any

from .errors import AmbiguousMatchError, NotFoundError, ValidationError
from .remote import RemoteSession

logger = logging.getLogger(__name__)

SCOPE_SEPARATOR = "@"


def parse_scoped(reference: str, what: str = "reference") -> tuple[str, str]:
    """Split a ``"scope@name"`` reference.

    Raises:
        ValidationError: Unless the reference has exactly two non-empty parts.
    """
    parts = reference.split(SCOPE_SEPARATOR)
    if len(parts) != 2 or not all(part.strip() for part in parts):
        raise ValidationError(f"{what} name wrong format, expected domain@name: '{reference}'")
    return parts[0], parts[1]


class ReferenceResolver:
    """Resolves natural keys to remote identifiers, caching unique matches."""

    def __init__(self, session: RemoteSession) -> None:
        self._session = session

    async def resolve(self, entity_type: str, cache_key: str, filters: dict[str, Any]) -> str:
        """Resolve one entity to its id.

        Raises:
            NotFoundError: No remote entity matches.
            AmbiguousMatchError: More than one remote entity matches.
        """
        cache = self._session.cache
        value, found = cache.get(entity_type, cache_key)
        if found:
            return value

        matches = await self._session.list(entity_type, filters)
        if not matches:
            raise NotFoundError(entity_type, cache_key)
        if len(matches) > 1:
            raise AmbiguousMatchError(entity_type, cache_key, len(matches))

        entity_id = matches[0]["id"]
        cache.add(entity_type, cache_key, entity_id)
        logger.debug(
            "Resolved reference",
            extra={"entity_type": entity_type, "key": cache_key, "id": entity_id},
        )
        return entity_id

    async def domain_id(self, name: str) -> str:
        return await self.resolve("domain", name, {"name": name})

    async def project_id(self, domain: str, name: str) -> str:
        domain_id = await self.domain_id(domain)
        return await self.resolve(
            "project", f"{domain}.{name}", {"name": name, "domain_id": domain_id}
        )

    async def user_id(self, domain: str, name: str) -> str:
        domain_id = await self.domain_id(domain)
        return await self.resolve("user", f"{domain}.{name}", {"name": name, "domain_id": domain_id})

    async def group_id(self, domain: str, name: str) -> str:
        domain_id = await self.domain_id(domain)
        return await self.resolve(
            "group", f"{domain}.{name}", {"name": name, "domain_id": domain_id}
        )

    async def role_id(self, name: str, domain_id: str | None = None) -> str:
        # domain_id None selects global roles only; domain roles may reuse the name
        key = f"{domain_id}.{name}" if domain_id else name
        return await self.resolve("role", key, {"name": name, "domain_id": domain_id})

    async def network_id(self, name: str) -> str:
        return await self.resolve("network", name, {"name": name})

    async def scoped_project_id(self, reference: str) -> str:
        domain, name = parse_scoped(reference, "project")
        return await self.project_id(domain, name)

    async def scoped_user_id(self, reference: str) -> str:
        domain, name = parse_scoped(reference, "user")
        return await self.user_id(domain, name)

    async def scoped_group_id(self, reference: str) -> str:
        domain, name = parse_scoped(reference, "group")
        return await self.group_id(domain, name)

    async def require(self, entity_type: str, entity_id: str) -> dict[str, Any]:
        """Fetch an entity referenced directly by id.

        Raises:
            NotFoundError: If the id does not exist remotely.
        """
        entity = await self._session.get(entity_type, entity_id)
        if entity is None:
            raise NotFoundError(entity_type, entity_id)
        return entity
