"""Per-category diff-and-upsert against the remote API.

For every desired entity the synchronizer:
1. Lists remote entities matching the natural key (or gets by id)
2. Creates the entity when nothing matches
3. Compares against the single match and updates only on difference
4. Refuses to pick when more than one entity matches

Entities of a category are processed in order and the first error aborts
the category. Earlier creates and updates stay applied.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from . import mapping
from .comparator import changed_fields
from .errors import AmbiguousMatchError, ValidationError
from .mapping import FieldMapping
from .models import (
    DomainSpec,
    FlavorSpec,
    RBACPolicySpec,
    RegionSpec,
    RoleAssignmentSpec,
    RoleInferenceSpec,
    RoleSpec,
    ServiceSpec,
    ShareTypeSpec,
    VolumeTypeSpec,
)
from .remote import Entity, RemoteSession
from .resolver import ReferenceResolver

logger = logging.getLogger(__name__)


@dataclass
class SyncStats:
    """Counts of what one category pass did remotely."""

    created: int = 0
    updated: int = 0
    unchanged: int = 0

    @property
    def mutations(self) -> int:
        return self.created + self.updated


def _natural_key(filters: dict[str, Any]) -> str:
    return "/".join(str(v) for v in filters.values() if v is not None)


class ResourceSynchronizer:
    """Converges seed resource lists onto the remote API, one category at a time.

    Usage:
        sync = ResourceSynchronizer(session, ReferenceResolver(session))
        stats = await sync.sync_domains(spec.domains)
    """

    def __init__(self, session: RemoteSession, resolver: ReferenceResolver) -> None:
        self._session = session
        self._resolver = resolver

    # =========================================================================
    # Generic upsert
    # =========================================================================

    async def upsert(
        self,
        field_mapping: FieldMapping,
        spec: BaseModel,
        filters: dict[str, Any],
        stats: SyncStats,
        scope: dict[str, Any] | None = None,
    ) -> Entity:
        """Create or update one entity located by its natural key.

        Args:
            field_mapping: Mapping table of the entity type.
            spec: Desired entity.
            filters: Natural-key filter, in remote attribute names.
            stats: Counters to update.
            scope: Parent linkage (e.g. domain_id) merged into the payload.

        Returns:
            The created, updated or already matching remote entity.

        Raises:
            AmbiguousMatchError: More than one remote entity matches.
            RemoteAPIError: On any remote failure.
        """
        entity_type = field_mapping.entity_type
        key = _natural_key(filters)
        matches = await self._session.list(entity_type, filters)

        match len(matches):
            case 0:
                return await self._create(field_mapping, spec, key, stats, scope)
            case 1:
                return await self._converge(field_mapping, spec, matches[0], key, stats, scope)
            case _:
                raise AmbiguousMatchError(entity_type, key, len(matches))

    async def _create(
        self,
        field_mapping: FieldMapping,
        spec: BaseModel,
        key: str,
        stats: SyncStats,
        scope: dict[str, Any] | None,
    ) -> Entity:
        attributes = field_mapping.attributes(spec)
        attributes.update(scope or {})
        created = await self._session.create(
            field_mapping.entity_type, attributes, field_mapping.extra_bag(spec)
        )
        stats.created += 1
        logger.info(
            "Created entity",
            extra={"entity_type": field_mapping.entity_type, "key": key, "id": created.get("id")},
        )
        return created

    async def _converge(
        self,
        field_mapping: FieldMapping,
        spec: BaseModel,
        current: Entity,
        key: str,
        stats: SyncStats,
        scope: dict[str, Any] | None,
    ) -> Entity:
        desired = field_mapping.projection(spec)
        desired.update(scope or {})
        changed = changed_fields(desired, current)
        if not changed:
            stats.unchanged += 1
            logger.debug(
                "Entity up to date", extra={"entity_type": field_mapping.entity_type, "key": key}
            )
            return current

        # Partial update: recognized fields plus the extra bag, never the id
        attributes = field_mapping.attributes(spec)
        attributes.update(scope or {})
        attributes.pop("id", None)
        updated = await self._session.update(
            field_mapping.entity_type,
            current["id"],
            attributes,
            field_mapping.extra_bag(spec),
        )
        stats.updated += 1
        logger.info(
            "Updated entity",
            extra={
                "entity_type": field_mapping.entity_type,
                "key": key,
                "id": current["id"],
                "changed_fields": changed,
            },
        )
        return updated

    async def ensure(
        self, entity_type: str, attributes: dict[str, Any], stats: SyncStats
    ) -> Entity:
        """Create an attribute-only entity unless an identical one exists."""
        key = _natural_key(attributes)
        matches = await self._session.list(entity_type, attributes)
        if len(matches) > 1:
            raise AmbiguousMatchError(entity_type, key, len(matches))
        if matches:
            stats.unchanged += 1
            return matches[0]

        created = await self._session.create(entity_type, dict(attributes), {})
        stats.created += 1
        logger.info("Created entity", extra={"entity_type": entity_type, "key": key})
        return created

    # =========================================================================
    # Identity
    # =========================================================================

    async def sync_domains(self, domains: list[DomainSpec]) -> SyncStats:
        """Domains, then each domain's projects, users, groups and role assignments."""
        stats = SyncStats()
        for domain in domains:
            entity = await self.upsert(mapping.DOMAIN, domain, {"name": domain.name}, stats)
            scope = {"domain_id": entity["id"]}

            for project in domain.projects:
                await self.upsert(
                    mapping.PROJECT, project, {"name": project.name, **scope}, stats, scope
                )
            for user in domain.users:
                await self.upsert(mapping.USER, user, {"name": user.name, **scope}, stats, scope)
            for group in domain.groups:
                await self.upsert(mapping.GROUP, group, {"name": group.name, **scope}, stats, scope)
            for assignment in domain.role_assignments:
                await self.assign_role(assignment, stats)
        return stats

    async def assign_role(self, assignment: RoleAssignmentSpec, stats: SyncStats) -> None:
        """Grant a role unless the same grant already exists.

        Raises:
            ValidationError: Malformed reference, or not exactly one actor and one scope.
            NotFoundError: A referenced entity does not exist.
        """
        actors = [a for a in (assignment.user, assignment.group) if a]
        scopes = [s for s in (assignment.project, assignment.project_id, assignment.domain) if s]
        if len(actors) != 1:
            raise ValidationError(
                f"role assignment '{assignment.role}' needs exactly one of user or group"
            )
        if len(scopes) != 1:
            raise ValidationError(
                f"role assignment '{assignment.role}' needs exactly one of "
                "project, project_id or domain"
            )

        grant: dict[str, Any] = {}
        if assignment.user:
            grant["user_id"] = await self._resolver.scoped_user_id(assignment.user)
        else:
            grant["group_id"] = await self._resolver.scoped_group_id(assignment.group or "")

        role_id = await self._resolver.role_id(assignment.role)

        if assignment.project:
            grant["project_id"] = await self._resolver.scoped_project_id(assignment.project)
        elif assignment.project_id:
            await self._resolver.require("project", assignment.project_id)
            grant["project_id"] = assignment.project_id
        else:
            grant["domain_id"] = await self._resolver.domain_id(assignment.domain or "")
        grant["inherited"] = assignment.inherited

        existing = await self._session.list("role_assignment", {"role_id": role_id, **grant})
        if existing:
            stats.unchanged += 1
            return

        await self._session.assign_role(role_id, grant)
        stats.created += 1
        logger.info(
            "Assigned role",
            extra={
                "role": assignment.role,
                "actor": actors[0],
                "target": scopes[0],
                "inherited": assignment.inherited,
            },
        )

    # =========================================================================
    # Catalog
    # =========================================================================

    async def sync_regions(self, regions: list[RegionSpec]) -> SyncStats:
        """Regions are keyed by id: fetched directly and created under that id."""
        stats = SyncStats()
        for region in regions:
            if not region.id:
                raise ValidationError("region without an id cannot be seeded")
            if region.parent_region_id:
                await self._resolver.require("region", region.parent_region_id)

            current = await self._session.get("region", region.id)
            if current is None:
                await self._create(mapping.REGION, region, region.id, stats, None)
            else:
                await self._converge(mapping.REGION, region, current, region.id, stats, None)
        return stats

    async def sync_services(self, services: list[ServiceSpec]) -> SyncStats:
        stats = SyncStats()
        for service in services:
            entity = await self.upsert(
                mapping.SERVICE, service, {"name": service.name, "type": service.type}, stats
            )
            scope = {"service_id": entity["id"]}
            for endpoint in service.endpoints:
                await self._resolver.require("region", endpoint.region)
                filters = {
                    **scope,
                    "region_id": endpoint.region,
                    "interface": endpoint.interface,
                }
                await self.upsert(mapping.ENDPOINT, endpoint, filters, stats, scope)
        return stats

    # =========================================================================
    # Roles
    # =========================================================================

    async def sync_roles(self, roles: list[RoleSpec]) -> SyncStats:
        stats = SyncStats()
        for role in roles:
            filters = {"name": role.name, "domain_id": role.domain_id}
            await self.upsert(mapping.ROLE, role, filters, stats)
        return stats

    async def sync_role_inferences(self, inferences: list[RoleInferenceSpec]) -> SyncStats:
        stats = SyncStats()
        for inference in inferences:
            attributes = {
                "prior_role_id": await self._resolver.role_id(inference.prior_role),
                "implied_role_id": await self._resolver.role_id(inference.implied_role),
            }
            await self.ensure("role_inference", attributes, stats)
        return stats

    # =========================================================================
    # Compute, storage and network
    # =========================================================================

    async def sync_share_types(self, share_types: list[ShareTypeSpec]) -> SyncStats:
        stats = SyncStats()
        for share_type in share_types:
            await self.upsert(mapping.SHARE_TYPE, share_type, {"name": share_type.name}, stats)
        return stats

    async def sync_resource_classes(self, names: list[str]) -> SyncStats:
        stats = SyncStats()
        for name in names:
            await self.ensure("resource_class", {"name": name}, stats)
        return stats

    async def sync_rbac_policies(self, policies: list[RBACPolicySpec]) -> SyncStats:
        stats = SyncStats()
        for policy in policies:
            attributes = {
                "object_type": policy.object_type,
                "object_id": await self._resolver.network_id(policy.object_name),
                "action": policy.action,
                "target_tenant": await self._resolver.scoped_project_id(policy.target_project),
            }
            await self.ensure("rbac_policy", attributes, stats)
        return stats

    async def sync_volume_types(self, volume_types: list[VolumeTypeSpec]) -> SyncStats:
        stats = SyncStats()
        for volume_type in volume_types:
            await self.upsert(mapping.VOLUME_TYPE, volume_type, {"name": volume_type.name}, stats)
        return stats

    async def sync_flavors(self, flavors: list[FlavorSpec]) -> SyncStats:
        stats = SyncStats()
        for flavor in flavors:
            await self.upsert(mapping.FLAVOR, flavor, {"name": flavor.name}, stats)
        return stats
