"""Pydantic models for seed documents and their status.

These models provide:
1. Type-safe YAML parsing of the desired catalog
2. Validation at the boundary (fail fast, fail loudly)
3. The per-category resource lists the synchronizer converges
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator, model_validator

RESOURCE_CLASS_PATTERN = r"^CUSTOM_[A-Z0-9_]+$"
ENDPOINT_INTERFACES = frozenset({"public", "internal", "admin"})


class SeedCategory(str, Enum):
    """Seed categories in processing order.

    The value is both the YAML key and the key used in seed status.
    """

    DOMAINS = "domains"
    REGIONS = "regions"
    SERVICES = "services"
    ROLES = "roles"
    ROLE_INFERENCES = "role_inferences"
    SHARE_TYPES = "share_types"
    RESOURCE_CLASSES = "resource_classes"
    RBAC_POLICIES = "rbac_policies"
    VOLUME_TYPES = "volume_types"
    FLAVORS = "flavors"


# =============================================================================
# Base Models
# =============================================================================


class ResourceSpec(BaseModel):
    """Base for every seeded resource.

    ``extra`` is the free-form attribute bag: remote attributes the typed
    fields do not model. It is passed through to create/update unchanged.
    """

    model_config = {"extra": "ignore", "populate_by_name": True}

    extra: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Identity: domains and their children
# =============================================================================


class RoleAssignmentSpec(BaseModel):
    """Role assignment using human-readable references.

    ``user``, ``group`` and ``project`` take the ``"domain@name"`` form.
    """

    model_config = {"extra": "ignore"}

    role: Annotated[str, Field(min_length=1)]
    user: str | None = None
    group: str | None = None
    project: str | None = None
    project_id: str | None = None
    domain: str | None = None
    inherited: bool = False


class ProjectSpec(ResourceSpec):
    """Keystone project inside a domain."""

    name: Annotated[str, Field(min_length=1, max_length=64)]
    description: str | None = None
    enabled: bool | None = None
    is_domain: bool | None = None
    parent_id: str | None = None


class UserSpec(ResourceSpec):
    """Keystone user inside a domain."""

    name: Annotated[str, Field(min_length=1, max_length=255)]
    description: str | None = None
    enabled: bool | None = None
    email: str | None = None
    default_project_id: str | None = None


class GroupSpec(ResourceSpec):
    """Keystone group inside a domain."""

    name: Annotated[str, Field(min_length=1, max_length=64)]
    description: str | None = None


class DomainSpec(ResourceSpec):
    """Keystone domain with its projects, users, groups and assignments."""

    name: Annotated[str, Field(min_length=1, max_length=64)]
    description: str | None = None
    enabled: bool | None = None

    projects: list[ProjectSpec] = Field(default_factory=list)
    users: list[UserSpec] = Field(default_factory=list)
    groups: list[GroupSpec] = Field(default_factory=list)
    role_assignments: list[RoleAssignmentSpec] = Field(default_factory=list)


# =============================================================================
# Catalog: regions, services, endpoints
# =============================================================================


class RegionSpec(ResourceSpec):
    """Keystone region, keyed by its id rather than by name."""

    id: str | None = Field(None, alias="region")
    description: str | None = None
    parent_region_id: str | None = None


class EndpointSpec(ResourceSpec):
    """Service endpoint for one region and interface."""

    region: Annotated[str, Field(min_length=1)]
    interface: str = "public"
    url: Annotated[str, Field(min_length=1)]
    enabled: bool | None = None

    @field_validator("interface")
    @classmethod
    def validate_interface(cls, v: str) -> str:
        if v not in ENDPOINT_INTERFACES:
            raise ValueError(f"interface must be one of {sorted(ENDPOINT_INTERFACES)}")
        return v

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        parsed = urlparse(v)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"url must be absolute (scheme://host/...): {v}")
        return v


class ServiceSpec(ResourceSpec):
    """Keystone service and its endpoints."""

    name: Annotated[str, Field(min_length=1)]
    type: Annotated[str, Field(min_length=1)]
    description: str | None = None
    enabled: bool | None = None
    endpoints: list[EndpointSpec] = Field(default_factory=list)


# =============================================================================
# Roles
# =============================================================================


class RoleSpec(ResourceSpec):
    """Keystone role, optionally domain-specific."""

    name: Annotated[str, Field(min_length=1, max_length=255)]
    domain_id: str | None = None
    # Keystone has no typed description on roles; it travels in the extra bag
    description: str | None = None


class RoleInferenceSpec(BaseModel):
    """Implied role: holding ``prior_role`` grants ``implied_role``."""

    model_config = {"extra": "ignore"}

    prior_role: Annotated[str, Field(min_length=1)]
    implied_role: Annotated[str, Field(min_length=1)]


# =============================================================================
# Compute, storage and network catalog
# =============================================================================


class ShareTypeSpec(ResourceSpec):
    """Manila share type."""

    name: Annotated[str, Field(min_length=1)]
    description: str | None = None
    is_public: bool | None = None
    extra_specs: dict[str, str] | None = Field(None, alias="specs")


class VolumeTypeSpec(ResourceSpec):
    """Cinder volume type."""

    name: Annotated[str, Field(min_length=1)]
    description: str | None = None
    is_public: bool | None = None
    extra_specs: dict[str, str] | None = None


class FlavorSpec(ResourceSpec):
    """Nova flavor."""

    name: Annotated[str, Field(min_length=1)]
    id: str | None = None
    ram: int | None = Field(None, ge=1)
    vcpus: int | None = Field(None, ge=1)
    disk: int | None = Field(None, ge=0)
    swap: int | None = Field(None, ge=0)
    ephemeral: int | None = Field(None, ge=0)
    rxtx_factor: float | None = None
    is_public: bool | None = None
    description: str | None = None
    extra_specs: dict[str, str] | None = None


class RBACPolicySpec(BaseModel):
    """Neutron RBAC policy sharing an object with a project.

    ``target_project`` takes the ``"domain@project"`` form.
    """

    model_config = {"extra": "ignore"}

    object_type: str = "network"
    object_name: Annotated[str, Field(min_length=1)]
    action: str = "access_as_shared"
    target_project: Annotated[str, Field(min_length=1)]

    @field_validator("object_type")
    @classmethod
    def validate_object_type(cls, v: str) -> str:
        if v != "network":
            raise ValueError("only network RBAC policies are supported")
        return v


# =============================================================================
# Seed document
# =============================================================================


class SeedSpec(BaseModel):
    """Desired catalog for one seed document."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    # Names of seeds this one builds on. Recorded but not used for ordering.
    dependencies: list[str] = Field(default_factory=list, alias="requires")

    domains: list[DomainSpec] = Field(default_factory=list)
    regions: list[RegionSpec] = Field(default_factory=list)
    services: list[ServiceSpec] = Field(default_factory=list)
    roles: list[RoleSpec] = Field(default_factory=list)
    role_inferences: list[RoleInferenceSpec] = Field(default_factory=list)
    share_types: list[ShareTypeSpec] = Field(default_factory=list)
    resource_classes: list[str] = Field(default_factory=list)
    rbac_policies: list[RBACPolicySpec] = Field(default_factory=list)
    volume_types: list[VolumeTypeSpec] = Field(default_factory=list)
    flavors: list[FlavorSpec] = Field(default_factory=list)

    @field_validator("resource_classes")
    @classmethod
    def validate_resource_classes(cls, v: list[str]) -> list[str]:
        invalid = [name for name in v if not re.fullmatch(RESOURCE_CLASS_PATTERN, name)]
        if invalid:
            raise ValueError(
                f"resource class names must match {RESOURCE_CLASS_PATTERN}: {invalid}"
            )
        return v

    def resources_for(self, category: SeedCategory) -> list[Any]:
        """Get the resource list declared for a category."""
        return getattr(self, category.value)

    def categories_present(self) -> list[SeedCategory]:
        """Categories with at least one resource, in processing order."""
        return [c for c in SeedCategory if self.resources_for(c)]


class SeedStatus(BaseModel):
    """Observed outcome of the last reconciliation of a seed document."""

    model_config = {"extra": "ignore"}

    # category -> last error message, only for failed categories
    unfinished_seeds: dict[str, str] = Field(default_factory=dict)
    # category -> ErrorKind value, kept in step with unfinished_seeds
    failure_kinds: dict[str, str] = Field(default_factory=dict)
    reconciled_resource_version: str = ""

    @model_validator(mode="after")
    def drop_orphan_kinds(self) -> SeedStatus:
        for category in list(self.failure_kinds):
            if category not in self.unfinished_seeds:
                del self.failure_kinds[category]
        return self

    @property
    def complete(self) -> bool:
        return not self.unfinished_seeds
