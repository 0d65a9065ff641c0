"""Explicit field mapping from seed specs to remote attributes.

Each entity type declares which typed spec fields the remote schema
recognizes and under which attribute name. Typed fields outside that table,
plus the spec's ``extra`` mapping, form the extra attribute bag, which is
handed to the remote API as a separate channel and passed through unchanged.
Fields listed in ``nested`` are child collections handled by the
synchronizer; they never reach a payload.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel


@dataclass(frozen=True)
class FieldMapping:
    """Mapping table for one remote entity type.

    Attributes:
        entity_type: Remote entity type name (e.g. "domain").
        fields: spec field name -> remote attribute name.
        nested: Spec fields holding child resources.
    """

    entity_type: str
    fields: dict[str, str]
    nested: frozenset[str] = field(default_factory=frozenset)

    def attributes(self, spec: BaseModel) -> dict[str, Any]:
        """Recognized attributes of a spec, under remote names, None dropped."""
        attrs: dict[str, Any] = {}
        for spec_field, remote_name in self.fields.items():
            value = getattr(spec, spec_field)
            if value is not None:
                attrs[remote_name] = value
        return attrs

    def extra_bag(self, spec: BaseModel) -> dict[str, Any]:
        """Typed fields the remote does not recognize, merged with ``spec.extra``."""
        bag: dict[str, Any] = {}
        for name in type(spec).model_fields:
            if name in self.fields or name in self.nested or name == "extra":
                continue
            value = getattr(spec, name)
            if value is not None:
                bag[name] = value
        bag.update(getattr(spec, "extra", None) or {})
        return bag

    def projection(self, spec: BaseModel) -> dict[str, Any]:
        """Flat attribute map of a spec for equality checks.

        None values are kept: the comparator treats them as satisfied.
        """
        flat = {remote: getattr(spec, name) for name, remote in self.fields.items()}
        flat.update(self.extra_bag(spec))
        return flat


DOMAIN = FieldMapping(
    entity_type="domain",
    fields={"name": "name", "description": "description", "enabled": "enabled"},
    nested=frozenset({"projects", "users", "groups", "role_assignments"}),
)

PROJECT = FieldMapping(
    entity_type="project",
    fields={
        "name": "name",
        "description": "description",
        "enabled": "enabled",
        "is_domain": "is_domain",
        "parent_id": "parent_id",
    },
)

USER = FieldMapping(
    entity_type="user",
    fields={
        "name": "name",
        "description": "description",
        "enabled": "enabled",
        "email": "email",
        "default_project_id": "default_project_id",
    },
)

GROUP = FieldMapping(
    entity_type="group",
    fields={"name": "name", "description": "description"},
)

REGION = FieldMapping(
    entity_type="region",
    fields={"id": "id", "description": "description", "parent_region_id": "parent_region_id"},
)

SERVICE = FieldMapping(
    entity_type="service",
    fields={"name": "name", "type": "type", "description": "description", "enabled": "enabled"},
    nested=frozenset({"endpoints"}),
)

ENDPOINT = FieldMapping(
    entity_type="endpoint",
    fields={"interface": "interface", "region": "region_id", "url": "url", "enabled": "enabled"},
)

ROLE = FieldMapping(
    entity_type="role",
    fields={"name": "name", "domain_id": "domain_id"},
)

SHARE_TYPE = FieldMapping(
    entity_type="share_type",
    fields={
        "name": "name",
        "description": "description",
        "is_public": "is_public",
        "extra_specs": "extra_specs",
    },
)

VOLUME_TYPE = FieldMapping(
    entity_type="volume_type",
    fields={
        "name": "name",
        "description": "description",
        "is_public": "is_public",
        "extra_specs": "extra_specs",
    },
)

FLAVOR = FieldMapping(
    entity_type="flavor",
    fields={
        "id": "id",
        "name": "name",
        "ram": "ram",
        "vcpus": "vcpus",
        "disk": "disk",
        "swap": "swap",
        "ephemeral": "ephemeral",
        "rxtx_factor": "rxtx_factor",
        "is_public": "is_public",
        "description": "description",
        "extra_specs": "extra_specs",
    },
)
