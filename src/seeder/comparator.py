"""Field equality between a desired seed entry and a remote entity.

The comparison is one-directional: the seed is the source of truth only for
the attributes it mentions.

RULES:
- Identity/linkage attributes (id, links) never affect equality
- A seed attribute whose value is None is satisfied by any remote value
- A seed attribute the remote does not return is treated as satisfied
- Attributes only the remote carries never cause inequality
- Everything else must match after normalization to a common representation
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)

IGNORED_ATTRIBUTES = frozenset({"id", "links"})

_MISSING = object()


def flatten_remote(entity: Mapping[str, Any]) -> dict[str, Any]:
    """Project a remote entity to a flat attribute map.

    Remote APIs that return unmodeled attributes under a nested ``extra``
    mapping get them lifted to the top level, the same shape the seed
    projection uses.
    """
    flat = {k: v for k, v in entity.items() if k != "extra"}
    nested = entity.get("extra")
    if isinstance(nested, Mapping):
        for key, value in nested.items():
            flat.setdefault(key, value)
    return flat


def normalize(value: Any) -> Any:
    """Normalize a value to the representation used for comparison.

    - Enums become their value, pydantic models their dict dump
    - Tuples and lists become lists; sets become sorted lists
    - Numbers become floats so 1 and 1.0 compare equal
    - Booleans stay booleans (True is not 1 here)
    """
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, BaseModel):
        value = value.model_dump()
    if isinstance(value, bool) or value is None or isinstance(value, str):
        return value
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, Mapping):
        return {str(k): normalize(v) for k, v in value.items()}
    if isinstance(value, set | frozenset):
        return sorted((normalize(v) for v in value), key=repr)
    if isinstance(value, list | tuple):
        return [normalize(v) for v in value]
    return value


def _deep_equal(a: Any, b: Any) -> bool:
    """Deep equality check for normalized values."""
    if type(a) is not type(b):
        return False

    if isinstance(a, dict):
        if set(a.keys()) != set(b.keys()):
            return False
        return all(_deep_equal(a[k], b[k]) for k in a)

    if isinstance(a, list):
        if len(a) != len(b):
            return False
        return all(_deep_equal(x, y) for x, y in zip(a, b, strict=True))

    return a == b


def changed_fields(spec_attributes: Mapping[str, Any], remote_entity: Mapping[str, Any]) -> list[str]:
    """List the seed attributes the remote entity does not satisfy.

    Args:
        spec_attributes: Flat projection of the desired entity.
        remote_entity: Entity as returned by the remote API.

    Returns:
        Attribute names that differ, in spec order. Empty when equal.
    """
    remote = flatten_remote(remote_entity)
    changed: list[str] = []

    for name, desired in spec_attributes.items():
        if name in IGNORED_ATTRIBUTES or desired is None:
            continue
        actual = remote.get(name, _MISSING)
        # Write-only attributes (e.g. a user password) are never returned
        if actual is _MISSING:
            continue
        if not _deep_equal(normalize(desired), normalize(actual)):
            changed.append(name)

    return changed


def is_equal(spec_attributes: Mapping[str, Any], remote_entity: Mapping[str, Any]) -> bool:
    """Check whether a remote entity already matches the desired attributes."""
    changed = changed_fields(spec_attributes, remote_entity)
    if changed:
        logger.debug("Entity differs from spec", extra={"changed_fields": changed})
    return not changed
