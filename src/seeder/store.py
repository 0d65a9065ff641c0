"""File-backed desired-state store.

Each seed document is ``<specs_dir>/<name>.yaml``, either flat or wrapped
Kubernetes-style (apiVersion/kind/metadata/spec). Its status lives beside it
in ``<status_dir>/<name>.status.yaml`` and is the only thing written back.

SECURITY: All file operations enforce size limits to prevent DoS attacks
via large files. Document names are validated before they touch a path.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pydantic
import yaml

from .config import MAX_SEED_FILE_SIZE_BYTES
from .models import SeedSpec, SeedStatus

logger = logging.getLogger(__name__)

SPEC_SUFFIX = ".yaml"
STATUS_SUFFIX = ".status.yaml"
VALID_NAME_PATTERN = r"^[a-z0-9]([-a-z0-9_.]*[a-z0-9])?$"


class SeedLoadError(Exception):
    """Raised when a seed document or its status cannot be loaded or stored."""

    pass


@dataclass(frozen=True)
class SeedDocument:
    """A seed document as read from the store."""

    name: str
    resource_version: str
    spec: SeedSpec
    status: SeedStatus


def _format_validation_error(path: Path, e: pydantic.ValidationError) -> str:
    errors = []
    for error in e.errors():
        loc = ".".join(str(x) for x in error["loc"])
        errors.append(f"  - {loc}: {error['msg']}")
    return f"Validation failed for {path}:\n" + "\n".join(errors)


def _read_yaml(path: Path) -> tuple[Any, str]:
    # SECURITY: Check file size before reading to prevent DoS
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise SeedLoadError(f"Failed to stat {path}: {e}") from e

    if file_size > MAX_SEED_FILE_SIZE_BYTES:
        raise SeedLoadError(f"File exceeds maximum size of {MAX_SEED_FILE_SIZE_BYTES} bytes: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SeedLoadError(f"Failed to read {path}: {e}") from e

    try:
        return yaml.safe_load(content), content
    except yaml.YAMLError as e:
        raise SeedLoadError(f"Invalid YAML in {path}: {e}") from e


def parse_seed(raw_data: Any, content: str, path: Path) -> tuple[SeedSpec, str]:
    """Validate a parsed seed document.

    Returns:
        Tuple of (spec, resource_version).

    Raises:
        SeedLoadError: If the document is not a mapping or fails validation.
    """
    if not isinstance(raw_data, dict):
        raise SeedLoadError(f"Seed file must contain a YAML mapping: {path}")

    resource_version = ""
    # Support both flat format and Kubernetes-style wrapper
    if "apiVersion" in raw_data and "spec" in raw_data:
        spec_data = raw_data.get("spec") or {}
        if not isinstance(spec_data, dict):
            raise SeedLoadError(f"Spec section must be a mapping: {path}")
        metadata = raw_data.get("metadata") or {}
        if isinstance(metadata, dict):
            resource_version = str(metadata.get("resourceVersion") or "")
    else:
        spec_data = raw_data

    if not resource_version:
        resource_version = hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]

    try:
        spec = SeedSpec.model_validate(spec_data)
    except pydantic.ValidationError as e:
        raise SeedLoadError(_format_validation_error(path, e)) from e

    return spec, resource_version


def load_seed_file(path: Path) -> tuple[SeedSpec, str]:
    """Load and validate a single seed file from any location."""
    if not path.exists():
        raise SeedLoadError(f"Seed file not found: {path}")
    raw_data, content = _read_yaml(path)
    return parse_seed(raw_data, content, path)


class SeedStore:
    """Reads seed documents and persists their status.

    Usage:
        store = SeedStore(Path("/seeds"), Path("/status"))
        for name in store.list_names():
            doc = store.get(name)
            store.update(name, new_status)
    """

    def __init__(self, specs_dir: Path, status_dir: Path) -> None:
        self._specs_dir = specs_dir
        self._status_dir = status_dir

    def _validate_name(self, name: str) -> None:
        if not re.fullmatch(VALID_NAME_PATTERN, name):
            raise SeedLoadError(f"Invalid seed name: {name!r}")

    def spec_path(self, name: str) -> Path:
        self._validate_name(name)
        return self._specs_dir / f"{name}{SPEC_SUFFIX}"

    def status_path(self, name: str) -> Path:
        self._validate_name(name)
        return self._status_dir / f"{name}{STATUS_SUFFIX}"

    def list_names(self) -> list[str]:
        """Names of all seed documents, sorted."""
        names = []
        for path in self._specs_dir.glob(f"*{SPEC_SUFFIX}"):
            if path.name.endswith(STATUS_SUFFIX):
                continue
            name = path.name[: -len(SPEC_SUFFIX)]
            if re.fullmatch(VALID_NAME_PATTERN, name):
                names.append(name)
            else:
                logger.warning("Ignoring seed file with invalid name", extra={"path": str(path)})
        return sorted(names)

    def revision(self, name: str) -> str:
        """Cheap change marker for a seed file, without parsing it.

        Returns "" if the file cannot be stat'ed.
        """
        try:
            stat = self.spec_path(name).stat()
        except OSError:
            return ""
        return f"{stat.st_mtime_ns}-{stat.st_size}"

    def get(self, name: str) -> SeedDocument:
        """Load a seed document and its persisted status.

        Raises:
            SeedLoadError: If the document or its status is missing or invalid.
        """
        spec, resource_version = load_seed_file(self.spec_path(name))
        return SeedDocument(
            name=name,
            resource_version=resource_version,
            spec=spec,
            status=self.get_status(name),
        )

    def get_status(self, name: str) -> SeedStatus:
        """Persisted status, or an empty status if none was written yet."""
        path = self.status_path(name)
        if not path.exists():
            return SeedStatus()

        raw_data, _ = _read_yaml(path)
        if raw_data is None:
            return SeedStatus()
        if not isinstance(raw_data, dict):
            raise SeedLoadError(f"Status file must contain a YAML mapping: {path}")
        try:
            return SeedStatus.model_validate(raw_data)
        except pydantic.ValidationError as e:
            raise SeedLoadError(_format_validation_error(path, e)) from e

    def update(self, name: str, status: SeedStatus) -> None:
        """Persist status, replacing the previous file atomically."""
        path = self.status_path(name)
        tmp_path = path.with_name(f".{path.name}.tmp")
        content = yaml.safe_dump(status.model_dump(), sort_keys=True)
        try:
            tmp_path.write_text(content, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise SeedLoadError(f"Failed to write status {path}: {e}") from e

        logger.debug("Stored seed status", extra={"seed": name, "complete": status.complete})
