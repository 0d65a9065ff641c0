"""Tests for the Pydantic models."""

import pytest
from pydantic import ValidationError

from seeder.models import (
    EndpointSpec,
    FlavorSpec,
    RBACPolicySpec,
    RegionSpec,
    SeedCategory,
    SeedSpec,
    SeedStatus,
    ShareTypeSpec,
)


class TestSeedSpec:
    """Tests for SeedSpec model."""

    def test_valid_spec(self) -> None:
        """Test parsing a seed with several categories."""
        data = {
            "requires": ["monsoon3/domain-default-seed"],
            "domains": [
                {
                    "name": "acme",
                    "enabled": True,
                    "projects": [{"name": "web"}],
                    "users": [{"name": "alice", "email": "alice@example.com"}],
                    "role_assignments": [{"role": "member", "user": "acme@alice", "project": "acme@web"}],
                }
            ],
            "roles": [{"name": "member", "description": "Project member"}],
            "flavors": [{"name": "m1.small", "ram": 2048, "vcpus": 1, "disk": 20}],
        }
        spec = SeedSpec.model_validate(data)

        assert spec.dependencies == ["monsoon3/domain-default-seed"]
        assert spec.domains[0].projects[0].name == "web"
        assert spec.domains[0].role_assignments[0].user == "acme@alice"
        assert spec.flavors[0].ram == 2048

    def test_categories_present_in_processing_order(self) -> None:
        """Test that present categories follow declaration order, not YAML order."""
        data = {
            "flavors": [{"name": "m1.small"}],
            "regions": [{"region": "eu-de-1"}],
            "domains": [{"name": "acme"}],
        }
        spec = SeedSpec.model_validate(data)

        assert spec.categories_present() == [
            SeedCategory.DOMAINS,
            SeedCategory.REGIONS,
            SeedCategory.FLAVORS,
        ]

    def test_resources_for(self) -> None:
        """Test category lookup returns the declared list."""
        spec = SeedSpec.model_validate({"resource_classes": ["CUSTOM_BAREMETAL_LARGE"]})

        assert spec.resources_for(SeedCategory.RESOURCE_CLASSES) == ["CUSTOM_BAREMETAL_LARGE"]
        assert spec.resources_for(SeedCategory.DOMAINS) == []

    def test_invalid_resource_class(self) -> None:
        """Test that resource classes must carry the CUSTOM_ prefix."""
        with pytest.raises(ValidationError) as exc_info:
            SeedSpec.model_validate({"resource_classes": ["baremetal"]})

        assert "CUSTOM_" in str(exc_info.value)

    def test_resource_class_trailing_newline(self) -> None:
        """Test that a trailing newline does not pass the resource class check."""
        with pytest.raises(ValidationError):
            SeedSpec.model_validate({"resource_classes": ["CUSTOM_BAREMETAL\n"]})

    def test_unknown_keys_ignored(self) -> None:
        """Test that unknown keys are not merged into the extra bag."""
        spec = SeedSpec.model_validate({"domains": [{"name": "acme", "colour": "blue"}]})

        assert spec.domains[0].extra == {}


class TestResourceSpecs:
    """Tests for individual resource specs."""

    def test_region_alias(self) -> None:
        """Test that regions are keyed by the 'region' attribute."""
        region = RegionSpec.model_validate({"region": "eu-de-1", "description": "Frankfurt"})

        assert region.id == "eu-de-1"

    def test_endpoint_interface_validated(self) -> None:
        """Test that endpoint interface is restricted."""
        with pytest.raises(ValidationError) as exc_info:
            EndpointSpec.model_validate(
                {"region": "eu-de-1", "interface": "private", "url": "https://x.example.com"}
            )

        assert "interface" in str(exc_info.value)

    def test_endpoint_url_must_be_absolute(self) -> None:
        """Test that endpoint URLs need a scheme and host."""
        with pytest.raises(ValidationError):
            EndpointSpec.model_validate({"region": "eu-de-1", "url": "/v3"})

    def test_share_type_specs_alias(self) -> None:
        """Test that share type extra specs come from 'specs'."""
        share_type = ShareTypeSpec.model_validate(
            {"name": "default", "specs": {"driver_handles_share_servers": "true"}}
        )

        assert share_type.extra_specs == {"driver_handles_share_servers": "true"}

    def test_flavor_bounds(self) -> None:
        """Test that flavor ram must be positive."""
        with pytest.raises(ValidationError):
            FlavorSpec.model_validate({"name": "m1.broken", "ram": 0})

    def test_rbac_object_type(self) -> None:
        """Test that only network RBAC policies are accepted."""
        with pytest.raises(ValidationError):
            RBACPolicySpec.model_validate(
                {"object_type": "qos_policy", "object_name": "x", "target_project": "acme@web"}
            )


class TestSeedStatus:
    """Tests for SeedStatus model."""

    def test_empty_status_is_complete(self) -> None:
        """Test that a status without failures is complete."""
        assert SeedStatus().complete is True

    def test_orphan_kinds_dropped(self) -> None:
        """Test that kinds without a matching failure are discarded."""
        status = SeedStatus(
            unfinished_seeds={"roles": "boom"},
            failure_kinds={"roles": "remote_api", "flavors": "not_found"},
        )

        assert status.failure_kinds == {"roles": "remote_api"}
        assert status.complete is False
