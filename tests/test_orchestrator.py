"""Tests for the seed orchestrator."""

import pytest
from openstack_mock import MockOpenStack

from seeder.models import SeedCategory, SeedSpec, SeedStatus
from seeder.orchestrator import RequeuePolicy, SeedOrchestrator, category_registry
from seeder.remote import RemoteSession
from seeder.synchronizer import ResourceSynchronizer, SyncStats


@pytest.fixture
def orchestrator(synchronizer: ResourceSynchronizer) -> SeedOrchestrator:
    return SeedOrchestrator(synchronizer)


class TestRegistry:
    """Tests for the category registry."""

    def test_every_category_bound(self, synchronizer: ResourceSynchronizer) -> None:
        """Test that each category has exactly one synchronizer."""
        assert set(category_registry(synchronizer)) == set(SeedCategory)


class TestRequeuePolicy:
    """Tests for the caller-visible retry schedule."""

    def test_defaults(self) -> None:
        """Test 10 minutes when incomplete and 24 hours when complete."""
        policy = RequeuePolicy()

        assert policy.requeue_after(False) == 600
        assert policy.requeue_after(True) == 86400


class TestCategorySelection:
    """Tests for which categories a pass attempts."""

    def test_all_present_when_no_failures(self, orchestrator: SeedOrchestrator) -> None:
        """Test that a clean status selects every declared category."""
        spec = SeedSpec.model_validate({"roles": [{"name": "a"}], "flavors": [{"name": "f"}]})

        assert orchestrator.select_categories(spec, SeedStatus()) == [
            SeedCategory.ROLES,
            SeedCategory.FLAVORS,
        ]

    def test_only_unfinished(self, orchestrator: SeedOrchestrator) -> None:
        """Test that prior failures restrict the pass to those categories."""
        spec = SeedSpec.model_validate({"roles": [{"name": "a"}], "flavors": [{"name": "f"}]})
        status = SeedStatus(unfinished_seeds={"flavors": "boom", "bogus": "?"})

        assert orchestrator.select_categories(spec, status) == [SeedCategory.FLAVORS]


class TestReconcile:
    """Tests for status aggregation."""

    @pytest.mark.asyncio
    async def test_complete_pass(self, api: MockOpenStack, orchestrator: SeedOrchestrator) -> None:
        """Test that a clean pass records the resource version."""
        spec = SeedSpec.model_validate({"roles": [{"name": "member"}]})

        status, complete = await orchestrator.reconcile(spec, SeedStatus(), "v1")

        assert complete is True
        assert status.unfinished_seeds == {}
        assert status.reconciled_resource_version == "v1"
        assert [o.category for o in orchestrator.last_outcomes] == [SeedCategory.ROLES]
        assert orchestrator.last_outcomes[0].stats.created == 1

    @pytest.mark.asyncio
    async def test_failure_isolated_to_category(
        self, api: MockOpenStack, orchestrator: SeedOrchestrator
    ) -> None:
        """Test that one failing category does not stop the others."""
        api.fail_on("create", "share_type", "manila unavailable")
        spec = SeedSpec.model_validate(
            {
                "roles": [{"name": "member"}],
                "share_types": [{"name": "default"}],
                "flavors": [{"name": "m1.small"}],
            }
        )

        status, complete = await orchestrator.reconcile(spec, SeedStatus(), "v1")

        assert complete is False
        assert list(status.unfinished_seeds) == ["share_types"]
        assert "manila unavailable" in status.unfinished_seeds["share_types"]
        assert status.failure_kinds == {"share_types": "remote_api"}
        assert status.reconciled_resource_version == ""
        assert len(api.entities("role")) == 1
        assert len(api.entities("flavor")) == 1

    @pytest.mark.asyncio
    async def test_retry_only_failed_category(
        self, api: MockOpenStack, orchestrator: SeedOrchestrator
    ) -> None:
        """Test that the next pass retries only the failed category and clears it."""
        api.fail_on("create", "share_type", "manila unavailable", times=1)
        spec = SeedSpec.model_validate(
            {"roles": [{"name": "member"}], "share_types": [{"name": "default"}]}
        )
        status, _ = await orchestrator.reconcile(spec, SeedStatus(), "v1")
        api.reset_calls()

        status, complete = await orchestrator.reconcile(spec, status, "v1")

        assert complete is True
        assert status.unfinished_seeds == {}
        assert status.failure_kinds == {}
        assert status.reconciled_resource_version == "v1"
        assert api.count("list", "role") == 0
        assert api.count("create", "share_type") == 1

    @pytest.mark.asyncio
    async def test_error_kinds_recorded(self, orchestrator: SeedOrchestrator) -> None:
        """Test that the structured kind is kept alongside the message."""
        spec = SeedSpec.model_validate(
            {
                "regions": [{"description": "no id"}],
                "role_inferences": [{"prior_role": "ghost", "implied_role": "member"}],
            }
        )

        status, _ = await orchestrator.reconcile(spec, SeedStatus())

        assert status.failure_kinds == {"regions": "validation", "role_inferences": "not_found"}
        assert status.unfinished_seeds["role_inferences"] == "could not find role: ghost"

    @pytest.mark.asyncio
    async def test_unexpected_error(self, session: RemoteSession) -> None:
        """Test that a non-seed exception is recorded as unexpected."""

        class ExplodingSynchronizer(ResourceSynchronizer):
            async def sync_roles(self, roles: list) -> SyncStats:
                raise KeyError("id")

        orchestrator = SeedOrchestrator(ExplodingSynchronizer(session, None))  # type: ignore[arg-type]
        spec = SeedSpec.model_validate({"roles": [{"name": "member"}]})

        status, complete = await orchestrator.reconcile(spec, SeedStatus())

        assert complete is False
        assert status.failure_kinds == {"roles": "unexpected"}

    @pytest.mark.asyncio
    async def test_prior_status_not_mutated(self, orchestrator: SeedOrchestrator) -> None:
        """Test that reconcile returns a new status value."""
        spec = SeedSpec.model_validate({"roles": [{"name": "member"}]})
        prior = SeedStatus(unfinished_seeds={"roles": "old"}, failure_kinds={"roles": "remote_api"})

        status, _ = await orchestrator.reconcile(spec, prior, "v2")

        assert prior.unfinished_seeds == {"roles": "old"}
        assert status.unfinished_seeds == {}

    @pytest.mark.asyncio
    async def test_failed_again_updates_message(
        self, api: MockOpenStack, orchestrator: SeedOrchestrator
    ) -> None:
        """Test that a repeated failure replaces the stored message."""
        api.fail_on("list", "flavor", "nova down")
        spec = SeedSpec.model_validate({"flavors": [{"name": "m1.small"}]})
        prior = SeedStatus(
            unfinished_seeds={"flavors": "old message"},
            failure_kinds={"flavors": "not_found"},
            reconciled_resource_version="v0",
        )

        status, complete = await orchestrator.reconcile(spec, prior, "v1")

        assert complete is False
        assert status.unfinished_seeds == {"flavors": "list flavor failed: nova down"}
        assert status.failure_kinds == {"flavors": "remote_api"}
        assert status.reconciled_resource_version == "v0"


class TestEndToEnd:
    """End-to-end scenarios through the orchestrator."""

    @pytest.mark.asyncio
    async def test_create_then_noop(self, api: MockOpenStack, orchestrator: SeedOrchestrator) -> None:
        """Test that an empty store gains the domain and a second pass is a no-op."""
        spec = SeedSpec.model_validate({"domains": [{"name": "alpha", "enabled": True}]})

        status, complete = await orchestrator.reconcile(spec, SeedStatus())

        assert complete is True
        assert "domains" not in status.unfinished_seeds
        assert api.find("domain", name="alpha")[0]["enabled"] is True

        api.reset_calls()
        await orchestrator.reconcile(spec, status)
        assert api.count("update") == 0
        assert api.count("create") == 0

    @pytest.mark.asyncio
    async def test_description_update(self, api: MockOpenStack, orchestrator: SeedOrchestrator) -> None:
        """Test that a changed description issues exactly one update."""
        api.add("domain", name="alpha", enabled=True, description="old")
        spec = SeedSpec.model_validate(
            {"domains": [{"name": "alpha", "enabled": True, "description": "new"}]}
        )

        await orchestrator.reconcile(spec, SeedStatus())

        updates = [c for c in api.calls if c.operation == "update"]
        assert len(updates) == 1
        assert updates[0].payload["description"] == "new"
        assert api.find("domain", name="alpha")[0]["description"] == "new"

    @pytest.mark.asyncio
    async def test_assignment_lookups_cached(
        self, api: MockOpenStack, orchestrator: SeedOrchestrator
    ) -> None:
        """Test that a repeated assignment reuses cached domain and user ids."""
        domain = api.add("domain", name="acme")
        api.add("user", name="alice", domain_id=domain["id"])
        api.add("role", name="member")
        api.add("role", name="reader")
        spec = SeedSpec.model_validate(
            {
                "domains": [
                    {
                        "name": "ops",
                        "role_assignments": [
                            {"role": "member", "user": "acme@alice", "domain": "ops"},
                            {"role": "reader", "user": "acme@alice", "domain": "ops"},
                        ],
                    }
                ]
            }
        )

        status, complete = await orchestrator.reconcile(spec, SeedStatus())

        assert complete is True, status.unfinished_seeds
        user_lookups = [c for c in api.calls if c.operation == "list" and c.entity_type == "user"]
        acme_lookups = [
            c
            for c in api.calls
            if c.operation == "list" and c.entity_type == "domain" and c.payload == {"name": "acme"}
        ]
        assert len(user_lookups) == 1
        assert len(acme_lookups) == 1
        assert api.count("assign", "role_assignment") == 2
