"""Tests for cross-reference resolution."""

import pytest
from openstack_mock import MockOpenStack

from seeder.errors import AmbiguousMatchError, NotFoundError, ValidationError
from seeder.remote import RemoteSession
from seeder.resolver import ReferenceResolver, parse_scoped


class TestParseScoped:
    """Tests for "domain@name" parsing."""

    def test_valid(self) -> None:
        """Test that a well-formed reference splits in two."""
        assert parse_scoped("acme@alice") == ("acme", "alice")

    @pytest.mark.parametrize("reference", ["alice", "acme@alice@x", "@alice", "acme@", ""])
    def test_malformed(self, reference: str) -> None:
        """Test that anything but exactly two non-empty parts is rejected."""
        with pytest.raises(ValidationError):
            parse_scoped(reference, "user")


class TestReferenceResolver:
    """Tests for identifier lookups through the cache."""

    @pytest.mark.asyncio
    async def test_resolve_and_cache(
        self, api: MockOpenStack, session: RemoteSession, resolver: ReferenceResolver
    ) -> None:
        """Test that a unique match is cached and reused."""
        domain = api.add("domain", name="acme")

        assert await resolver.domain_id("acme") == domain["id"]
        assert await resolver.domain_id("acme") == domain["id"]

        assert api.count("list", "domain") == 1
        assert session.cache.get("domain", "acme") == (domain["id"], True)

    @pytest.mark.asyncio
    async def test_scoped_key(
        self, api: MockOpenStack, session: RemoteSession, resolver: ReferenceResolver
    ) -> None:
        """Test that scoped entities are cached as domain.name."""
        domain = api.add("domain", name="acme")
        user = api.add("user", name="alice", domain_id=domain["id"])
        api.add("user", name="alice", domain_id="other-domain")

        assert await resolver.scoped_user_id("acme@alice") == user["id"]
        assert session.cache.get("user", "acme.alice") == (user["id"], True)

    @pytest.mark.asyncio
    async def test_not_found_not_cached(
        self, api: MockOpenStack, session: RemoteSession, resolver: ReferenceResolver
    ) -> None:
        """Test that a miss raises and leaves the cache empty."""
        with pytest.raises(NotFoundError) as exc_info:
            await resolver.domain_id("ghost")

        assert "could not find domain: ghost" in str(exc_info.value)
        assert len(session.cache) == 0

        # A later lookup goes to the remote again
        api.add("domain", name="ghost")
        assert await resolver.domain_id("ghost")
        assert api.count("list", "domain") == 2

    @pytest.mark.asyncio
    async def test_ambiguous_not_cached(
        self, api: MockOpenStack, session: RemoteSession, resolver: ReferenceResolver
    ) -> None:
        """Test that more than one match raises and is never cached."""
        api.add("network", name="ext-net")
        api.add("network", name="ext-net")

        with pytest.raises(AmbiguousMatchError) as exc_info:
            await resolver.network_id("ext-net")

        assert exc_info.value.count == 2
        assert len(session.cache) == 0

    @pytest.mark.asyncio
    async def test_global_role_lookup(self, api: MockOpenStack, resolver: ReferenceResolver) -> None:
        """Test that a global role lookup ignores domain-specific roles."""
        global_role = api.add("role", name="admin")
        api.add("role", name="admin", domain_id="d-1")

        assert await resolver.role_id("admin") == global_role["id"]

    @pytest.mark.asyncio
    async def test_domain_role_lookup(
        self, api: MockOpenStack, session: RemoteSession, resolver: ReferenceResolver
    ) -> None:
        """Test that domain roles are cached under their domain."""
        role = api.add("role", name="admin", domain_id="d-1")

        assert await resolver.role_id("admin", domain_id="d-1") == role["id"]
        assert session.cache.get("role", "d-1.admin") == (role["id"], True)

    @pytest.mark.asyncio
    async def test_require(self, api: MockOpenStack, resolver: ReferenceResolver) -> None:
        """Test that an id given directly must exist."""
        api.add("region", id="eu-de-1")

        assert (await resolver.require("region", "eu-de-1"))["id"] == "eu-de-1"
        with pytest.raises(NotFoundError):
            await resolver.require("region", "eu-nl-1")
