"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for openstack_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from openstack_mock import MockOpenStack  # noqa: E402
from seeder.remote import RemoteSession  # noqa: E402
from seeder.resolver import ReferenceResolver  # noqa: E402
from seeder.synchronizer import ResourceSynchronizer  # noqa: E402


@pytest.fixture
def api() -> MockOpenStack:
    return MockOpenStack()


@pytest.fixture
def session(api: MockOpenStack) -> RemoteSession:
    return RemoteSession(api, timeout_seconds=5)


@pytest.fixture
def resolver(session: RemoteSession) -> ReferenceResolver:
    return ReferenceResolver(session)


@pytest.fixture
def synchronizer(session: RemoteSession, resolver: ReferenceResolver) -> ResourceSynchronizer:
    return ResourceSynchronizer(session, resolver)
