"""OpenStack API Mock for Integration Testing.

This module provides an in-memory implementation of the RemoteAPI protocol
that enables reconciliation tests without a real cloud.

Key Features:
- In-memory entity state per entity type (domain, project, role, ...)
- Exact-match list filters, as the remote natural-key lookups use them
- Call recording for idempotence and cache assertions
- Error injection for testing failure scenarios

Usage:
    from openstack_mock import MockOpenStack

    api = MockOpenStack()
    api.add("domain", name="acme")
    session = RemoteSession(api)

    # Your test code here
    await synchronizer.sync_domains(spec.domains)

    # Assert on mock state
    assert api.count("update", "domain") == 0
"""

from .api import MockAPIError, MockCall, MockOpenStack, create_api

__all__ = [
    "MockAPIError",
    "MockCall",
    "MockOpenStack",
    "create_api",
]
