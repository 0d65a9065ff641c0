"""Drive the synchronizer across the categories of one seed document.

A pass attempts either every category the document declares or, when the
prior status lists unfinished categories, only those. Each category
succeeds or fails on its own; failures are recorded in the returned status
rather than raised.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from .config import DEFAULT_REQUEUE_COMPLETE_SECONDS, DEFAULT_REQUEUE_INCOMPLETE_SECONDS
from .errors import ErrorKind, SeedError
from .models import SeedCategory, SeedSpec, SeedStatus
from .synchronizer import ResourceSynchronizer, SyncStats

logger = logging.getLogger(__name__)

CategorySync = Callable[[list[Any]], Awaitable[SyncStats]]


def category_registry(synchronizer: ResourceSynchronizer) -> dict[SeedCategory, CategorySync]:
    """Bind every category to its synchronizer coroutine."""
    return {
        SeedCategory.DOMAINS: synchronizer.sync_domains,
        SeedCategory.REGIONS: synchronizer.sync_regions,
        SeedCategory.SERVICES: synchronizer.sync_services,
        SeedCategory.ROLES: synchronizer.sync_roles,
        SeedCategory.ROLE_INFERENCES: synchronizer.sync_role_inferences,
        SeedCategory.SHARE_TYPES: synchronizer.sync_share_types,
        SeedCategory.RESOURCE_CLASSES: synchronizer.sync_resource_classes,
        SeedCategory.RBAC_POLICIES: synchronizer.sync_rbac_policies,
        SeedCategory.VOLUME_TYPES: synchronizer.sync_volume_types,
        SeedCategory.FLAVORS: synchronizer.sync_flavors,
    }


@dataclass(frozen=True)
class RequeuePolicy:
    """Caller-visible retry schedule. The orchestrator never retries itself."""

    incomplete_seconds: int = DEFAULT_REQUEUE_INCOMPLETE_SECONDS
    complete_seconds: int = DEFAULT_REQUEUE_COMPLETE_SECONDS

    def requeue_after(self, complete: bool) -> int:
        return self.complete_seconds if complete else self.incomplete_seconds


@dataclass
class CategoryOutcome:
    """Result of attempting one category."""

    category: SeedCategory
    stats: SyncStats
    error: str | None = None
    kind: ErrorKind | None = None

    @property
    def success(self) -> bool:
        return self.error is None


class SeedOrchestrator:
    """Reconciles one seed document and derives its next status.

    Usage:
        orchestrator = SeedOrchestrator(synchronizer)
        status, complete = await orchestrator.reconcile(spec, prior_status)
        delay = orchestrator.requeue_policy.requeue_after(complete)
    """

    def __init__(
        self,
        synchronizer: ResourceSynchronizer,
        requeue_policy: RequeuePolicy | None = None,
    ) -> None:
        self._registry = category_registry(synchronizer)
        self._requeue_policy = requeue_policy or RequeuePolicy()
        self._last_outcomes: list[CategoryOutcome] = []

    @property
    def requeue_policy(self) -> RequeuePolicy:
        return self._requeue_policy

    @property
    def last_outcomes(self) -> list[CategoryOutcome]:
        """Per-category outcomes of the most recent reconcile() call."""
        return list(self._last_outcomes)

    def select_categories(self, spec: SeedSpec, prior_status: SeedStatus) -> list[SeedCategory]:
        """Categories to attempt this pass, in processing order."""
        if not prior_status.unfinished_seeds:
            return spec.categories_present()

        known = {c.value for c in SeedCategory}
        for key in prior_status.unfinished_seeds:
            if key not in known:
                logger.warning("Dropping unknown category from status", extra={"category": key})
        return [c for c in SeedCategory if c.value in prior_status.unfinished_seeds]

    async def reconcile(
        self,
        spec: SeedSpec,
        prior_status: SeedStatus,
        resource_version: str = "",
    ) -> tuple[SeedStatus, bool]:
        """Run one pass and return the new status and whether it is complete.

        Never raises for a failed category. prior_status is left untouched.
        """
        known = {c.value for c in SeedCategory}
        unfinished = {k: v for k, v in prior_status.unfinished_seeds.items() if k in known}
        kinds = {k: v for k, v in prior_status.failure_kinds.items() if k in unfinished}

        outcomes: list[CategoryOutcome] = []
        for category in self.select_categories(spec, prior_status):
            outcome = await self._attempt(category, spec.resources_for(category))
            outcomes.append(outcome)
            if outcome.success:
                unfinished.pop(category.value, None)
                kinds.pop(category.value, None)
            else:
                unfinished[category.value] = outcome.error or ""
                kinds[category.value] = (outcome.kind or ErrorKind.UNEXPECTED).value

        self._last_outcomes = outcomes
        complete = not unfinished
        status = SeedStatus(
            unfinished_seeds=unfinished,
            failure_kinds=kinds,
            reconciled_resource_version=(
                resource_version if complete else prior_status.reconciled_resource_version
            ),
        )
        return status, complete

    async def _attempt(self, category: SeedCategory, resources: list[Any]) -> CategoryOutcome:
        sync = self._registry[category]
        try:
            stats = await sync(resources)
        except SeedError as e:
            logger.warning(
                "Category failed",
                extra={"category": category.value, "kind": e.kind.value, "error": str(e)},
            )
            return CategoryOutcome(category, SyncStats(), error=str(e), kind=e.kind)
        except Exception as e:
            logger.exception("Unexpected error seeding category", extra={"category": category.value})
            return CategoryOutcome(
                category, SyncStats(), error=str(e) or type(e).__name__, kind=ErrorKind.UNEXPECTED
            )

        logger.info(
            "Category seeded",
            extra={
                "category": category.value,
                "created": stats.created,
                "updated": stats.updated,
                "unchanged": stats.unchanged,
            },
        )
        return CategoryOutcome(category, stats)
