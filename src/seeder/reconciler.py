"""Control loop reconciling every seed document in the store.

Each poll:
1. List seed documents in the store
2. Start a pass for each document that is due (requeue interval elapsed,
   never seen, or its file changed)
3. Persist the status the orchestrator derives
4. Schedule the next pass per the requeue contract

Documents run in parallel up to max_concurrent_reconciles; a single
document never runs twice at once.

SECURITY: Timeouts are enforced on all remote calls by the session.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from .config import Config
from .orchestrator import RequeuePolicy, SeedOrchestrator
from .remote import RemoteAPI, RemoteSession
from .resolver import ReferenceResolver
from .store import SeedLoadError, SeedStore
from .synchronizer import ResourceSynchronizer

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Result of a single reconciliation pass for one seed document."""

    seed: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    resource_version: str = ""
    complete: bool = False
    failed_categories: list[str] = field(default_factory=list)
    created: int = 0
    updated: int = 0
    requeue_after_seconds: int = 0
    error: Exception | None = None

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        """Check if the pass ran (categories may still have failed)."""
        return self.error is None


class SeedReconciler:
    """Schedules and runs reconciliation passes over the seed store.

    The reconciler owns one RemoteSession, and with it the identifier
    cache: run() starts it and stops it on shutdown.
    """

    def __init__(self, config: Config, store: SeedStore, api: RemoteAPI) -> None:
        """Initialize reconciler with configuration.

        Args:
            config: Validated operator configuration.
            store: Desired-state store.
            api: Remote API client handed to the session.
        """
        self._config = config
        self._store = store
        self._session = RemoteSession.from_config(api, config)
        self._orchestrator = SeedOrchestrator(
            ResourceSynchronizer(self._session, ReferenceResolver(self._session)),
            RequeuePolicy(
                incomplete_seconds=config.requeue_incomplete_seconds,
                complete_seconds=config.requeue_complete_seconds,
            ),
        )

        self._shutdown_event = asyncio.Event()
        self._semaphore = asyncio.Semaphore(config.max_concurrent_reconciles)

        # Per-document scheduling state
        self._due: dict[str, datetime] = {}
        self._revisions: dict[str, str] = {}
        self._in_flight: dict[str, asyncio.Task[None]] = {}

    @property
    def config(self) -> Config:
        """Get the reconciler configuration."""
        return self._config

    @property
    def session(self) -> RemoteSession:
        return self._session

    @property
    def orchestrator(self) -> SeedOrchestrator:
        return self._orchestrator

    async def run(self) -> None:
        """Run the reconciliation loop until shutdown."""
        logger.info(
            "Starting reconciler",
            extra={
                "specs_dir": str(self._config.specs_dir),
                "poll_interval_seconds": self._config.poll_interval_seconds,
                "max_concurrent_reconciles": self._config.max_concurrent_reconciles,
            },
        )

        await self._session.start()
        try:
            while not self._shutdown_event.is_set():
                self._schedule_due(datetime.now(UTC))

                # Wait for next poll or shutdown
                try:
                    await asyncio.wait_for(
                        self._shutdown_event.wait(),
                        timeout=self._config.poll_interval_seconds,
                    )
                except TimeoutError:
                    pass
        finally:
            if self._in_flight:
                await asyncio.gather(*self._in_flight.values(), return_exceptions=True)
            await self._session.stop()

        logger.info("Reconciler shutdown complete")

    def shutdown(self) -> None:
        """Signal the reconciler to stop."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()

    def is_due(self, name: str, now: datetime) -> bool:
        """Whether a document should be reconciled at ``now``."""
        if name in self._in_flight:
            return False
        due = self._due.get(name)
        if due is None or now >= due:
            return True
        return self._store.revision(name) != self._revisions.get(name)

    def _schedule_due(self, now: datetime) -> None:
        try:
            names = self._store.list_names()
        except OSError as e:
            logger.error("Failed to list seed documents", extra={"error": str(e)})
            return

        # Forget documents that disappeared from the store
        for gone in set(self._due) - set(names):
            self._due.pop(gone, None)
            self._revisions.pop(gone, None)

        for name in names:
            if self.is_due(name, now):
                self._revisions[name] = self._store.revision(name)
                self._in_flight[name] = asyncio.create_task(self._run_one(name))

    async def _run_one(self, name: str) -> None:
        try:
            async with self._semaphore:
                if self._shutdown_event.is_set():
                    return
                result = await self.reconcile_once(name)
            self._log_result(result)
            finished = result.end_time or datetime.now(UTC)
            self._due[name] = finished + timedelta(seconds=result.requeue_after_seconds)
        finally:
            self._in_flight.pop(name, None)

    async def reconcile_once(self, name: str) -> ReconcileResult:
        """Execute a single reconciliation pass for one document.

        Document-level failures are reported on the result and leave the
        stored status untouched.

        Returns:
            ReconcileResult with details of the operation.
        """
        result = ReconcileResult(seed=name)

        try:
            document = self._store.get(name)
            result.resource_version = document.resource_version

            status, complete = await self._orchestrator.reconcile(
                document.spec, document.status, document.resource_version
            )
            self._store.update(name, status)

            result.complete = complete
            result.failed_categories = sorted(status.unfinished_seeds)
            for outcome in self._orchestrator.last_outcomes:
                result.created += outcome.stats.created
                result.updated += outcome.stats.updated

        except SeedLoadError as e:
            logger.error("Failed to load seed", extra={"seed": name, "error": str(e)})
            result.error = e
        except Exception as e:
            logger.exception("Unexpected error during reconciliation", extra={"seed": name})
            result.error = e

        result.end_time = datetime.now(UTC)
        result.requeue_after_seconds = self._orchestrator.requeue_policy.requeue_after(
            result.complete and result.error is None
        )
        return result

    def _log_result(self, result: ReconcileResult) -> None:
        """Log reconciliation result with structured data."""
        extra: dict[str, Any] = {
            "seed": result.seed,
            "resource_version": result.resource_version,
            "duration_seconds": result.duration_seconds,
            "complete": result.complete,
            "created": result.created,
            "updated": result.updated,
            "requeue_after_seconds": result.requeue_after_seconds,
        }

        if result.error is not None:
            extra["error"] = str(result.error)
            logger.error("Reconciliation failed", extra=extra)
        elif result.failed_categories:
            extra["failed_categories"] = result.failed_categories
            logger.warning("Reconciliation incomplete", extra=extra)
        else:
            logger.info("Reconciliation result", extra=extra)
