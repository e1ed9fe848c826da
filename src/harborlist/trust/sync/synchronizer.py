"""Origin trust synchronizer.

Keeps the trusted edge ranges and the edge secret current on every origin
with a union-then-narrow transition:

    IDLE -> FETCHING -> DIFFING -> PUBLISHING_GRACE -> NARROWING -> IDLE

An origin is narrowed to the new set only after it has confirmed the union
of old and new, so no origin ever stops accepting what the edge is using.
The transition is persisted as a PendingTransition; when an origin lags,
the next tick resumes from there and the committed version only advances
once every origin has been narrowed.
"""

import asyncio
import logging
import os
import socket
import uuid
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from harborlist.trust.audit import AuditLogger
from harborlist.trust.audit.metrics import (
    EDGE_SECRET_VERSION,
    SYNC_CONSECUTIVE_FAILURES,
    SYNC_RUNS_TOTAL,
    TRUSTED_RANGES_VERSION,
)
from harborlist.trust.config import Settings
from harborlist.trust.edge import CloudflareRangeSource
from harborlist.trust.errors import FetchFailed, LeaseLost, VersionConflict
from harborlist.trust.models import (
    EdgeSecret,
    OriginAccessPolicy,
    PendingTransition,
    RangeSummary,
    SyncOutcome,
    SyncReport,
    SyncState,
    SyncStatusResponse,
    TrustedRangeSet,
    utcnow,
)
from harborlist.trust.publisher import PolicyPublisher
from harborlist.trust.store import TrustStore
from harborlist.trust.sync.plan import compute_transition_plan

logger = logging.getLogger(__name__)

_FAILURE_OUTCOMES = {SyncOutcome.FETCH_FAILED, SyncOutcome.PARTIAL}


def default_owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class OriginTrustSynchronizer:
    """Single-writer synchronizer guarded by a store lease."""

    def __init__(
        self,
        store: TrustStore,
        source: CloudflareRangeSource,
        publisher: PolicyPublisher,
        audit: AuditLogger | None = None,
        grace_seconds: int = 900,
        lease_ttl_seconds: int = 3600,
        stall_alert_threshold: int = 3,
        owner: str | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the synchronizer.

        Args:
            store: Secret & range store
            source: Edge provider range source
            publisher: Origin policy publisher
            audit: Audit logger for run outcomes and stall alerts
            grace_seconds: How long the union stays live before narrowing
            lease_ttl_seconds: Lease lifetime, must exceed grace_seconds
            stall_alert_threshold: Consecutive failed runs before alerting
            owner: Lease owner id, unique per instance
            sleep: Awaitable sleep, injectable for tests
            clock: Wall clock, injectable for tests
        """
        if lease_ttl_seconds <= grace_seconds:
            raise ValueError("lease_ttl_seconds must be longer than grace_seconds")
        self._store = store
        self._source = source
        self._publisher = publisher
        self._audit = audit
        self._grace = timedelta(seconds=grace_seconds)
        self._lease_ttl_seconds = lease_ttl_seconds
        self._stall_alert_threshold = stall_alert_threshold
        self._owner = owner or default_owner()
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: TrustStore,
        publisher: PolicyPublisher,
        audit: AuditLogger | None = None,
    ) -> "OriginTrustSynchronizer":
        source = CloudflareRangeSource(
            ipv4_url=settings.edge_ipv4_url,
            ipv6_url=settings.edge_ipv6_url,
            timeout=settings.sync_step_timeout_seconds,
            source_name=settings.edge_source_name,
        )
        return cls(
            store=store,
            source=source,
            publisher=publisher,
            audit=audit,
            grace_seconds=settings.grace_seconds,
            lease_ttl_seconds=settings.lease_ttl_seconds,
            stall_alert_threshold=settings.stall_alert_threshold,
        )

    @property
    def store(self) -> TrustStore:
        return self._store

    @property
    def owner(self) -> str:
        return self._owner

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run_once(self) -> SyncReport:
        """One scheduler tick: fetch, diff and (resume a) transition."""
        return await self._with_lease(self._run_locked)

    async def rotate_secret(self) -> SyncReport:
        """Rotate the edge secret with the same union-then-narrow discipline."""
        return await self._with_lease(self._rotate_locked)

    async def bootstrap(self) -> SyncReport:
        """First run: provision secret version 1 and publish the first range set."""
        return await self._with_lease(self._bootstrap_locked)

    async def describe(self) -> SyncStatusResponse:
        """Operator view of the committed state."""
        ranges = await asyncio.to_thread(self._store.get_range_set)
        secrets = await asyncio.to_thread(self._store.get_secret_state)
        pending = await asyncio.to_thread(self._store.get_pending_transition)
        status = await asyncio.to_thread(self._store.get_sync_status)
        summary = None
        if ranges is not None:
            summary = RangeSummary(
                version=ranges.version,
                ipv4_count=len(ranges.ipv4_ranges),
                ipv6_count=len(ranges.ipv6_ranges),
                fetched_at=ranges.fetched_at,
                source=ranges.source,
            )
        return SyncStatusResponse(
            ranges=summary,
            secret_version=secrets.version,
            transition_pending=pending is not None,
            rotation_pending=secrets.pending is not None,
            status=status,
            stalled=status.consecutive_failures >= self._stall_alert_threshold,
        )

    # ------------------------------------------------------------------
    # Lease handling and bookkeeping
    # ------------------------------------------------------------------

    async def _acquire(self) -> bool:
        return await asyncio.to_thread(
            self._store.acquire_lease, self._owner, self._lease_ttl_seconds, self._clock()
        )

    async def _ensure_lease(self, during: str) -> None:
        if not await self._acquire():
            raise LeaseLost(f"Lease lost {during}")

    async def _with_lease(
        self, body: Callable[[SyncReport], Awaitable[SyncReport]]
    ) -> SyncReport:
        report = SyncReport(outcome=SyncOutcome.UNCHANGED, states=[SyncState.IDLE])
        if not await self._acquire():
            report.outcome = SyncOutcome.LEASE_LOST
            report.error = "Lease held by another instance"
            logger.info("Synchronizer lease held elsewhere, deferring")
            return await self._finish(report)

        try:
            try:
                report = await body(report)
            except VersionConflict as e:
                report.outcome = SyncOutcome.DEFERRED
                report.error = str(e)
                logger.info(
                    "Concurrent update detected, deferring expected=%s actual=%s",
                    e.expected,
                    e.actual,
                )
            except LeaseLost as e:
                report.outcome = SyncOutcome.LEASE_LOST
                report.error = str(e)
                logger.warning("Synchronizer lease lost: %s", e)
            report.states.append(SyncState.IDLE)
            return await self._finish(report)
        finally:
            await asyncio.to_thread(self._store.release_lease, self._owner)

    async def _finish(self, report: SyncReport) -> SyncReport:
        SYNC_RUNS_TOTAL.labels(outcome=report.outcome.value).inc()
        if self._audit is not None:
            self._audit.log_sync(report)

        # Another instance owns the status record
        if report.outcome is SyncOutcome.LEASE_LOST:
            return report

        now = self._clock()
        status = await asyncio.to_thread(self._store.get_sync_status)
        status.last_attempt_at = now
        status.last_outcome = report.outcome.value
        if report.outcome in _FAILURE_OUTCOMES:
            status.consecutive_failures += 1
            status.last_error = report.error
        elif report.outcome is not SyncOutcome.DEFERRED:
            status.consecutive_failures = 0
            status.last_success_at = now
            status.last_error = None
        await asyncio.to_thread(self._store.put_sync_status, status)

        SYNC_CONSECUTIVE_FAILURES.set(status.consecutive_failures)
        if report.outcome is SyncOutcome.ROTATED:
            EDGE_SECRET_VERSION.set(report.version_after)
        elif report.version_after:
            TRUSTED_RANGES_VERSION.set(report.version_after)

        if status.consecutive_failures >= self._stall_alert_threshold:
            if self._audit is not None:
                self._audit.log_stalled(status, self._stall_alert_threshold)
            else:
                logger.critical(
                    "Synchronizer stalled consecutive_failures=%s last_error=%s",
                    status.consecutive_failures,
                    status.last_error,
                )
        return report

    async def _wait_until(self, deadline: datetime) -> None:
        remaining = (deadline - self._clock()).total_seconds()
        if remaining > 0:
            logger.info("Waiting for grace period seconds=%.0f", remaining)
            await self._sleep(remaining)

    async def _apply_all(
        self,
        report: SyncReport,
        ranges: list[str],
        secrets: list[str],
        version: int,
    ) -> tuple[bool, bool]:
        """Apply one policy to every origin. Returns (all confirmed, any changed)."""
        all_ok = True
        changed = False
        for origin in self._publisher.origins:
            result = await self._publisher.apply(
                origin,
                OriginAccessPolicy(
                    applies_to=origin,
                    allowed_ranges=ranges,
                    required_secrets=secrets,
                    applied_version=version,
                ),
            )
            report.origin_results[origin.value] = result.success
            all_ok = all_ok and result.success
            changed = changed or result.changed
        return all_ok, changed

    # ------------------------------------------------------------------
    # Range transition
    # ------------------------------------------------------------------

    async def _run_locked(self, report: SyncReport) -> SyncReport:
        committed = await asyncio.to_thread(self._store.get_range_set)
        if committed is None:
            return await self._bootstrap_locked(report)
        report.version_before = report.version_after = committed.version

        pending = await asyncio.to_thread(self._store.get_pending_transition)
        if pending is not None and pending.base_version != committed.version:
            logger.warning(
                "Discarding stale transition base_version=%s committed=%s",
                pending.base_version,
                committed.version,
            )
            await asyncio.to_thread(self._store.clear_pending_transition)
            pending = None

        if pending is not None:
            # Finishing needs nothing new from the edge provider; a newer
            # list is picked up by a later tick.
            logger.info("Resuming transition to version=%s", pending.target.version)
            return await self._transition(report, committed, pending)

        report.states.append(SyncState.FETCHING)
        try:
            fetched = await self._source.fetch()
        except FetchFailed as e:
            report.outcome = SyncOutcome.FETCH_FAILED
            report.error = str(e)
            logger.warning("Edge range fetch failed: %s", e)
            return report

        report.states.append(SyncState.DIFFING)
        plan = compute_transition_plan(committed, fetched)
        if not plan.has_changes:
            logger.info("Edge ranges unchanged version=%s", committed.version)
            report.outcome = SyncOutcome.UNCHANGED
            return report
        logger.info("Starting edge range transition\n%s", plan.summary())
        pending = PendingTransition(
            target=fetched.model_copy(update={"version": committed.version + 1}),
            base_version=committed.version,
            grace_until=self._clock() + self._grace,
        )
        await asyncio.to_thread(self._store.put_pending_transition, pending)
        return await self._transition(report, committed, pending)

    async def _transition(
        self,
        report: SyncReport,
        committed: TrustedRangeSet,
        pending: PendingTransition,
    ) -> SyncReport:
        plan = compute_transition_plan(committed, pending.target)
        secret_state = await asyncio.to_thread(self._store.get_secret_state)
        secrets = secret_state.policy_values()
        origins = self._publisher.origins

        report.states.append(SyncState.PUBLISHING_GRACE)
        joined = False
        for origin in origins:
            if origin in pending.origins_narrowed:
                continue
            result = await self._publisher.apply(
                origin,
                OriginAccessPolicy(
                    applies_to=origin,
                    allowed_ranges=plan.union,
                    required_secrets=secrets,
                    applied_version=committed.version,
                ),
            )
            report.origin_results[origin.value] = result.success
            if result.success and origin not in pending.origins_in_grace:
                pending.origins_in_grace.append(origin)
                joined = True

        if joined:
            # Late joiners get a full grace period too
            pending.grace_until = max(pending.grace_until, self._clock() + self._grace)
        await asyncio.to_thread(self._store.put_pending_transition, pending)

        awaiting = [o for o in pending.origins_in_grace if o not in pending.origins_narrowed]
        if not awaiting and len(pending.origins_narrowed) < len(origins):
            report.outcome = SyncOutcome.PARTIAL
            report.error = "No origin confirmed the union policy"
            return report

        await self._wait_until(pending.grace_until)
        await self._ensure_lease("during grace period")

        report.states.append(SyncState.NARROWING)
        for origin in pending.origins_in_grace:
            if origin in pending.origins_narrowed:
                continue
            result = await self._publisher.apply(
                origin,
                OriginAccessPolicy(
                    applies_to=origin,
                    allowed_ranges=plan.target,
                    required_secrets=secrets,
                    applied_version=pending.target.version,
                ),
            )
            report.origin_results[origin.value] = result.success
            if result.success:
                pending.origins_narrowed.append(origin)
        await asyncio.to_thread(self._store.put_pending_transition, pending)

        lagging = [o.value for o in origins if o not in pending.origins_narrowed]
        if lagging:
            report.outcome = SyncOutcome.PARTIAL
            report.error = f"Origins not narrowed: {', '.join(lagging)}"
            logger.warning(
                "Transition to version=%s incomplete, lagging=%s",
                pending.target.version,
                lagging,
            )
            return report

        await self._ensure_lease("before commit")
        await asyncio.to_thread(
            self._store.commit_range_set, pending.target, pending.base_version
        )
        await asyncio.to_thread(self._store.clear_pending_transition)
        report.outcome = SyncOutcome.APPLIED
        report.version_after = pending.target.version
        logger.info(
            "Committed edge ranges version=%s added=%s removed=%s",
            pending.target.version,
            len(plan.added),
            len(plan.removed),
        )
        return report

    # ------------------------------------------------------------------
    # Secret rotation
    # ------------------------------------------------------------------

    async def _rotate_locked(self, report: SyncReport) -> SyncReport:
        committed = await asyncio.to_thread(self._store.get_range_set)
        state = await asyncio.to_thread(self._store.get_secret_state)
        if committed is None or state.active is None:
            return await self._bootstrap_locked(report)

        if await asyncio.to_thread(self._store.get_pending_transition) is not None:
            report.outcome = SyncOutcome.DEFERRED
            report.error = "Range transition in progress"
            return report

        report.version_before = report.version_after = state.version
        if state.pending is None:
            new_secret = EdgeSecret.generate(
                version=state.version + 1, created_at=self._clock()
            )
            state = await asyncio.to_thread(
                self._store.put_secret_state,
                state.model_copy(update={"pending": new_secret}),
                state.revision,
            )
            logger.info("Generated edge secret version=%s", new_secret.version)
        pending_secret = state.pending

        ranges = committed.all_ranges
        report.states.append(SyncState.PUBLISHING_GRACE)
        ok, changed = await self._apply_all(
            report, ranges, state.policy_values(), committed.version
        )
        if not ok:
            report.outcome = SyncOutcome.PARTIAL
            report.error = "Not every origin accepted the rotation policy"
            return report

        deadline = pending_secret.created_at + self._grace
        if changed:
            deadline = max(deadline, self._clock() + self._grace)
        await self._wait_until(deadline)
        await self._ensure_lease("during grace period")

        report.states.append(SyncState.NARROWING)
        ok, _ = await self._apply_all(report, ranges, [pending_secret.value], committed.version)
        if not ok:
            report.outcome = SyncOutcome.PARTIAL
            report.error = "Not every origin narrowed to the new secret"
            return report

        await self._ensure_lease("before commit")
        rotated = state.model_copy(
            update={
                "active": pending_secret,
                "pending": None,
                "previous": state.active,
                "previous_expires_at": self._clock() + self._grace,
            }
        )
        stored = await asyncio.to_thread(self._store.put_secret_state, rotated, state.revision)
        report.outcome = SyncOutcome.ROTATED
        report.version_after = stored.version
        logger.info("Rotated edge secret version=%s", stored.version)
        return report

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    async def _bootstrap_locked(self, report: SyncReport) -> SyncReport:
        state = await asyncio.to_thread(self._store.get_secret_state)
        if state.active is None:
            first = EdgeSecret.generate(version=1, created_at=self._clock())
            state = await asyncio.to_thread(
                self._store.put_secret_state,
                state.model_copy(update={"active": first}),
                state.revision,
            )
            logger.info(
                "Provisioned edge secret version=1 location=%s",
                self._store.location("secret"),
            )

        committed = await asyncio.to_thread(self._store.get_range_set)
        if committed is not None:
            report.version_before = report.version_after = committed.version
            report.outcome = SyncOutcome.UNCHANGED
            return report

        report.states.append(SyncState.FETCHING)
        try:
            fetched = await self._source.fetch()
        except FetchFailed as e:
            report.outcome = SyncOutcome.FETCH_FAILED
            report.error = str(e)
            return report

        # Nothing to union with on the first run
        target = fetched.model_copy(update={"version": 1})
        report.states.append(SyncState.NARROWING)
        ok, _ = await self._apply_all(report, target.all_ranges, state.policy_values(), 1)
        if not ok:
            report.outcome = SyncOutcome.PARTIAL
            report.error = "Not every origin accepted the initial policy"
            return report

        await self._ensure_lease("before commit")
        await asyncio.to_thread(self._store.commit_range_set, target, 0)
        report.outcome = SyncOutcome.BOOTSTRAPPED
        report.version_after = 1
        EDGE_SECRET_VERSION.set(state.version)
        logger.info("Bootstrapped edge trust ranges=%s", len(target.all_ranges))
        return report
