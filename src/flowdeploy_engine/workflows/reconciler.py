"""WorkflowReconciler — keeps exactly one active remote workflow per tenant.

Every pass starts fresh from local bookkeeping and the engine's answers:

* duplicate remote workflows named for the tenant are pruned first;
* no active record: create, activate, insert version 1;
* record whose remote workflow still exists: update in place, then force a
  deactivate/activate cycle so the engine re-reads credential bindings;
* record whose remote workflow is gone while another tenant workflow
  survives: repoint the record at the survivor and update it;
* record whose remote workflow is gone, or refused the update: create a
  replacement, archive the old record, insert version + 1.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from flowdeploy_engine.common.exceptions import (
    DriftError,
    ExternalServiceError,
    FlowDeployError,
    RemoteNotFoundError,
    RetryableExternalError,
)
from flowdeploy_engine.engine.client import EngineClient
from flowdeploy_engine.engine.schemas import RemoteWorkflow
from flowdeploy_engine.tenants.schemas import TenantProfile
from flowdeploy_engine.workflows.models import WorkflowRecordModel
from flowdeploy_engine.workflows.schemas import ReconcileOutcome, ReconcileState
from flowdeploy_engine.workflows.store import WorkflowRecordStore

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class WorkflowReconciler:
    """Create/update/recreate/deduplicate state machine, keyed by tenant."""

    def __init__(
        self,
        engine: EngineClient,
        store: Optional[WorkflowRecordStore] = None,
        settle_delay: float = 1.0,
        poll_timeout: float = 5.0,
        poll_interval: float = 0.25,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.engine = engine
        self.store = store or WorkflowRecordStore()
        self.settle_delay = settle_delay
        self.poll_timeout = poll_timeout
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    async def reconcile(
        self,
        session: AsyncSession,
        profile: TenantProfile,
        payload: dict[str, Any],
    ) -> ReconcileOutcome:
        record = await self.store.get_active(session, profile.tenant_id)
        removed, survivor = await self.deduplicate(session, profile, record)

        if record is None:
            outcome = await self._create_first(session, profile, payload)
        else:
            try:
                await self._verify(record)
            except DriftError as drift:
                logger.warning(
                    "Workflow record drifted for tenant %s: %s",
                    profile.tenant_id,
                    drift.message,
                    extra={"event": f"drift.{drift.kind}", "tenant_id": profile.tenant_id},
                )
                if survivor is not None and survivor.id != record.remote_workflow_id:
                    outcome = await self._adopt(session, profile, payload, record, survivor)
                else:
                    outcome = await self._replace(
                        session, profile, payload, record, reason=drift.message
                    )
            else:
                outcome = await self._update(session, profile, payload, record)

        outcome.removed_duplicates = removed
        await session.commit()
        logger.info(
            "Reconciled tenant %s: %s -> workflow %s v%d",
            profile.tenant_id,
            outcome.state.value,
            outcome.remote_workflow_id,
            outcome.version,
            extra={
                "event": "reconcile.done",
                "tenant_id": profile.tenant_id,
                "state": outcome.state.value,
                "created": outcome.created,
                "activated": outcome.activated,
            },
        )
        return outcome

    # ── Duplicates ──

    async def deduplicate(
        self,
        session: AsyncSession,
        profile: TenantProfile,
        record: Optional[WorkflowRecordModel],
    ) -> tuple[list[str], Optional[RemoteWorkflow]]:
        """Keep one remote workflow named for the tenant, delete the rest.

        Candidates rank by referenced-by-record, then active, then most
        recently updated. Returns the ids that were deleted and the
        surviving workflow, if any.
        """
        try:
            remote = await self.engine.list_workflows()
        except FlowDeployError as exc:
            logger.warning("Workflow duplicate check skipped: %s", exc)
            return [], None

        candidates = [w for w in remote if profile.owns_workflow(w.name)]
        if len(candidates) <= 1:
            return [], (candidates[0] if candidates else None)

        referenced = record.remote_workflow_id if record is not None else None

        def rank(workflow: RemoteWorkflow) -> tuple:
            return (workflow.id == referenced, workflow.active, workflow.updated_at or _EPOCH)

        try:
            candidates.sort(key=rank, reverse=True)
        except TypeError as exc:
            logger.warning(
                "Workflow duplicate check skipped for tenant %s: %s", profile.tenant_id, exc
            )
            return [], None
        keep, losers = candidates[0], candidates[1:]
        logger.warning(
            "Found %d remote workflows for tenant %s, keeping %s",
            len(candidates),
            profile.tenant_id,
            keep.id,
            extra={
                "event": "drift.workflow_duplicate",
                "state": ReconcileState.REMOTE_DUPLICATED.value,
                "tenant_id": profile.tenant_id,
            },
        )

        removed = []
        for workflow in losers:
            if await self._retire(workflow.id):
                removed.append(workflow.id)

        if record is not None and record.remote_workflow_id in {w.id for w in losers}:
            await self.store.repoint(session, record, keep.id)
        return removed, keep

    async def _retire(self, workflow_id: str) -> bool:
        """Deactivate then delete a remote workflow. Returns True once it is gone."""
        try:
            await self.engine.deactivate_workflow(workflow_id)
        except RemoteNotFoundError:
            return True
        except FlowDeployError as exc:
            logger.warning("Deactivation of workflow %s failed, deleting anyway: %s", workflow_id, exc)
        try:
            await self.engine.delete_workflow(workflow_id)
        except RemoteNotFoundError:
            return True
        except FlowDeployError as exc:
            logger.warning("Deletion of workflow %s failed: %s", workflow_id, exc)
            return False
        logger.info("Deleted remote workflow %s", workflow_id)
        return True

    # ── Transitions ──

    async def _verify(self, record: WorkflowRecordModel) -> RemoteWorkflow:
        try:
            return await self.engine.get_workflow(record.remote_workflow_id)
        except RemoteNotFoundError as exc:
            raise DriftError(
                f"remote workflow {record.remote_workflow_id} no longer exists",
                kind="stale_record",
            ) from exc

    async def _create_first(
        self, session: AsyncSession, profile: TenantProfile, payload: dict[str, Any]
    ) -> ReconcileOutcome:
        created = await self.engine.create_workflow(payload)
        activated = await self._activate(created.id)
        await self.store.insert_active(session, profile.tenant_id, created.id, 1, payload)
        return ReconcileOutcome(
            state=ReconcileState.NO_RECORD,
            remote_workflow_id=created.id,
            version=1,
            created=True,
            activated=activated,
        )

    async def _replace(
        self,
        session: AsyncSession,
        profile: TenantProfile,
        payload: dict[str, Any],
        record: WorkflowRecordModel,
        reason: str,
        retire_old: bool = False,
    ) -> ReconcileOutcome:
        old_id = record.remote_workflow_id
        version = record.version + 1

        created = await self.engine.create_workflow(payload)
        activated = await self._activate(created.id)

        # The archive must be flushed before the insert: one active row per tenant.
        await self.store.archive(session, record, reason)
        await self.store.insert_active(session, profile.tenant_id, created.id, version, payload)

        if retire_old:
            await self._retire(old_id)
        return ReconcileOutcome(
            state=ReconcileState.RECORD_STALE,
            remote_workflow_id=created.id,
            version=version,
            created=True,
            activated=activated,
        )

    async def _adopt(
        self,
        session: AsyncSession,
        profile: TenantProfile,
        payload: dict[str, Any],
        record: WorkflowRecordModel,
        survivor: RemoteWorkflow,
    ) -> ReconcileOutcome:
        """Point a stale record at the tenant's surviving remote workflow and update it."""
        logger.info(
            "Adopting remote workflow %s for tenant %s in place of %s",
            survivor.id,
            profile.tenant_id,
            record.remote_workflow_id,
        )
        await self.store.repoint(session, record, survivor.id)
        outcome = await self._update(session, profile, payload, record)
        if outcome.state == ReconcileState.RECORD_VALID:
            outcome.state = ReconcileState.RECORD_STALE
        return outcome

    async def _update(
        self,
        session: AsyncSession,
        profile: TenantProfile,
        payload: dict[str, Any],
        record: WorkflowRecordModel,
    ) -> ReconcileOutcome:
        workflow_id = record.remote_workflow_id
        try:
            await self.engine.update_workflow(workflow_id, payload)
        except (ExternalServiceError, RetryableExternalError) as exc:
            logger.warning(
                "Update of workflow %s failed, recreating: %s",
                workflow_id,
                exc,
                extra={"event": "drift.update_failed", "tenant_id": profile.tenant_id},
            )
            return await self._replace(
                session,
                profile,
                payload,
                record,
                reason=f"update failed: {exc}",
                retire_old=True,
            )

        activated = await self._reactivate(workflow_id)
        await self.store.update_snapshot(session, record, payload)
        return ReconcileOutcome(
            state=ReconcileState.RECORD_VALID,
            remote_workflow_id=workflow_id,
            version=record.version,
            created=False,
            activated=activated,
        )

    # ── Activation ──

    async def _reactivate(self, workflow_id: str) -> bool:
        """Deactivate, let the engine settle, activate again."""
        try:
            await self.engine.deactivate_workflow(workflow_id)
        except FlowDeployError as exc:
            logger.warning("Deactivation of workflow %s failed: %s", workflow_id, exc)
        await self._settle(workflow_id)
        return await self._activate(workflow_id)

    async def _settle(self, workflow_id: str) -> None:
        """Wait until the engine reports the workflow inactive.

        Falls back to the fixed settle delay when the engine keeps reporting
        it active past the poll timeout, or cannot be polled.
        """
        if self.poll_timeout > 0:
            deadline = self._clock() + self.poll_timeout
            while True:
                try:
                    workflow = await self.engine.get_workflow(workflow_id)
                except FlowDeployError as exc:
                    logger.debug("Cannot poll workflow %s: %s", workflow_id, exc)
                    break
                if not workflow.active:
                    return
                if self._clock() >= deadline:
                    break
                await self._sleep(self.poll_interval)
        await self._sleep(self.settle_delay)

    async def _activate(self, workflow_id: str) -> bool:
        try:
            await self.engine.activate_workflow(workflow_id)
        except FlowDeployError as exc:
            logger.warning(
                "Activation of workflow %s failed, record kept active: %s",
                workflow_id,
                exc,
                extra={"event": "workflow.activation_failed"},
            )
            return False
        return True
