"""DeploymentFacade — one call per tenant, one result envelope."""

import asyncio
import logging
from typing import Any, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from flowdeploy_engine.common.exceptions import FlowDeployError, ValidationError
from flowdeploy_engine.credentials.service import CredentialResolver
from flowdeploy_engine.deployment.schemas import AvailabilityResult, DeployResult
from flowdeploy_engine.engine.client import EngineClient
from flowdeploy_engine.templates.injector import TemplateInjector
from flowdeploy_engine.tenants.schemas import TenantProfile
from flowdeploy_engine.tenants.service import TenantService
from flowdeploy_engine.workflows.models import WorkflowRecordModel
from flowdeploy_engine.workflows.reconciler import WorkflowReconciler

logger = logging.getLogger(__name__)


class LabelProvisioner(Protocol):
    """Creates the tenant's mailbox labels/folders. Runs after deployment, unawaited."""

    async def provision(self, profile: TenantProfile, provider: str) -> Any: ...


class DeploymentFacade:
    """Sequences credential resolution, template injection and reconciliation."""

    def __init__(
        self,
        tenants: TenantService,
        resolver: CredentialResolver,
        injector: TemplateInjector,
        reconciler: WorkflowReconciler,
        engine: EngineClient,
        label_provisioner: Optional[LabelProvisioner] = None,
    ):
        self.tenants = tenants
        self.resolver = resolver
        self.injector = injector
        self.reconciler = reconciler
        self.engine = engine
        self.label_provisioner = label_provisioner
        self._background: set[asyncio.Task] = set()

    async def deploy(
        self,
        session: AsyncSession,
        tenant_id: str,
        email_provider: Optional[str] = None,
    ) -> DeployResult:
        try:
            if not tenant_id:
                raise ValidationError("Missing tenantId")
            profile = await self.tenants.get_profile(session, tenant_id)
            credentials = await self.resolver.resolve(session, profile, email_provider)
            payload = self.injector.render(profile, credentials)
            outcome = await self.reconciler.reconcile(session, profile, payload)
        except FlowDeployError as exc:
            await session.rollback()
            logger.error(
                "Deployment failed for tenant %s: %s",
                tenant_id,
                exc.message,
                extra={"event": "deploy.failed", "tenant_id": tenant_id, "error_kind": exc.code},
            )
            return DeployResult(success=False, error_kind=exc.code, error=exc.message)
        except Exception as exc:
            await session.rollback()
            logger.exception("Unexpected error deploying tenant %s", tenant_id)
            return DeployResult(success=False, error_kind="INTERNAL", error=str(exc))

        self._dispatch_labels(profile, credentials.provider)
        logger.info(
            "Deployed workflow %s v%d for tenant %s",
            outcome.remote_workflow_id,
            outcome.version,
            tenant_id,
            extra={"event": "deploy.succeeded", "tenant_id": tenant_id},
        )
        return DeployResult(
            success=True,
            workflow_id=outcome.remote_workflow_id,
            version=outcome.version,
        )

    async def check_availability(self) -> AvailabilityResult:
        """One authenticated engine call; failures are reported, not raised."""
        try:
            await self.engine.ping()
        except FlowDeployError as exc:
            logger.warning("Engine availability check failed: %s", exc.message)
            return AvailabilityResult(success=False, available=False, error=exc.message)
        return AvailabilityResult(success=True, available=True)

    async def history(self, session: AsyncSession, tenant_id: str) -> list[WorkflowRecordModel]:
        return await self.reconciler.store.list_history(session, tenant_id)

    # ── Label provisioning ──

    def _dispatch_labels(self, profile: TenantProfile, provider: str) -> None:
        if self.label_provisioner is None:
            return
        task = asyncio.create_task(self.label_provisioner.provision(profile, provider))
        self._background.add(task)
        task.add_done_callback(lambda t: self._label_done(t, profile.tenant_id))

    def _label_done(self, task: asyncio.Task, tenant_id: str) -> None:
        self._background.discard(task)
        if task.cancelled():
            logger.warning("Label provisioning cancelled for tenant %s", tenant_id)
        elif task.exception() is not None:
            logger.warning(
                "Label provisioning failed for tenant %s (non-critical): %s",
                tenant_id,
                task.exception(),
                extra={"event": "labels.failed", "tenant_id": tenant_id},
            )
        else:
            logger.info("Label provisioning finished for tenant %s", tenant_id)

    async def drain(self) -> None:
        """Wait for outstanding label provisioning tasks."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
