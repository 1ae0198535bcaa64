"""Tenant profile lookups."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowdeploy_engine.common.exceptions import TenantNotFoundError
from flowdeploy_engine.credentials.models import IntegrationModel
from flowdeploy_engine.tenants.models import ProfileModel
from flowdeploy_engine.tenants.schemas import TenantProfile


class TenantService:
    """Loads and stores tenant business profiles and mailbox integrations."""

    async def get_profile(self, session: AsyncSession, tenant_id: str) -> TenantProfile:
        """Return an immutable profile snapshot. Raises TenantNotFoundError."""
        model = await session.get(ProfileModel, tenant_id)
        if model is None or not model.business_config:
            raise TenantNotFoundError(f"Client configuration not found for tenant {tenant_id}")
        return TenantProfile.from_model(model)

    async def upsert_profile(
        self,
        session: AsyncSession,
        tenant_id: str,
        business_config: dict,
        business_types: list | None = None,
        managers: list | None = None,
        suppliers: list | None = None,
        label_map: dict | None = None,
        provider_in_use: str | None = None,
    ) -> ProfileModel:
        model = await session.get(ProfileModel, tenant_id)
        if model is None:
            model = ProfileModel(tenant_id=tenant_id)
            session.add(model)
        model.business_config = business_config
        model.business_types = business_types or []
        model.managers = managers or []
        model.suppliers = suppliers or []
        model.label_map = label_map or {}
        model.provider_in_use = provider_in_use
        await session.flush()
        return model

    async def upsert_integration(
        self,
        session: AsyncSession,
        tenant_id: str,
        provider: str,
        refresh_token: str | None = None,
        access_token: str | None = None,
        status: str = "active",
    ) -> IntegrationModel:
        """Record a connected mailbox. Keeps any remote credential id already bound."""
        result = await session.execute(
            select(IntegrationModel).where(
                IntegrationModel.tenant_id == tenant_id,
                IntegrationModel.provider == provider,
            )
        )
        integration = result.scalar_one_or_none()
        if integration is None:
            integration = IntegrationModel(tenant_id=tenant_id, provider=provider)
            session.add(integration)
        if refresh_token is not None:
            integration.refresh_token = refresh_token
        if access_token is not None:
            integration.access_token = access_token
        integration.status = status
        await session.flush()
        return integration
