"""CredentialResolver — one usable remote credential per provider per tenant.

The remote engine cannot be relied on to list credentials, so resolution
leans on local bookkeeping first (credential mapping, then the integration
row) and only uses the listing, when it works, for cleanup and as a last
lookup before creating a new credential.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowdeploy_engine.common.config import FlowDeploySettings
from flowdeploy_engine.common.exceptions import (
    ConfigurationError,
    FlowDeployError,
    ListingNotSupportedError,
    RetryableExternalError,
)
from flowdeploy_engine.common.models import utcnow
from flowdeploy_engine.credentials.keypool import LLMKeyPool
from flowdeploy_engine.credentials.models import CredentialMappingModel, IntegrationModel
from flowdeploy_engine.credentials.oauth import TokenRefresher
from flowdeploy_engine.credentials.schemas import CREDENTIAL_TYPES, ResolvedCredentials
from flowdeploy_engine.engine.client import EngineClient
from flowdeploy_engine.engine.schemas import RemoteCredential
from flowdeploy_engine.tenants.schemas import MAILBOX_PROVIDERS, TenantProfile

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)
_COLUMN_BY_TYPE = {type_: f"{name}_credential_id" for name, type_ in CREDENTIAL_TYPES.items()}


def _recency(credential: RemoteCredential) -> datetime:
    return credential.created_at or credential.updated_at or _EPOCH


class CredentialResolver:
    """Resolves, creates and prunes a tenant's remote credentials."""

    def __init__(
        self,
        settings: FlowDeploySettings,
        engine: EngineClient,
        key_pool: LLMKeyPool,
        token_refresher: Optional[TokenRefresher] = None,
    ):
        self.settings = settings
        self.engine = engine
        self.key_pool = key_pool
        self.token_refresher = token_refresher

    async def resolve(
        self,
        session: AsyncSession,
        profile: TenantProfile,
        provider: Optional[str] = None,
    ) -> ResolvedCredentials:
        """Return the mailbox, LLM and datastore credential ids for a tenant.

        Newly created ids are committed before this returns so that a crash
        later in the deployment cannot orphan them.
        """
        integrations = await self.list_active_integrations(session, profile.tenant_id)
        provider, integration = self.select_provider(profile, integrations, provider)
        mapping = await self.get_mapping(session, profile.tenant_id)

        listed = await self.deduplicate(session, profile, mapping)

        mailbox_id = await self._resolve_mailbox(
            session, profile, provider, integration, mapping, listed
        )
        llm_id = await self._resolve_llm(session, profile, listed)
        datastore_id = self._resolve_datastore()

        resolved = ResolvedCredentials(
            provider=provider,
            mailbox_id=mailbox_id,
            llm_id=llm_id,
            datastore_id=datastore_id,
        )
        logger.info(
            "Resolved credentials for tenant %s",
            profile.tenant_id,
            extra={"tenant_id": profile.tenant_id, "credentials": resolved.as_map()},
        )
        return resolved

    # ── Lookups ──

    async def list_active_integrations(
        self, session: AsyncSession, tenant_id: str
    ) -> list[IntegrationModel]:
        result = await session.execute(
            select(IntegrationModel)
            .where(
                IntegrationModel.tenant_id == tenant_id,
                IntegrationModel.status == "active",
                IntegrationModel.provider.in_(MAILBOX_PROVIDERS),
            )
            .order_by(IntegrationModel.created_at)
        )
        return list(result.scalars().all())

    @staticmethod
    def select_provider(
        profile: TenantProfile,
        integrations: list[IntegrationModel],
        requested: Optional[str] = None,
    ) -> tuple[str, Optional[IntegrationModel]]:
        """Pick the mailbox provider and its integration row.

        Explicit request wins, then the profile's provider in use, then the
        integration that already has a remote credential, then the first
        active integration, then gmail.
        """
        by_provider = {i.provider: i for i in integrations}
        for candidate in (requested, profile.provider_in_use):
            if candidate:
                return candidate, by_provider.get(candidate)
        with_credential = [i for i in integrations if i.remote_credential_id]
        chosen = (with_credential or integrations or [None])[0]
        if chosen is None:
            return "gmail", None
        return chosen.provider, chosen

    async def get_mapping(
        self, session: AsyncSession, tenant_id: str
    ) -> Optional[CredentialMappingModel]:
        return await session.get(CredentialMappingModel, tenant_id)

    async def upsert_mapping(
        self, session: AsyncSession, tenant_id: str, **columns: str
    ) -> CredentialMappingModel:
        mapping = await session.get(CredentialMappingModel, tenant_id)
        if mapping is None:
            mapping = CredentialMappingModel(tenant_id=tenant_id)
            session.add(mapping)
        for column, value in columns.items():
            setattr(mapping, column, value)
        await session.flush()
        return mapping

    # ── Deduplication ──

    async def deduplicate(
        self,
        session: AsyncSession,
        profile: TenantProfile,
        mapping: Optional[CredentialMappingModel],
    ) -> Optional[list[RemoteCredential]]:
        """Best-effort cleanup of duplicate tenant credentials.

        Keeps the newest credential of each type, deletes the rest and points
        the credential mapping at the survivor. Returns the survivors, or
        None when the engine could not list credentials.
        """
        try:
            remote = await self.engine.list_credentials()
        except ListingNotSupportedError:
            logger.info("Credential listing not supported by engine, skipping cleanup")
            return None
        except FlowDeployError as exc:
            logger.warning("Credential cleanup skipped (non-critical): %s", exc)
            return None

        by_type: dict[str, list[RemoteCredential]] = {}
        for credential in remote:
            if profile.owns_credential(credential.name):
                by_type.setdefault(credential.type, []).append(credential)

        survivors: list[RemoteCredential] = []
        for type_, credentials in by_type.items():
            try:
                credentials.sort(key=_recency, reverse=True)
            except TypeError as exc:
                logger.warning("Cleanup of %s credentials skipped: %s", type_, exc)
                continue
            keep, stale = credentials[0], credentials[1:]
            for old in stale:
                try:
                    await self.engine.delete_credential(old.id)
                    logger.info(
                        "Deleted duplicate credential %s (%s)",
                        old.name,
                        old.id,
                        extra={"event": "drift.credential_duplicate", "tenant_id": profile.tenant_id},
                    )
                except FlowDeployError as exc:
                    logger.warning("Failed to delete duplicate credential %s: %s", old.id, exc)
            survivors.append(keep)

            column = _COLUMN_BY_TYPE.get(type_)
            if column and (mapping is None or getattr(mapping, column) != keep.id):
                mapping = await self.upsert_mapping(session, profile.tenant_id, **{column: keep.id})
                logger.info(
                    "Repointed %s for tenant %s at surviving credential %s",
                    column,
                    profile.tenant_id,
                    keep.id,
                )
        return survivors

    # ── Providers ──

    async def _resolve_mailbox(
        self,
        session: AsyncSession,
        profile: TenantProfile,
        provider: str,
        integration: Optional[IntegrationModel],
        mapping: Optional[CredentialMappingModel],
        listed: Optional[list[RemoteCredential]],
    ) -> str:
        column = f"{provider}_credential_id"
        # The mapping may have been repointed during deduplication.
        mapping = await self.get_mapping(session, profile.tenant_id) or mapping

        credential_id = getattr(mapping, column, None) if mapping else None
        if not credential_id and integration is not None:
            credential_id = integration.remote_credential_id
        if not credential_id and listed:
            match = next(
                (c for c in listed if c.type == CREDENTIAL_TYPES[provider]), None
            )
            credential_id = match.id if match else None

        if credential_id:
            await self._remember_mailbox(session, profile.tenant_id, provider, credential_id, integration)
            logger.info("Using existing %s credential %s", provider, credential_id)
            return credential_id

        refresh_token = integration.refresh_token if integration is not None else None
        if not refresh_token:
            raise ConfigurationError(
                f"No {provider} refresh token for tenant {profile.tenant_id}; "
                "the mailbox must be connected before deployment"
            )
        client_id, client_secret = self.settings.oauth_client(provider)
        if not client_id or not client_secret:
            raise ConfigurationError(f"{provider} OAuth client credentials are not configured")

        if self.token_refresher is not None:
            await self._refresh_tokens(session, provider, integration)

        created = await self.engine.create_credential(
            profile.credential_name(provider),
            CREDENTIAL_TYPES[provider],
            {
                "clientId": client_id,
                "clientSecret": client_secret,
                "sendAdditionalBodyProperties": False,
                "additionalBodyProperties": "",
                "oauthTokenData": {
                    "refresh_token": integration.refresh_token,
                    "token_type": "Bearer",
                },
            },
        )
        await self._remember_mailbox(session, profile.tenant_id, provider, created.id, integration)
        await session.commit()
        logger.info("Created %s credential %s", provider, created.id)
        return created.id

    async def _remember_mailbox(
        self,
        session: AsyncSession,
        tenant_id: str,
        provider: str,
        credential_id: str,
        integration: Optional[IntegrationModel],
    ) -> None:
        column = f"{provider}_credential_id"
        mapping = await self.get_mapping(session, tenant_id)
        if mapping is None or getattr(mapping, column) != credential_id:
            await self.upsert_mapping(session, tenant_id, **{column: credential_id})
        if integration is not None and integration.remote_credential_id != credential_id:
            integration.remote_credential_id = credential_id
            await session.flush()

    async def _refresh_tokens(
        self, session: AsyncSession, provider: str, integration: IntegrationModel
    ) -> None:
        try:
            tokens = await self.token_refresher.refresh(provider, integration.refresh_token)
        except RetryableExternalError as exc:
            logger.warning(
                "Could not refresh %s token, proceeding with stored refresh token: %s",
                provider,
                exc,
            )
            return
        integration.access_token = tokens.access_token
        if tokens.expires_in:
            integration.expires_at = utcnow() + timedelta(seconds=int(tokens.expires_in))
        if tokens.refresh_token:
            integration.refresh_token = tokens.refresh_token
        await session.flush()

    async def _resolve_llm(
        self,
        session: AsyncSession,
        profile: TenantProfile,
        listed: Optional[list[RemoteCredential]],
    ) -> str:
        mapping = await self.get_mapping(session, profile.tenant_id)
        if mapping is not None and mapping.openai_credential_id:
            return mapping.openai_credential_id

        if listed:
            match = next((c for c in listed if c.type == CREDENTIAL_TYPES["openai"]), None)
            if match:
                await self.upsert_mapping(session, profile.tenant_id, openai_credential_id=match.id)
                return match.id

        if len(self.key_pool):
            pooled = self.key_pool.next_key()
            created = await self.engine.create_credential(
                profile.credential_name("openai"),
                CREDENTIAL_TYPES["openai"],
                {"apiKey": pooled.key},
            )
            await self.upsert_mapping(session, profile.tenant_id, openai_credential_id=created.id)
            await session.commit()
            logger.info("Created LLM credential %s using key %s", created.id, pooled.ref)
            return created.id

        if self.settings.shared_llm_credential_id:
            return self.settings.shared_llm_credential_id
        raise ConfigurationError(
            "No LLM credential available: set FLOWDEPLOY_LLM_KEYS or FLOWDEPLOY_SHARED_LLM_CREDENTIAL_ID"
        )

    def _resolve_datastore(self) -> str:
        if not self.settings.datastore_credential_id:
            raise ConfigurationError(
                "Shared datastore credential is not configured (FLOWDEPLOY_DATASTORE_CREDENTIAL_ID)"
            )
        return self.settings.datastore_credential_id
