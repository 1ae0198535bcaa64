"""Dependency injection singletons for FlowDeploy-Engine."""

from flowdeploy_engine.common.config import get_settings
from flowdeploy_engine.common.database import DatabaseManager
from flowdeploy_engine.credentials.keypool import LLMKeyPool
from flowdeploy_engine.credentials.oauth import TokenRefresher
from flowdeploy_engine.credentials.service import CredentialResolver
from flowdeploy_engine.deployment.service import DeploymentFacade
from flowdeploy_engine.engine.client import EngineClient
from flowdeploy_engine.resilience.breaker import BreakerConfig, BreakerRegistry
from flowdeploy_engine.resilience.client import ResilientClient
from flowdeploy_engine.resilience.policy import RetryPolicy
from flowdeploy_engine.templates.injector import TemplateInjector
from flowdeploy_engine.tenants.service import TenantService
from flowdeploy_engine.workflows.reconciler import WorkflowReconciler

_db: DatabaseManager | None = None
_breakers: BreakerRegistry | None = None
_resilient: ResilientClient | None = None
_engine: EngineClient | None = None
_key_pool: LLMKeyPool | None = None
_token_refresher: TokenRefresher | None = None
_tenants: TenantService | None = None
_resolver: CredentialResolver | None = None
_injector: TemplateInjector | None = None
_reconciler: WorkflowReconciler | None = None
_facade: DeploymentFacade | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_breakers() -> BreakerRegistry:
    global _breakers
    if _breakers is None:
        settings = get_settings()
        _breakers = BreakerRegistry(
            BreakerConfig(
                failure_threshold=settings.breaker_failure_threshold,
                reset_timeout=settings.breaker_reset_timeout,
                success_threshold=settings.breaker_success_threshold,
            )
        )
    return _breakers


def get_resilient_client() -> ResilientClient:
    global _resilient
    if _resilient is None:
        settings = get_settings()
        _resilient = ResilientClient(
            RetryPolicy(
                max_attempts=settings.retry_max_attempts,
                base_delay=settings.retry_base_delay,
                backoff_multiplier=settings.retry_backoff_multiplier,
                max_delay=settings.retry_max_delay,
            ),
            breakers=get_breakers(),
        )
    return _resilient


def get_engine_client() -> EngineClient:
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = EngineClient(
            settings.engine_base_url,
            settings.engine_api_key,
            get_resilient_client(),
            timeout=settings.engine_timeout,
        )
    return _engine


def get_key_pool() -> LLMKeyPool:
    global _key_pool
    if _key_pool is None:
        _key_pool = LLMKeyPool(get_settings().llm_key_pool)
    return _key_pool


def get_token_refresher() -> TokenRefresher:
    global _token_refresher
    if _token_refresher is None:
        _token_refresher = TokenRefresher(get_settings(), get_resilient_client())
    return _token_refresher


def get_tenant_service() -> TenantService:
    global _tenants
    if _tenants is None:
        _tenants = TenantService()
    return _tenants


def get_credential_resolver() -> CredentialResolver:
    global _resolver
    if _resolver is None:
        _resolver = CredentialResolver(
            get_settings(),
            get_engine_client(),
            get_key_pool(),
            token_refresher=get_token_refresher(),
        )
    return _resolver


def get_template_injector() -> TemplateInjector:
    global _injector
    if _injector is None:
        settings = get_settings()
        _injector = TemplateInjector(
            classifier_model=settings.classifier_model,
            draft_model=settings.draft_model,
            template_dir=settings.template_dir,
        )
    return _injector


def get_reconciler() -> WorkflowReconciler:
    global _reconciler
    if _reconciler is None:
        settings = get_settings()
        _reconciler = WorkflowReconciler(
            get_engine_client(),
            settle_delay=settings.reactivation_settle_delay,
            poll_timeout=settings.reactivation_poll_timeout,
            poll_interval=settings.reactivation_poll_interval,
        )
    return _reconciler


def get_deployment_facade() -> DeploymentFacade:
    global _facade
    if _facade is None:
        _facade = DeploymentFacade(
            get_tenant_service(),
            get_credential_resolver(),
            get_template_injector(),
            get_reconciler(),
            get_engine_client(),
        )
    return _facade


async def close_clients() -> None:
    """Close outbound HTTP clients created by this module."""
    if _engine is not None:
        await _engine.close()
    if _token_refresher is not None:
        await _token_refresher.close()


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _breakers, _resilient, _engine, _key_pool, _token_refresher
    global _tenants, _resolver, _injector, _reconciler, _facade
    _db = None
    _breakers = None
    _resilient = None
    _engine = None
    _key_pool = None
    _token_refresher = None
    _tenants = None
    _resolver = None
    _injector = None
    _reconciler = None
    _facade = None
