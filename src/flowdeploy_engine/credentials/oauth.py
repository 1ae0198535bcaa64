"""OAuth2 refresh-token grant against the mailbox providers' token endpoints."""

import logging
from typing import Optional

import httpx

from flowdeploy_engine.common.config import FlowDeploySettings
from flowdeploy_engine.common.exceptions import (
    ConfigurationError,
    ExternalServiceError,
    RetryableExternalError,
)
from flowdeploy_engine.credentials.schemas import TokenSet
from flowdeploy_engine.resilience.client import ResilientClient
from flowdeploy_engine.resilience.policy import is_retryable_status

logger = logging.getLogger(__name__)


class TokenRefresher:
    """Exchanges a stored refresh token for a fresh access token."""

    def __init__(
        self,
        settings: FlowDeploySettings,
        resilient: ResilientClient,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.resilient = resilient
        self._http = http or httpx.AsyncClient(timeout=30.0)

    async def close(self) -> None:
        await self._http.aclose()

    async def refresh(self, provider: str, refresh_token: str) -> TokenSet:
        """Run the refresh-token grant.

        Raises ConfigurationError when the provider rejects the grant
        (revoked or invalid token, bad client), RetryableExternalError when
        the endpoint stays unavailable after retries.
        """
        client_id, client_secret = self.settings.oauth_client(provider)
        if not client_id or not client_secret:
            raise ConfigurationError(f"{provider} OAuth client credentials are not configured")

        form = {
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        if provider == "outlook":
            form["scope"] = self.settings.outlook_scope
        url = self.settings.token_url(provider)

        async def send() -> dict:
            try:
                resp = await self._http.post(url, data=form)
            except httpx.TimeoutException as exc:
                raise RetryableExternalError(f"{provider} token endpoint timed out") from exc
            except httpx.TransportError as exc:
                raise RetryableExternalError(f"{provider} token endpoint unreachable: {exc}") from exc
            if is_retryable_status(resp.status_code):
                raise RetryableExternalError(
                    f"{provider} token refresh failed: {resp.status_code}",
                    status_code=resp.status_code,
                )
            if resp.status_code >= 400:
                raise ExternalServiceError(
                    f"{provider} token refresh rejected: {resp.status_code} {resp.text[:200]}",
                    status_code=resp.status_code,
                )
            return resp.json()

        try:
            data = await self.resilient.call(
                f"oauth:{provider}", send, description=f"{provider} token refresh"
            )
        except ExternalServiceError as exc:
            raise ConfigurationError(
                f"{provider} refresh token was rejected; the mailbox must be reconnected ({exc.status_code})"
            ) from exc

        if not data.get("access_token"):
            raise ConfigurationError(f"{provider} token endpoint returned no access_token")
        return TokenSet(
            access_token=data["access_token"],
            expires_in=data.get("expires_in"),
            refresh_token=data.get("refresh_token"),
        )
