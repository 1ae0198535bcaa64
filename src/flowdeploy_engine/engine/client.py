"""Async HTTP client for the remote workflow engine's public REST API."""

import logging
from typing import Any, Optional

import httpx

from flowdeploy_engine.common.exceptions import (
    ExternalServiceError,
    ListingNotSupportedError,
    RemoteNotFoundError,
    RetryableExternalError,
)
from flowdeploy_engine.engine.schemas import RemoteCredential, RemoteWorkflow
from flowdeploy_engine.resilience.client import ResilientClient
from flowdeploy_engine.resilience.policy import is_retryable_status

logger = logging.getLogger(__name__)

DEPENDENCY = "engine"
_LISTING_REFUSED = frozenset({403, 404, 405})


def error_for_response(resp: httpx.Response, method: str, path: str) -> Exception:
    """Map a failed engine response to the exception taxonomy."""
    detail = resp.text[:500] if resp.content else ""
    message = f"engine {method} {path} failed: {resp.status_code} {detail}".strip()
    if is_retryable_status(resp.status_code):
        return RetryableExternalError(message, status_code=resp.status_code)
    if resp.status_code == 404:
        return RemoteNotFoundError(message)
    return ExternalServiceError(message, status_code=resp.status_code)


def extract_id(data: Any) -> Optional[str]:
    """Pull a resource id out of a create response.

    Engine versions disagree on the envelope: ``{"id"}``, ``{"credentialId"}``
    or the same nested under ``"data"``.
    """
    if not isinstance(data, dict):
        return None
    for source in (data, data.get("data") if isinstance(data.get("data"), dict) else {}):
        for key in ("id", "credentialId"):
            if source.get(key):
                return str(source[key])
    return None


class EngineClient:
    """Workflow and credential operations, each routed through ResilientClient."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        resilient: ResilientClient,
        timeout: float = 30.0,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.resilient = resilient
        self._http = http or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._http.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-N8N-API-KEY": self.api_key,
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}/api/v1{path}"

        async def send() -> Any:
            try:
                resp = await self._http.request(
                    method, url, json=json, params=params, headers=self._headers()
                )
            except httpx.TimeoutException as exc:
                raise RetryableExternalError(f"engine {method} {path} timed out") from exc
            except httpx.TransportError as exc:
                raise RetryableExternalError(f"engine {method} {path} unreachable: {exc}") from exc
            if resp.status_code >= 400:
                raise error_for_response(resp, method, path)
            if not resp.content:
                return None
            return resp.json()

        return await self.resilient.call(
            DEPENDENCY, send, description=f"engine {method} {path}"
        )

    async def _list(self, path: str) -> list[dict[str, Any]]:
        """Follow ``nextCursor`` pagination and return every item."""
        items: list[dict[str, Any]] = []
        cursor: Optional[str] = None
        while True:
            params: dict[str, Any] = {"limit": 250}
            if cursor:
                params["cursor"] = cursor
            data = await self._request("GET", path, params=params)
            if isinstance(data, list):
                items.extend(data)
                return items
            items.extend((data or {}).get("data") or [])
            cursor = (data or {}).get("nextCursor")
            if not cursor:
                return items

    # ── Workflows ──

    async def ping(self) -> None:
        """One lightweight authenticated call, used for availability checks."""
        await self._request("GET", "/workflows", params={"limit": 1})

    async def list_workflows(self) -> list[RemoteWorkflow]:
        return [RemoteWorkflow.from_api(w) for w in await self._list("/workflows")]

    async def get_workflow(self, workflow_id: str) -> RemoteWorkflow:
        data = await self._request("GET", f"/workflows/{workflow_id}")
        return RemoteWorkflow.from_api(data or {})

    async def create_workflow(self, payload: dict[str, Any]) -> RemoteWorkflow:
        data = await self._request("POST", "/workflows", json=payload)
        workflow_id = extract_id(data)
        if not workflow_id:
            raise ExternalServiceError("engine created a workflow but returned no id")
        workflow = RemoteWorkflow.from_api(data)
        workflow.id = workflow_id
        return workflow

    async def update_workflow(self, workflow_id: str, payload: dict[str, Any]) -> RemoteWorkflow:
        data = await self._request("PUT", f"/workflows/{workflow_id}", json=payload)
        workflow = RemoteWorkflow.from_api(data or {})
        workflow.id = workflow_id
        return workflow

    async def delete_workflow(self, workflow_id: str) -> None:
        await self._request("DELETE", f"/workflows/{workflow_id}")

    async def activate_workflow(self, workflow_id: str) -> None:
        await self._request("POST", f"/workflows/{workflow_id}/activate")

    async def deactivate_workflow(self, workflow_id: str) -> None:
        await self._request("POST", f"/workflows/{workflow_id}/deactivate")

    # ── Credentials ──

    async def list_credentials(self) -> list[RemoteCredential]:
        """List credentials. Many engine deployments refuse this.

        Raises ListingNotSupportedError when the engine rejects the listing
        outright, as opposed to a transient failure.
        """
        try:
            items = await self._list("/credentials")
        except ExternalServiceError as exc:
            if exc.status_code in _LISTING_REFUSED:
                raise ListingNotSupportedError(
                    f"engine does not support credential listing ({exc.status_code})",
                    status_code=exc.status_code,
                ) from exc
            raise
        return [RemoteCredential.from_api(c) for c in items]

    async def create_credential(
        self, name: str, type_: str, data: dict[str, Any]
    ) -> RemoteCredential:
        body = {"name": name, "type": type_, "data": data}
        created = await self._request("POST", "/credentials", json=body)
        credential_id = extract_id(created)
        if not credential_id:
            raise ExternalServiceError(
                f"engine created credential {name!r} but returned no id"
            )
        logger.info("Created remote credential %s (%s)", name, credential_id)
        return RemoteCredential(id=credential_id, name=name, type=type_)

    async def delete_credential(self, credential_id: str) -> None:
        await self._request("DELETE", f"/credentials/{credential_id}")
