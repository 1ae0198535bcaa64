"""Deployment API router."""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from flowdeploy_engine.common.security import require_api_key
from flowdeploy_engine.deployment.schemas import DeployRequest
from flowdeploy_engine.workflows.schemas import WorkflowRecordResponse

router = APIRouter(prefix="/deploy", tags=["deployment"])

_STATUS_BY_KIND = {
    "VALIDATION": 400,
    "NOT_FOUND": 404,
}

_PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-FlowDeploy-Api-Key",
}


def _get_service():
    from flowdeploy_engine.deps import get_deployment_facade
    return get_deployment_facade()


def _get_db():
    from flowdeploy_engine.deps import get_db
    return get_db()


@router.options("")
async def deploy_preflight():
    return Response(status_code=200, headers=_PREFLIGHT_HEADERS)


@router.post("")
async def deploy(body: DeployRequest, _=Depends(require_api_key)):
    svc = _get_service()
    if body.check_only:
        result = await svc.check_availability()
        return JSONResponse(status_code=200, content=result.model_dump())

    db = _get_db()
    async with db.get_session() as session:
        result = await svc.deploy(session, body.tenant_id, body.email_provider)

    status_code = 200 if result.success else _STATUS_BY_KIND.get(result.error_kind, 500)
    return JSONResponse(
        status_code=status_code,
        content=result.model_dump(by_alias=True, exclude_none=True),
    )


@router.get("/{tenant_id}/history", response_model=list[WorkflowRecordResponse])
async def deploy_history(tenant_id: str, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        records = await svc.history(session, tenant_id)
        return [WorkflowRecordResponse.model_validate(r) for r in records]
