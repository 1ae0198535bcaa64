"""API key authentication dependency."""

from fastapi import Header, HTTPException


async def require_api_key(
    x_flowdeploy_api_key: str = Header(..., alias="X-FlowDeploy-Api-Key"),
) -> str:
    """FastAPI dependency that validates the admin API key from header."""
    from flowdeploy_engine.common.config import get_settings

    settings = get_settings()
    if x_flowdeploy_api_key != settings.api_key:
        raise HTTPException(status_code=403, detail="Invalid API key")
    return x_flowdeploy_api_key
