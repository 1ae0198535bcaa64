"""Shared Pydantic schemas for FlowDeploy-Engine."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    service: str = "flowdeploy-engine"


class BreakerStatus(BaseModel):
    name: str
    state: str
    failure_count: int
    success_count: int
    retry_after: float = 0.0
