"""Pydantic schemas for the deployment endpoint."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from flowdeploy_engine.tenants.schemas import normalize_provider


class DeployRequest(BaseModel):
    tenant_id: str = Field(..., alias="tenantId", min_length=1, max_length=64)
    check_only: bool = Field(default=False, alias="checkOnly")
    email_provider: Optional[str] = Field(default=None, alias="emailProvider")

    model_config = {"populate_by_name": True}

    @field_validator("email_provider")
    @classmethod
    def _known_provider(cls, value: Optional[str]) -> Optional[str]:
        if value is None or value == "":
            return None
        provider = normalize_provider(value)
        if provider is None:
            raise ValueError("emailProvider must be one of: gmail, outlook")
        return provider


class DeployResult(BaseModel):
    success: bool
    workflow_id: Optional[str] = Field(default=None, alias="workflowId")
    version: Optional[int] = None
    error_kind: Optional[str] = Field(default=None, alias="errorKind")
    error: Optional[str] = None

    model_config = {"populate_by_name": True}


class AvailabilityResult(BaseModel):
    success: bool
    available: bool
    error: Optional[str] = None
