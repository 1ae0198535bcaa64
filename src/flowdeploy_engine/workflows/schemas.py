"""Reconciliation states and outcomes; workflow record responses."""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ReconcileState(str, enum.Enum):
    NO_RECORD = "no_record"
    RECORD_VALID = "record_valid"
    RECORD_STALE = "record_stale"
    REMOTE_DUPLICATED = "remote_duplicated"


@dataclass
class ReconcileOutcome:
    """What one reconciliation pass did for a tenant."""

    state: ReconcileState
    remote_workflow_id: str
    version: int
    created: bool = False
    activated: bool = False
    removed_duplicates: list[str] = field(default_factory=list)


class WorkflowRecordResponse(BaseModel):
    id: str
    tenant_id: str
    remote_workflow_id: str
    version: int
    status: str
    archived_reason: Optional[str] = None
    last_checked: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}
