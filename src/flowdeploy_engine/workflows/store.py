"""WorkflowRecordStore — bookkeeping queries for workflow records."""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowdeploy_engine.common.models import utcnow
from flowdeploy_engine.workflows.models import WorkflowRecordModel


class WorkflowRecordStore:
    """Reads and writes ``workflow_records`` rows.

    All methods flush but never commit; the caller owns the transaction.
    """

    async def get_active(
        self, session: AsyncSession, tenant_id: str
    ) -> WorkflowRecordModel | None:
        result = await session.execute(
            select(WorkflowRecordModel).where(
                WorkflowRecordModel.tenant_id == tenant_id,
                WorkflowRecordModel.status == "active",
            )
        )
        return result.scalar_one_or_none()

    async def insert_active(
        self,
        session: AsyncSession,
        tenant_id: str,
        remote_workflow_id: str,
        version: int,
        snapshot: dict[str, Any],
    ) -> WorkflowRecordModel:
        record = WorkflowRecordModel(
            tenant_id=tenant_id,
            remote_workflow_id=remote_workflow_id,
            version=version,
            status="active",
            workflow_snapshot=snapshot,
            last_checked=utcnow(),
        )
        session.add(record)
        await session.flush()
        return record

    async def archive(
        self, session: AsyncSession, record: WorkflowRecordModel, reason: str
    ) -> WorkflowRecordModel:
        record.status = "archived"
        record.archived_reason = reason
        await session.flush()
        return record

    async def update_snapshot(
        self, session: AsyncSession, record: WorkflowRecordModel, snapshot: dict[str, Any]
    ) -> WorkflowRecordModel:
        record.workflow_snapshot = snapshot
        record.last_checked = utcnow()
        await session.flush()
        return record

    async def repoint(
        self, session: AsyncSession, record: WorkflowRecordModel, remote_workflow_id: str
    ) -> WorkflowRecordModel:
        record.remote_workflow_id = remote_workflow_id
        await session.flush()
        return record

    async def list_history(
        self, session: AsyncSession, tenant_id: str
    ) -> list[WorkflowRecordModel]:
        result = await session.execute(
            select(WorkflowRecordModel)
            .where(WorkflowRecordModel.tenant_id == tenant_id)
            .order_by(WorkflowRecordModel.version.desc(), WorkflowRecordModel.created_at.desc())
        )
        return list(result.scalars().all())
