"""SQLAlchemy model for the local shadow of each tenant's remote workflow."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from flowdeploy_engine.common.models import Base, TimestampMixin, generate_uuid


class WorkflowRecordModel(Base, TimestampMixin):
    __tablename__ = "workflow_records"
    __table_args__ = (
        # Partial index: at most one active record per tenant
        Index(
            "uq_workflow_record_active_tenant",
            "tenant_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    remote_workflow_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active", index=True)
    workflow_snapshot: Mapped[dict] = mapped_column(JSON, default=dict)
    archived_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_checked: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
