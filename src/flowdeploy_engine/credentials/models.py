"""SQLAlchemy models for mailbox integrations and remote credential ids."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from flowdeploy_engine.common.models import Base, TimestampMixin, generate_uuid


class IntegrationModel(Base, TimestampMixin):
    __tablename__ = "integrations"
    __table_args__ = (
        UniqueConstraint("tenant_id", "provider", name="uq_integration_tenant_provider"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active", index=True)
    remote_credential_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)


class CredentialMappingModel(Base, TimestampMixin):
    __tablename__ = "credential_mappings"

    tenant_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    gmail_credential_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    outlook_credential_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    openai_credential_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
