"""SQLAlchemy model for tenant business profiles."""

from typing import Optional

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from flowdeploy_engine.common.models import Base, TimestampMixin


class ProfileModel(Base, TimestampMixin):
    __tablename__ = "profiles"

    tenant_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    business_config: Mapped[dict] = mapped_column(JSON, default=dict)
    business_types: Mapped[list] = mapped_column(JSON, default=list)
    managers: Mapped[list] = mapped_column(JSON, default=list)
    suppliers: Mapped[list] = mapped_column(JSON, default=list)
    label_map: Mapped[dict] = mapped_column(JSON, default=dict)
    provider_in_use: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
