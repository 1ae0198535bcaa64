"""profiles, integrations, credential mappings and workflow records

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("business_config", sa.JSON(), nullable=True),
        sa.Column("business_types", sa.JSON(), nullable=True),
        sa.Column("managers", sa.JSON(), nullable=True),
        sa.Column("suppliers", sa.JSON(), nullable=True),
        sa.Column("label_map", sa.JSON(), nullable=True),
        sa.Column("provider_in_use", sa.String(length=20), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("tenant_id"),
    )

    op.create_table(
        "integrations",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("provider", sa.String(length=20), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("remote_credential_id", sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "provider", name="uq_integration_tenant_provider"),
    )
    op.create_index("ix_integrations_tenant_id", "integrations", ["tenant_id"], unique=False)
    op.create_index("ix_integrations_status", "integrations", ["status"], unique=False)

    op.create_table(
        "credential_mappings",
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("gmail_credential_id", sa.String(length=64), nullable=True),
        sa.Column("outlook_credential_id", sa.String(length=64), nullable=True),
        sa.Column("openai_credential_id", sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("tenant_id"),
    )

    op.create_table(
        "workflow_records",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("remote_workflow_id", sa.String(length=64), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("workflow_snapshot", sa.JSON(), nullable=True),
        sa.Column("archived_reason", sa.Text(), nullable=True),
        sa.Column("last_checked", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_workflow_records_tenant_id", "workflow_records", ["tenant_id"], unique=False)
    op.create_index(
        "ix_workflow_records_remote_workflow_id", "workflow_records", ["remote_workflow_id"], unique=False
    )
    op.create_index("ix_workflow_records_status", "workflow_records", ["status"], unique=False)
    op.create_index(
        "uq_workflow_record_active_tenant",
        "workflow_records",
        ["tenant_id"],
        unique=True,
        sqlite_where=sa.text("status = 'active'"),
        postgresql_where=sa.text("status = 'active'"),
    )


def downgrade() -> None:
    op.drop_index("uq_workflow_record_active_tenant", table_name="workflow_records")
    op.drop_index("ix_workflow_records_status", table_name="workflow_records")
    op.drop_index("ix_workflow_records_remote_workflow_id", table_name="workflow_records")
    op.drop_index("ix_workflow_records_tenant_id", table_name="workflow_records")
    op.drop_table("workflow_records")
    op.drop_table("credential_mappings")
    op.drop_index("ix_integrations_status", table_name="integrations")
    op.drop_index("ix_integrations_tenant_id", table_name="integrations")
    op.drop_table("integrations")
    op.drop_table("profiles")
