"""initial schema"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create identity and service registry tables.

    Returns
    -------
    None
        Creates identities, service registrations and the access audit log.
    """
    op.create_table(
        "identities",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("github_user_id", sa.BigInteger(), nullable=False),
        sa.Column("github_access_token", sa.Text(), nullable=True),
        sa.Column("github_refresh_token", sa.Text(), nullable=True),
        sa.Column("github_token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_whitelisted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("github_user_id"),
    )
    op.create_table(
        "service_registrations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("service_identifier", sa.String(length=255), nullable=False),
        sa.Column("api_key_hash", sa.String(length=512), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_api_key_rotated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("service_identifier"),
    )
    op.create_index(
        "ix_service_registrations_is_active",
        "service_registrations",
        ["is_active"],
        unique=False,
    )
    op.create_table(
        "service_audit_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("service_id", sa.Uuid(), nullable=False),
        sa.Column("identity_ref", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["service_id"], ["service_registrations.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_service_audit_logs_service_id",
        "service_audit_logs",
        ["service_id"],
        unique=False,
    )
    op.create_index(
        "ix_service_audit_logs_identity_ref",
        "service_audit_logs",
        ["identity_ref"],
        unique=False,
    )
    op.create_index(
        "ix_service_audit_logs_created_at",
        "service_audit_logs",
        ["created_at"],
        unique=False,
    )


def downgrade() -> None:
    """Drop identity and service registry tables.

    Returns
    -------
    None
        Drops the tables and indexes created by this revision.
    """
    op.drop_index("ix_service_audit_logs_created_at", table_name="service_audit_logs")
    op.drop_index("ix_service_audit_logs_identity_ref", table_name="service_audit_logs")
    op.drop_index("ix_service_audit_logs_service_id", table_name="service_audit_logs")
    op.drop_table("service_audit_logs")
    op.drop_index("ix_service_registrations_is_active", table_name="service_registrations")
    op.drop_table("service_registrations")
    op.drop_table("identities")
