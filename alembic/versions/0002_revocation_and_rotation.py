"""revocation and key rotation"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "0002_revocation_and_rotation"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create revoked-token and key-rotation tables.

    Returns
    -------
    None
        Creates both tables and their lookup indexes.
    """
    op.create_table(
        "revoked_tokens",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("jti", sa.String(length=255), nullable=False),
        sa.Column("identity_id", sa.Uuid(), nullable=False),
        sa.Column("token_issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked_by", sa.String(length=255), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_revoked_tokens_jti", "revoked_tokens", ["jti"], unique=True)
    op.create_index(
        "ix_revoked_tokens_identity_id",
        "revoked_tokens",
        ["identity_id"],
        unique=False,
    )
    op.create_index(
        "ix_revoked_tokens_token_expires_at",
        "revoked_tokens",
        ["token_expires_at"],
        unique=False,
    )
    op.create_table(
        "key_rotations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("key_identifier", sa.String(length=255), nullable=False),
        sa.Column("key_type", sa.String(length=50), nullable=False),
        sa.Column("last_rotated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("next_rotation_due", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rotation_interval_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("metadata_text", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("key_identifier"),
    )
    op.create_index(
        "ix_key_rotations_next_rotation_due",
        "key_rotations",
        ["next_rotation_due"],
        unique=False,
    )
    op.create_index(
        "ix_key_rotations_is_active",
        "key_rotations",
        ["is_active"],
        unique=False,
    )


def downgrade() -> None:
    """Drop revoked-token and key-rotation tables.

    Returns
    -------
    None
        Drops both tables and their indexes.
    """
    op.drop_index("ix_key_rotations_is_active", table_name="key_rotations")
    op.drop_index("ix_key_rotations_next_rotation_due", table_name="key_rotations")
    op.drop_table("key_rotations")
    op.drop_index("ix_revoked_tokens_token_expires_at", table_name="revoked_tokens")
    op.drop_index("ix_revoked_tokens_identity_id", table_name="revoked_tokens")
    op.drop_index("ix_revoked_tokens_jti", table_name="revoked_tokens")
    op.drop_table("revoked_tokens")
