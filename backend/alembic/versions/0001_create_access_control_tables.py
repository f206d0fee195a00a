"""create permissions, groups, access and audit logs tables

Revision ID: 0001_create_access_control_tables
Revises:
Create Date: 2026-10-17
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_create_access_control_tables"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "permissions",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("resource", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=32), nullable=False),
        sa.Column("status_id", sa.SmallInteger(), nullable=False, server_default="0", index=True),
        *_timestamps(),
    )
    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status_id", sa.SmallInteger(), nullable=False, server_default="0", index=True),
        *_timestamps(),
    )
    op.create_table(
        "group_permissions",
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "permission_id",
            sa.Integer(),
            sa.ForeignKey("permissions.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )
    op.create_table(
        "access",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True, index=True),
        sa.Column("api_key_hash", sa.String(length=64), nullable=False, unique=True, index=True),
        sa.Column("key_prefix", sa.String(length=16), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
        sa.Column("expired_date", sa.DateTime(timezone=True), nullable=True, index=True),
        sa.Column("rate_limit", sa.Integer(), nullable=False, server_default="120"),
        sa.Column("status_id", sa.SmallInteger(), nullable=False, server_default="0", index=True),
        *_timestamps(),
    )
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("actor_type", sa.String(length=32), nullable=False, index=True),
        sa.Column("actor_id", sa.String(length=128), nullable=False, index=True),
        sa.Column("user_email", sa.String(length=255), nullable=True, index=True),
        sa.Column("api_key", sa.String(length=16), nullable=True, index=True),
        sa.Column("request_id", sa.String(length=64), nullable=False, index=True),
        sa.Column("method", sa.String(length=8), nullable=False),
        sa.Column("path", sa.String(length=512), nullable=False, index=True),
        sa.Column("status_code", sa.Integer(), nullable=False, index=True),
        sa.Column("ip", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=256), nullable=True),
        sa.Column("request_headers", sa.JSON(), nullable=True),
        sa.Column("duration_ms", sa.Float(), nullable=True),
        sa.Column("req_bytes", sa.Integer(), nullable=True),
        sa.Column("res_bytes", sa.Integer(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("status_id", sa.SmallInteger(), nullable=False, server_default="0", index=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            index=True,
        ),
    )


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("access")
    op.drop_table("group_permissions")
    op.drop_table("groups")
    op.drop_table("permissions")
