"""create audit_logs

Revision ID: c5a7e9b1d3f2
Revises: 8d2e4b6f1c93
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

revision: str = "c5a7e9b1d3f2"
down_revision: Union[str, Sequence[str], None] = "8d2e4b6f1c93"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_INDEXES = {
    "ix_audit_logs_event_type": ["event_type"],
    "ix_audit_logs_actor_id": ["actor_id"],
    "ix_audit_logs_entity": ["entity_type", "entity_id"],
    "ix_audit_logs_created_at": ["created_at"],
}


def upgrade() -> None:
    # actor and entity ids are plain integers so the trail outlives deleted users
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("uuid", sa.String(26), nullable=False, unique=True),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("actor_id", sa.Integer, nullable=True),
        sa.Column("actor_username", sa.String(255), nullable=False, server_default=""),
        sa.Column("source", sa.String(10), nullable=False, server_default=""),
        sa.Column("entity_type", sa.String(50), nullable=False, server_default=""),
        sa.Column("entity_id", sa.Integer, nullable=True),
        sa.Column("entity_uuid", sa.String(26), nullable=False, server_default=""),
        sa.Column("previous_state", sa.Text, nullable=True),
        sa.Column("new_state", sa.Text, nullable=True),
        sa.Column("metadata", sa.Text, nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.current_timestamp()),
    )
    for name, columns in _INDEXES.items():
        op.create_index(name, "audit_logs", columns)


def downgrade() -> None:
    for name in reversed(list(_INDEXES)):
        op.drop_index(name, table_name="audit_logs")
    op.drop_table("audit_logs")
