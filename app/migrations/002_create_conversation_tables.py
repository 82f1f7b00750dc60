"""Create tables for customer conversations and their messages."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "002_create_conversation_tables"
down_revision = "001_create_business_tables"
branch_labels = None
depends_on = None


_NOW = sa.text("timezone('utc', now())")


def upgrade() -> None:
    """Create ``conversations`` and ``conversation_messages``.

    ``conversations.business_id`` is a free-form key so that the default
    storefront business can receive messages before it is registered.
    """

    op.create_table(
        "conversations",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("business_id", sa.String(length=64), nullable=False),
        sa.Column("channel", sa.String(length=16), nullable=False),
        sa.Column("customer_identifier", sa.String(length=320), nullable=False),
        sa.Column(
            "status",
            sa.String(length=16),
            nullable=False,
            server_default=sa.text("'ACTIVE'"),
        ),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=_NOW
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=_NOW
        ),
        sa.Column(
            "last_message_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=_NOW,
        ),
        sa.CheckConstraint(
            "channel IN ('SMS', 'EMAIL', 'IN_APP')", name="ck_conversations_channel"
        ),
        sa.CheckConstraint(
            "status IN ('ACTIVE', 'CLOSED', 'ARCHIVED')", name="ck_conversations_status"
        ),
    )
    op.create_index(
        "ix_conversations_business_status", "conversations", ["business_id", "status"]
    )
    op.create_index(
        "ix_conversations_customer", "conversations", ["customer_identifier"]
    )

    op.create_table(
        "conversation_messages",
        sa.Column("seq", sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column(
            "conversation_id",
            sa.String(length=64),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("direction", sa.String(length=16), nullable=False),
        sa.Column("sender", sa.String(length=320), nullable=False),
        sa.Column("recipient", sa.String(length=320), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("channel", sa.String(length=16), nullable=False),
        sa.Column(
            "metadata",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("in_reply_to", sa.String(length=64), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=_NOW
        ),
        sa.CheckConstraint(
            "direction IN ('inbound', 'outbound')",
            name="ck_conversation_messages_direction",
        ),
    )
    op.create_index(
        "ix_conversation_messages_id_unique",
        "conversation_messages",
        ["id"],
        unique=True,
    )
    op.create_index(
        "ix_conversation_messages_conversation",
        "conversation_messages",
        ["conversation_id", "seq"],
    )


def downgrade() -> None:
    """Drop conversation tables and related indexes."""

    op.drop_index(
        "ix_conversation_messages_conversation", table_name="conversation_messages"
    )
    op.drop_index(
        "ix_conversation_messages_id_unique", table_name="conversation_messages"
    )
    op.drop_table("conversation_messages")

    op.drop_index("ix_conversations_customer", table_name="conversations")
    op.drop_index("ix_conversations_business_status", table_name="conversations")
    op.drop_table("conversations")
