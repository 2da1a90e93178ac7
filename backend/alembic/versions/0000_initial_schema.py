"""Create initial schema

Revision ID: 0000_initial_schema
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0000_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("graduation_year", sa.Integer(), nullable=True),
        sa.Column("preferences", sa.JSON(), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "events",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("start_time", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("end_time", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("contact_info", sa.String(length=255), nullable=True),
        sa.Column("image_url", sa.String(length=500), nullable=True),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_events_user_id", "events", ["user_id"], unique=False)
    op.create_index("ix_events_end_time", "events", ["end_time"], unique=False)
    op.create_index("ix_events_category", "events", ["category"], unique=False)
    op.create_index("ix_events_created_at", "events", ["created_at"], unique=False)

    op.create_table(
        "user_event_interactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("event_id", sa.String(length=36), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("interaction_type", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "event_id", "interaction_type", name="uq_user_event_interaction"),
    )
    op.create_index("ix_user_event_interactions_id", "user_event_interactions", ["id"], unique=False)
    op.create_index("ix_user_event_interactions_user_id", "user_event_interactions", ["user_id"], unique=False)
    op.create_index("ix_user_event_interactions_event_id", "user_event_interactions", ["event_id"], unique=False)
    op.create_index(
        "ix_user_event_interactions_interaction_type", "user_event_interactions", ["interaction_type"], unique=False
    )
    op.create_index("ix_user_event_interactions_created_at", "user_event_interactions", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_user_event_interactions_created_at", table_name="user_event_interactions")
    op.drop_index("ix_user_event_interactions_interaction_type", table_name="user_event_interactions")
    op.drop_index("ix_user_event_interactions_event_id", table_name="user_event_interactions")
    op.drop_index("ix_user_event_interactions_user_id", table_name="user_event_interactions")
    op.drop_index("ix_user_event_interactions_id", table_name="user_event_interactions")
    op.drop_table("user_event_interactions")
    op.drop_index("ix_events_created_at", table_name="events")
    op.drop_index("ix_events_category", table_name="events")
    op.drop_index("ix_events_end_time", table_name="events")
    op.drop_index("ix_events_user_id", table_name="events")
    op.drop_table("events")
    op.drop_table("users")
