"""Add predefined tags and event quality scores

Revision ID: 0001_tags_and_quality_scores
Revises: 0000_initial_schema
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_tags_and_quality_scores"
down_revision = "0000_initial_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "predefined_tags",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tag", sa.String(length=100), nullable=False),
        sa.Column("tag_group", sa.String(length=100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("tag", name="uq_predefined_tags_tag"),
    )
    op.create_index("ix_predefined_tags_id", "predefined_tags", ["id"], unique=False)

    op.create_table(
        "event_quality_scores",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.String(length=36), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("quality_score", sa.Float(), nullable=False),
        sa.Column("spam_probability", sa.Float(), nullable=False),
        sa.Column("is_spam", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("scored_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", name="uq_event_quality_scores_event_id"),
    )
    op.create_index("ix_event_quality_scores_id", "event_quality_scores", ["id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_event_quality_scores_id", table_name="event_quality_scores")
    op.drop_table("event_quality_scores")
    op.drop_index("ix_predefined_tags_id", table_name="predefined_tags")
    op.drop_table("predefined_tags")
