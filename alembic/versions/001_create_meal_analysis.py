"""create meal_analysis

Revision ID: 001
Revises:
Create Date: 2026-02-05

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "meal_analysis",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("image_hash", sa.String(64), nullable=False),
        sa.Column("analysis_result", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_meal_analysis_image_hash", "meal_analysis", ["image_hash"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_meal_analysis_image_hash", table_name="meal_analysis")
    op.drop_table("meal_analysis")
