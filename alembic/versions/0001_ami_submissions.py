"""AMI submission table.

Revision ID: 0001_ami_submissions
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_ami_submissions"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "ami_submission",
        sa.Column("submission_id", sa.String(length=128), primary_key=True),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("system_id", sa.String(length=64), nullable=False),
        sa.Column("assessment_id", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("claims", sa.JSON(), nullable=False),
        sa.Column("evidence", sa.JSON(), nullable=False),
        sa.Column("contact", sa.JSON(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("review", sa.JSON(), nullable=True),
        sa.Column("resulting_assessment_id", sa.String(length=255), nullable=True),
        sa.Column("submitted_at", sa.String(length=32), nullable=False),
        sa.Column("updated_at", sa.String(length=32), nullable=False),
    )
    op.create_index("ix_ami_submission_system_id", "ami_submission", ["system_id"])
    op.create_index("ix_ami_submission_assessment_id", "ami_submission", ["assessment_id"])
    op.create_index("ix_ami_submission_status", "ami_submission", ["status"])
    op.create_index("ix_ami_submission_submitted_at", "ami_submission", ["submitted_at"])


def downgrade() -> None:
    op.drop_index("ix_ami_submission_submitted_at", table_name="ami_submission")
    op.drop_index("ix_ami_submission_status", table_name="ami_submission")
    op.drop_index("ix_ami_submission_assessment_id", table_name="ami_submission")
    op.drop_index("ix_ami_submission_system_id", table_name="ami_submission")
    op.drop_table("ami_submission")
