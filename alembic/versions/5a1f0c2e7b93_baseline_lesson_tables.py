"""baseline lesson tables

Revision ID: 5a1f0c2e7b93
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "5a1f0c2e7b93"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_UTC_NOW = sa.text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "lessons",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("outline", sa.Text(), nullable=False),
    sa.Column("status", sa.String(), server_default=sa.text("'queued'"), nullable=False),
    sa.Column("created_at", sa.String(), server_default=_UTC_NOW, nullable=False),
    sa.Column("updated_at", sa.String(), server_default=_UTC_NOW, nullable=False),
    sa.CheckConstraint("status IN ('queued', 'generating', 'generated', 'failed')", name="ck_lessons_status"),
    sa.PrimaryKeyConstraint("id"),
  )
  # The claim query scans queued lessons oldest first.
  op.create_index("ix_lessons_status_created_at", "lessons", ["status", "created_at"], unique=False)

  op.create_table(
    "lesson_contents",
    sa.Column("lesson_id", sa.String(), nullable=False),
    sa.Column("typescript_source", sa.Text(), nullable=False),
    sa.Column("compiled_js", sa.Text(), nullable=True),
    sa.Column("version", sa.Integer(), nullable=False),
    sa.Column("created_at", sa.String(), server_default=_UTC_NOW, nullable=False),
    sa.ForeignKeyConstraint(["lesson_id"], ["lessons.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("lesson_id"),
  )

  op.create_table(
    "lesson_components",
    sa.Column("component_id", sa.String(), nullable=False),
    sa.Column("lesson_id", sa.String(), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("meta_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("pedagogy_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("source_text", sa.Text(), nullable=False),
    sa.Column("compiled_js", sa.Text(), nullable=True),
    sa.Column("evaluation_score", sa.Float(), nullable=False),
    sa.Column("created_at", sa.String(), server_default=_UTC_NOW, nullable=False),
    sa.ForeignKeyConstraint(["lesson_id"], ["lessons.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("component_id"),
  )
  op.create_index("ix_lesson_components_lesson_id", "lesson_components", ["lesson_id"], unique=False)

  op.create_table(
    "traces",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("lesson_id", sa.String(), nullable=False),
    sa.Column("attempt_number", sa.Integer(), nullable=False),
    sa.Column("prompt", sa.Text(), nullable=False),
    sa.Column("model", sa.String(), nullable=False),
    sa.Column("response", sa.Text(), nullable=True),
    sa.Column("tokens_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("validation_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("compilation_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("error", sa.Text(), nullable=True),
    sa.Column("created_at", sa.String(), server_default=_UTC_NOW, nullable=False),
    sa.ForeignKeyConstraint(["lesson_id"], ["lessons.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("lesson_id", "attempt_number", name="ux_traces_lesson_attempt"),
  )
  op.create_index("ix_traces_lesson_id", "traces", ["lesson_id"], unique=False)

  op.create_table(
    "generation_attempts",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("lesson_id", sa.String(), nullable=False),
    sa.Column("attempt_number", sa.Integer(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("started_at", sa.String(), server_default=_UTC_NOW, nullable=False),
    sa.Column("finished_at", sa.String(), nullable=True),
    sa.Column("error", sa.Text(), nullable=True),
    sa.CheckConstraint("status IN ('in_progress', 'success', 'failed')", name="ck_generation_attempts_status"),
    sa.ForeignKeyConstraint(["lesson_id"], ["lessons.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("lesson_id", "attempt_number", name="ux_generation_attempts_lesson_attempt"),
  )
  op.create_index("ix_generation_attempts_lesson_id", "generation_attempts", ["lesson_id"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index("ix_generation_attempts_lesson_id", table_name="generation_attempts")
  op.drop_table("generation_attempts")
  op.drop_index("ix_traces_lesson_id", table_name="traces")
  op.drop_table("traces")
  op.drop_index("ix_lesson_components_lesson_id", table_name="lesson_components")
  op.drop_table("lesson_components")
  op.drop_table("lesson_contents")
  op.drop_index("ix_lessons_status_created_at", table_name="lessons")
  op.drop_table("lessons")
