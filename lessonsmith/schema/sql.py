from __future__ import annotations

from sqlalchemy import CheckConstraint, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from lessonsmith.core.database import Base

_UTC_NOW = text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


class Lesson(Base):
  __tablename__ = "lessons"
  __table_args__ = (
    CheckConstraint("status IN ('queued', 'generating', 'generated', 'failed')", name="ck_lessons_status"),
    Index("ix_lessons_status_created_at", "status", "created_at"),
  )

  id: Mapped[str] = mapped_column(String, primary_key=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  outline: Mapped[str] = mapped_column(Text, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'queued'"))
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW)


class LessonContent(Base):
  __tablename__ = "lesson_contents"

  lesson_id: Mapped[str] = mapped_column(ForeignKey("lessons.id", ondelete="CASCADE"), primary_key=True)
  typescript_source: Mapped[str] = mapped_column(Text, nullable=False)
  compiled_js: Mapped[str | None] = mapped_column(Text, nullable=True)
  version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW)


class LessonComponent(Base):
  __tablename__ = "lesson_components"

  component_id: Mapped[str] = mapped_column(String, primary_key=True)
  lesson_id: Mapped[str] = mapped_column(ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  meta_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
  pedagogy_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
  source_text: Mapped[str] = mapped_column(Text, nullable=False)
  compiled_js: Mapped[str | None] = mapped_column(Text, nullable=True)
  evaluation_score: Mapped[float] = mapped_column(Float, nullable=False)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW)


class Trace(Base):
  __tablename__ = "traces"
  __table_args__ = (UniqueConstraint("lesson_id", "attempt_number", name="ux_traces_lesson_attempt"),)

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  lesson_id: Mapped[str] = mapped_column(ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, index=True)
  attempt_number: Mapped[int] = mapped_column(Integer, nullable=False)
  prompt: Mapped[str] = mapped_column(Text, nullable=False)
  model: Mapped[str] = mapped_column(String, nullable=False)
  response: Mapped[str | None] = mapped_column(Text, nullable=True)
  tokens_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  validation_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
  compilation_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
  error: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW)


class GenerationAttempt(Base):
  __tablename__ = "generation_attempts"
  __table_args__ = (
    UniqueConstraint("lesson_id", "attempt_number", name="ux_generation_attempts_lesson_attempt"),
    CheckConstraint("status IN ('in_progress', 'success', 'failed')", name="ck_generation_attempts_status"),
  )

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  lesson_id: Mapped[str] = mapped_column(ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, index=True)
  attempt_number: Mapped[int] = mapped_column(Integer, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False)
  started_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW)
  finished_at: Mapped[str | None] = mapped_column(String, nullable=True)
  error: Mapped[str | None] = mapped_column(Text, nullable=True)
