"""Repository contract for the lesson job queue."""

from __future__ import annotations

from typing import Protocol

from lessonsmith.jobs.models import ComponentRecord, LessonContentRecord, LessonRecord, LessonStatus


class LessonsRepository(Protocol):
  """Queue storage for lessons, their content and archived components."""

  async def create_lesson(self, record: LessonRecord) -> None:
    """Insert a newly submitted lesson."""

  async def get_lesson(self, lesson_id: str) -> LessonRecord | None:
    """Fetch a lesson by id."""

  async def claim_next_queued(self) -> LessonRecord | None:
    """Atomically move the oldest queued lesson to generating; None when nothing was claimed."""

  async def claim_lesson(self, lesson_id: str) -> LessonRecord | None:
    """Compare-and-swap one lesson from queued to generating; None when another worker won."""

  async def set_status(self, lesson_id: str, status: LessonStatus, *, expected: LessonStatus | None = None) -> bool:
    """Update status, optionally only when the current status matches `expected`."""

  async def complete_generation(self, lesson_id: str, content: LessonContentRecord) -> None:
    """Write the lesson content and flip status to generated in one transaction."""

  async def get_content(self, lesson_id: str) -> LessonContentRecord | None:
    """Fetch the generated content for a lesson."""


class ComponentsRepository(Protocol):
  """Archive of components that passed every pipeline stage."""

  async def save_component(self, record: ComponentRecord) -> None:
    """Persist a component; saving the same content hash twice is a no-op."""

  async def get_component(self, component_id: str) -> ComponentRecord | None:
    """Fetch an archived component by content hash."""
