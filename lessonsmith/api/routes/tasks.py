from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, status

from lessonsmith.api.deps import get_generation_loop, get_lessons_repo
from lessonsmith.api.models import TaskAcceptedResponse
from lessonsmith.config import Settings, get_settings
from lessonsmith.jobs.models import LessonRecord
from lessonsmith.jobs.worker import GenerationLoop
from lessonsmith.storage.lessons_repo import LessonsRepository

router = APIRouter()
logger = logging.getLogger(__name__)


async def _run_generation(loop: GenerationLoop, lesson: LessonRecord) -> None:
  try:
    await loop.run_claimed(lesson)
  except Exception:  # noqa: BLE001
    # The loop has already marked the lesson failed and written its attempts.
    logger.error("Background generation for lesson %s failed", lesson.id, exc_info=True)


@router.post("/generate/{lesson_id}", response_model=TaskAcceptedResponse, status_code=status.HTTP_202_ACCEPTED)
async def generate_lesson_task(
  lesson_id: str,
  background_tasks: BackgroundTasks,
  settings: Annotated[Settings, Depends(get_settings)],
  lessons: Annotated[LessonsRepository, Depends(get_lessons_repo)],
  loop: Annotated[GenerationLoop, Depends(get_generation_loop)],
  x_lessonsmith_task_secret: str | None = Header(default=None),
) -> TaskAcceptedResponse:
  """Claim one queued lesson and generate it in the background.

  Task dispatchers get a fast 2xx; a lesson another worker already claimed is
  answered with status "skipped".
  """
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  if not secrets.compare_digest((x_lessonsmith_task_secret or ""), settings.task_secret):
    logger.warning("Unauthorized access attempt to /generate")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")

  lesson = await lessons.claim_lesson(lesson_id)
  if lesson is None:
    logger.info("Lesson %s was not claimable; skipping", lesson_id)
    return TaskAcceptedResponse(status="skipped", lesson_id=lesson_id)

  logger.info("Claimed lesson %s for background generation", lesson_id)
  background_tasks.add_task(_run_generation, loop, lesson)
  return TaskAcceptedResponse(status="accepted", lesson_id=lesson_id)
