from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, HTTPException, status

from lessonsmith.api.deps import get_lessons_repo, get_traces_repo
from lessonsmith.api.models import AttemptResponse, CreateLessonRequest, LessonResponse, LessonTracesResponse, TraceResponse
from lessonsmith.jobs.models import LessonRecord
from lessonsmith.storage.lessons_repo import LessonsRepository
from lessonsmith.storage.traces_repo import TracesRepository
from lessonsmith.utils.ids import generate_lesson_id

router = APIRouter()
logger = logging.getLogger(__name__)

_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


@router.post("", response_model=LessonResponse, status_code=status.HTTP_201_CREATED)
async def create_lesson(payload: CreateLessonRequest, lessons: LessonsRepository = Depends(get_lessons_repo)) -> LessonResponse:  # noqa: B008
  """Queue a new lesson for generation."""
  now = time.strftime(_DATE_FORMAT, time.gmtime())
  record = LessonRecord(id=generate_lesson_id(), title=payload.title, outline=payload.outline, status="queued", created_at=now, updated_at=now)
  await lessons.create_lesson(record)
  logger.info("Queued lesson %s", record.id)
  return LessonResponse.from_record(record)


@router.get("/{lesson_id}", response_model=LessonResponse)
async def get_lesson(lesson_id: str, lessons: LessonsRepository = Depends(get_lessons_repo)) -> LessonResponse:  # noqa: B008
  record = await lessons.get_lesson(lesson_id)
  if record is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lesson not found.")
  content = await lessons.get_content(lesson_id) if record.status == "generated" else None
  return LessonResponse.from_record(record, content)


@router.get("/{lesson_id}/traces", response_model=LessonTracesResponse)
async def get_lesson_traces(
  lesson_id: str,
  lessons: LessonsRepository = Depends(get_lessons_repo),  # noqa: B008
  traces: TracesRepository = Depends(get_traces_repo),  # noqa: B008
) -> LessonTracesResponse:
  """Return the attempt and trace history, which is kept for failed lessons too."""
  record = await lessons.get_lesson(lesson_id)
  if record is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lesson not found.")
  attempts = await traces.list_attempts(lesson_id)
  trace_rows = await traces.list_traces(lesson_id)
  return LessonTracesResponse(
    lesson_id=lesson_id,
    status=record.status,
    attempts=[AttemptResponse.from_record(attempt) for attempt in attempts],
    traces=[TraceResponse.from_record(trace) for trace in trace_rows],
  )
