"""Shared FastAPI dependencies for repositories and the generation loop."""

from __future__ import annotations

from fastapi import Depends

from lessonsmith.config import Settings, get_settings
from lessonsmith.jobs.worker import GenerationLoop, build_generation_loop
from lessonsmith.storage.factory import _get_components_repo, _get_repo, _get_traces_repo
from lessonsmith.storage.lessons_repo import ComponentsRepository, LessonsRepository
from lessonsmith.storage.traces_repo import TracesRepository


def get_lessons_repo(settings: Settings = Depends(get_settings)) -> LessonsRepository:  # noqa: B008
  return _get_repo(settings)


def get_traces_repo(settings: Settings = Depends(get_settings)) -> TracesRepository:  # noqa: B008
  return _get_traces_repo(settings)


def get_components_repo(settings: Settings = Depends(get_settings)) -> ComponentsRepository:  # noqa: B008
  return _get_components_repo(settings)


def get_generation_loop(
  settings: Settings = Depends(get_settings),  # noqa: B008
  lessons: LessonsRepository = Depends(get_lessons_repo),  # noqa: B008
  traces: TracesRepository = Depends(get_traces_repo),  # noqa: B008
  components: ComponentsRepository = Depends(get_components_repo),  # noqa: B008
) -> GenerationLoop:
  """Build a loop bound to the request's repositories."""
  return build_generation_loop(settings, lessons=lessons, traces=traces, components=components)
