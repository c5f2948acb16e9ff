"""Schema package exports."""

from .sql import GenerationAttempt, Lesson, LessonComponent, LessonContent, Trace

__all__ = ["GenerationAttempt", "Lesson", "LessonComponent", "LessonContent", "Trace"]
