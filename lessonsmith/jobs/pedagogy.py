"""Infer a pedagogy profile from a lesson outline."""

from __future__ import annotations

from lessonsmith.ai.pipeline.contracts import AccessibilityProfile, PedagogyProfile

ADVANCED_KEYWORDS = frozenset({"javascript", "typescript", "react", "programming", "code", "algorithm", "advanced", "college", "university", "professional", "software engineering"})
INTERMEDIATE_KEYWORDS = frozenset({"algebra", "equation", "geometry", "chemistry", "physics", "biology", "intermediate", "high school", "middle school"})


def _mentions(outline: str, keywords: frozenset[str]) -> bool:
  lowered = outline.lower()
  words = set(lowered.split())
  return any(keyword in words if " " not in keyword else keyword in lowered for keyword in keywords)


def infer_pedagogy(outline: str) -> PedagogyProfile:
  """Map outline keywords to a grade band, reading level and cognitive load."""
  if _mentions(outline, ADVANCED_KEYWORDS):
    grade_band, reading_level, cognitive_load = "9-12", "advanced", "high"
  elif _mentions(outline, INTERMEDIATE_KEYWORDS):
    grade_band, reading_level, cognitive_load = "6-8", "intermediate", "medium"
  else:
    grade_band, reading_level, cognitive_load = "3-5", "basic", "low"
  return PedagogyProfile(
    grade_band=grade_band,
    reading_level=reading_level,
    language_tone="friendly",
    cognitive_load=cognitive_load,
    accessibility=AccessibilityProfile(min_font_size_px=16, high_contrast=True, captions_preferred=False),
  )
