"""Heuristic quality score of rendered markup against a pedagogy profile."""

from __future__ import annotations

import html as html_lib
import re

from lessonsmith.ai.pipeline.contracts import EvaluationResult, PedagogyProfile

FRIENDLY_WORDS = ("let's", "great", "awesome", "fun", "try", "easy")
FORMAL_SLANG = ("gonna", "wanna", "kinda", "awesome", "cool", "hey")

# Average words per sentence before text reads too long for the level.
SENTENCE_LENGTH_LIMITS = {"emergent": 8, "basic": 12, "intermediate": 18, "advanced": 25}
# Element budget per cognitive-load target.
ELEMENT_BUDGETS = {"low": 40, "medium": 80, "high": 160}

_LARGE_TEXT_RE = re.compile(r"text-(lg|xl|2xl|3xl)")
_HEADING_RE = re.compile(r"<h[1-3][^>]*>")
_PARAGRAPH_RE = re.compile(r"<p[\s>/]")
_CONTRAST_RE = re.compile(r"text-(black|white)\b|text-(gray|slate|zinc|neutral|stone)-(800|900|950)|bg-(white|black)\b|contrast-")
_CAPTION_RE = re.compile(r"<figcaption|<track|aria-label=")
_TAG_RE = re.compile(r"<[^>]+>")
_OPEN_TAG_RE = re.compile(r"<[a-zA-Z][^>]*>")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_WORD_RE = re.compile(r"[A-Za-z0-9']+")


def visible_text(markup: str) -> str:
  return html_lib.unescape(_TAG_RE.sub(" ", markup))


def average_sentence_length(text: str) -> float:
  sentences = [chunk for chunk in _SENTENCE_SPLIT_RE.split(text) if _WORD_RE.search(chunk)]
  if not sentences:
    return 0.0
  words = sum(len(_WORD_RE.findall(sentence)) for sentence in sentences)
  return words / len(sentences)


def evaluate_markup(markup: str, pedagogy: PedagogyProfile) -> EvaluationResult:
  """Start at 1.0 and deduct per missing signal; the result is clamped to [0, 1]."""
  signals: dict[str, float] = {}
  reasons: list[str] = []
  lowered = markup.lower()
  text = visible_text(markup).lower()

  def deduct(signal: str, amount: float, reason: str) -> None:
    signals[signal] = round(signals.get(signal, 0.0) - amount, 4)
    reasons.append(reason)

  if pedagogy.language_tone == "friendly" and not any(word in text for word in FRIENDLY_WORDS):
    deduct("tone", 0.1, "friendly tone words not detected")
  elif pedagogy.language_tone == "formal" and any(re.search(rf"\b{re.escape(word)}\b", text) for word in FORMAL_SLANG):
    deduct("tone", 0.1, "informal wording in a formal-tone component")

  if pedagogy.accessibility.min_font_size_px >= 16 and not _LARGE_TEXT_RE.search(markup):
    deduct("text_size", 0.1, "no large text classes found")

  if not _HEADING_RE.search(lowered):
    deduct("headings", 0.1, "missing headings (h1-h3)")
  if not _PARAGRAPH_RE.search(lowered):
    deduct("paragraphs", 0.05, "missing paragraph text")

  if pedagogy.accessibility.high_contrast and not _CONTRAST_RE.search(markup):
    deduct("contrast", 0.05, "no high-contrast color classes found")
  if pedagogy.accessibility.captions_preferred and not _CAPTION_RE.search(lowered):
    deduct("captions", 0.05, "captions preferred but no figcaption, track or aria-label found")

  limit = SENTENCE_LENGTH_LIMITS[pedagogy.reading_level]
  average = average_sentence_length(visible_text(markup))
  if average > limit:
    deduct("readability", 0.1, f"average sentence length {average:.1f} words exceeds {limit} for {pedagogy.reading_level} readers")

  budget = ELEMENT_BUDGETS[pedagogy.cognitive_load]
  elements = len(_OPEN_TAG_RE.findall(markup))
  if elements > budget:
    deduct("complexity", 0.1, f"{elements} elements exceed the {pedagogy.cognitive_load} cognitive-load budget of {budget}")

  score = 1.0 + sum(signals.values())
  score = min(1.0, max(0.0, round(score, 4)))
  return EvaluationResult(score=score, signals=signals, reasons=reasons)
