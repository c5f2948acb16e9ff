from __future__ import annotations

import pytest

from lessonsmith.ai.pipeline.contracts import AccessibilityProfile, PedagogyProfile
from lessonsmith.componentkit.evaluator import average_sentence_length, evaluate_markup


@pytest.fixture
def profile() -> PedagogyProfile:
  return PedagogyProfile(grade_band="3-5", reading_level="basic", language_tone="friendly", cognitive_load="medium")


def test_empty_markup_keeps_passing_score(profile: PedagogyProfile) -> None:
  result = evaluate_markup("", profile)
  assert result.score == pytest.approx(0.6)
  assert set(result.signals) == {"tone", "text_size", "headings", "paragraphs", "contrast"}
  assert result.passes(0.5)


def test_well_formed_markup_scores_full_marks(profile: PedagogyProfile) -> None:
  markup = '<section class="p-6 text-lg text-gray-900 bg-white"><h2 class="text-2xl">Let\'s explore</h2><p>Try each step. It is easy and fun.</p></section>'
  result = evaluate_markup(markup, profile)
  assert result.score == 1.0
  assert result.signals == {}
  assert result.reasons == []


def test_long_sentences_are_penalized_for_young_readers(profile: PedagogyProfile) -> None:
  sentence = " ".join(["word"] * 20) + "."
  markup = f'<section class="text-lg text-black"><h2>Let\'s read</h2><p>{sentence}</p></section>'
  result = evaluate_markup(markup, profile)
  assert result.signals == {"readability": -0.1}
  assert result.score == pytest.approx(0.9)


def test_element_budget_depends_on_cognitive_load() -> None:
  markup = '<div class="text-lg text-black"><h1>Let\'s count</h1><p>Fun.</p>' + "<span>x</span>" * 45 + "</div>"
  low = PedagogyProfile(grade_band="K-2", reading_level="emergent", cognitive_load="low")
  high = PedagogyProfile(grade_band="9-12", reading_level="advanced", cognitive_load="high")
  assert "complexity" in evaluate_markup(markup, low).signals
  assert "complexity" not in evaluate_markup(markup, high).signals


def test_formal_tone_penalizes_slang() -> None:
  formal = PedagogyProfile(grade_band="9-12", language_tone="formal", accessibility=AccessibilityProfile(min_font_size_px=12, high_contrast=False))
  result = evaluate_markup("<h1>Overview</h1><p>This is gonna be cool.</p>", formal)
  assert result.signals == {"tone": -0.1}


def test_captions_only_checked_when_preferred() -> None:
  captions = PedagogyProfile(grade_band="6-8", accessibility=AccessibilityProfile(captions_preferred=True))
  without = evaluate_markup("<h1>Try it</h1><p>Fun.</p>", captions)
  with_caption = evaluate_markup('<h1>Try it</h1><p>Fun.</p><figure><figcaption>Pizza</figcaption></figure>', captions)
  assert "captions" in without.signals
  assert "captions" not in with_caption.signals


def test_average_sentence_length_ignores_empty_chunks() -> None:
  assert average_sentence_length("One two three. Four five!  ") == pytest.approx(2.5)
  assert average_sentence_length("") == 0.0
