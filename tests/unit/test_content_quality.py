from __future__ import annotations

import pytest

from lessonsmith.content.quality import alignment_score, extract_lesson_data, format_feedback, outline_keywords, validate_lesson_content, validate_style_heuristics, validate_svg_alignment


def _quiz(questions: list[dict]) -> dict:
  return {"title": "Solar System Quiz", "description": "Check what you know about planets.", "type": "quiz", "content": {"questions": questions}}


def _question(text: str, answer: int = 0) -> dict:
  return {"q": text, "options": ["Mercury", "Venus", "Earth", "Mars"], "answerIndex": answer}


GOOD_QUESTIONS = [
  _question("Which planet is closest to the sun?"),
  _question("Which planet do we live on today?", 2),
  _question("Which planet is known as the red one?", 3),
]


def test_complete_quiz_is_valid() -> None:
  result = validate_lesson_content(_quiz(GOOD_QUESTIONS))
  assert result.valid
  assert result.issues == []
  assert result.metrics["questionCount"] == 3


def test_unrelated_outline_fails_on_alignment() -> None:
  result = validate_lesson_content(_quiz(GOOD_QUESTIONS), "Photosynthesis converts sunlight into chemical energy inside chloroplasts")
  assert not result.valid
  assert result.metrics["alignmentScore"] == 0.0
  assert any("alignment" in issue.lower() for issue in result.issues)
  assert any("outline-specific" in suggestion for suggestion in result.suggestions)


def test_partial_alignment_only_suggests() -> None:
  outline = "Planets closest sun, Earth, Mars and gravity orbits"
  keywords = outline_keywords(outline)
  assert keywords == ["planets", "closest", "earth", "gravity", "orbits"]
  result = validate_lesson_content(_quiz(GOOD_QUESTIONS), outline)
  assert result.metrics["alignmentScore"] == 0.6
  assert not any("alignment" in issue.lower() for issue in result.issues)
  assert any(suggestion.startswith("Increase outline-specific") for suggestion in result.suggestions)


def test_quiz_structure_problems_are_reported() -> None:
  bad = [{"q": "Short?", "options": ["a", "b"], "answerIndex": 7}]
  result = validate_lesson_content(_quiz(bad))
  assert not result.valid
  assert result.issues == [
    "Question 1: Question text is too short or missing",
    "Question 1: Must have exactly 4 options",
    "Question 1: Invalid answerIndex (must be 0-3)",
  ]


def test_placeholder_text_is_an_issue() -> None:
  data = _quiz(GOOD_QUESTIONS)
  data["description"] = "Lorem ipsum dolor sit amet"
  result = validate_lesson_content(data)
  assert "Content contains placeholder text" in result.issues


def test_ordinary_words_are_not_placeholders() -> None:
  data = _quiz(GOOD_QUESTIONS)
  data["description"] = "Your example of sample answers and a test of knowledge."
  assert "Content contains placeholder text" not in validate_lesson_content(data).issues


def test_sections_need_text_and_headings() -> None:
  data = {"title": "Fractions", "description": "Learn how fractions work.", "type": "explanation", "content": {"sections": [{"heading": "Hi", "text": "Too short."}]}}
  result = validate_lesson_content(data)
  assert "Section 1: Heading is too short or missing" in result.issues
  assert "Section 1: Text content is too short (minimum 50 characters)" in result.issues
  assert result.metrics["sectionCount"] == 1


def test_missing_content_scores_zero() -> None:
  result = validate_lesson_content({"title": "Fractions", "type": "quiz"})
  assert result.score == 0.0
  assert not result.valid


def test_non_object_is_rejected() -> None:
  assert not validate_lesson_content(["not", "an", "object"]).valid


def test_alignment_without_keywords_is_perfect() -> None:
  assert alignment_score("a b c", "anything") == 1.0


def test_extract_lesson_data_reads_const_literal() -> None:
  source = """import React from 'react';

const lesson = {
  title: 'Solar System Quiz',
  "type": "quiz",
  content: { questions: [{ q: `Which planet is closest?`, options: ['a', 'b', 'c', 'd'], answerIndex: 0, weight: -1.5 }] },
  draft: false,
  extra: null,
} as const;

export default function Lesson() { return <div>{lesson.title}</div>; }
"""
  data = extract_lesson_data(source)
  assert data == {
    "title": "Solar System Quiz",
    "type": "quiz",
    "content": {"questions": [{"q": "Which planet is closest?", "options": ["a", "b", "c", "d"], "answerIndex": 0, "weight": -1.5}]},
    "draft": False,
    "extra": None,
  }


@pytest.mark.parametrize(
  "source",
  [
    "export default function C() { return null; }",
    "let lesson = { title: 'x' };",
    "const lesson = { title: buildTitle() };",
    "const lesson = { ...base };",
  ],
)
def test_extract_lesson_data_returns_none_for_non_literals(source: str) -> None:
  assert extract_lesson_data(source) is None


def test_feedback_lists_issues_and_suggestions() -> None:
  result = validate_lesson_content(_quiz(GOOD_QUESTIONS), "Photosynthesis converts sunlight into chemical energy")
  feedback = format_feedback(result)
  assert feedback.startswith("The previous lesson content scored")
  assert "Outline alignment: 0.00" in feedback
  assert "- Low outline alignment" in feedback


ORBIT_SVG = """
// entity: "Sun" -> circle, entity: "Earth" -> circle
<svg viewBox="0 0 400 200" preserveAspectRatio="xMidYMid meet" aria-labelledby="orbit-title orbit-desc">
  <title id="orbit-title">Earth orbit</title>
  <desc id="orbit-desc">Earth travels around the Sun.</desc>
  <g data-entity="sun"><circle cx="100" cy="100" r="30" /><text x="100" y="150">Sun</text></g>
  <g data-entity="earth"><circle cx="300" cy="100" r="10" /><text x="300" y="150">Earth</text></g>
  <path d="M 130 100 L 290 100" markerEnd="url(#arrow)" />
</svg>
"""


def test_module_without_svg_is_not_aligned() -> None:
  result = validate_svg_alignment("export default function Lesson() { return <div />; }")
  assert not result.valid
  assert result.score == 0.0
  assert result.issues == ["No inline <svg> found"]
  assert result.signals["hasSvg"] is False


def test_grounded_diagram_is_aligned() -> None:
  result = validate_svg_alignment(ORBIT_SVG, "Earth orbit around the Sun")
  assert result.valid
  assert result.score == 1.0
  assert result.issues == []
  assert result.signals["labelCount"] == 2
  assert result.signals["hasEntityGroups"] is True


def test_missing_accessibility_lowers_the_score() -> None:
  source = ORBIT_SVG.replace(' viewBox="0 0 400 200"', "").replace(' aria-labelledby="orbit-title orbit-desc"', "")
  result = validate_svg_alignment(source)
  assert result.issues == ["SVG missing viewBox", "SVG missing aria-labelledby"]
  assert result.score == pytest.approx(0.75)
  # Small deductions keep the diagram above the acceptance threshold.
  assert result.valid


def test_bare_svg_is_rejected() -> None:
  result = validate_svg_alignment("<svg><circle r=\"4\" /></svg>")
  assert not result.valid
  assert result.score == pytest.approx(0.1)
  assert "Insufficient labeled marks (<text>)" in result.issues
  assert "No relationship arrow/flow indicated" in result.issues


def test_labels_outside_the_viewbox_are_reported() -> None:
  result = validate_svg_alignment(ORBIT_SVG.replace('<text x="300" y="150">', '<text x="395" y="150">'))
  assert result.issues == ["Labels outside viewBox bounds (with margin): Earth@(395,150)"]


def test_labels_unrelated_to_the_outline_are_reported() -> None:
  result = validate_svg_alignment(ORBIT_SVG, "Photosynthesis converts sunlight into chemical energy")
  assert result.issues == ["SVG labels appear weakly aligned to outline keywords"]
  assert result.score == pytest.approx(0.9)


def test_style_heuristics_accept_tokenized_layout() -> None:
  source = '<main className="max-w-2xl mx-auto p-6 gap-4"><section className="rounded-2xl shadow-md px-4 text-slate-700" /></main>'
  report = validate_style_heuristics(source)
  assert report.issues == []
  assert report.signals["spacing_rhythm"] == 3
  assert report.signals["distinct_hues"] == 0


def test_style_heuristics_flag_busy_palettes() -> None:
  source = '<div className="text-red-500 bg-blue-100 border-green-200 ring-purple-300 w-[13px] h-[7px] m-[3px]" />'
  report = validate_style_heuristics(source)
  assert report.signals["distinct_hues"] == 4
  assert report.signals["arbitrary_class_count"] == 3
  assert "Too many distinct color hues; limit to primary + accent + neutrals" in report.issues
  assert "Excessive arbitrary utility values; prefer tokens" in report.issues
  assert "No responsive container (max-w-*/mx-auto)" in report.issues
