from __future__ import annotations

import json

import pytest

from lessonsmith.ai.errors import AuthorExtractionError, CompilationError, ContentQualityFailure
from lessonsmith.ai.providers.dummy import DummyModel
from lessonsmith.jobs.models import GenerationAttemptRecord
from lessonsmith.jobs.pipelines import AttemptState, PipelineOutcome, build_pipeline
from lessonsmith.jobs.worker import GenerationLoop, backoff_ms

QUIZ_SOURCE = """const lesson = {
  title: 'Solar System Quiz',
  description: 'Check what you know about planets.',
  type: 'quiz',
  content: { questions: [
    { q: 'Which planet is closest to the sun?', options: ['Mercury', 'Venus', 'Earth', 'Mars'], answerIndex: 0 },
    { q: 'Which planet do we live on today?', options: ['Mercury', 'Venus', 'Earth', 'Mars'], answerIndex: 2 },
    { q: 'Which planet is known as the red one?', options: ['Mercury', 'Venus', 'Earth', 'Mars'], answerIndex: 3 },
  ] },
};

export default function Lesson() { return <h1>{lesson.title}</h1>; }
"""


class ScriptedPipeline:
  """Raises or returns per try, recording the feedback each try received."""

  mode = "orchestrator"

  def __init__(self, steps: list[Exception | PipelineOutcome]) -> None:
    self._steps = list(steps)
    self.feedback: list[str | None] = []

  async def attempt(self, lesson, ctx, counter, state: AttemptState) -> PipelineOutcome:
    self.feedback.append(state.feedback)
    step = self._steps.pop(0) if len(self._steps) > 1 else self._steps[0]
    if isinstance(step, Exception):
      raise step
    return step


class SleepRecorder:
  def __init__(self) -> None:
    self.delays: list[float] = []

  async def __call__(self, seconds: float) -> None:
    self.delays.append(seconds)


OK = PipelineOutcome(source_text="export default function C() { return null; }", compiled_js="export default function C() { return null; }\n")


def _loop(lessons_repo, traces_repo, settings, pipeline, sleep: SleepRecorder) -> GenerationLoop:
  return GenerationLoop(lessons=lessons_repo, traces=traces_repo, pipeline=pipeline, settings=settings, sleep=sleep)


@pytest.mark.parametrize(("attempt", "expected"), [(1, 2000), (2, 4000), (3, 8000), (4, 10000), (9, 10000)])
def test_backoff_is_capped(attempt: int, expected: int) -> None:
  assert backoff_ms(attempt, base_ms=2000, max_ms=10000) == expected


@pytest.mark.anyio
async def test_empty_queue_returns_none(lessons_repo, traces_repo, settings) -> None:
  loop = _loop(lessons_repo, traces_repo, settings, ScriptedPipeline([OK]), SleepRecorder())
  assert await loop.process_next() is None


@pytest.mark.anyio
async def test_first_success_generates_lesson(lessons_repo, traces_repo, settings) -> None:
  lessons_repo.add("lesson-1")
  sleep = SleepRecorder()
  loop = _loop(lessons_repo, traces_repo, settings, ScriptedPipeline([OK]), sleep)
  result = await loop.process_next()
  assert result is not None
  assert result.status == "generated"
  assert lessons_repo.contents["lesson-1"].typescript_source == OK.source_text
  assert [(attempt.attempt_number, attempt.status) for attempt in traces_repo.attempts] == [(1, "success")]
  assert sleep.delays == []


@pytest.mark.anyio
async def test_oldest_queued_lesson_is_claimed_first(lessons_repo, traces_repo, settings) -> None:
  lessons_repo.add("newer", created_at="2024-01-02T00:00:00Z")
  lessons_repo.add("older", created_at="2024-01-01T00:00:00Z")
  loop = _loop(lessons_repo, traces_repo, settings, ScriptedPipeline([OK]), SleepRecorder())
  result = await loop.process_next()
  assert result is not None and result.id == "older"
  assert lessons_repo.lessons["newer"].status == "queued"


@pytest.mark.anyio
async def test_exhausted_tries_fail_the_lesson(lessons_repo, traces_repo, settings) -> None:
  lesson = lessons_repo.add("lesson-1")
  await lessons_repo.claim_lesson(lesson.id)
  sleep = SleepRecorder()
  pipeline = ScriptedPipeline([CompilationError(["Component.tsx(1,1): error TS1005: ';' expected."])])
  loop = _loop(lessons_repo, traces_repo, settings, pipeline, sleep)
  with pytest.raises(CompilationError):
    await loop.run_claimed(lesson)
  assert lessons_repo.lessons["lesson-1"].status == "failed"
  assert [attempt.attempt_number for attempt in traces_repo.attempts] == [1, 2, 3, 4, 5]
  assert {attempt.status for attempt in traces_repo.attempts} == {"failed"}
  assert sleep.delays == [2.0, 4.0, 8.0, 10.0]
  assert "lesson-1" not in lessons_repo.contents


@pytest.mark.anyio
async def test_success_after_failures_stops_retrying(lessons_repo, traces_repo, settings) -> None:
  lesson = lessons_repo.add("lesson-1")
  await lessons_repo.claim_lesson(lesson.id)
  sleep = SleepRecorder()
  pipeline = ScriptedPipeline([RuntimeError("provider down"), OK])
  await _loop(lessons_repo, traces_repo, settings, pipeline, sleep).run_claimed(lesson)
  assert [(attempt.attempt_number, attempt.status) for attempt in traces_repo.attempts] == [(1, "failed"), (2, "success")]
  assert traces_repo.attempts[0].error == "provider down"
  assert sleep.delays == [2.0]
  assert lessons_repo.lessons["lesson-1"].status == "generated"


@pytest.mark.anyio
async def test_attempt_numbers_continue_after_earlier_runs(lessons_repo, traces_repo, settings) -> None:
  lesson = lessons_repo.add("lesson-1")
  await lessons_repo.claim_lesson(lesson.id)
  for number in (1, 2):
    await traces_repo.start_attempt(GenerationAttemptRecord(lesson_id="lesson-1", attempt_number=number, started_at="2024-01-01T00:00:00Z", status="failed"))
  await _loop(lessons_repo, traces_repo, settings, ScriptedPipeline([OK]), SleepRecorder()).run_claimed(lesson)
  assert [attempt.attempt_number for attempt in traces_repo.attempts] == [1, 2, 3]


@pytest.mark.anyio
async def test_unusable_output_asks_for_the_requested_format(lessons_repo, traces_repo, settings) -> None:
  lesson = lessons_repo.add("lesson-1")
  await lessons_repo.claim_lesson(lesson.id)
  pipeline = ScriptedPipeline([AuthorExtractionError("No module source found in response", raw_response="Sure!"), CompilationError(["Component.tsx(1,1): error TS1005: ';' expected."]), OK])
  await _loop(lessons_repo, traces_repo, settings, pipeline, SleepRecorder()).run_claimed(lesson)
  assert pipeline.feedback == [None, "The previous response could not be used: No module source found in response. Reply in exactly the requested format.", None]
  assert lessons_repo.lessons["lesson-1"].status == "generated"


@pytest.mark.anyio
async def test_off_topic_quiz_is_retried_with_feedback(lessons_repo, traces_repo, settings) -> None:
  lesson = lessons_repo.add("lesson-1", title="Photosynthesis", outline="Photosynthesis converts sunlight into chemical energy inside chloroplasts")
  await lessons_repo.claim_lesson(lesson.id)
  pipeline = ScriptedPipeline([PipelineOutcome(source_text=QUIZ_SOURCE, compiled_js="compiled")])
  with pytest.raises(ContentQualityFailure) as excinfo:
    await _loop(lessons_repo, traces_repo, settings, pipeline, SleepRecorder()).run_claimed(lesson)
  assert not excinfo.value.result.valid
  assert any("alignment" in issue.lower() for issue in excinfo.value.result.issues)
  assert pipeline.feedback[0] is None
  assert "Outline alignment: 0.00" in (pipeline.feedback[1] or "")
  assert lessons_repo.lessons["lesson-1"].status == "failed"


@pytest.mark.anyio
async def test_on_topic_quiz_is_stored(lessons_repo, traces_repo, settings) -> None:
  lesson = lessons_repo.add("lesson-1", title="Planets", outline="Planets closest to the sun, Mercury and Venus")
  await lessons_repo.claim_lesson(lesson.id)
  pipeline = ScriptedPipeline([PipelineOutcome(source_text=QUIZ_SOURCE, compiled_js="compiled")])
  content = await _loop(lessons_repo, traces_repo, settings, pipeline, SleepRecorder()).run_claimed(lesson)
  assert content.compiled_js == "compiled"
  assert lessons_repo.lessons["lesson-1"].status == "generated"


@pytest.mark.anyio
async def test_orchestrator_pipeline_end_to_end(lessons_repo, traces_repo, components_repo, compiler, settings) -> None:
  lessons_repo.add("lesson-1")
  plan = json.dumps({"items": [{"name": "Pizza Card", "learningObjective": "Show halves"}]})
  component = "```tsx\nexport default function C() {\n  return <div>{missing}</div>;\n}\n```"
  pipeline = build_pipeline(settings, model=DummyModel([plan, component]), traces=traces_repo, components=components_repo, compiler=compiler)
  loop = GenerationLoop(lessons=lessons_repo, traces=traces_repo, pipeline=pipeline, settings=settings, sleep=SleepRecorder())
  result = await loop.process_next()
  assert result is not None and result.status == "generated"
  assert '{""}' in lessons_repo.contents["lesson-1"].typescript_source
  numbers = [trace.attempt_number for trace in traces_repo.traces]
  assert numbers == sorted(set(numbers)) == [1, 2, 3]
  assert len(components_repo.components) == 1


@pytest.mark.anyio
async def test_trace_numbers_never_repeat_across_tries(lessons_repo, traces_repo, components_repo, compiler, settings) -> None:
  lessons_repo.add("lesson-1")
  plan = json.dumps({"items": [{"name": "Pizza Card", "learningObjective": "Show halves"}]})
  unsafe = "```tsx\nexport default function C() { fetch('/x'); return null; }\n```"
  safe = "```tsx\nexport default function C() { return null; }\n```"
  pipeline = build_pipeline(settings, model=DummyModel([plan, unsafe, plan, safe]), traces=traces_repo, components=components_repo, compiler=compiler)
  sleep = SleepRecorder()
  loop = GenerationLoop(lessons=lessons_repo, traces=traces_repo, pipeline=pipeline, settings=settings, sleep=sleep)
  result = await loop.process_next()
  assert result is not None and result.status == "generated"
  assert [trace.attempt_number for trace in traces_repo.traces] == [1, 2, 3, 4]
  assert sleep.delays == [2.0]
