"""Direct-author pipeline driven through the generation loop with a scripted model."""

from __future__ import annotations

from dataclasses import replace

import pytest

from lessonsmith.ai.errors import SafetyViolation
from lessonsmith.ai.providers.dummy import DummyModel
from lessonsmith.jobs.pipelines import LegacyPipeline, build_pipeline
from lessonsmith.jobs.worker import GenerationLoop

FORBIDDEN = "```tsx\nexport default function Lesson() {\n  fetch('/api/lesson');\n  return null;\n}\n```"
BROKEN = "```tsx\nexport default function Lesson() {\n  return <div className=\"p-4\">{missing}</div>;\n}\n```"
FIXED = "Here is the fix.\n```tsx\nexport default function Lesson() {\n  return <div className=\"p-4\">Halves</div>;\n}\n```"


async def _no_sleep(seconds: float) -> None:
  return None


@pytest.mark.anyio
async def test_legacy_pipeline_recovers_with_fix_prompt(lessons_repo, traces_repo, components_repo, compiler, settings) -> None:
  legacy = replace(settings, pipeline_mode="legacy")
  model = DummyModel([FORBIDDEN, BROKEN, FIXED])
  pipeline = build_pipeline(legacy, model=model, traces=traces_repo, components=components_repo, compiler=compiler)
  assert isinstance(pipeline, LegacyPipeline)
  lessons_repo.add("lesson-1", title="Fractions", outline="Halves and quarters with pizza")
  loop = GenerationLoop(lessons=lessons_repo, traces=traces_repo, pipeline=pipeline, settings=legacy, sleep=_no_sleep)

  result = await loop.process_next()

  assert result is not None and result.status == "generated"
  assert "Halves" in lessons_repo.contents["lesson-1"].typescript_source
  assert [attempt.status for attempt in traces_repo.attempts] == ["failed", "failed", "success"]

  traces = traces_repo.traces
  assert [trace.attempt_number for trace in traces] == [1, 2, 3]
  assert traces[0].error.startswith("Security check failed: forbidden tokens found: fetch(")
  assert traces[0].compilation == {"success": False}
  assert traces[1].error == "compilation failed"
  assert traces[2].error is None
  assert traces[2].compilation["success"] is True

  # Only a try that left source behind gets the fix prompt.
  assert "CODE:" not in model.prompts[1]
  assert "CODE:" in model.prompts[2]
  assert "Cannot find name 'missing'" in model.prompts[2]
  assert len(compiler.calls) == 2


@pytest.mark.anyio
async def test_legacy_pipeline_rejects_disallowed_library(lessons_repo, traces_repo, components_repo, compiler, settings) -> None:
  legacy = replace(settings, pipeline_mode="legacy", max_generation_attempts=1)
  response = "```tsx\nimport { motion } from 'framer-motion';\nexport default function Lesson() { return <motion.div />; }\n```"
  pipeline = build_pipeline(legacy, model=DummyModel([response]), traces=traces_repo, components=components_repo, compiler=compiler)
  lessons_repo.add("lesson-1")
  loop = GenerationLoop(lessons=lessons_repo, traces=traces_repo, pipeline=pipeline, settings=legacy, sleep=_no_sleep)

  with pytest.raises(SafetyViolation, match="Safety scan failed: disallowed-library"):
    await loop.process_next()

  assert lessons_repo.lessons["lesson-1"].status == "failed"
  assert traces_repo.traces[0].error == "constraint violation"
  assert compiler.calls == []


UNILLUSTRATED = "```tsx\nexport default function Lesson() {\n  return <div className=\"p-4\">Halves</div>;\n}\n```"
ILLUSTRATED = """```tsx
export default function Lesson() {
  // entity: "Pizza" -> circle, entity: "Halves" -> path
  return (
    <div className="p-4">
      <svg viewBox="0 0 400 200" preserveAspectRatio="xMidYMid meet" aria-labelledby="pizza-title pizza-desc">
        <title id="pizza-title">Pizza halves</title>
        <desc id="pizza-desc">One pizza cut into two halves.</desc>
        <g data-entity="pizza"><circle cx="100" cy="100" r="60" /><text x="100" y="180">Pizza</text></g>
        <g data-entity="halves"><path d="M 100 40 L 100 160" markerEnd="url(#arrow)" /><text x="300" y="100">Halves</text></g>
      </svg>
    </div>
  );
}
```"""


@pytest.mark.anyio
async def test_legacy_pipeline_retries_module_without_diagram(lessons_repo, traces_repo, components_repo, compiler, settings) -> None:
  legacy = replace(settings, pipeline_mode="legacy", enforce_svg_alignment=True)
  model = DummyModel([UNILLUSTRATED, ILLUSTRATED])
  pipeline = build_pipeline(legacy, model=model, traces=traces_repo, components=components_repo, compiler=compiler)
  lessons_repo.add("lesson-1", title="Fractions", outline="Halves of a pizza")
  loop = GenerationLoop(lessons=lessons_repo, traces=traces_repo, pipeline=pipeline, settings=legacy, sleep=_no_sleep)

  result = await loop.process_next()

  assert result is not None and result.status == "generated"
  assert "<svg" in lessons_repo.contents["lesson-1"].typescript_source
  assert [attempt.status for attempt in traces_repo.attempts] == ["failed", "success"]

  first, second = traces_repo.traces
  assert first.error == "svg alignment failed"
  assert first.compilation["success"] is True
  assert first.validation["svg"]["issues"] == ["No inline <svg> found"]
  assert second.error is None
  assert second.validation["svg"]["valid"] is True

  assert "preserveAspectRatio" in model.prompts[0]
  assert "CODE:" in model.prompts[1]
  assert "SVG alignment validation failed:" in model.prompts[1]
  assert "No inline <svg> found" in model.prompts[1]


@pytest.mark.anyio
async def test_legacy_pipeline_skips_diagram_check_when_disabled(lessons_repo, traces_repo, components_repo, compiler, settings) -> None:
  legacy = replace(settings, pipeline_mode="legacy", enforce_svg_alignment=False)
  model = DummyModel([UNILLUSTRATED])
  pipeline = build_pipeline(legacy, model=model, traces=traces_repo, components=components_repo, compiler=compiler)
  lessons_repo.add("lesson-1")
  loop = GenerationLoop(lessons=lessons_repo, traces=traces_repo, pipeline=pipeline, settings=legacy, sleep=_no_sleep)

  result = await loop.process_next()

  assert result is not None and result.status == "generated"
  assert "preserveAspectRatio" not in model.prompts[0]
  assert traces_repo.traces[0].validation["svg"]["valid"] is False
