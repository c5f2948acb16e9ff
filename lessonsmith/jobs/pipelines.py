"""Per-try generation strategies run by the top-level loop."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Protocol

from lessonsmith.ai.agents.author import extract_code
from lessonsmith.ai.agents.prompts import SVG_GUIDANCE, render_legacy_fix_prompt, render_legacy_prompt
from lessonsmith.ai.errors import AuthorExtractionError, CompilationError, GenerationError, PipelineFailure, SafetyViolation, SvgAlignmentFailure
from lessonsmith.ai.orchestrator import ComponentOrchestrator
from lessonsmith.ai.pipeline.audit import AttemptCounter, TraceRecorder
from lessonsmith.ai.pipeline.contracts import CompilationResult, SafetyIssue
from lessonsmith.ai.providers.base import AIModel, prompt_text
from lessonsmith.componentkit.compiler import CheckingCompiler
from lessonsmith.componentkit.constraints import check_author_constraints, check_source_size, sanitize_component, scan_forbidden_tokens
from lessonsmith.componentkit.safety import check_safety
from lessonsmith.config import PipelineMode, Settings
from lessonsmith.content.quality import validate_style_heuristics, validate_svg_alignment
from lessonsmith.jobs.models import LessonRecord
from lessonsmith.jobs.pedagogy import infer_pedagogy
from lessonsmith.storage.lessons_repo import ComponentsRepository
from lessonsmith.storage.traces_repo import TracesRepository
from lessonsmith.telemetry.context import GenerationContext


@dataclass
class AttemptState:
  """What one try leaves behind for the next try of the same lesson."""

  last_source: str | None = None
  last_errors: list[str] = field(default_factory=list)
  feedback: str | None = None


@dataclass(frozen=True)
class PipelineOutcome:
  """Compiled source produced by one successful try."""

  source_text: str
  compiled_js: str | None
  details: dict[str, Any] = field(default_factory=dict)


class GenerationPipeline(Protocol):
  mode: PipelineMode

  async def attempt(self, lesson: LessonRecord, ctx: GenerationContext, counter: AttemptCounter, state: AttemptState) -> PipelineOutcome:
    """Run one try; any failure raises a GenerationError (or the collaborator's error)."""


class OrchestratorPipeline:
  """Components pipeline: plan, author and verify components for the outline."""

  mode: PipelineMode = "orchestrator"

  def __init__(self, orchestrator: ComponentOrchestrator) -> None:
    self._orchestrator = orchestrator

  async def attempt(self, lesson: LessonRecord, ctx: GenerationContext, counter: AttemptCounter, state: AttemptState) -> PipelineOutcome:
    pedagogy = infer_pedagogy(lesson.outline)
    result = await self._orchestrator.run(lesson.outline, pedagogy, ctx, counter, feedback=state.feedback)
    if not result.success or result.source_text is None:
      failed = {bucket: messages for bucket, messages in result.diagnostics.items() if messages}
      state.last_errors = [f"{bucket}: {message}" for bucket, messages in failed.items() for message in messages]
      raise PipelineFailure(f"Component generation failed: {sorted(failed) or 'no items'}", diagnostics=result.diagnostics)
    state.last_source = result.source_text
    return PipelineOutcome(source_text=result.source_text, compiled_js=result.compiled_js, details={"component_id": result.component_id, "item": result.item_name, "score": result.score})


class LegacyPipeline:
  """Direct-author pipeline: write the whole module, then fix it with compiler feedback."""

  mode: PipelineMode = "legacy"

  def __init__(self, *, model: AIModel, settings: Settings, traces: TracesRepository, compiler: CheckingCompiler | None = None) -> None:
    self._model = model
    self._settings = settings
    self._traces = traces
    self._compiler = compiler or CheckingCompiler.from_settings(settings)

  async def attempt(self, lesson: LessonRecord, ctx: GenerationContext, counter: AttemptCounter, state: AttemptState) -> PipelineOutcome:
    ctx = ctx.with_stage("legacy")
    logger = ctx.logger(__name__)
    recorder = TraceRecorder(self._traces, counter, model_name=self._settings.model_name)
    if state.last_source:
      prompt = render_legacy_fix_prompt(lesson.title, lesson.outline, state.last_source, state.last_errors, feedback=state.feedback, require_svg=self._settings.enforce_svg_alignment)
    else:
      prompt = render_legacy_prompt(lesson.title, lesson.outline, feedback=state.feedback, require_svg=self._settings.enforce_svg_alignment)
    text = prompt_text(prompt)

    response = await self._model.complete(prompt, self._settings.model_name)
    raw = response.content

    async def trace(validation: dict[str, Any], compilation: CompilationResult | None = None, error: str | None = None) -> None:
      summary = {"success": compilation.success, "errors": compilation.errors, "warnings": compilation.warnings, "mode": compilation.mode} if compilation else {"success": False}
      await recorder.record(ctx, prompt=text, response=raw, tokens=response.usage, validation=validation, compilation=summary, error=error)

    forbidden = scan_forbidden_tokens(raw)
    if forbidden:
      message = f"Security check failed: forbidden tokens found: {', '.join(forbidden)}"
      await trace({"passed": False, "forbidden_tokens": forbidden}, error=message)
      state.last_errors = [message]
      raise SafetyViolation([SafetyIssue(rule="forbidden-token", message=message)])

    source = extract_code(raw, last=True)
    if source is None:
      await trace({"passed": False, "errors": ["no module source in response"]}, error="no module source in response")
      state.last_errors = ["The response did not contain a ```tsx module."]
      raise AuthorExtractionError("No module source found in response", raw_response=raw)

    issues = check_author_constraints(source)
    if issues:
      await trace({"passed": False, "errors": [issue.message for issue in issues]}, error="constraint violation")
      state.last_source = source
      state.last_errors = [f"Component uses disallowed imports or libraries: {issue.message}" for issue in issues]
      raise SafetyViolation(issues)

    sanitized = sanitize_component(source)
    size_issue = check_source_size(sanitized, self._settings.generated_code_max_bytes)
    if size_issue is not None:
      await trace({"passed": False, "errors": [size_issue.message]}, error=size_issue.message)
      state.last_errors = [size_issue.message]
      raise GenerationError(size_issue.message)
    state.last_source = sanitized

    unsafe = check_safety(sanitized)
    if unsafe:
      await trace({"passed": False, "errors": [f"{issue.rule}: {issue.line_hint}" for issue in unsafe]}, error="safety scan failed")
      state.last_errors = [f"{issue.message} ({issue.line_hint})" for issue in unsafe]
      raise SafetyViolation(unsafe)

    compilation = await asyncio.to_thread(self._compiler.compile, sanitized)
    if not compilation.success:
      await trace({"passed": True, "errors": []}, compilation, error="compilation failed")
      state.last_errors = list(compilation.errors)
      raise CompilationError(compilation.errors)

    svg = validate_svg_alignment(sanitized, lesson.outline)
    style = validate_style_heuristics(sanitized)
    logger.info("Style signals %s (%d issue(s))", style.signals, len(style.issues))
    svg_rejected = self._settings.enforce_svg_alignment and not svg.valid
    await trace({"passed": True, "errors": [], "svg": svg.model_dump(), "style": style.model_dump()}, compilation, error="svg alignment failed" if svg_rejected else None)
    if svg_rejected:
      logger.warning("SVG alignment failed (score %.2f): %s", svg.score, svg.issues)
      state.last_errors = ["SVG alignment validation failed:", *svg.issues, SVG_GUIDANCE]
      raise SvgAlignmentFailure(svg)
    logger.info("Legacy module compiled (%s mode, %d warning(s))", compilation.mode, len(compilation.warnings))
    return PipelineOutcome(source_text=sanitized, compiled_js=compilation.compiled_js, details={"mode": compilation.mode})


def build_pipeline(settings: Settings, *, model: AIModel, traces: TracesRepository, components: ComponentsRepository, compiler: CheckingCompiler | None = None) -> GenerationPipeline:
  """Select the pipeline variant configured by LESSONSMITH_PIPELINE_MODE."""
  compiler = compiler or CheckingCompiler.from_settings(settings)
  if settings.pipeline_mode == "legacy":
    return LegacyPipeline(model=model, settings=settings, traces=traces, compiler=compiler)
  orchestrator = ComponentOrchestrator(model=model, settings=settings, traces=traces, components=components, compiler=compiler)
  return OrchestratorPipeline(orchestrator)
