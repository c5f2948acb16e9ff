"""Orchestration of the plan → author → verify → persist component pipeline."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from lessonsmith.ai.agents.author import AuthorAgent, AuthoredComponent
from lessonsmith.ai.agents.planner import PlannerAgent
from lessonsmith.ai.errors import CompilationError, EvaluationBelowThreshold, PersistenceError, SafetyViolation
from lessonsmith.ai.pipeline.audit import AttemptCounter, TraceRecorder
from lessonsmith.ai.pipeline.contracts import ComponentArtifact, CompilationResult, PedagogyProfile, PlannedItem
from lessonsmith.ai.pipeline.results import Err, ErrorKind, Ok, StageResult
from lessonsmith.ai.providers.base import AIModel
from lessonsmith.componentkit.compiler import CheckingCompiler
from lessonsmith.componentkit.evaluator import evaluate_markup
from lessonsmith.componentkit.preview import render_preview
from lessonsmith.componentkit.repair import repair_source
from lessonsmith.componentkit.safety import check_safety
from lessonsmith.config import Settings
from lessonsmith.jobs.models import ComponentRecord
from lessonsmith.storage.lessons_repo import ComponentsRepository
from lessonsmith.storage.traces_repo import TracesRepository
from lessonsmith.telemetry.context import GenerationContext


def _empty_diagnostics() -> dict[str, list[str]]:
  return {kind.value: [] for kind in ErrorKind}


@dataclass(frozen=True)
class OrchestrationResult:
  """Outcome of one orchestrated run over a plan."""

  success: bool
  component_id: str | None = None
  source_text: str | None = None
  compiled_js: str | None = None
  score: float | None = None
  item_name: str | None = None
  diagnostics: dict[str, list[str]] = field(default_factory=_empty_diagnostics)
  usage: list[dict[str, Any]] = field(default_factory=list)


def _compilation_summary(result: CompilationResult) -> dict[str, Any]:
  return {"success": result.success, "mode": result.mode, "errors": result.errors, "warnings": result.warnings, "emitted_files": result.emitted_files}


class ComponentOrchestrator:
  """Run planned items one at a time and return the first that passes every stage."""

  def __init__(self, *, model: AIModel, settings: Settings, traces: TracesRepository, components: ComponentsRepository, compiler: CheckingCompiler | None = None) -> None:
    self._model = model
    self._settings = settings
    self._traces = traces
    self._components = components
    self._compiler = compiler or CheckingCompiler.from_settings(settings)

  async def run(self, topic: str, pedagogy: PedagogyProfile, ctx: GenerationContext, counter: AttemptCounter, *, feedback: str | None = None) -> OrchestrationResult:
    """Plan once, then try items in order.

    A planner failure propagates; any single item failure is recorded in its
    diagnostics bucket and the next item runs.
    """
    logger = ctx.logger(__name__)
    usage: list[dict[str, Any]] = []
    recorder = TraceRecorder(self._traces, counter, model_name=self._settings.model_name)
    planner = PlannerAgent(model=self._model, settings=self._settings, recorder=recorder, use=usage.append)
    author = AuthorAgent(model=self._model, settings=self._settings, recorder=recorder, use=usage.append)

    plan = await planner.run(topic, pedagogy, ctx, feedback=feedback)
    diagnostics = _empty_diagnostics()

    for index, item in enumerate(plan.items, start=1):
      item_ctx = ctx.with_stage(f"item {index}/{len(plan.items)}")
      try:
        outcome = await self._run_item(item, topic, pedagogy, item_ctx, author, recorder, feedback=feedback)
      except Exception as exc:  # noqa: BLE001
        item_ctx.logger(__name__).error("Item %s failed unexpectedly", item.name, exc_info=True)
        diagnostics[ErrorKind.ITEM_ERROR.value].append(f"{item.name}: {exc}")
        continue

      match outcome:
        case Ok(value=result):
          logger.info("Item %s succeeded as component %s (score %.2f)", item.name, result.component_id, result.score or 0.0)
          return OrchestrationResult(success=True, component_id=result.component_id, source_text=result.source_text, compiled_js=result.compiled_js, score=result.score, item_name=item.name, diagnostics=diagnostics, usage=usage)
        case Err(kind=kind, detail=detail):
          logger.info("Item %s failed at %s: %s", item.name, kind.value, detail)
          diagnostics[kind.value].append(f"{item.name}: {detail}")

    logger.warning("All %d planned item(s) failed", len(plan.items))
    return OrchestrationResult(success=False, diagnostics=diagnostics, usage=usage)

  async def _run_item(
    self,
    item: PlannedItem,
    topic: str,
    pedagogy: PedagogyProfile,
    ctx: GenerationContext,
    author: AuthorAgent,
    recorder: TraceRecorder,
    *,
    feedback: str | None,
  ) -> StageResult[OrchestrationResult]:
    authored = await author.run(item, topic, pedagogy, ctx, feedback=feedback)
    match authored:
      case Err():
        return authored
      case Ok(value=component):
        pass

    issues = [*component.constraint_issues, *check_safety(component.artifact.source_text)]
    if issues:
      error = SafetyViolation(issues)
      return Err(ErrorKind.SAFETY, "; ".join(f"{issue.rule}: {issue.message}" for issue in issues), error)

    compiled = await self._compile_with_repairs(component, ctx, recorder)
    match compiled:
      case Err():
        return compiled
      case Ok(value=(artifact, compilation)):
        pass

    preview = render_preview(artifact, item.suggested_props)
    if not preview.success:
      return Err(ErrorKind.PREVIEW, preview.error or "preview failed")

    evaluation = evaluate_markup(preview.html or "", pedagogy)
    threshold = self._settings.evaluation_threshold
    if not evaluation.passes(threshold):
      error = EvaluationBelowThreshold(evaluation.score, threshold, evaluation.reasons)
      return Err(ErrorKind.EVALUATE, f"{error} ({'; '.join(evaluation.reasons)})", error)

    return await self._persist(artifact, compilation, evaluation.score, ctx)

  async def _compile(self, source: str) -> CompilationResult:
    # tsc is a blocking subprocess; keep the event loop free.
    return await asyncio.to_thread(self._compiler.compile, source)

  async def _compile_with_repairs(self, component: AuthoredComponent, ctx: GenerationContext, recorder: TraceRecorder) -> StageResult[tuple[ComponentArtifact, CompilationResult]]:
    ctx = ctx.with_stage("compile")
    logger = ctx.logger(__name__)
    artifact = component.artifact
    compilation = await self._compile(artifact.source_text)

    repairs = 0
    while not compilation.success and repairs < self._settings.max_repair_attempts:
      repairs += 1
      number = recorder.counter.next()
      outcome = repair_source(artifact.source_text, compilation.errors, allow_text_fallback=self._settings.repair_text_fallback)
      prompt = f"repair {repairs}/{self._settings.max_repair_attempts} for {artifact.meta.name}"
      if not outcome.changed:
        await recorder.record(ctx.with_stage("repair"), prompt=prompt, validation={"ok": False, "tier": outcome.tier, "changes": []}, compilation=_compilation_summary(compilation), error="no applicable repair", attempt_number=number)
        logger.info("Repair %d found nothing to patch", repairs)
        break
      artifact = artifact.with_source(outcome.source)
      compilation = await self._compile(artifact.source_text)
      await recorder.record(
        ctx.with_stage("repair"),
        prompt=prompt,
        response=artifact.source_text,
        validation={"ok": compilation.success, "tier": outcome.tier, "changes": outcome.changes},
        compilation=_compilation_summary(compilation),
        error=None if compilation.success else "; ".join(compilation.errors[:5]),
        attempt_number=number,
      )
      logger.info("Repair %d (%s tier, %d change(s)) -> compile %s", repairs, outcome.tier, len(outcome.changes), "ok" if compilation.success else "failed")

    if not compilation.success:
      error = CompilationError(compilation.errors)
      return Err(ErrorKind.COMPILE, str(error), error)
    return Ok((artifact, compilation))

  async def _persist(self, artifact: ComponentArtifact, compilation: CompilationResult, score: float, ctx: GenerationContext) -> StageResult[OrchestrationResult]:
    if not compilation.success:
      raise ValueError("refusing to archive a component that did not compile")
    component_id = artifact.content_hash()
    record = ComponentRecord(
      component_id=component_id,
      lesson_id=ctx.lesson_id,
      name=artifact.meta.name,
      meta=artifact.meta.model_dump(by_alias=True, exclude_none=True),
      pedagogy=artifact.pedagogy.model_dump(by_alias=True),
      source_text=artifact.source_text,
      compiled_js=compilation.compiled_js,
      evaluation_score=score,
    )
    try:
      await self._components.save_component(record)
    except Exception as exc:  # noqa: BLE001
      ctx.logger(__name__).warning("Component archive write failed for %s", component_id, exc_info=True)
      error = PersistenceError(f"Component archive write failed: {exc}")
      return Err(ErrorKind.PERSISTENCE, str(error), error)
    return Ok(OrchestrationResult(success=True, component_id=component_id, source_text=artifact.source_text, compiled_js=compilation.compiled_js, score=score))
