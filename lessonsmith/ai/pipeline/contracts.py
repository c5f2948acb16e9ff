"""Shared data contracts for the component generation pipeline."""

from __future__ import annotations

import hashlib
from typing import Any, Literal

import msgspec
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

GradeBand = Literal["K-2", "3-5", "6-8", "9-12"]
ReadingLevel = Literal["emergent", "basic", "intermediate", "advanced"]
LanguageTone = Literal["friendly", "neutral", "formal"]
CognitiveLoad = Literal["low", "medium", "high"]
InteractivityLevel = Literal["none", "low", "medium", "high"]
AssetKind = Literal["image", "audio", "video", "svg"]


class _CamelModel(BaseModel):
  """Accept camelCase from model output while keeping snake_case attributes."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AccessibilityProfile(_CamelModel):
  """Accessibility constraints the rendered component must respect."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

  min_font_size_px: int = Field(default=16, ge=12, le=24)
  high_contrast: bool = True
  captions_preferred: bool = False


class PedagogyProfile(_CamelModel):
  """Target audience and constraints; immutable input to planner, author and evaluator."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

  grade_band: GradeBand
  reading_level: ReadingLevel = "basic"
  language_tone: LanguageTone = "friendly"
  cognitive_load: CognitiveLoad = "medium"
  accessibility: AccessibilityProfile = Field(default_factory=AccessibilityProfile)


class PlannedItem(_CamelModel):
  """One component's intent produced by the planner."""

  name: str = Field(min_length=1, max_length=80)
  learning_objective: str = Field(min_length=1, max_length=500)
  suggested_props: dict[str, Any] | None = None


class ComponentPlan(_CamelModel):
  """Validated planner output."""

  topic: str
  pedagogy: PedagogyProfile
  items: list[PlannedItem] = Field(min_length=1, max_length=12)


class PlannerPayload(_CamelModel):
  """Shape the planner must return before it is bound to a topic and profile."""

  items: list[PlannedItem] = Field(min_length=1, max_length=12)


class ComponentAsset(_CamelModel):
  kind: AssetKind
  description: str = Field(min_length=1, max_length=500)
  src: str | None = None


class ComponentMeta(_CamelModel):
  """Metadata the author returns alongside the component source."""

  name: str = Field(min_length=1, max_length=80)
  learning_objective: str = Field(min_length=1, max_length=500)
  interactivity_level: InteractivityLevel = "low"
  props_schema_json: str = Field(default="{}", min_length=2)
  assets: list[ComponentAsset] | None = None

  @field_validator("props_schema_json", mode="before")
  @classmethod
  def _coerce_schema(cls, value: Any) -> Any:
    # Models often return the schema as an object instead of a JSON string.
    if isinstance(value, dict):
      return msgspec.json.encode(value, order="deterministic").decode("utf-8")
    return value


class ComponentArtifact(BaseModel):
  """Authored source plus metadata; only the source text changes during repair."""

  meta: ComponentMeta
  pedagogy: PedagogyProfile
  source_text: str

  def content_hash(self) -> str:
    """Stable identity of the artifact: sha256 over source text and metadata, first 32 hex chars."""
    meta_json = msgspec.json.encode(self.meta.model_dump(by_alias=True, exclude_none=True), order="deterministic")
    digest = hashlib.sha256(self.source_text.encode("utf-8") + meta_json).hexdigest()
    return digest[:32]

  def with_source(self, source_text: str) -> ComponentArtifact:
    return self.model_copy(update={"source_text": source_text})


class SafetyIssue(BaseModel):
  """A rule violation found by the safety scanner or the author constraints."""

  model_config = ConfigDict(frozen=True)

  rule: str
  message: str
  line_hint: str | None = None


class CompilationResult(BaseModel):
  """Outcome of one checking-compiler invocation."""

  success: bool
  errors: list[str] = Field(default_factory=list)
  warnings: list[str] = Field(default_factory=list)
  out_dir: str | None = None
  emitted_files: list[str] = Field(default_factory=list)
  compiled_js: str | None = None
  mode: Literal["typecheck", "transpile"] = "typecheck"


class PreviewResult(BaseModel):
  success: bool
  html: str | None = None
  error: str | None = None


class EvaluationResult(BaseModel):
  """Heuristic score of rendered markup with the per-signal breakdown."""

  score: float = Field(ge=0.0, le=1.0)
  signals: dict[str, float] = Field(default_factory=dict)
  reasons: list[str] = Field(default_factory=list)

  def passes(self, threshold: float) -> bool:
    return self.score >= threshold


class ContentValidationResult(BaseModel):
  """Structural and alignment verdict for structured lesson content."""

  valid: bool
  score: float = Field(ge=0.0)
  issues: list[str] = Field(default_factory=list)
  suggestions: list[str] = Field(default_factory=list)
  metrics: dict[str, Any] = Field(default_factory=dict)


class SvgAlignmentResult(BaseModel):
  """How well an inline diagram is labelled, grouped and grounded in the outline."""

  valid: bool
  score: float = Field(ge=0.0, le=1.0)
  issues: list[str] = Field(default_factory=list)
  signals: dict[str, Any] = Field(default_factory=dict)


class StyleReport(BaseModel):
  signals: dict[str, Any] = Field(default_factory=dict)
  issues: list[str] = Field(default_factory=list)
