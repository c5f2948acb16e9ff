"""Pipeline contracts and stage results."""

from lessonsmith.ai.pipeline.contracts import ComponentArtifact, ComponentMeta, ComponentPlan, CompilationResult, ContentValidationResult, EvaluationResult, PedagogyProfile, PlannedItem, PreviewResult, SafetyIssue
from lessonsmith.ai.pipeline.results import Err, ErrorKind, Ok, StageResult

__all__ = ["ComponentArtifact", "ComponentMeta", "ComponentPlan", "CompilationResult", "ContentValidationResult", "EvaluationResult", "PedagogyProfile", "PlannedItem", "PreviewResult", "SafetyIssue", "Err", "ErrorKind", "Ok", "StageResult"]
