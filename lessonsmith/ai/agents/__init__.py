"""Agent implementations."""

from lessonsmith.ai.agents.author import AuthorAgent, AuthoredComponent
from lessonsmith.ai.agents.base import BaseAgent
from lessonsmith.ai.agents.planner import PlannerAgent

__all__ = ["AuthorAgent", "AuthoredComponent", "BaseAgent", "PlannerAgent"]
