"""Provider implementations."""

from lessonsmith.ai.providers.base import AIModel, ModelResponse, Prompt, PromptMessages
from lessonsmith.ai.providers.dummy import DummyModel
from lessonsmith.ai.providers.openai_chat import OpenAIChatModel

__all__ = ["AIModel", "ModelResponse", "Prompt", "PromptMessages", "DummyModel", "OpenAIChatModel"]
