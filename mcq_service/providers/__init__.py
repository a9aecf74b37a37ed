"""LLM provider integrations."""

from .base import BaseLLMProvider, LLMProviderError
from .gemini_provider import GeminiProvider

__all__ = ["BaseLLMProvider", "GeminiProvider", "LLMProviderError"]
