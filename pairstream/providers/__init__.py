from .anthropic import AnthropicProvider
from .base import BaseProvider, LLMProviderError
from .generic_openai import GenericOpenAIProvider

__all__ = ["AnthropicProvider", "BaseProvider", "GenericOpenAIProvider", "LLMProviderError"]
