from .anthropic import AnthropicProvider
from .base import BaseProvider
from .generic_openai import GenericOpenAIProvider

__all__ = ["AnthropicProvider", "BaseProvider", "GenericOpenAIProvider"]
