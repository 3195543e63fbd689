"""
Provider adapters.
"""

from .anthropic_adapter import AnthropicAdapter
from .openai_adapter import OpenAIAdapter

__all__ = [
    "AnthropicAdapter",
    "OpenAIAdapter",
]
