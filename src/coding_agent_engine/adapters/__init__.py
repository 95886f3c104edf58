"""
LLM provider adapters.

Each adapter converts the canonical message model to one vendor's wire
protocol and back, for both single replies and SSE streams.
"""

from coding_agent_engine.adapters.anthropic import AnthropicAdapter
from coding_agent_engine.adapters.base import LLMAdapter, ProviderError
from coding_agent_engine.adapters.openai import OpenAIAdapter
from coding_agent_engine.adapters.registry import AdapterRegistry, create_adapter

__all__ = [
    "AdapterRegistry",
    "AnthropicAdapter",
    "LLMAdapter",
    "OpenAIAdapter",
    "ProviderError",
    "create_adapter",
]
