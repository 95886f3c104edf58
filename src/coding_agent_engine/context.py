"""
Context assembly for provider calls.

:class:`ContextManager` builds the system prompt from a base prompt, static
prompt fragments and dynamic :class:`ContextProvider` output, and applies
named message transforms to the outbound message list right before each
provider call. Transforms only change what is sent; stored history is
never touched.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from typing import Union

from coding_agent_engine.logging import get_logger
from coding_agent_engine.messages import Message

logger = get_logger("context")

MessageTransform = Callable[
    [list[Message]], Union[list[Message], Awaitable[list[Message]]]
]


class ContextProvider(ABC):
    """Supplies a named piece of dynamic context."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    async def get_context(self, messages: Sequence[Message]) -> str | None:
        """Return context text, or None to contribute nothing this time."""

    @property
    def inject_as_message(self) -> bool:
        """If True the context goes into a hidden user message instead of the system prompt."""
        return False


class StaticContextProvider(ContextProvider):
    """Fixed context text."""

    def __init__(self, name: str, context: str, inject_as_message: bool = False) -> None:
        self._name = name
        self._context = context
        self._inject_as_message = inject_as_message

    @property
    def name(self) -> str:
        return self._name

    async def get_context(self, messages: Sequence[Message]) -> str | None:
        return self._context

    @property
    def inject_as_message(self) -> bool:
        return self._inject_as_message


class ContextManager:
    """
    Example:
        context = ContextManager("You are a coding assistant.")
        context.add_static_prompt("Prefer small diffs.")
        context.add_provider(StaticContextProvider("project", "Python 3.12, pytest"))
        context.add_transform("todo", todo_reminder(todo_list))

        system = await context.build_system_prompt(messages)
        outbound = await context.apply_transforms(messages)
    """

    def __init__(self, system_prompt: str = "") -> None:
        self.system_prompt = system_prompt
        self._static_prompts: list[str] = []
        self._providers: list[ContextProvider] = []
        self._transforms: dict[str, MessageTransform] = {}

    def add_static_prompt(self, prompt: str) -> None:
        self._static_prompts.append(prompt)

    def add_provider(self, provider: ContextProvider) -> None:
        self._providers.append(provider)

    def add_transform(self, name: str, transform: MessageTransform) -> None:
        """Register (or replace) a named outbound message transform."""
        self._transforms[name] = transform

    def remove_transform(self, name: str) -> bool:
        return self._transforms.pop(name, None) is not None

    @property
    def transform_names(self) -> list[str]:
        return list(self._transforms)

    async def build_system_prompt(self, messages: Sequence[Message]) -> str:
        """Base prompt, static prompts, then one ``<context>`` section per provider."""
        parts = [p for p in (self.system_prompt, *self._static_prompts) if p]
        for provider in self._providers:
            if provider.inject_as_message:
                continue
            context = await provider.get_context(messages)
            if context:
                parts.append(f'<context name="{provider.name}">\n{context}\n</context>')
        return "\n\n".join(parts)

    async def create_hidden_context_message(self, messages: Sequence[Message]) -> Message | None:
        """A user message holding the output of providers that inject as messages."""
        parts: list[str] = []
        for provider in self._providers:
            if not provider.inject_as_message:
                continue
            context = await provider.get_context(messages)
            if context:
                parts.append(
                    f'<hidden-context name="{provider.name}">\n{context}\n</hidden-context>'
                )
        if not parts:
            return None
        return Message.user("\n\n".join(parts))

    async def apply_transforms(self, messages: Sequence[Message]) -> list[Message]:
        """Run every transform in registration order over a copy of ``messages``."""
        result = list(messages)
        for name, transform in self._transforms.items():
            value = transform(list(result))
            if asyncio.iscoroutine(value) or asyncio.isfuture(value):
                value = await value
            if value is None:
                logger.warning("Message transform %s returned None; ignored", name)
                continue
            result = list(value)
        return result

    def clear(self) -> None:
        self._static_prompts.clear()
        self._providers.clear()
        self._transforms.clear()
