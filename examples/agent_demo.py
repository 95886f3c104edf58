#!/usr/bin/env python3
"""
Coding Agent Engine Demo

Runs an interactive agent in the terminal with a todo tool, a shell-like
"list_files" tool that asks for permission, and a hook that blocks
anything outside the working directory.

Usage:
    # Reads OPENAI_API_KEY / ANTHROPIC_API_KEY from the environment or .env
    python examples/agent_demo.py

    # Use Anthropic instead
    AGENT_PROVIDER=anthropic python examples/agent_demo.py
"""

import asyncio
import sys
from pathlib import Path

from coding_agent_engine import (
    AgentConfig,
    AgentRunner,
    FunctionTool,
    HookEvent,
    HookRegistry,
    HookResult,
    PermissionDecision,
    PermissionRequest,
    TodoList,
    TodoTool,
    ToolContext,
    ToolRegistry,
    ToolResult,
    setup_logging,
    todo_reminder,
)
from coding_agent_engine.events import AGENT_STREAM, AGENT_TEXT, AGENT_TOOL_RESULT, AGENT_TOOL_USE

CHOICES = {
    "y": PermissionDecision.ALLOW,
    "n": PermissionDecision.DENY,
    "a": PermissionDecision.ALWAYS_ALLOW,
    "d": PermissionDecision.ALWAYS_DENY,
}


async def list_files(input: dict, context: ToolContext) -> ToolResult:
    path = context.cwd / input.get("path", ".")
    names = sorted(p.name + ("/" if p.is_dir() else "") for p in path.iterdir())
    return ToolResult.success("\n".join(names))


def ask_in_terminal(request: PermissionRequest) -> PermissionDecision:
    print(f"\n[permission] {request.tool_name}: {request.action_description}")
    answer = input("Allow? [y]es / [n]o / [a]lways / [d]eny always: ").strip().lower()
    return CHOICES.get(answer[:1], PermissionDecision.DENY)


def stay_in_cwd(ctx):
    if ".." in ctx.tool_input.get("path", ""):
        return HookResult.deny("paths outside the working directory are off limits")
    return None


def build_agent() -> AgentRunner:
    tools = ToolRegistry()
    tools.register(TodoTool())
    tools.register(
        FunctionTool(
            "list_files",
            "List the files in a directory relative to the working directory",
            list_files,
            input_schema={
                "type": "object",
                "properties": {"path": {"type": "string", "description": "Relative path"}},
            },
        )
    )

    hooks = HookRegistry()
    hooks.on(HookEvent.PRE_TOOL_USE, stay_in_cwd, matcher="list_files", source="demo")

    config = AgentConfig.from_env(
        system_prompt="You are a careful coding assistant. Track multi-step work with the todo tool.",
        session_dir=Path.home() / ".coding-agent" / "sessions",
    )
    agent = AgentRunner.create(config, tools=tools, approver=ask_in_terminal, hooks=hooks)

    todos = TodoList()
    agent.tool_context.put(todos)
    agent.context_manager.add_transform("todo_reminder", todo_reminder(todos))
    return agent


async def interactive(agent: AgentRunner) -> None:
    print("=" * 60)
    print(f"Coding Agent - session {agent.session_id}")
    print("Type 'exit' to quit")
    print("=" * 60)

    while True:
        try:
            user_input = input("\nYou: ").strip()
        except (EOFError, KeyboardInterrupt):
            break
        if user_input.lower() in ("exit", "quit"):
            break
        if not user_input:
            continue

        async for event in agent.chat_stream_events(user_input):
            if event.type == AGENT_STREAM:
                continue
            if event.type == AGENT_TEXT:
                print(f"\nAssistant: {event.content}")
            elif event.type == AGENT_TOOL_USE:
                print(f"  -> {event.tool_name} {event.tool_input}")
            elif event.type == AGENT_TOOL_RESULT:
                marker = "!!" if event.is_error else "<-"
                print(f"  {marker} {event.content[:200]}")

    usage = agent.cumulative_usage
    print(f"\nTokens used: {usage.input_tokens} in / {usage.output_tokens} out")


def main() -> int:
    setup_logging("WARNING")
    agent = build_agent()
    asyncio.run(interactive(agent))
    return 0


if __name__ == "__main__":
    sys.exit(main())
