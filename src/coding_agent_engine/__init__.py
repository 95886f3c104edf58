"""
Coding Agent Engine - a provider-neutral agent loop for coding assistants.

The engine talks to OpenAI-compatible and Anthropic backends through one
canonical message model, runs model-requested tools behind a hook and
permission pipeline, and persists each conversation as a session.

Example:
    from coding_agent_engine import AgentConfig, AgentRunner, ToolRegistry, TodoTool

    config = AgentConfig.from_env(system_prompt="You are a coding assistant.")
    tools = ToolRegistry()
    tools.register(TodoTool())

    agent = AgentRunner.create(config, tools=tools, approver=ask_user)
    result = await agent.chat("Plan the refactor as a todo list")
"""

from coding_agent_engine.adapters import (
    AdapterRegistry,
    AnthropicAdapter,
    LLMAdapter,
    OpenAIAdapter,
    ProviderError,
    create_adapter,
)
from coding_agent_engine.agent import (
    AgentAbortedError,
    AgentRunner,
    TurnOutcome,
    TurnResult,
)
from coding_agent_engine.config import AgentConfig, ProviderConfig
from coding_agent_engine.context import ContextManager, ContextProvider, StaticContextProvider
from coding_agent_engine.events import AgentEvent, StreamAccumulator, StreamEvent
from coding_agent_engine.hooks import (
    HookContext,
    HookEvent,
    HookOutcome,
    HookRegistry,
    HookResult,
    Verdict,
)
from coding_agent_engine.logging import get_logger, setup_logging
from coding_agent_engine.messages import (
    ContentBlock,
    DocumentBlock,
    ImageBlock,
    Message,
    MessageResponse,
    RedactedThinkingBlock,
    Role,
    StopReason,
    TextBlock,
    ThinkingBlock,
    ThinkingConfig,
    ToolChoice,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
    Usage,
)
from coding_agent_engine.permissions import (
    PermissionDecision,
    PermissionManager,
    PermissionRequest,
)
from coding_agent_engine.resolver import DecisionSource, PermissionResolver, Resolution
from coding_agent_engine.session import (
    Session,
    SessionMetadata,
    SessionNotFoundError,
    SessionStorage,
)
from coding_agent_engine.tools import (
    BaseTool,
    FunctionTool,
    TodoItem,
    TodoList,
    TodoTool,
    ToolContext,
    ToolInfo,
    ToolRegistry,
    ToolResult,
    todo_reminder,
)

__version__ = "0.1.0"

__all__ = [
    # Agent
    "AgentAbortedError",
    "AgentRunner",
    "TurnOutcome",
    "TurnResult",
    # Config
    "AgentConfig",
    "ProviderConfig",
    # Adapters
    "AdapterRegistry",
    "AnthropicAdapter",
    "LLMAdapter",
    "OpenAIAdapter",
    "ProviderError",
    "create_adapter",
    # Messages
    "ContentBlock",
    "DocumentBlock",
    "ImageBlock",
    "Message",
    "MessageResponse",
    "RedactedThinkingBlock",
    "Role",
    "StopReason",
    "TextBlock",
    "ThinkingBlock",
    "ThinkingConfig",
    "ToolChoice",
    "ToolDefinition",
    "ToolResultBlock",
    "ToolUseBlock",
    "Usage",
    # Events
    "AgentEvent",
    "StreamAccumulator",
    "StreamEvent",
    # Hooks and permissions
    "DecisionSource",
    "HookContext",
    "HookEvent",
    "HookOutcome",
    "HookRegistry",
    "HookResult",
    "PermissionDecision",
    "PermissionManager",
    "PermissionRequest",
    "PermissionResolver",
    "Resolution",
    "Verdict",
    # Tools
    "BaseTool",
    "FunctionTool",
    "TodoItem",
    "TodoList",
    "TodoTool",
    "ToolContext",
    "ToolInfo",
    "ToolRegistry",
    "ToolResult",
    "todo_reminder",
    # Context
    "ContextManager",
    "ContextProvider",
    "StaticContextProvider",
    # Sessions
    "Session",
    "SessionMetadata",
    "SessionNotFoundError",
    "SessionStorage",
    # Logging
    "get_logger",
    "setup_logging",
]
