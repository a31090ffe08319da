"""
brain/__init__.py — LLM layer
"""

from workspace_agent.brain.adapter import LLMAdapter
from workspace_agent.brain.llm_client import (
    BaseLLMClient,
    LLMConnectionError,
    LLMContextError,
    LLMError,
    LLMInvalidRequestError,
    LLMRateLimitError,
)
from workspace_agent.brain.types import (
    FinishReason,
    GenerationConfig,
    LLMCredentials,
    LLMResponse,
    Message,
    Role,
    RunConfig,
    Thought,
    TokenUsage,
    ToolCall,
    ToolDefinition,
)

__all__ = [
    "LLMAdapter",
    "BaseLLMClient",
    "LLMError",
    "LLMConnectionError",
    "LLMRateLimitError",
    "LLMContextError",
    "LLMInvalidRequestError",
    "Message",
    "GenerationConfig",
    "LLMCredentials",
    "RunConfig",
    "LLMResponse",
    "Thought",
    "ToolCall",
    "ToolDefinition",
    "TokenUsage",
    "Role",
    "FinishReason",
]
