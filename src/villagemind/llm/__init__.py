"""LLM adapter, configuration and chat assembly."""

from .adapter import (
    ChatCompletionAdapter,
    GroqTransport,
    HttpTransport,
    LlmError,
    LlmRequestError,
    LlmResponseError,
    create_llm_adapter,
)
from .chat import build_npc_chat_input
from .config import LlmConfig, LlmConfigError, resolve_llm_config
from .types import LlmAdapter, LlmChatInput, LlmChatResult, LlmMessage

__all__ = [
    "ChatCompletionAdapter",
    "GroqTransport",
    "HttpTransport",
    "LlmAdapter",
    "LlmChatInput",
    "LlmChatResult",
    "LlmConfig",
    "LlmConfigError",
    "LlmError",
    "LlmMessage",
    "LlmRequestError",
    "LlmResponseError",
    "build_npc_chat_input",
    "create_llm_adapter",
    "resolve_llm_config",
]
