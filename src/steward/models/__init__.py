"""Convenience exports for steward model client implementations."""

from .assistant import Assistant
from .chat import ChatClient
from .llm_client import (
    ChatMessage,
    ChatReply,
    ChatRequest,
    ModelClient,
    ModelClientError,
    ModelResponseFormatError,
    ModelService,
    ModelTransportError,
    ToolCall,
)

__all__ = [
    "Assistant",
    "ChatClient",
    "ChatMessage",
    "ChatReply",
    "ChatRequest",
    "ModelClient",
    "ModelClientError",
    "ModelResponseFormatError",
    "ModelService",
    "ModelTransportError",
    "ToolCall",
]
