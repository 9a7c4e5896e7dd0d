"""Chat client base class shared by all language-model integrations."""

from __future__ import annotations

import ast
import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Sequence

from ..errors import ModelClientError, ModelResponseFormatError, ModelTransportError

__all__ = [
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


class ModelService(Protocol):
    """Collaborator that turns prompts into text, possibly calling operations on the way."""

    async def request_plan(self, message: str) -> str:
        ...

    async def execute_step(self, instruction: str, prior_context: Sequence[str]) -> str:
        ...


@dataclass(slots=True)
class ToolCall:
    """Operation call requested by the model."""

    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": json.dumps(self.arguments, sort_keys=True),
            },
        }


@dataclass(slots=True)
class ChatMessage:
    """Single chat message in OpenAI-compatible shape."""

    role: str
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = [call.to_payload() for call in self.tool_calls]
        if self.tool_call_id:
            payload["tool_call_id"] = self.tool_call_id
        return payload


@dataclass(slots=True)
class ChatReply:
    """Assistant reply: free text plus any operation calls to perform."""

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)


@dataclass(slots=True)
class ChatRequest:
    """Transport-independent request sent to a chat model."""

    messages: Sequence[ChatMessage]
    tools: Sequence[Dict[str, Any]] = ()
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None

    def to_payload(self, default_model: str, default_temperature: float) -> Dict[str, Any]:
        """Render a transport-ready payload for a chat completions endpoint."""
        payload: Dict[str, Any] = {
            "model": self.model or default_model,
            "messages": [message.to_payload() for message in self.messages],
            "stream": False,
        }
        temperature = self.temperature if self.temperature is not None else default_temperature
        if temperature is not None:
            payload["temperature"] = temperature
        if self.max_tokens:
            payload["max_tokens"] = self.max_tokens
        if self.tools:
            payload["tools"] = list(self.tools)
        return payload


class ModelClient:
    """Async helper that sends chat requests and normalises replies."""

    def __init__(self, model: str, *, temperature: float = 0.7, max_tokens: Optional[int] = None) -> None:
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

    @property
    def model(self) -> str:
        """Return the default model name configured for this client."""
        return self._model

    async def complete(self, request: ChatRequest) -> ChatReply:
        """Send ``request`` and return the parsed assistant reply."""
        if request.max_tokens is None and self._max_tokens:
            request.max_tokens = self._max_tokens
        payload = request.to_payload(self._model, self._temperature)
        raw = await self._raw_invoke(payload)
        return self._parse_reply(raw)

    async def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        """Perform the transport call. Subclasses must implement."""
        raise NotImplementedError("Subclasses must implement _raw_invoke().")

    @classmethod
    def _parse_reply(cls, raw_response: str) -> ChatReply:
        """Extract assistant text and tool calls from a chat completions response."""
        text = raw_response.strip()
        if not text:
            raise ModelResponseFormatError("Model returned an empty response.")
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            # Plain-text transports return the reply body directly.
            return ChatReply(content=raw_response)

        message: Any = None
        if isinstance(data, dict):
            choices = data.get("choices")
            if isinstance(choices, list) and choices and isinstance(choices[0], dict):
                message = choices[0].get("message")
            elif isinstance(data.get("message"), dict):
                message = data["message"]
        if not isinstance(message, dict):
            raise ModelResponseFormatError(f"Model response did not contain a message: {text[:200]}")

        content = message.get("content") or ""
        if not isinstance(content, str):
            content = json.dumps(content)
        calls: list[ToolCall] = []
        for index, entry in enumerate(message.get("tool_calls") or []):
            call = cls._parse_tool_call(entry, index)
            if call is not None:
                calls.append(call)
        return ChatReply(content=content, tool_calls=calls)

    @staticmethod
    def _parse_tool_call(entry: Any, index: int) -> ToolCall | None:
        if not isinstance(entry, dict):
            return None
        function = entry.get("function") if isinstance(entry.get("function"), dict) else entry
        name = function.get("name")
        if not isinstance(name, str) or not name.strip():
            return None
        arguments = function.get("arguments")
        if isinstance(arguments, str):
            arguments = _parse_arguments_text(arguments)
        if not isinstance(arguments, dict):
            arguments = {}
        call_id = entry.get("id")
        if not isinstance(call_id, str) or not call_id:
            call_id = f"call_{index}"
        return ToolCall(id=call_id, name=name.strip(), arguments=arguments)


def _parse_arguments_text(raw: str) -> Any:
    """Decode tool-call arguments, salvaging slightly malformed JSON."""
    text = _normalise_json_string(raw.strip())
    if not text:
        return {}
    candidates = [text]
    repaired = _repair_json_payload(text)
    if repaired and repaired not in candidates:
        candidates.append(repaired)
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            try:
                literal = ast.literal_eval(candidate)
            except (SyntaxError, ValueError):
                continue
            if isinstance(literal, dict):
                return {str(key): value for key, value in literal.items()}
    raise ModelResponseFormatError(f"Model returned invalid tool arguments: {text[:200]}")


def _strip_code_fence(payload: str) -> str:
    """Remove Markdown-style code fences that wrap JSON payloads."""
    if not payload.startswith("```"):
        return payload
    fence_header_match = re.match(r"```(?:json)?", payload[:10], re.IGNORECASE)
    if not fence_header_match:
        return payload
    fence_end = payload.find("```", len(fence_header_match.group(0)))
    if fence_end == -1:
        return payload
    content_start = payload.find("\n", len(fence_header_match.group(0)))
    if content_start == -1:
        return payload
    return payload[content_start + 1 : fence_end].strip()


def _normalise_json_string(payload: str) -> str:
    """Normalise common non-JSON characters emitted by models."""
    if not payload:
        return payload
    translation = {
        0x201C: '"',
        0x201D: '"',
        0x2018: "'",
        0x2019: "'",
        0x00A0: " ",
        0xFEFF: "",
    }
    return payload.translate(str.maketrans(translation))


def _strip_trailing_commas(payload: str) -> str:
    """Remove trailing commas before closing braces/brackets."""
    return re.sub(r",(\s*[}\]])", r"\1", payload)


def _repair_json_payload(raw: str) -> str | None:
    """Attempt to salvage a JSON object embedded in noisy output."""
    stripped = _strip_code_fence(raw.strip())
    if not stripped:
        return None
    opening_idx = None
    expected: list[str] = []
    for index, char in enumerate(stripped):
        if char in "{[":
            if opening_idx is None:
                opening_idx = index
            expected.append("}" if char == "{" else "]")
        elif expected and char == expected[-1]:
            expected.pop()
            if not expected and opening_idx is not None:
                return _strip_trailing_commas(stripped[opening_idx : index + 1].strip())
    return None
