from __future__ import annotations

import json
from typing import Any, Dict, List

import pytest

from steward.models.chat import ChatClient
from steward.models.llm_client import (
    ChatMessage,
    ChatRequest,
    ModelClient,
    ModelResponseFormatError,
    ModelTransportError,
    ToolCall,
)


def _completion(message: Dict[str, Any]) -> str:
    return json.dumps({"id": "chatcmpl-1", "choices": [{"index": 0, "message": message}]})


@pytest.mark.asyncio
async def test_chat_client_sends_payload_and_parses_tool_calls() -> None:
    captured: List[Dict[str, Any]] = []

    def transport(payload: Dict[str, Any]) -> str:
        captured.append(payload)
        return _completion(
            {
                "role": "assistant",
                "content": None,
                "tool_calls": [
                    {
                        "id": "call_a",
                        "type": "function",
                        "function": {
                            "name": "read_file",
                            "arguments": '{"relative_path": "README.md",}',
                        },
                    }
                ],
            }
        )

    client = ChatClient(model="qwen2.5-coder", transport=transport, temperature=0.2)
    tools = [{"type": "function", "function": {"name": "read_file", "parameters": {}}}]
    reply = await client.complete(ChatRequest(messages=[ChatMessage("user", "read it")], tools=tools))

    assert reply.content == ""
    assert reply.tool_calls == [ToolCall(id="call_a", name="read_file", arguments={"relative_path": "README.md"})]
    payload = captured[0]
    assert payload["model"] == "qwen2.5-coder"
    assert payload["temperature"] == 0.2
    assert payload["messages"] == [{"role": "user", "content": "read it"}]
    assert payload["tools"] == tools


@pytest.mark.asyncio
async def test_ollama_style_message_and_plain_text_replies() -> None:
    ollama = ChatClient(
        model="m",
        transport=lambda _: json.dumps({"message": {"role": "assistant", "content": "hi"}}),
    )
    plain = ChatClient(model="m", transport=lambda _: "just text")

    assert (await ollama.complete(ChatRequest(messages=[]))).content == "hi"
    assert (await plain.complete(ChatRequest(messages=[]))).content == "just text"


@pytest.mark.asyncio
async def test_missing_message_and_empty_body_are_format_errors() -> None:
    missing = ChatClient(model="m", transport=lambda _: json.dumps({"choices": []}))
    empty = ChatClient(model="m", transport=lambda _: "   ")

    with pytest.raises(ModelResponseFormatError):
        await missing.complete(ChatRequest(messages=[]))
    with pytest.raises(ModelResponseFormatError):
        await empty.complete(ChatRequest(messages=[]))


@pytest.mark.asyncio
async def test_transport_connection_errors_become_transient() -> None:
    def refuse(_: Dict[str, Any]) -> str:
        raise ConnectionRefusedError("connection refused")

    client = ChatClient(model="m", transport=refuse)

    with pytest.raises(ModelTransportError):
        await client.complete(ChatRequest(messages=[]))


def test_timeout_and_api_key_come_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STEWARD_MODEL_TIMEOUT", "42")
    monkeypatch.setenv("STEWARD_API_KEY", "secret")

    client = ChatClient(model="m", transport=lambda _: "")

    assert client._timeout == 42.0
    assert client._api_key == "secret"


def test_tool_call_messages_render_openai_payload() -> None:
    message = ChatMessage(
        "assistant",
        "",
        tool_calls=(ToolCall(id="c1", name="list_all_files", arguments={}),),
    )

    assert message.to_payload() == {
        "role": "assistant",
        "content": "",
        "tool_calls": [
            {
                "id": "c1",
                "type": "function",
                "function": {"name": "list_all_files", "arguments": "{}"},
            }
        ],
    }
    assert ChatMessage("tool", "ok", tool_call_id="c1").to_payload()["tool_call_id"] == "c1"


@pytest.mark.asyncio
async def test_base_client_requires_transport() -> None:
    with pytest.raises(NotImplementedError):
        await ModelClient("m").complete(ChatRequest(messages=[]))
