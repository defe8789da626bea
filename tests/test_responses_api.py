"""Tests for /v1/responses and its /v1/messages alias."""

import pytest
from fastapi.testclient import TestClient

from llm_openai_bridge.orchestrator import DEFAULT_INSTRUCTIONS
from llm_openai_bridge.upstream import Message
from tests.conftest import FakeModel, parse_sse, sse_payloads

URL = "/v1/responses"


class TestResponses:
    """Buffered responses."""

    def test_preset_ping_pong(self, client: TestClient, codex: FakeModel) -> None:
        response = client.post(URL, json={"model": "gpt-5-codex-high", "input": "ping"})

        assert response.status_code == 200
        data = response.json()
        assert data["id"].startswith("resp_")
        assert data["object"] == "response"
        assert data["status"] == "completed"
        assert data["model"] == "gpt-5-codex-high"
        assert data["output_text"] == "pong"
        assert data["usage"] == {"input_tokens": 4, "output_tokens": 4, "total_tokens": 8}
        [item] = data["output"]
        assert item["type"] == "message"
        assert item["content"][0]["text"] == "pong"
        assert codex.last_messages == [Message(role="user", content="ping")]
        assert codex.last_options == {"model_options": {"reasoning": {"effort": "high"}}}

    def test_default_instructions_reported_but_not_sent(self, client: TestClient, gpt4: FakeModel) -> None:
        data = client.post(URL, json={"input": "Hello"}).json()

        assert data["instructions"] == DEFAULT_INSTRUCTIONS
        assert gpt4.last_messages == [Message(role="user", content="Hello")]
        assert data["usage"]["input_tokens"] == 5

    def test_instructions_become_system_message(self, client: TestClient, gpt4: FakeModel) -> None:
        data = client.post(URL, json={"input": "Hello", "instructions": "Be brief"}).json()

        assert data["instructions"] == "Be brief"
        assert gpt4.last_messages == [
            Message(role="system", content="Be brief"),
            Message(role="user", content="Hello"),
        ]
        assert data["usage"]["input_tokens"] == len("Be brief") + len("Hello")

    def test_structured_input(self, client: TestClient, gpt4: FakeModel) -> None:
        body = {
            "input": [
                {
                    "role": "user",
                    "content": [{"type": "input_text", "text": "A"}, {"type": "input_text", "text": "B"}],
                },
            ],
        }

        client.post(URL, json=body)

        assert gpt4.last_messages == [Message(role="user", content="A\nB")]

    def test_chat_style_messages(self, client: TestClient, gpt4: FakeModel) -> None:
        client.post(URL, json={"messages": [{"role": "user", "content": "via messages"}]})

        assert gpt4.last_messages == [Message(role="user", content="via messages")]

    def test_echoes_request_fields(self, client: TestClient) -> None:
        tools = [{"type": "function", "name": "lookup", "parameters": {}}]
        data = client.post(
            URL,
            json={
                "input": "Hi",
                "metadata": {"session": "abc"},
                "tools": tools,
                "parallel_tool_calls": False,
            },
        ).json()

        assert data["metadata"] == {"session": "abc"}
        assert data["tools"] == tools
        assert data["tool_choice"] == "auto"
        assert data["parallel_tool_calls"] is False

    def test_explicit_tool_choice(self, client: TestClient) -> None:
        choice = {"type": "tool", "name": "lookup"}

        data = client.post(URL, json={"input": "Hi", "tool_choice": choice}).json()

        assert data["tool_choice"] == choice

    def test_function_tool_choice_falls_back(self, client: TestClient) -> None:
        tools = [{"type": "function", "name": "f", "parameters": {}}]
        choice = {"type": "function", "name": "f"}

        without_tools = client.post(URL, json={"input": "Hi", "tool_choice": choice})
        with_tools = client.post(URL, json={"input": "Hi", "tools": tools, "tool_choice": choice})

        assert without_tools.status_code == 200
        assert without_tools.json()["tool_choice"] == "none"
        assert with_tools.status_code == 200
        assert with_tools.json()["tool_choice"] == "auto"

    def test_unknown_tool_choice_falls_back(self, client: TestClient) -> None:
        response = client.post(URL, json={"input": "Hi", "tool_choice": "sometimes"})

        assert response.status_code == 200
        assert response.json()["tool_choice"] == "none"

    def test_null_parallel_tool_calls(self, client: TestClient) -> None:
        response = client.post(URL, json={"input": "Hi", "parallel_tool_calls": None, "tool_choice": None})

        assert response.status_code == 200
        data = response.json()
        assert data["parallel_tool_calls"] is True
        assert data["tool_choice"] == "none"

    def test_messages_alias(self, client: TestClient) -> None:
        response = client.post("/v1/messages", json={"input": "Hello"})

        assert response.status_code == 200
        assert response.json()["object"] == "response"


class TestResponsesValidation:
    """Rejected requests."""

    def test_previous_response_id(self, client: TestClient, gpt4: FakeModel) -> None:
        response = client.post(URL, json={"input": "Hi", "previous_response_id": "abc"})

        assert response.status_code == 400
        assert response.json() == {
            "error": {"message": "previous_response_id is not supported yet.", "type": "server_error"}
        }
        assert gpt4.sent == []

    @pytest.mark.parametrize("body", [{}, {"input": ""}, {"input": []}, {"input": [{"role": "user", "content": ""}]}])
    def test_no_input(self, client: TestClient, gpt4: FakeModel, body: dict) -> None:
        response = client.post(URL, json=body)

        assert response.status_code == 400
        assert response.json()["error"]["message"].startswith("No input provided")
        assert gpt4.sent == []

    def test_body_must_be_object(self, client: TestClient) -> None:
        response = client.post(URL, json=["input"])

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Request body must be a JSON object"


class TestResponsesStreaming:
    """Stream decision and SSE output."""

    def test_stream_flag(self, client: TestClient) -> None:
        response = client.post(URL, json={"model": "gpt-5-codex-high", "input": "ping", "stream": True})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = [event for event, _ in parse_sse(response.text)]
        assert events[0] == "response.created"
        assert events[-1] == "response.completed"
        assert events.count("response.output_text.delta") == 1
        completed = sse_payloads(response.text)[-1]["response"]
        assert completed["model"] == "gpt-5-codex-high"
        assert completed["usage"] == {"input_tokens": 4, "output_tokens": 4, "total_tokens": 8}

    @pytest.mark.parametrize("value", ["true", "1", "yes", "on"])
    def test_string_stream_flag(self, client: TestClient, value: str) -> None:
        response = client.post(URL, json={"input": "Hi", "stream": value})

        assert response.headers["content-type"].startswith("text/event-stream")

    @pytest.mark.parametrize(
        "headers",
        [
            {"x-stainless-helper-method": "stream"},
            {"x-openai-stream": "true"},
            {"accept": "application/json, text/event-stream"},
        ],
    )
    def test_headers_force_streaming(self, client: TestClient, headers: dict) -> None:
        response = client.post(URL, json={"input": "Hi"}, headers=headers)

        assert response.headers["content-type"].startswith("text/event-stream")

    def test_default_is_buffered(self, client: TestClient) -> None:
        response = client.post(URL, json={"input": "Hi", "stream": "no"})

        assert response.headers["content-type"].startswith("application/json")

    def test_stream_failure_is_in_band(self, client: TestClient, gpt4: FakeModel) -> None:
        gpt4.fail_after = 0

        response = client.post(URL, json={"input": "Hi", "stream": True})

        assert response.status_code == 200
        frames = parse_sse(response.text)
        assert frames[-1][0] == "error"
        assert "response.completed" not in [event for event, _ in frames]
