"""Tests for /v1/models."""

from fastapi.testclient import TestClient

from llm_openai_bridge.config import Settings
from llm_openai_bridge.main import create_app
from llm_openai_bridge.upstream import ModelSelector
from tests.conftest import FakeModel, FakeProvider


def _client(settings: Settings, provider: FakeProvider) -> TestClient:
    return TestClient(create_app(settings, provider=provider))


class TestModelsEndpoint:
    """Model listing."""

    def test_lists_models_sorted_with_presets(self, client: TestClient) -> None:
        response = client.get("/v1/models")

        assert response.status_code == 200
        data = response.json()
        assert data["object"] == "list"
        ids = [entry["id"] for entry in data["data"]]
        assert ids == sorted(ids)
        assert ids == [
            "gpt-4",
            "gpt-5-codex",
            "gpt-5-codex-high",
            "gpt-5-codex-low",
            "gpt-5-codex-medium",
        ]

    def test_preset_entry_metadata(self, client: TestClient) -> None:
        entries = {entry["id"]: entry for entry in client.get("/v1/models").json()["data"]}

        preset = entries["gpt-5-codex-medium"]
        assert preset["object"] == "model"
        assert preset["owned_by"] == "copilot"
        assert preset["metadata"]["name"] == "GPT-5 Codex (Medium Reasoning)"
        assert preset["metadata"]["alias_for"] == "gpt-5-codex"
        assert preset["metadata"]["preset_reasoning"] == {"effort": "medium"}
        assert preset["metadata"]["preset_description"] == "GPT-5 Codex with reasoning effort preset to medium."

    def test_plain_entry_metadata(self, client: TestClient) -> None:
        entries = {entry["id"]: entry for entry in client.get("/v1/models").json()["data"]}

        assert entries["gpt-4"]["metadata"] == {
            "name": "GPT-4",
            "family": "gpt-4",
            "version": "1.0",
            "max_input_tokens": 128000,
        }

    def test_queries_wildcard_and_vendors(self, client: TestClient, provider: FakeProvider) -> None:
        client.get("/v1/models")

        assert provider.selectors == [
            ModelSelector(),
            ModelSelector(vendor="copilot"),
            ModelSelector(vendor="openrouter"),
        ]

    def test_preset_resolves_through_secondary_base_id(self, settings: Settings) -> None:
        provider = FakeProvider([FakeModel("openai/gpt-5", vendor="openrouter")])

        ids = [entry["id"] for entry in _client(settings, provider).get("/v1/models").json()["data"]]

        assert ids == ["gpt-5-high", "gpt-5-low", "gpt-5-medium", "openai/gpt-5"]

    def test_no_models(self, settings: Settings) -> None:
        response = _client(settings, FakeProvider()).get("/v1/models")

        assert response.status_code == 500
        assert response.json() == {
            "error": {"message": "Error fetching available models", "type": "internal_server_error"}
        }

    def test_provider_failure(self, settings: Settings) -> None:
        provider = FakeProvider([FakeModel("gpt-4")])
        provider.error = RuntimeError("capability missing")

        response = _client(settings, provider).get("/v1/models")

        assert response.status_code == 500
        assert response.json()["error"]["type"] == "internal_server_error"

    def test_cors(self, client: TestClient) -> None:
        assert client.get("/v1/models").headers["access-control-allow-origin"] == "*"
