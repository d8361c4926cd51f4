"""
Unit tests for the Ollama provider.

Tests for:
- Request payloads for /api/embed and /api/chat
- Retry of transient HTTP failures
- Error mapping to ProviderError
- Embedder and synthesizer adapters
"""

import asyncio
import json
from unittest.mock import MagicMock

import pytest
import requests

from mnemo.core.exceptions import ProcessingError, ProviderError
from mnemo.providers import build_embedder, build_synthesizer
from mnemo.providers.base import EmbeddingConfig, SynthesizerConfig
from mnemo.providers.hashing import HashingEmbedder
from mnemo.providers.ollama import OllamaClient, OllamaEmbedder, OllamaSynthesizer
from mnemo.retrieval.prompt import build_qa_prompt
from mnemo.utils.retry import RetryConfig


def make_response(status_code=200, payload=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.text = text or json.dumps(payload)
    if payload is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def no_wait_retry():
    """Two attempts with no backoff delay."""
    return RetryConfig(max_attempts=2, initial_delay_ms=0, jitter=False)


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def client(session, no_wait_retry):
    return OllamaClient("http://localhost:11434/", timeout=30, retry=no_wait_retry, session=session)


class TestOllamaClient:
    """Tests for OllamaClient."""

    def test_initialization(self, client):
        assert client.base_url == "http://localhost:11434"
        assert client.timeout == 30

    def test_embed_payload(self, client, session):
        session.post.return_value = make_response(payload={"embeddings": [[0.1, 0.2]]})

        assert client.embed("all-minilm", ["hello"]) == [[0.1, 0.2]]

        session.post.assert_called_once_with(
            "http://localhost:11434/api/embed",
            json={"model": "all-minilm", "input": ["hello"]},
            timeout=30,
        )

    def test_embed_missing_embeddings(self, client, session):
        session.post.return_value = make_response(payload={"error": "nope"})
        with pytest.raises(ProviderError, match="no embeddings"):
            client.embed("all-minilm", ["hello"])

    def test_chat_payload(self, client, session):
        session.post.return_value = make_response(
            payload={"message": {"role": "assistant", "content": '{"answer": "hi"}'}}
        )
        messages = [{"role": "user", "content": "Hello"}]

        content = client.chat("llama3.2", messages, temperature=0.0)

        assert content == '{"answer": "hi"}'
        payload = session.post.call_args.kwargs["json"]
        assert payload["format"] == "json"
        assert payload["stream"] is False
        assert payload["options"] == {"temperature": 0.0}

    def test_chat_without_json_format(self, client, session):
        session.post.return_value = make_response(payload={"message": {"content": "hi"}})
        client.chat("llama3.2", [], json_format=False)
        payload = session.post.call_args.kwargs["json"]
        assert "format" not in payload
        assert "options" not in payload

    def test_transient_status_retried(self, client, session):
        session.post.side_effect = [
            make_response(503, text="busy"),
            make_response(payload={"embeddings": [[1.0]]}),
        ]
        assert client.embed("m", ["x"]) == [[1.0]]
        assert session.post.call_count == 2

    def test_connection_errors_exhaust_retries(self, client, session):
        session.post.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(ProviderError, match="Failed to connect"):
            client.embed("m", ["x"])
        assert session.post.call_count == 2

    def test_client_error_not_retried(self, client, session):
        session.post.return_value = make_response(404, text="model not found")

        with pytest.raises(ProviderError) as exc_info:
            client.embed("missing", ["x"])

        assert exc_info.value.status_code == 404
        assert session.post.call_count == 1

    def test_invalid_json(self, client, session):
        session.post.return_value = make_response(200, payload=None, text="<html>")
        with pytest.raises(ProviderError, match="Invalid JSON"):
            client.embed("m", ["x"])

    def test_provider_errors_are_processing_errors(self):
        """Queue retries cover provider failures."""
        assert issubclass(ProviderError, ProcessingError)

    def test_health_check(self, client, session):
        session.get.return_value = make_response(payload={"models": []})
        assert client.health_check() is True

        session.get.side_effect = requests.exceptions.ConnectionError("down")
        assert client.health_check() is False


class TestAdapters:
    """Tests for OllamaEmbedder and OllamaSynthesizer."""

    def test_embedder_batches_through_client(self):
        client = MagicMock()
        client.embed.side_effect = lambda model, texts: [[float(len(t)), 0.0] for t in texts]
        config = EmbeddingConfig(provider="ollama", model="all-minilm", dimensions=None, batch_size=2)
        embedder = OllamaEmbedder(config, client=client)

        vectors = asyncio.run(embedder.embed_batch(["a", "bb", "ccc"]))

        assert vectors == [[1.0, 0.0], [2.0, 0.0], [3.0, 0.0]]
        assert client.embed.call_count == 2
        assert embedder.dimensions == 2

    def test_synthesizer_sends_prompt_messages(self):
        client = MagicMock()
        client.chat.return_value = '{"answer": "x", "citations": [], "confidence": 0}'
        config = SynthesizerConfig(provider="ollama", model="llama3.2", temperature=0.2)
        synthesizer = OllamaSynthesizer(config, client=client)
        prompt = build_qa_prompt("ctx", "Where?")

        reply = asyncio.run(synthesizer.synthesize(prompt))

        assert reply.startswith('{"answer"')
        client.chat.assert_called_once_with("llama3.2", prompt.to_messages(), True, 0.2)


class TestFactories:
    """Tests for build_embedder and build_synthesizer."""

    def test_hashing_embedder(self):
        embedder = build_embedder(EmbeddingConfig(provider="hashing", dimensions=32))
        assert isinstance(embedder, HashingEmbedder)
        assert embedder.dimensions == 32

    def test_ollama_embedder(self):
        assert isinstance(build_embedder(EmbeddingConfig(provider="ollama")), OllamaEmbedder)

    def test_unknown_embedder(self):
        with pytest.raises(ValueError, match="Unknown embedding provider"):
            build_embedder(EmbeddingConfig(provider="openai"))

    def test_synthesizer_none(self):
        assert build_synthesizer(SynthesizerConfig()) is None

    def test_ollama_synthesizer(self):
        assert isinstance(build_synthesizer(SynthesizerConfig(provider="ollama")), OllamaSynthesizer)

    def test_unknown_synthesizer(self):
        with pytest.raises(ValueError):
            build_synthesizer(SynthesizerConfig(provider="openai"))
