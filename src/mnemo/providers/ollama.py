"""
Ollama provider.

Thin HTTP client for Ollama's native REST API (/api/embed, /api/chat) and the
EmbeddingPort / AnswerSynthesizer adapters built on it. The client is
blocking; the adapters run it off the event loop with asyncio.to_thread.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import requests

from ..core.exceptions import ProviderError
from ..utils.retry import RetryConfig, retry_with_backoff
from .base import AnswerSynthesizer, EmbeddingConfig, EmbeddingPort, SynthesizerConfig

if TYPE_CHECKING:
    from ..retrieval.prompt import QAPrompt


logger = logging.getLogger(__name__)

# Status codes worth retrying; anything else is reported immediately.
RETRYABLE_STATUS = (429, 500, 502, 503, 504)


class _TransientError(Exception):
    pass


class OllamaClient:
    """
    HTTP client for a local Ollama server.

    Example:
        >>> client = OllamaClient("http://localhost:11434")
        >>> vectors = client.embed("all-minilm", ["hello", "world"])
    """

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        timeout: int = 120,
        retry: Optional[RetryConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Ollama server URL
            timeout: Request timeout in seconds
            retry: Retry policy for connection errors and 5xx/429 responses
            session: Optional pre-configured requests session
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry = retry or RetryConfig()
        self.session = session or requests.Session()
        logger.debug(f"Initialized OllamaClient: base_url={self.base_url}")

    def embed(self, model: str, texts: List[str]) -> List[List[float]]:
        """
        Embed texts with /api/embed.

        Raises:
            ProviderError: If the request fails or the reply has no embeddings
        """
        result = self._post("/api/embed", {"model": model, "input": texts})
        embeddings = result.get("embeddings")
        if not isinstance(embeddings, list):
            raise ProviderError("Ollama embed reply has no embeddings", provider="ollama")
        return embeddings

    def chat(
        self,
        model: str,
        messages: List[Dict[str, str]],
        json_format: bool = True,
        temperature: Optional[float] = None,
    ) -> str:
        """
        Run a non-streaming /api/chat request and return the message content.

        Raises:
            ProviderError: If the request fails or the reply has no content
        """
        payload: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": False,
        }
        if json_format:
            payload["format"] = "json"
        if temperature is not None:
            payload["options"] = {"temperature": temperature}

        result = self._post("/api/chat", payload)
        content = (result.get("message") or {}).get("content")
        if not isinstance(content, str):
            raise ProviderError("Ollama chat reply has no message content", provider="ollama")
        return content

    def health_check(self) -> bool:
        """Return True if the server answers /api/tags."""
        try:
            response = self.session.get(f"{self.base_url}/api/tags", timeout=10)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Health check failed: {e}")
            return False
        return response.status_code == 200

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"

        def send() -> requests.Response:
            try:
                response = self.session.post(url, json=payload, timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                raise _TransientError(f"Failed to connect to Ollama at {self.base_url}: {e}") from e
            if response.status_code in RETRYABLE_STATUS:
                raise _TransientError(f"Ollama API error: {response.status_code} - {response.text}")
            return response

        logger.debug(f"Making request to {url}")
        outcome = retry_with_backoff(
            send,
            self.retry,
            retry_on=(_TransientError,),
            operation_name=f"POST {path}",
        )
        if not outcome.success:
            raise ProviderError(str(outcome.error), provider="ollama") from outcome.error

        response = outcome.result
        if response.status_code != 200:
            logger.error(f"HTTP error from Ollama: {response.status_code} - {response.text}")
            raise ProviderError(
                f"Ollama API error: {response.status_code} - {response.text}",
                provider="ollama",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"Invalid JSON response from Ollama: {e}", provider="ollama") from e


class OllamaEmbedder(EmbeddingPort):
    """EmbeddingPort backed by Ollama's /api/embed."""

    def __init__(self, config: EmbeddingConfig, client: Optional[OllamaClient] = None):
        super().__init__(
            model=config.model,
            dimensions=config.dimensions,
            batch_size=config.batch_size,
        )
        self.client = client or OllamaClient(config.base_url, config.timeout_seconds)

    async def _embed_group(self, texts: List[str]) -> List[List[float]]:
        return await asyncio.to_thread(self.client.embed, self.model, texts)


class OllamaSynthesizer(AnswerSynthesizer):
    """AnswerSynthesizer backed by Ollama's /api/chat in JSON mode."""

    def __init__(self, config: SynthesizerConfig, client: Optional[OllamaClient] = None):
        self.config = config
        self.client = client or OllamaClient(config.base_url, config.timeout_seconds)

    async def synthesize(self, prompt: "QAPrompt") -> str:
        return await asyncio.to_thread(
            self.client.chat,
            self.config.model,
            prompt.to_messages(),
            True,
            self.config.temperature,
        )
