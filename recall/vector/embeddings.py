"""
Embedding generation for semantic recall.
Providers turn text into vectors; EmbeddingsService wraps them with the
truncation and never-raise failure policy the search and ingestion paths rely on.
"""

from abc import ABC, abstractmethod
import hashlib
import math
import numbers
import requests

from .types import EmbeddingResult
from util.logging import logger


class EmbeddingProviderError(Exception):
    """Raised by a provider when it cannot return a vector."""
    pass


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    model_name: str = "unknown"

    @abstractmethod
    def embed_text(self, text: str) -> list[float]:
        """Generate embedding vector for given text. Raises on failure."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic hash-based embedding provider for offline use and tests.

    The same text always maps to the same vector, with no network or model
    dependency. Vectors carry no semantic meaning.
    """

    def __init__(self, dimension: int = 384):
        self.dimension = dimension
        self.model_name = f"hash-{dimension}"

    def embed_text(self, text: str) -> list[float]:
        """Generate deterministic embedding vector by chaining md5 digests."""
        vector = []
        counter = 0
        while len(vector) < self.dimension:
            hex_dig = hashlib.md5(f"{counter}:{text}".encode()).hexdigest()
            for i in range(0, len(hex_dig), 8):
                value = int(hex_dig[i:i + 8], 16)
                # Map to [-1, 1]
                vector.append((value / (2**32)) * 2 - 1)
            counter += 1

        return vector[:self.dimension]

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        return self.dimension


class OpenRouterEmbedding(IEmbeddingProvider):
    """Remote embedding provider speaking the OpenAI-compatible /embeddings API.

    Defaults to OpenRouter with text-embedding-3-small (1536 dimensions).
    """

    def __init__(self, api_key: str, model_name: str = "openai/text-embedding-3-small",
                 api_url: str = "https://openrouter.ai/api/v1/embeddings",
                 referer: str = "", title: str = "", dimension: int = 1536):
        self.api_key = api_key
        self.model_name = model_name
        self.api_url = api_url
        self.referer = referer
        self.title = title
        self._dimension = dimension

    def _headers(self) -> dict:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }
        if self.referer:
            headers["HTTP-Referer"] = self.referer
        if self.title:
            headers["X-Title"] = self.title
        return headers

    def embed_text(self, text: str) -> list[float]:
        """Request one embedding. Raises EmbeddingProviderError on any failure."""
        if not self.api_key:
            raise EmbeddingProviderError("embedding API key not configured")

        try:
            response = requests.post(
                self.api_url,
                headers=self._headers(),
                json={"model": self.model_name, "input": text}
            )
        except requests.RequestException as e:
            raise EmbeddingProviderError(f"request failed: {e}") from e

        if not response.ok:
            raise EmbeddingProviderError(f"API error {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
            embedding = data["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise EmbeddingProviderError(f"malformed response: {e}") from e

        if not isinstance(embedding, list) or not embedding or \
                not all(isinstance(v, numbers.Real) and not isinstance(v, bool) for v in embedding):
            raise EmbeddingProviderError("malformed response: embedding is not a list of numbers")

        if not all(math.isfinite(v) for v in embedding):
            raise EmbeddingProviderError("malformed response: embedding contains NaN or infinite values")

        return [float(v) for v in embedding]

    def get_dimension(self) -> int:
        return self._dimension


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Local sentence-transformers provider (install the `local` extra)."""

    def __init__(self, model_name: str = "all-mpnet-base-v2"):
        self.model_name = model_name
        self._model = None
        self._dimension = None

    @property
    def model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed_text(self, text: str) -> list[float]:
        """Generate embedding vector using sentence transformers."""
        embedding = self.model.encode(text, convert_to_tensor=False)
        return embedding.tolist()

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        if self._dimension is None:
            self._dimension = self.model.get_sentence_embedding_dimension()
        return self._dimension


class EmbeddingsService:
    """
    Embedding generator used by ingestion and search.
    Truncates long input, skips empty input, and never raises: every failure
    comes back as an EmbeddingResult carrying the reason.
    """

    def __init__(self, provider: IEmbeddingProvider = None, max_chars: int = None):
        """
        Initialize the embeddings service.

        Args:
            provider: Embedding provider, defaults to the configured one
            max_chars: Input cap in characters, defaults to EMBED_MAX_CHARS
        """
        from ..core.config import EMBED_MAX_CHARS
        self._provider = provider
        self.max_chars = max_chars if max_chars is not None else EMBED_MAX_CHARS

    @property
    def provider(self) -> IEmbeddingProvider:
        """Lazy-loaded embedding provider."""
        if self._provider is None:
            from ..core.config import get_embedding_provider
            self._provider = get_embedding_provider()
        return self._provider

    @property
    def model_name(self) -> str:
        return getattr(self.provider, "model_name", "unknown")

    def generate_embedding(self, text: str) -> EmbeddingResult:
        """
        Embed a single text.

        Args:
            text: Text to embed; only the first max_chars characters are sent

        Returns:
            EmbeddingResult with the vector, or with error set and vector None
        """
        model = self.model_name

        if text is None or not text.strip():
            return EmbeddingResult(vector=None, model=model, error="empty_input")

        truncated = text[:self.max_chars]

        try:
            vector = self.provider.embed_text(truncated)
        except Exception as e:
            logger.log_embedding_request(model, "failed", {"error": str(e), "chars": len(truncated)})
            return EmbeddingResult(vector=None, model=model, error=f"provider_error: {e}")

        if not vector:
            logger.log_embedding_request(model, "failed", {"error": "empty embedding"})
            return EmbeddingResult(vector=None, model=model, error="provider_error: empty embedding")

        if not all(math.isfinite(v) for v in vector):
            logger.log_embedding_request(model, "failed", {"error": "non-finite embedding"})
            return EmbeddingResult(vector=None, model=model, error="provider_error: non-finite embedding")

        logger.log_embedding_request(model, "success", {"chars": len(truncated), "dimension": len(vector)})
        return EmbeddingResult(vector=tuple(vector), model=model)
