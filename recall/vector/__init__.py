"""
Embedding, keyword and similarity primitives for semantic recall.
"""

from .types import EmbeddingResult, CandidateRecord, ScoredCandidate
from .embeddings import (
    IEmbeddingProvider,
    DeterministicHashEmbedding,
    OpenRouterEmbedding,
    SentenceTransformerEmbedding,
    EmbeddingsService,
    EmbeddingProviderError
)
from .keywords import extract_keywords
from .similarity import (
    cosine_similarity,
    rank_candidates,
    parse_stored_vector,
    EmbeddingMismatch,
    DimensionMismatch,
    ModelMismatch,
    MalformedStoredVector,
    ZeroNormVector,
    NonFiniteVector,
    require_finite
)

__all__ = [
    'EmbeddingResult',
    'CandidateRecord',
    'ScoredCandidate',
    'IEmbeddingProvider',
    'DeterministicHashEmbedding',
    'OpenRouterEmbedding',
    'SentenceTransformerEmbedding',
    'EmbeddingsService',
    'EmbeddingProviderError',
    'extract_keywords',
    'cosine_similarity',
    'rank_candidates',
    'parse_stored_vector',
    'EmbeddingMismatch',
    'DimensionMismatch',
    'ModelMismatch',
    'MalformedStoredVector',
    'ZeroNormVector',
    'NonFiniteVector',
    'require_finite'
]
