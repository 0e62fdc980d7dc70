"""
Semantic search over saved records, with keyword search as an independent alternate path.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .config import SEARCH_SCAN_LIMIT, SEARCH_DEFAULT_LIMIT, SEARCH_MIN_SIMILARITY
from .dao import CandidateStoreError, ICandidateStore
from ..vector.embeddings import EmbeddingsService
from ..vector.keywords import extract_keywords
from ..vector.similarity import (
    cosine_similarity,
    parse_stored_vector,
    rank_candidates,
    require_finite,
    MalformedStoredVector,
    ModelMismatch,
    ZeroNormVector
)
from ..vector.types import CandidateRecord, ScoredCandidate
from util.logging import logger


class RetrievalError(Exception):
    """The candidate store could not be read for a search."""
    pass


@dataclass
class KeywordSearchResult:
    keywords: List[str]
    records: List[CandidateRecord]


@dataclass
class SearchOutcome:
    """What a search-facing caller gets back: which path ran and its results."""

    mode: str  # semantic|keyword
    results: List[ScoredCandidate] = field(default_factory=list)
    records: List[CandidateRecord] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    embedding_error: Optional[str] = None

    @property
    def count(self) -> int:
        return len(self.results) if self.mode == "semantic" else len(self.records)

    def to_dict(self) -> Dict[str, Any]:
        if self.mode == "semantic":
            items = [result.to_dict() for result in self.results]
        else:
            items = [record.to_dict() for record in self.records]
        return {
            "mode": self.mode,
            "results": items,
            "count": len(items),
            "keywords": self.keywords,
            "embedding_error": self.embedding_error
        }


def _require_query(query_text: str) -> str:
    if query_text is None or not query_text.strip():
        raise ValueError("query text cannot be empty")
    return query_text


class SemanticSearchService:
    """
    Embeds a query, scans a bounded window of the owner's recent records,
    and ranks them by cosine similarity.

    The scan is an in-memory linear pass over at most scan_limit records, so
    older matches beyond the window are not seen.
    """

    def __init__(self, embeddings: EmbeddingsService, candidate_store: ICandidateStore,
                 scan_limit: int = SEARCH_SCAN_LIMIT):
        self.embeddings = embeddings
        self.candidate_store = candidate_store
        self.scan_limit = scan_limit

    def search(self, owner_id: str, query_text: str, kind: str,
               limit: int = SEARCH_DEFAULT_LIMIT,
               min_similarity: float = SEARCH_MIN_SIMILARITY) -> List[ScoredCandidate]:
        """
        Semantic search for one owner and kind.

        Returns an empty list when the query cannot be embedded; falling back
        to keyword search is the caller's decision.

        Raises:
            ValueError: empty query text
            RetrievalError: the candidate store could not be read
            DimensionMismatch / ModelMismatch: stored vectors are not comparable with the query
        """
        _require_query(query_text)

        embedding = self.embeddings.generate_embedding(query_text)
        if not embedding.ok:
            logger.log_search("semantic", owner_id, kind, 0, 0, status="degraded")
            return []

        return self.search_with_vector(owner_id, embedding.vector, embedding.model, kind, limit, min_similarity)

    def search_with_vector(self, owner_id: str, query_vector: Sequence[float], model: Optional[str],
                           kind: str, limit: int = SEARCH_DEFAULT_LIMIT,
                           min_similarity: float = SEARCH_MIN_SIMILARITY) -> List[ScoredCandidate]:
        """
        Rank the candidate window against an already computed query vector.

        Raises NonFiniteVector before touching the store if the query vector
        holds NaN or infinity.
        """
        query_vector = require_finite(query_vector)

        try:
            candidates = self.candidate_store.fetch_candidates(owner_id, kind, self.scan_limit)
        except CandidateStoreError as e:
            logger.log_search("semantic", owner_id, kind, 0, 0, status="failed")
            raise RetrievalError(f"Failed to load search candidates: {e}") from e

        scored = []
        for candidate in candidates:
            if model and candidate.embedding_model and candidate.embedding_model != model:
                raise ModelMismatch(
                    f"Record {candidate.id} was embedded with {candidate.embedding_model}, query with {model}"
                )

            try:
                vector = parse_stored_vector(candidate.embedding)
                score = cosine_similarity(query_vector, vector)
            except (MalformedStoredVector, ZeroNormVector) as e:
                logger.log_operation("search.skip_candidate", "skipped", {"record_id": candidate.id, "reason": str(e)})
                continue

            scored.append(ScoredCandidate(record=candidate, score=score))

        results = rank_candidates(scored, min_similarity=min_similarity, limit=limit)
        logger.log_search("semantic", owner_id, kind, len(candidates), len(results))
        return results

    def keyword_search(self, owner_id: str, query_text: str, kind: str,
                       limit: int = SEARCH_DEFAULT_LIMIT) -> KeywordSearchResult:
        """
        Match records containing any keyword extracted from the query.

        Raises:
            ValueError: empty query text
            RetrievalError: the candidate store could not be read
        """
        _require_query(query_text)

        keywords = extract_keywords(query_text)
        if not keywords:
            return KeywordSearchResult(keywords=[], records=[])

        try:
            records = self.candidate_store.keyword_candidates(owner_id, kind, keywords, limit)
        except CandidateStoreError as e:
            logger.log_search("keyword", owner_id, kind, 0, 0, status="failed")
            raise RetrievalError(f"Failed to run keyword search: {e}") from e

        logger.log_search("keyword", owner_id, kind, len(records), len(records))
        return KeywordSearchResult(keywords=keywords, records=records)

    def search_with_fallback(self, owner_id: str, query_text: str, kind: str,
                             limit: int = SEARCH_DEFAULT_LIMIT,
                             min_similarity: float = SEARCH_MIN_SIMILARITY) -> SearchOutcome:
        """
        Semantic search when the query embeds, keyword search when it does not.

        The query is embedded once; the two paths stay independent operations.
        """
        _require_query(query_text)

        embedding = self.embeddings.generate_embedding(query_text)
        if embedding.ok:
            results = self.search_with_vector(owner_id, embedding.vector, embedding.model,
                                              kind, limit, min_similarity)
            return SearchOutcome(mode="semantic", results=results)

        keyword_result = self.keyword_search(owner_id, query_text, kind, limit)
        return SearchOutcome(
            mode="keyword",
            records=keyword_result.records,
            keywords=keyword_result.keywords,
            embedding_error=embedding.error
        )
