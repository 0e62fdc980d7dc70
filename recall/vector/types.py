"""
Record and result types shared by the embedding, ranking and search layers.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union


EmbeddingVector = Tuple[float, ...]


@dataclass(frozen=True)
class EmbeddingResult:
    """Outcome of one embedding request: a vector, or the reason there is none."""

    vector: Optional[EmbeddingVector]
    """The embedding, or None when unavailable"""

    model: str
    """Identity of the model that produced (or would have produced) the vector"""

    error: Optional[str] = None
    """Failure reason; None on success"""

    @property
    def ok(self) -> bool:
        return self.vector is not None and self.error is None

    @property
    def dimension(self) -> int:
        return len(self.vector) if self.vector is not None else 0


@dataclass
class CandidateRecord:
    """A saved record as read back from the candidate store."""

    id: str
    owner_id: str
    kind: str
    text: str
    created_at: float
    generated_output: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)

    embedding: Optional[Union[str, Sequence[float]]] = None
    """Stored vector in its persisted form (JSON text or a sequence)"""

    embedding_model: Optional[str] = None
    keywords: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view without the raw vector."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "kind": self.kind,
            "text": self.text,
            "generated_output": self.generated_output,
            "context": self.context,
            "embedding_model": self.embedding_model,
            "keywords": list(self.keywords),
            "created_at": self.created_at,
            "has_embedding": self.embedding is not None
        }


@dataclass
class ScoredCandidate:
    """A candidate record paired with its similarity to the query."""

    record: CandidateRecord
    score: float
    """Cosine similarity in [-1, 1]"""

    def to_dict(self) -> Dict[str, Any]:
        data = self.record.to_dict()
        data["similarity"] = self.score
        return data
