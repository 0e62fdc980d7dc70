"""
Candidate store: read access to saved records for search, plus the ingestion
helper that attaches embeddings and keywords when a record is saved.
"""

import json
import sqlite3
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from .db import get_db, init_db
from ..vector.types import CandidateRecord
from ..vector.keywords import extract_keywords, keywords_to_text, parse_stored_keywords
from util.logging import logger


class CandidateStoreError(Exception):
    """The backing store could not be read or written."""
    pass


class ICandidateStore(ABC):
    """Abstract interface for the record store consumed by search."""

    @abstractmethod
    def fetch_candidates(self, owner_id: str, kind: str, limit: int) -> List[CandidateRecord]:
        """Records of owner_id and kind that have an embedding, newest first, at most limit."""
        pass

    @abstractmethod
    def keyword_candidates(self, owner_id: str, kind: str, keywords: Sequence[str], limit: int) -> List[CandidateRecord]:
        """Records of owner_id and kind whose text contains any keyword, newest first."""
        pass


_RECORD_COLUMNS = (
    "id, user_id, kind, text, generated_output, context_json, "
    "embedding_vector, embedding_model, search_keywords, created_at"
)


def _row_to_record(row) -> CandidateRecord:
    (record_id, user_id, kind, text, generated_output, context_json,
     embedding_vector, embedding_model, search_keywords, created_at) = row

    context = {}
    if context_json:
        try:
            context = json.loads(context_json)
        except ValueError:
            logger.warning(f"Ignoring unreadable context_json on record {record_id}")

    return CandidateRecord(
        id=record_id,
        owner_id=user_id,
        kind=kind,
        text=text,
        generated_output=generated_output,
        context=context if isinstance(context, dict) else {},
        embedding=embedding_vector,
        embedding_model=embedding_model,
        keywords=parse_stored_keywords(search_keywords),
        created_at=created_at
    )


class SQLiteCandidateStore(ICandidateStore):
    """Candidate store over the SQLite records table."""

    def __init__(self, db_path: str = None):
        self.db_path = db_path
        try:
            init_db(db_path)
        except (sqlite3.Error, OSError) as e:
            raise CandidateStoreError(f"Failed to open record store: {e}") from e

    def _query(self, sql: str, params: tuple) -> List[CandidateRecord]:
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute(sql, params)
                return [_row_to_record(row) for row in cursor.fetchall()]
        except (sqlite3.Error, OSError) as e:
            raise CandidateStoreError(f"Failed to read records: {e}") from e

    def fetch_candidates(self, owner_id: str, kind: str, limit: int) -> List[CandidateRecord]:
        return self._query(
            f"""SELECT {_RECORD_COLUMNS} FROM records
                WHERE user_id = ? AND kind = ? AND embedding_vector IS NOT NULL
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?""",
            (owner_id, kind, limit)
        )

    def keyword_candidates(self, owner_id: str, kind: str, keywords: Sequence[str], limit: int) -> List[CandidateRecord]:
        if not keywords:
            return []

        like_conditions = " OR ".join(
            "(text LIKE ? ESCAPE '\\' OR generated_output LIKE ? ESCAPE '\\')" for _ in keywords
        )
        like_params = []
        for keyword in keywords:
            escaped = keyword.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            pattern = f"%{escaped}%"
            like_params.extend([pattern, pattern])

        return self._query(
            f"""SELECT {_RECORD_COLUMNS} FROM records
                WHERE user_id = ? AND kind = ? AND ({like_conditions})
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?""",
            (owner_id, kind, *like_params, limit)
        )

    def list_recent(self, owner_id: Optional[str], kind: str, limit: int = 20, offset: int = 0) -> List[CandidateRecord]:
        """Newest records of a kind, optionally restricted to one owner."""
        if owner_id:
            return self._query(
                f"""SELECT {_RECORD_COLUMNS} FROM records WHERE user_id = ? AND kind = ?
                    ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?""",
                (owner_id, kind, limit, offset)
            )
        return self._query(
            f"""SELECT {_RECORD_COLUMNS} FROM records WHERE kind = ?
                ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?""",
            (kind, limit, offset)
        )

    def get_record(self, record_id: str) -> Optional[CandidateRecord]:
        records = self._query(f"SELECT {_RECORD_COLUMNS} FROM records WHERE id = ?", (record_id,))
        return records[0] if records else None

    def insert_record(self, record: CandidateRecord) -> None:
        """Persist a record as given; the embedding is stored as JSON text."""
        embedding = record.embedding
        if embedding is not None and not isinstance(embedding, str):
            embedding = json.dumps([float(v) for v in embedding])

        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    f"INSERT INTO records ({_RECORD_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        record.id,
                        record.owner_id,
                        record.kind,
                        record.text,
                        record.generated_output,
                        json.dumps(record.context) if record.context else None,
                        embedding,
                        record.embedding_model if embedding is not None else None,
                        keywords_to_text(record.keywords) or None,
                        record.created_at
                    )
                )
                conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise CandidateStoreError(f"Failed to save record {record.id}: {e}") from e

    def set_embedding(self, record_id: str, embedding: Sequence[float], model: str) -> bool:
        """Attach an embedding to a record that has none. Returns True if updated."""
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "UPDATE records SET embedding_vector = ?, embedding_model = ? WHERE id = ? AND embedding_vector IS NULL",
                    (json.dumps([float(v) for v in embedding]), model, record_id)
                )
                conn.commit()
                return cursor.rowcount > 0
        except (sqlite3.Error, OSError) as e:
            raise CandidateStoreError(f"Failed to update record {record_id}: {e}") from e

    def list_missing_embeddings(self, limit: int = 500) -> List[CandidateRecord]:
        """Records saved without an embedding, oldest first."""
        return self._query(
            f"""SELECT {_RECORD_COLUMNS} FROM records WHERE embedding_vector IS NULL
                ORDER BY created_at ASC LIMIT ?""",
            (limit,)
        )

    def delete_record(self, record_id: str) -> bool:
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("DELETE FROM records WHERE id = ?", (record_id,))
                conn.commit()
                return cursor.rowcount > 0
        except (sqlite3.Error, OSError) as e:
            raise CandidateStoreError(f"Failed to delete record {record_id}: {e}") from e


def embedding_source_text(text: str, generated_output: Optional[str] = None) -> str:
    """Text a record is embedded and keyworded from."""
    if generated_output:
        return f"{text}\n\n{generated_output}"
    return text


def save_record(store: SQLiteCandidateStore, embeddings, owner_id: str, kind: str, text: str,
                generated_output: Optional[str] = None, context: Optional[Dict[str, Any]] = None,
                record_id: Optional[str] = None, created_at: Optional[float] = None) -> CandidateRecord:
    """
    Save a record with its embedding and keywords attached.

    Embedding is best effort: when generation fails the record is stored with
    a null vector and only keyword search will find it.
    """
    if not text or not text.strip():
        raise ValueError("text cannot be empty")

    source_text = embedding_source_text(text, generated_output)
    result = embeddings.generate_embedding(source_text)
    if not result.ok:
        logger.warning(f"Saving {kind} record for {owner_id} without embedding: {result.error}")

    record = CandidateRecord(
        id=record_id or str(uuid.uuid4()),
        owner_id=owner_id,
        kind=kind,
        text=text,
        generated_output=generated_output,
        context=context or {},
        embedding=list(result.vector) if result.ok else None,
        embedding_model=result.model if result.ok else None,
        keywords=extract_keywords(source_text),
        created_at=created_at if created_at is not None else time.time()
    )
    store.insert_record(record)

    logger.log_operation("records.save", "success", {
        "record_id": record.id,
        "kind": kind,
        "has_embedding": result.ok,
        "keywords": len(record.keywords)
    })
    return record
