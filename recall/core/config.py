"""
Configuration for the recall engine.
Values come from the environment (and a local .env file when present).
"""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Database path configuration
DB_PATH = os.getenv("DB_PATH", "./data/recall.db")

DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Embedding provider configuration
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "openrouter")  # openrouter|hash|local
EMBED_MODEL_NAME = os.getenv("EMBED_MODEL_NAME", "openai/text-embedding-3-small")
EMBED_API_URL = os.getenv("EMBED_API_URL", "https://openrouter.ai/api/v1/embeddings")
EMBED_APP_REFERER = os.getenv("EMBED_APP_REFERER", "")
EMBED_APP_TITLE = os.getenv("EMBED_APP_TITLE", "Universal Text Processor")
EMBED_MAX_CHARS = int(os.getenv("EMBED_MAX_CHARS", "8000"))
EMBED_HASH_DIM = int(os.getenv("EMBED_HASH_DIM", "384"))

# Search configuration
SEARCH_SCAN_LIMIT = int(os.getenv("SEARCH_SCAN_LIMIT", "100"))
SEARCH_DEFAULT_LIMIT = int(os.getenv("SEARCH_DEFAULT_LIMIT", "10"))
SEARCH_MIN_SIMILARITY = float(os.getenv("SEARCH_MIN_SIMILARITY", "0.7"))
SEARCH_KINDS = ("posts", "memory")

# Reference-data cache configuration
CACHE_PROVIDER = os.getenv("CACHE_PROVIDER", "sqlite")  # sqlite|memory
CACHE_NAMESPACE = os.getenv("CACHE_NAMESPACE", "reference:")
CACHE_TTL_SEC = int(os.getenv("CACHE_TTL_SEC", "900"))  # 15 minutes
SYNC_STATUS_KEY = "sync:status"
SYNC_STATUS_TTL_SEC = int(os.getenv("SYNC_STATUS_TTL_SEC", "3600"))

# Reference-data source (Airtable)
AIRTABLE_API_URL = os.getenv("AIRTABLE_API_URL", "https://api.airtable.com/v0")
AIRTABLE_BASE_ID = os.getenv("AIRTABLE_BASE_ID", "")
AIRTABLE_PROFILES_TABLE = os.getenv("AIRTABLE_PROFILES_TABLE", "User Profiles")
AIRTABLE_WEBSITES_TABLE = os.getenv("AIRTABLE_WEBSITES_TABLE", "Websites")

# Version string
VERSION = "1.0.0"


def get_db_path() -> str:
    """Database path, read at call time so tests can point it elsewhere."""
    return os.getenv("DB_PATH", DB_PATH)


def get_openrouter_api_key():
    return os.getenv("OPENROUTER_API_KEY")


def get_airtable_api_key():
    return os.getenv("AIRTABLE_API_KEY")


def get_airtable_base_id():
    return os.getenv("AIRTABLE_BASE_ID", AIRTABLE_BASE_ID)


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def ensure_db_directory(db_path: str = None):
    """Ensure the database directory exists."""
    Path(db_path or get_db_path()).parent.mkdir(parents=True, exist_ok=True)


def get_embedding_provider():
    """Get configured embedding provider implementation."""
    provider = os.getenv("EMBED_PROVIDER", EMBED_PROVIDER)

    if provider == "hash":
        from recall.vector.embeddings import DeterministicHashEmbedding
        return DeterministicHashEmbedding(dimension=EMBED_HASH_DIM)
    elif provider == "local":
        from recall.vector.embeddings import SentenceTransformerEmbedding
        return SentenceTransformerEmbedding(os.getenv("EMBED_MODEL_NAME", "all-mpnet-base-v2"))
    else:
        from recall.vector.embeddings import OpenRouterEmbedding
        return OpenRouterEmbedding(
            api_key=get_openrouter_api_key() or "",
            model_name=os.getenv("EMBED_MODEL_NAME", EMBED_MODEL_NAME),
            api_url=EMBED_API_URL,
            referer=EMBED_APP_REFERER,
            title=EMBED_APP_TITLE
        )


def get_cache_store():
    """Get configured cache store implementation."""
    provider = os.getenv("CACHE_PROVIDER", CACHE_PROVIDER)

    if provider == "memory":
        from recall.core.cache import InMemoryCacheStore
        return InMemoryCacheStore()
    else:
        from recall.core.cache import SQLiteCacheStore
        return SQLiteCacheStore(get_db_path())


def get_candidate_store():
    """Get the SQLite-backed candidate store."""
    from recall.core.dao import SQLiteCandidateStore
    return SQLiteCandidateStore(get_db_path())


def get_reference_source():
    """Get the Airtable reference-data source."""
    from recall.core.reference import AirtableSource
    return AirtableSource(
        api_key=get_airtable_api_key() or "",
        base_id=get_airtable_base_id(),
        api_url=AIRTABLE_API_URL
    )


def get_reference_tables():
    """Table names for each reference-data kind."""
    return {
        "profiles": os.getenv("AIRTABLE_PROFILES_TABLE", AIRTABLE_PROFILES_TABLE),
        "websites": os.getenv("AIRTABLE_WEBSITES_TABLE", AIRTABLE_WEBSITES_TABLE)
    }


def validate_config():
    """Validate configuration and return any issues."""
    issues = []
    provider = os.getenv("EMBED_PROVIDER", EMBED_PROVIDER)

    if provider not in ["openrouter", "hash", "local"]:
        issues.append(f"Invalid EMBED_PROVIDER: {provider}")

    if provider == "openrouter" and not get_openrouter_api_key():
        issues.append("EMBED_PROVIDER=openrouter requires OPENROUTER_API_KEY")

    cache_provider = os.getenv("CACHE_PROVIDER", CACHE_PROVIDER)
    if cache_provider not in ["sqlite", "memory"]:
        issues.append(f"Invalid CACHE_PROVIDER: {cache_provider}")

    if not get_airtable_base_id():
        issues.append("AIRTABLE_BASE_ID is not set; reference data cannot be fetched")

    if EMBED_MAX_CHARS < 1:
        issues.append("EMBED_MAX_CHARS must be >= 1")

    if SEARCH_SCAN_LIMIT < 1:
        issues.append("SEARCH_SCAN_LIMIT must be >= 1")

    if CACHE_TTL_SEC < 0 or SYNC_STATUS_TTL_SEC < 0:
        issues.append("Cache TTLs must be >= 0")

    return issues
