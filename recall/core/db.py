"""
SQLite storage for saved records and cache entries.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator
from .config import get_db_path, ensure_db_directory


@contextmanager
def get_db(db_path: str = None) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    path = db_path or get_db_path()
    if path != ":memory:":
        ensure_db_directory(path)
    conn = sqlite3.connect(path)
    try:
        yield conn
    finally:
        conn.close()

def init_db(db_path: str = None):
    """Initialize the database with required tables."""
    with get_db(db_path) as conn:
        cursor = conn.cursor()

        # Saved content: snippets ('memory') and tweets/videos/processed text ('posts')
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS records (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                kind TEXT NOT NULL,
                text TEXT NOT NULL,
                generated_output TEXT,
                context_json TEXT,
                embedding_vector TEXT,   -- JSON array, NULL when generation failed
                embedding_model TEXT,    -- model that produced embedding_vector
                search_keywords TEXT,    -- space-separated keywords
                created_at REAL NOT NULL
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS cache_entries (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                expires_at REAL NOT NULL
            )
        ''')

        # Candidate window scans are per owner and kind, newest first
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_records_user_kind_created ON records(user_id, kind, created_at DESC)')

        conn.commit()

def health_check(db_path: str = None):
    """Check database health."""
    try:
        with get_db(db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            tables = cursor.fetchall()

            # Check if required tables exist
            table_names = [table[0] for table in tables]
            required_tables = ['records', 'cache_entries']

            return all(table in table_names for table in required_tables)
    except Exception:
        return False
