"""
HTTP API: record ingestion, search modes, reference data and sync endpoints.
"""

import pytest
import requests
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from recall.api.main import (
    app,
    provide_candidate_store,
    provide_embeddings,
    provide_reference_cache,
    provide_reference_service
)
from recall.core import config
from recall.core.cache import InMemoryCacheStore, ReferenceDataCache
from recall.core.dao import CandidateStoreError, SQLiteCandidateStore
from recall.core.db import init_db
from recall.core.reference import ReferenceDataService
from recall.vector.embeddings import DeterministicHashEmbedding, EmbeddingsService

TABLES = {"profiles": "User Profiles", "websites": "Websites"}

PROFILE_RECORD = {"id": "rec42", "fields": {"userId": "user-7", "name": "Ada", "displayName": "Ada L."}}
WEBSITE_RECORD = {"id": "recW1", "fields": {"websiteId": "w1", "name": "Blog", "domain": "blog.example.com",
                                            "userId": "user-7"}}


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = str(tmp_path / "api.db")
    monkeypatch.setenv("DB_PATH", path)
    init_db(path)
    return path


@pytest.fixture
def store(db_path):
    return SQLiteCandidateStore(db_path)


@pytest.fixture
def embeddings():
    return EmbeddingsService(provider=DeterministicHashEmbedding(dimension=64))


@pytest.fixture
def source():
    tables = {"User Profiles": [PROFILE_RECORD], "Websites": [WEBSITE_RECORD]}
    source = MagicMock()
    source.list_records.side_effect = lambda table, **kwargs: tables[table]
    source.get_record.side_effect = lambda table, record_id: PROFILE_RECORD if record_id == "rec42" else None
    source.update_record.return_value = PROFILE_RECORD
    return source


@pytest.fixture
def client(store, embeddings, source):
    cache = ReferenceDataCache(InMemoryCacheStore())
    service = ReferenceDataService(source, cache, TABLES)

    app.dependency_overrides[provide_candidate_store] = lambda: store
    app.dependency_overrides[provide_embeddings] = lambda: embeddings
    app.dependency_overrides[provide_reference_cache] = lambda: cache
    app.dependency_overrides[provide_reference_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def unopenable_db_client(tmp_path, monkeypatch, embeddings, source):
    """Client wired through the real providers with DB_PATH pointing at a directory."""
    monkeypatch.setenv("DB_PATH", str(tmp_path))
    monkeypatch.setenv("CACHE_PROVIDER", "sqlite")
    monkeypatch.setattr(config, "get_reference_source", lambda: source)
    monkeypatch.setattr(config, "get_reference_tables", lambda: TABLES)

    app.dependency_overrides[provide_embeddings] = lambda: embeddings
    yield TestClient(app)
    app.dependency_overrides.clear()


def _failing_embeddings():
    provider = MagicMock()
    provider.model_name = "hash-64"
    provider.embed_text.side_effect = RuntimeError("embedding API down")
    return EmbeddingsService(provider=provider)


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["db_health"] is True
        assert isinstance(data["config_issues"], list)


class TestRecords:

    def test_create_record(self, client):
        response = client.post("/records", json={
            "user_id": "u1",
            "kind": "posts",
            "text": "Machine learning basics",
            "context": {"url": "https://example.com/post/1"}
        })

        assert response.status_code == 201
        data = response.json()
        assert data["owner_id"] == "u1"
        assert data["has_embedding"] is True
        assert data["embedding_model"] == "hash-64"
        assert data["keywords"] == ["machine", "learning", "basics"]
        assert data["context"] == {"url": "https://example.com/post/1"}

    def test_create_record_without_embedding(self, client):
        app.dependency_overrides[provide_embeddings] = _failing_embeddings

        response = client.post("/records", json={"user_id": "u1", "kind": "posts", "text": "Machine learning"})

        assert response.status_code == 201
        assert response.json()["has_embedding"] is False

    @pytest.mark.parametrize("payload", [
        {"text": "   "},
        {"text": "hello", "kind": "videos"},
        {"kind": "posts"},
    ])
    def test_create_record_validation(self, client, payload):
        assert client.post("/records", json=payload).status_code == 422

    def test_recent_and_delete(self, client):
        created = client.post("/records", json={"user_id": "u1", "kind": "memory", "text": "first note"}).json()

        recent = client.get("/records/recent", params={"kind": "memory", "user_id": "u1"}).json()
        assert [r["id"] for r in recent["results"]] == [created["id"]]

        assert client.delete(f"/records/{created['id']}").status_code == 200
        assert client.delete(f"/records/{created['id']}").status_code == 404

    def test_recent_rejects_unknown_kind(self, client):
        assert client.get("/records/recent", params={"kind": "videos"}).status_code == 400


class TestSearch:

    def test_semantic_search_finds_identical_text(self, client):
        created = client.post("/records", json={"user_id": "u1", "kind": "posts",
                                                "text": "Machine learning basics"}).json()
        client.post("/records", json={"user_id": "u1", "kind": "posts", "text": "Sourdough starter tips"})

        response = client.post("/search/semantic", json={"user_id": "u1", "kind": "posts",
                                                         "query": "Machine learning basics"})

        assert response.status_code == 200
        data = response.json()
        assert data["mode"] == "semantic"
        assert data["results"][0]["id"] == created["id"]
        assert data["results"][0]["similarity"] == pytest.approx(1.0)

    def test_semantic_search_falls_back_to_keywords(self, client):
        client.post("/records", json={"user_id": "u1", "kind": "posts", "text": "Notes on machine learning"})
        app.dependency_overrides[provide_embeddings] = _failing_embeddings

        response = client.post("/search/semantic", json={"user_id": "u1", "kind": "posts",
                                                         "query": "machine learning"})

        assert response.status_code == 200
        data = response.json()
        assert data["mode"] == "keyword"
        assert data["count"] == 1
        assert data["keywords"] == ["machine", "learning"]
        assert "embedding API down" in data["embedding_error"]

    def test_keyword_search(self, client):
        client.post("/records", json={"user_id": "u1", "kind": "memory", "text": "Gradient descent explained"})
        client.post("/records", json={"user_id": "u1", "kind": "memory", "text": "Sourdough starter tips"})

        data = client.post("/search/keyword", json={"user_id": "u1", "kind": "memory",
                                                    "query": "gradient"}).json()

        assert data["mode"] == "keyword"
        assert [r["text"] for r in data["results"]] == ["Gradient descent explained"]

    @pytest.mark.parametrize("payload", [
        {"query": ""},
        {"query": "hello", "kind": "videos"},
        {"query": "hello", "limit": 0},
        {"query": "hello", "limit": 101},
    ])
    def test_search_validation(self, client, payload):
        assert client.post("/search/semantic", json=payload).status_code == 422

    def test_store_failure_is_service_unavailable(self, client):
        broken = MagicMock()
        broken.fetch_candidates.side_effect = CandidateStoreError("locked")
        app.dependency_overrides[provide_candidate_store] = lambda: broken

        response = client.post("/search/semantic", json={"query": "hello world"})

        assert response.status_code == 503
        assert response.json()["error_type"] == "retrieval_failed"


class TestReferenceData:

    def test_list_profiles(self, client, source):
        first = client.get("/reference/profiles")
        client.get("/reference/profiles")

        assert first.status_code == 200
        assert first.json()["data"][0]["display_name"] == "Ada L."
        assert source.list_records.call_count == 1

    def test_no_cache_refetches(self, client, source):
        client.get("/reference/profiles")
        client.get("/reference/profiles", params={"no_cache": "true"})

        assert source.list_records.call_count == 2

    def test_profile_by_id_and_user(self, client):
        assert client.get("/reference/profiles/rec42").json()["data"]["user_id"] == "user-7"
        assert client.get("/reference/profiles/user/user-7").json()["data"]["id"] == "rec42"
        assert client.get("/reference/profiles/recMissing").status_code == 404

    def test_update_profile(self, client, source):
        response = client.patch("/reference/profiles/rec42", json={"display_name": "Ada L."})

        assert response.status_code == 200
        source.update_record.assert_called_once_with("User Profiles", "rec42", {"displayName": "Ada L."})

    def test_update_profile_without_fields(self, client):
        assert client.patch("/reference/profiles/rec42", json={}).status_code == 400

    def test_websites(self, client):
        assert client.get("/reference/websites").json()["data"][0]["domain"] == "blog.example.com"
        assert client.get("/reference/websites/w1").json()["data"]["id"] == "recW1"

    def test_source_failure_is_bad_gateway(self, client, source):
        source.list_records.side_effect = requests.ConnectionError("timeout")

        response = client.get("/reference/profiles")

        assert response.status_code == 502
        data = response.json()
        assert data["error_type"] == "reference_data_unavailable"
        assert "Failed to fetch user profiles" in data["message"]


class TestSync:

    def test_status_missing_before_sync(self, client):
        assert client.get("/reference/sync/status").status_code == 404

    def test_sync_then_status(self, client):
        response = client.post("/reference/sync")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["profiles_count"] == 1
        assert data["websites_count"] == 1

        status = client.get("/reference/sync/status")
        assert status.status_code == 200
        assert status.json()["last_sync_at"] == data["last_sync_at"]


class TestUnopenableDatabase:

    def test_reference_data_served_without_cache(self, unopenable_db_client, source):
        response = unopenable_db_client.get("/reference/profiles")

        assert response.status_code == 200
        assert response.json()["data"][0]["id"] == "rec42"
        assert source.list_records.call_count == 1

    def test_search_is_service_unavailable(self, unopenable_db_client):
        response = unopenable_db_client.post("/search/semantic", json={"query": "hello world"})

        assert response.status_code == 503
        assert response.json()["error_type"] == "record_store_unavailable"

    def test_create_record_is_service_unavailable(self, unopenable_db_client):
        response = unopenable_db_client.post("/records", json={"user_id": "u1", "kind": "posts", "text": "hello"})

        assert response.status_code == 503
