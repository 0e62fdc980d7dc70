"""
Reference-data parsing, the Airtable source client, and the cached reference service.
"""

import json

import pytest
import requests
from unittest.mock import MagicMock, patch

from recall.core.cache import InMemoryCacheStore, ReferenceDataCache, SQLiteCacheStore
from recall.core.reference import (
    AirtableSource,
    ENABLED_FORMULA,
    PROFILE_FIELD_ALIASES,
    ReferenceDataError,
    ReferenceDataService,
    parse_user_profile,
    parse_website,
    profile_updates_to_fields,
    resolve_field
)

TABLES = {"profiles": "User Profiles", "websites": "Websites"}

PROFILE_RECORD = {
    "id": "rec42",
    "fields": {
        "userId": "user-7",
        "name": "Ada",
        "displayName": "Ada L.",
        "email": "ada@example.com",
        "accounts": "twitter, youtube",
        "writingProfile": json.dumps({"tone": "dry"}),
        "brandingColors": json.dumps({"primary": "#000"}),
        "enabled": True
    }
}

WEBSITE_RECORD = {
    "id": "recW1",
    "fields": {
        "websiteId": "site-1",
        "name": "Blog",
        "domain": "blog.example.com",
        "userId": "user-7",
        "socialProfiles": json.dumps([{"network": "twitter", "handle": "@ada"}]),
        "enabled": True
    }
}


def _response(payload=None, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Error")
    return response


@pytest.fixture
def cache():
    return ReferenceDataCache(InMemoryCacheStore(), default_ttl=900)


@pytest.fixture
def source():
    source = MagicMock()
    source.list_records.return_value = [PROFILE_RECORD]
    source.get_record.return_value = PROFILE_RECORD
    source.update_record.return_value = PROFILE_RECORD
    return source


@pytest.fixture
def service(source, cache):
    return ReferenceDataService(source, cache, TABLES)


class TestFieldMapping:

    def test_first_alias_wins(self):
        fields = {"userId": "camel", "user_id": "snake"}
        assert resolve_field(fields, "user_id", PROFILE_FIELD_ALIASES) == "camel"

    def test_later_alias_used_when_first_absent(self):
        assert resolve_field({"user_id": "snake"}, "user_id", PROFILE_FIELD_ALIASES) == "snake"

    def test_empty_values_are_skipped(self):
        fields = {"userId": "", "user_id": "snake"}
        assert resolve_field(fields, "user_id", PROFILE_FIELD_ALIASES) == "snake"
        assert resolve_field({}, "user_id", PROFILE_FIELD_ALIASES, default="none") == "none"

    def test_parse_profile(self):
        profile = parse_user_profile(PROFILE_RECORD)

        assert profile.id == "rec42"
        assert profile.user_id == "user-7"
        assert profile.display_name == "Ada L."
        assert profile.accounts == ["twitter", "youtube"]
        assert profile.writing_profile == {"tone": "dry"}
        assert profile.branding_colors == {"primary": "#000"}
        assert profile.default_language == "english"
        assert profile.enabled is True

    def test_parse_profile_snake_case_source(self):
        profile = parse_user_profile({
            "id": "rec1",
            "fields": {"user_id": "u1", "name": "Bo", "display_name": "Bo", "accounts": ["x"],
                       "writing_profile": {"tone": "warm"}, "default_language": "german", "enabled": False}
        })

        assert profile.user_id == "u1"
        assert profile.accounts == ["x"]
        assert profile.writing_profile == {"tone": "warm"}
        assert profile.default_language == "german"
        assert profile.enabled is False

    def test_malformed_json_field_becomes_none(self):
        profile = parse_user_profile({"id": "rec1", "fields": {"userId": "u1", "name": "Bo",
                                                                "writingProfile": "{not json"}})
        assert profile.writing_profile is None

    def test_parse_website(self):
        website = parse_website(WEBSITE_RECORD)

        assert website.website_id == "site-1"
        assert website.domain == "blog.example.com"
        assert website.social_profiles == [{"network": "twitter", "handle": "@ada"}]
        assert website.enabled is True

    def test_updates_use_primary_source_names(self):
        fields = profile_updates_to_fields({
            "display_name": "New Name",
            "writing_profile": {"tone": "bold"},
            "enabled": False,
            "logo_url": None,
            "user_id": "cannot-change"
        })

        assert fields == {
            "displayName": "New Name",
            "writingProfile": json.dumps({"tone": "bold"}),
            "enabled": False
        }


class TestAirtableSource:

    @patch("recall.core.reference.requests.get")
    def test_list_follows_pagination(self, mock_get):
        mock_get.side_effect = [
            _response({"records": [{"id": "a"}], "offset": "page2"}),
            _response({"records": [{"id": "b"}]}),
        ]
        source = AirtableSource(api_key="key", base_id="appBASE")

        records = source.list_records("User Profiles", filter_formula=ENABLED_FORMULA)

        assert [r["id"] for r in records] == ["a", "b"]
        assert mock_get.call_count == 2
        first_url = mock_get.call_args_list[0][0][0]
        assert first_url == "https://api.airtable.com/v0/appBASE/User%20Profiles"
        first_params = mock_get.call_args_list[0][1]["params"]
        second_params = mock_get.call_args_list[1][1]["params"]
        assert "offset" not in first_params
        assert first_params["filterByFormula"] == ENABLED_FORMULA
        assert second_params["offset"] == "page2"
        assert mock_get.call_args_list[0][1]["headers"]["Authorization"] == "Bearer key"

    @patch("recall.core.reference.requests.get")
    def test_max_records_stops_paging(self, mock_get):
        mock_get.return_value = _response({"records": [{"id": "a"}, {"id": "b"}], "offset": "more"})
        source = AirtableSource(api_key="key", base_id="appBASE")

        records = source.list_records("Websites", max_records=1)

        assert [r["id"] for r in records] == ["a"]
        assert mock_get.call_count == 1

    @patch("recall.core.reference.requests.get")
    def test_get_record_not_found(self, mock_get):
        mock_get.return_value = _response(status_code=404)
        source = AirtableSource(api_key="key", base_id="appBASE")

        assert source.get_record("User Profiles", "recMissing") is None

    @patch("recall.core.reference.requests.get")
    def test_http_error_raises(self, mock_get):
        mock_get.return_value = _response(status_code=500)
        source = AirtableSource(api_key="key", base_id="appBASE")

        with pytest.raises(requests.HTTPError):
            source.list_records("User Profiles")

    @patch("recall.core.reference.requests.patch")
    def test_update_sends_fields(self, mock_patch):
        mock_patch.return_value = _response(PROFILE_RECORD)
        source = AirtableSource(api_key="key", base_id="appBASE")

        source.update_record("User Profiles", "rec42", {"displayName": "Ada"})

        args, kwargs = mock_patch.call_args
        assert args[0].endswith("/appBASE/User%20Profiles/rec42")
        assert kwargs["json"] == {"fields": {"displayName": "Ada"}}

    def test_missing_base_id(self):
        with pytest.raises(ReferenceDataError, match="base ID"):
            AirtableSource(api_key="key", base_id="").list_records("User Profiles")


class TestReferenceDataService:

    def test_list_profiles_cached(self, service, source):
        first = service.list_user_profiles()
        second = service.list_user_profiles()

        assert [p.id for p in first] == ["rec42"]
        assert first == second
        source.list_records.assert_called_once_with("User Profiles", filter_formula=ENABLED_FORMULA)

    def test_bypass_cache_refetches(self, service, source):
        service.list_user_profiles()
        service.list_user_profiles(use_cache=False)

        assert source.list_records.call_count == 2

    def test_unopenable_cache_still_serves_source(self, source, tmp_path):
        cache = ReferenceDataCache(SQLiteCacheStore(str(tmp_path)))
        service = ReferenceDataService(source, cache, TABLES)

        profiles = service.list_user_profiles()

        assert [p.id for p in profiles] == ["rec42"]
        assert [p.id for p in service.list_user_profiles()] == ["rec42"]
        assert source.list_records.call_count == 2

    def test_source_failure_raises_reference_error(self, service, source):
        source.list_records.side_effect = requests.ConnectionError("timeout")

        with pytest.raises(ReferenceDataError, match="Failed to fetch user profiles"):
            service.list_user_profiles()

    def test_failure_is_not_cached(self, service, source):
        source.list_records.side_effect = [requests.ConnectionError("timeout"), [PROFILE_RECORD]]

        with pytest.raises(ReferenceDataError):
            service.list_user_profiles()
        assert [p.id for p in service.list_user_profiles()] == ["rec42"]

    def test_get_profile(self, service, source):
        profile = service.get_user_profile("rec42")
        service.get_user_profile("rec42")

        assert profile.user_id == "user-7"
        source.get_record.assert_called_once_with("User Profiles", "rec42")

    def test_missing_profile_is_none_and_uncached(self, service, source):
        source.get_record.return_value = None

        assert service.get_user_profile("recMissing") is None
        assert service.get_user_profile("recMissing") is None
        assert source.get_record.call_count == 2

    def test_profile_by_user_id(self, service, source):
        profile = service.get_user_profile_by_user_id("user-7")

        assert profile.id == "rec42"
        source.list_records.assert_called_once_with(
            "User Profiles", filter_formula='{userId} = "user-7"', max_records=1)

    def test_profile_by_user_id_escapes_quotes(self, service, source):
        service.get_user_profile_by_user_id('evil" OR TRUE()')

        formula = source.list_records.call_args[1]["filter_formula"]
        assert formula == '{userId} = "evil\\" OR TRUE()"'

    def test_update_invalidates_member_and_collection(self, service, source, cache):
        service.list_user_profiles()
        service.get_user_profile("rec42")
        service.get_user_profile_by_user_id("user-7")

        profile = service.update_user_profile("rec42", {"display_name": "Ada L."})

        assert profile.id == "rec42"
        source.update_record.assert_called_once_with("User Profiles", "rec42", {"displayName": "Ada L."})
        assert cache.get("profile:rec42") is None
        assert cache.get("profile:all") is None
        assert cache.get("profile:user:user-7") is None

    def test_update_failure(self, service, source, cache):
        service.list_user_profiles()
        source.update_record.side_effect = requests.HTTPError("422 Client Error")

        with pytest.raises(ReferenceDataError, match="Failed to update profile"):
            service.update_user_profile("rec42", {"name": "X"})
        assert cache.get("profile:all") is not None

    def test_websites(self, service, source):
        source.list_records.return_value = [WEBSITE_RECORD]

        websites = service.list_websites()
        website = service.get_website("site-1")

        assert [w.domain for w in websites] == ["blog.example.com"]
        assert website.id == "recW1"
        source.list_records.assert_called_with(
            "Websites", filter_formula='{websiteId} = "site-1"', max_records=1)

    def test_health_check(self, service, source):
        assert service.health_check() is True

        source.list_records.side_effect = requests.ConnectionError("down")
        assert service.health_check() is False
