"""
Reference data (user profiles, websites) mirrored from an external tabular
source through the read-through cache.

Source records use inconsistent field casing, so each canonical field maps
to an ordered list of accepted source names.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import requests

from .cache import ReferenceDataCache, collection_key, item_key
from .schema import UserProfile, Website
from util.logging import logger

PROFILE_KIND = "profile"
WEBSITE_KIND = "website"

ENABLED_FORMULA = "{enabled} = TRUE()"

# canonical field -> accepted source field names, in priority order
PROFILE_FIELD_ALIASES: Dict[str, Sequence[str]] = {
    "user_id": ("userId", "user_id"),
    "name": ("name",),
    "display_name": ("displayName", "display_name"),
    "email": ("email",),
    "accounts": ("accounts",),
    "writing_profile": ("writingProfile", "writing_profile"),
    "branding_colors": ("brandingColors", "branding_colors"),
    "logo_url": ("logoUrl", "logo_url"),
    "default_language": ("defaultLanguage", "default_language"),
    "enabled": ("enabled",),
    "created_at": ("createdAt", "created_at"),
    "updated_at": ("updatedAt", "updated_at"),
}

WEBSITE_FIELD_ALIASES: Dict[str, Sequence[str]] = {
    "website_id": ("websiteId", "website_id"),
    "name": ("name",),
    "domain": ("domain",),
    "user_id": ("userId", "user_id"),
    "user_profile_id": ("userProfileId", "user_profile_id"),
    "social_profiles": ("socialProfiles", "social_profiles"),
    "scheduling_webhook": ("schedulingWebhook", "scheduling_webhook"),
    "enabled": ("enabled",),
    "created_at": ("createdAt", "created_at"),
    "updated_at": ("updatedAt", "updated_at"),
}

# Profile fields the source stores as JSON text
PROFILE_JSON_FIELDS = ("writing_profile", "branding_colors")


class ReferenceDataError(Exception):
    """Reference data could not be fetched or written."""
    pass


def resolve_field(fields: Dict[str, Any], canonical: str, aliases: Dict[str, Sequence[str]],
                  default: Any = None) -> Any:
    """First present, non-empty value among the canonical field's aliases."""
    for name in aliases.get(canonical, (canonical,)):
        value = fields.get(name)
        if value is not None and value != "":
            return value
    return default


def _decode_json_field(value: Any, field_name: str, record_id: str) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError:
        logger.warning(f"Ignoring malformed JSON in {field_name} of record {record_id}")
        return None


def _parse_accounts(value: Any) -> List[str]:
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        return [account.strip() for account in value.split(",") if account.strip()]
    return []


def parse_user_profile(record: Dict[str, Any]) -> UserProfile:
    """Build a UserProfile from a raw source record (or its bare fields)."""
    fields = record.get("fields") or record
    record_id = record.get("id", "")

    def get(canonical, default=None):
        return resolve_field(fields, canonical, PROFILE_FIELD_ALIASES, default)

    writing_profile = _decode_json_field(get("writing_profile"), "writing_profile", record_id)
    branding_colors = _decode_json_field(get("branding_colors"), "branding_colors", record_id)

    return UserProfile(
        id=record_id,
        user_id=get("user_id", ""),
        name=get("name", ""),
        display_name=get("display_name"),
        email=get("email"),
        accounts=_parse_accounts(get("accounts")),
        writing_profile=writing_profile if isinstance(writing_profile, dict) else None,
        branding_colors=branding_colors if isinstance(branding_colors, dict) else None,
        logo_url=get("logo_url"),
        default_language=get("default_language", "english"),
        enabled=get("enabled", True) is not False,
        created_at=get("created_at"),
        updated_at=get("updated_at")
    )


def parse_website(record: Dict[str, Any]) -> Website:
    """Build a Website from a raw source record (or its bare fields)."""
    fields = record.get("fields") or record
    record_id = record.get("id", "")

    def get(canonical, default=None):
        return resolve_field(fields, canonical, WEBSITE_FIELD_ALIASES, default)

    social_profiles = _decode_json_field(get("social_profiles", []), "social_profiles", record_id)

    return Website(
        id=record_id,
        website_id=get("website_id", ""),
        name=get("name", ""),
        domain=get("domain", ""),
        user_id=get("user_id", ""),
        user_profile_id=get("user_profile_id"),
        social_profiles=social_profiles if isinstance(social_profiles, list) else [],
        scheduling_webhook=get("scheduling_webhook"),
        enabled=get("enabled", True) is not False,
        created_at=get("created_at"),
        updated_at=get("updated_at")
    )


def profile_updates_to_fields(updates: Dict[str, Any]) -> Dict[str, Any]:
    """Translate canonical profile updates into source field names."""
    fields = {}
    for canonical, value in updates.items():
        if canonical not in PROFILE_FIELD_ALIASES or canonical in ("user_id", "created_at", "updated_at"):
            continue
        if canonical == "enabled":
            if value is not None:
                fields["enabled"] = bool(value)
            continue
        if not value:
            continue
        if canonical in PROFILE_JSON_FIELDS:
            value = json.dumps(value)
        fields[PROFILE_FIELD_ALIASES[canonical][0]] = value
    return fields


def _formula_string(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class IReferenceDataSource(ABC):
    """Abstract interface for the external tabular record API."""

    @abstractmethod
    def list_records(self, table: str, filter_formula: Optional[str] = None,
                     max_records: Optional[int] = None) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def get_record(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """The record, or None if the source has no such record."""
        pass

    @abstractmethod
    def update_record(self, table: str, record_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        pass


class AirtableSource(IReferenceDataSource):
    """Airtable REST API client."""

    def __init__(self, api_key: str, base_id: str, api_url: str = "https://api.airtable.com/v0",
                 page_size: int = 100):
        self.api_key = api_key
        self.base_id = base_id
        self.api_url = api_url.rstrip("/")
        self.page_size = page_size

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

    def _table_url(self, table: str) -> str:
        if not self.base_id:
            raise ReferenceDataError("Airtable base ID not configured")
        return f"{self.api_url}/{self.base_id}/{quote(table, safe='')}"

    def list_records(self, table: str, filter_formula: Optional[str] = None,
                     max_records: Optional[int] = None) -> List[Dict[str, Any]]:
        url = self._table_url(table)
        params: Dict[str, Any] = {"pageSize": self.page_size}
        if filter_formula:
            params["filterByFormula"] = filter_formula
        if max_records:
            params["maxRecords"] = max_records

        records = []
        offset = None
        while True:
            page_params = dict(params, offset=offset) if offset else dict(params)
            response = requests.get(url, headers=self._headers(), params=page_params)
            response.raise_for_status()
            data = response.json()
            records.extend(data.get("records", []))

            offset = data.get("offset")
            if not offset or (max_records and len(records) >= max_records):
                break

        return records[:max_records] if max_records else records

    def get_record(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        response = requests.get(f"{self._table_url(table)}/{quote(record_id, safe='')}", headers=self._headers())
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    def update_record(self, table: str, record_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        response = requests.patch(
            f"{self._table_url(table)}/{quote(record_id, safe='')}",
            headers=self._headers(),
            json={"fields": fields}
        )
        response.raise_for_status()
        return response.json()


class ReferenceDataService:
    """
    Profiles and websites, served from the cache and fetched from the source on miss.

    Source failures raise ReferenceDataError: there is no safe default for
    reference data, so stale or empty results are never substituted.
    """

    def __init__(self, source: IReferenceDataSource, cache: ReferenceDataCache,
                 tables: Optional[Dict[str, str]] = None):
        self.source = source
        self.cache = cache
        self.tables = tables or {"profiles": "User Profiles", "websites": "Websites"}

    def _fetch(self, description: str, func):
        try:
            return func()
        except Exception as e:
            logger.error(f"Error fetching {description}: {e}")
            raise ReferenceDataError(f"Failed to fetch {description}: {e}") from e

    def list_user_profiles(self, use_cache: bool = True) -> List[UserProfile]:
        def fetch():
            logger.info("Fetching user profiles from source")
            records = self._fetch("user profiles", lambda: self.source.list_records(
                self.tables["profiles"], filter_formula=ENABLED_FORMULA))
            return [parse_user_profile(r).to_dict() for r in records]

        data = self.cache.read_through(collection_key(PROFILE_KIND), fetch, use_cache=use_cache)
        return [UserProfile.from_dict(d) for d in data]

    def get_user_profile(self, profile_id: str, use_cache: bool = True) -> Optional[UserProfile]:
        def fetch():
            record = self._fetch(f"profile {profile_id}", lambda: self.source.get_record(
                self.tables["profiles"], profile_id))
            return parse_user_profile(record).to_dict() if record else None

        data = self.cache.read_through(item_key(PROFILE_KIND, profile_id), fetch, use_cache=use_cache)
        return UserProfile.from_dict(data) if data else None

    def get_user_profile_by_user_id(self, user_id: str, use_cache: bool = True) -> Optional[UserProfile]:
        def fetch():
            records = self._fetch(f"profile for user {user_id}", lambda: self.source.list_records(
                self.tables["profiles"], filter_formula=f"{{userId}} = {_formula_string(user_id)}", max_records=1))
            return parse_user_profile(records[0]).to_dict() if records else None

        data = self.cache.read_through(item_key(PROFILE_KIND, f"user:{user_id}"), fetch, use_cache=use_cache)
        return UserProfile.from_dict(data) if data else None

    def update_user_profile(self, profile_id: str, updates: Dict[str, Any]) -> UserProfile:
        """Write profile changes to the source and drop the affected cache entries."""
        fields = profile_updates_to_fields(updates)
        logger.info(f"Updating profile {profile_id} ({', '.join(sorted(fields)) or 'no fields'})")

        try:
            record = self.source.update_record(self.tables["profiles"], profile_id, fields)
        except Exception as e:
            logger.error(f"Error updating profile {profile_id}: {e}")
            raise ReferenceDataError(f"Failed to update profile: {e}") from e

        profile = parse_user_profile(record)

        # Member invalidation also drops the profile collection
        self.cache.invalidate(item_key(PROFILE_KIND, profile_id))
        if profile.user_id:
            self.cache.invalidate(item_key(PROFILE_KIND, f"user:{profile.user_id}"))

        return profile

    def list_websites(self, use_cache: bool = True) -> List[Website]:
        def fetch():
            logger.info("Fetching websites from source")
            records = self._fetch("websites", lambda: self.source.list_records(
                self.tables["websites"], filter_formula=ENABLED_FORMULA))
            return [parse_website(r).to_dict() for r in records]

        data = self.cache.read_through(collection_key(WEBSITE_KIND), fetch, use_cache=use_cache)
        return [Website.from_dict(d) for d in data]

    def get_website(self, website_id: str, use_cache: bool = True) -> Optional[Website]:
        def fetch():
            records = self._fetch(f"website {website_id}", lambda: self.source.list_records(
                self.tables["websites"], filter_formula=f"{{websiteId}} = {_formula_string(website_id)}", max_records=1))
            return parse_website(records[0]).to_dict() if records else None

        data = self.cache.read_through(item_key(WEBSITE_KIND, website_id), fetch, use_cache=use_cache)
        return Website.from_dict(data) if data else None

    def health_check(self) -> bool:
        """Whether the source answers a one-record listing."""
        try:
            self.source.list_records(self.tables["profiles"], max_records=1)
            return True
        except Exception as e:
            logger.error(f"Reference data health check failed: {e}")
            return False
