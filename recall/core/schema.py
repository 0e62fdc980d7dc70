"""
Reference-data records mirrored from the external source, and the sync status summary.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class UserProfile:
    id: str
    user_id: str
    name: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    accounts: List[str] = field(default_factory=list)
    writing_profile: Optional[Dict[str, Any]] = None
    branding_colors: Optional[Dict[str, Any]] = None
    logo_url: Optional[str] = None
    default_language: str = "english"
    enabled: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        return cls(**data)


@dataclass
class Website:
    id: str
    website_id: str
    name: str
    domain: str
    user_id: str
    user_profile_id: Optional[str] = None
    social_profiles: List[Dict[str, Any]] = field(default_factory=list)
    scheduling_webhook: Optional[str] = None
    enabled: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Website":
        return cls(**data)


@dataclass
class SyncStatus:
    last_sync_at: float  # epoch seconds
    profiles_count: int
    websites_count: int
    success: bool
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncStatus":
        return cls(
            last_sync_at=data["last_sync_at"],
            profiles_count=data.get("profiles_count", 0),
            websites_count=data.get("websites_count", 0),
            success=bool(data.get("success", False)),
            errors=list(data.get("errors") or [])
        )
