"""
Typed views over the profile JSON columns and the public profile projection.

The profile service stores bio, social links and public profile settings as
free-form JSON (camelCase keys from the web client). These models give them
an explicit shape so the projection in the resolver is exhaustive.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Bio(BaseModel):
    """Structured bio; a bare string in the store becomes `about`."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    about: Optional[str] = None
    location: Optional[str] = None
    from_: Optional[str] = Field(default=None, alias="from")

    @classmethod
    def parse(cls, raw: Any) -> Optional["Bio"]:
        if raw is None:
            return None
        if isinstance(raw, str):
            return cls(about=raw) if raw.strip() else None
        if isinstance(raw, dict):
            return cls.model_validate(raw)
        return None


class AllowedFields(BaseModel):
    """Per-field visibility flags; anything not flagged is hidden."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    bio: bool = False
    company: bool = False
    job_title: bool = Field(default=False, alias="jobTitle")
    profile_image: bool = Field(default=False, alias="profileImage")
    interests: bool = False
    social_links: bool = Field(default=False, alias="socialLinks")
    location: bool = False


DEFAULT_ALLOWED_FIELDS = AllowedFields(
    bio=True,
    company=True,
    job_title=True,
    profile_image=True,
    interests=True,
    social_links=True,
    location=True,
)


class PublicProfileSettings(BaseModel):
    """Owner-controlled gate for the anonymous preview."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    enabled: bool = False
    allowed_fields: AllowedFields = Field(default_factory=AllowedFields, alias="allowedFields")

    @classmethod
    def parse(cls, raw: Any) -> "PublicProfileSettings":
        # Profiles created before the setting existed are public with defaults
        if raw is None:
            return cls(enabled=True, allowed_fields=DEFAULT_ALLOWED_FIELDS)
        if not isinstance(raw, dict):
            return cls(enabled=False)
        return cls.model_validate(raw)


class PublicProfileView(BaseModel):
    """Redacted profile shown to anonymous viewers.

    Only fields that were explicitly set are serialized, so hidden fields are
    absent from the payload rather than null.
    """
    model_config = ConfigDict(populate_by_name=True)

    name: str
    connection_code: Optional[str] = None
    public_profile_url: Optional[str] = None
    bio: Optional[Bio] = None
    company: Optional[str] = None
    job_title: Optional[str] = None
    profile_image: Optional[str] = None
    interests: Optional[List[str]] = None
    social_links: Optional[Dict[str, str]] = None
    location: Optional[str] = None
    preview: Optional[bool] = None

    def to_public_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_unset=True, by_alias=True)


class ScanLocation(BaseModel):
    """Client-supplied approximate location of a scan or submission."""
    model_config = ConfigDict(extra="ignore")

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    name: Optional[str] = Field(None, max_length=200)
    address: Optional[str] = Field(None, max_length=300)
    city: Optional[str] = Field(None, max_length=120)
    country: Optional[str] = Field(None, max_length=120)


class DeviceInfo(BaseModel):
    """Device details derived from request headers."""
    user_agent: Optional[str] = None
    platform: Optional[str] = None
    is_mobile: bool = False


class ScanStats(BaseModel):
    """Owner-facing scan statistics."""
    total_scans: int
    recent_scans: List[Dict[str, Any]]
    last_scan_date: Optional[datetime] = None
