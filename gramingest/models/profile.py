"""Instagram profile models."""

from datetime import datetime

from pydantic import BaseModel


class ProfileDraft(BaseModel):
    """Validated profile payload decoded from an actor dataset record."""

    external_id: str
    username: str
    display_name: str = ""
    bio: str = ""
    follower_count: int = 0
    following_count: int = 0
    post_count: int = 0
    profile_image_url: str | None = None
    is_business_account: bool = False
    business_category: str | None = None


class ProfileRecord(BaseModel):
    """Persisted profile row."""

    id: str
    user_id: str
    external_id: str
    username: str
    display_name: str = ""
    bio: str = ""
    follower_count: int = 0
    following_count: int = 0
    post_count: int = 0
    profile_image_ref: str = ""
    profile_image_stored: bool = False
    is_business_account: bool = False
    business_category: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
