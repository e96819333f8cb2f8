"""Instagram post models."""

from datetime import datetime

from pydantic import BaseModel


class PostDraft(BaseModel):
    """Validated post payload decoded from an actor dataset record."""

    external_id: str
    short_code: str = ""
    kind: str = "Image"
    permalink: str = ""
    caption: str = ""
    published_at: datetime | None = None
    like_count: int = 0
    comment_count: int = 0
    video_view_count: int | None = None
    display_url: str | None = None
    is_video: bool = False
    hashtags: list[str] | None = None
    mentions: list[str] | None = None
    product_type: str | None = None
    is_comments_disabled: bool = False

    # Filled in after image acquisition
    media_ref: str = ""
    media_stored: bool = False


class PostRecord(BaseModel):
    """Persisted post row."""

    id: str
    profile_id: str
    external_id: str
    short_code: str = ""
    kind: str = "Image"
    permalink: str = ""
    caption: str = ""
    published_at: datetime | None = None
    like_count: int = 0
    comment_count: int = 0
    video_view_count: int | None = None
    media_ref: str = ""
    is_video: bool = False
    hashtags: list[str] | None = None
    mentions: list[str] | None = None
    product_type: str | None = None
    is_comments_disabled: bool = False
    media_stored: bool = False
