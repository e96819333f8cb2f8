"""Decoding and normalization of actor dataset records."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from gramingest.exceptions import ParseError
from gramingest.models.post import PostDraft
from gramingest.models.profile import ProfileDraft

# Checked in order; the first non-empty value wins
PROFILE_IMAGE_FIELDS = (
    "profilePicUrlHD",
    "profilePicUrlHd",
    "profile_pic_url_hd",
    "profilePicUrl",
    "profile_pic_url",
    "profilePicture",
)


def normalize_count(value: Any) -> int:
    """
    Convert count values to non-negative integers.

    Examples:
        1234 -> 1234
        "1.2K" -> 1200
        "1,234" -> 1234
        None -> 0
    """
    if value is None or isinstance(value, bool):
        return 0

    if isinstance(value, (int, float)):
        return max(int(value), 0)

    count_str = str(value).strip().upper().replace(",", "")
    if not count_str:
        return 0

    multipliers = {
        "K": 1_000,
        "M": 1_000_000,
        "B": 1_000_000_000,
    }

    for suffix, multiplier in multipliers.items():
        if count_str.endswith(suffix):
            try:
                return max(int(float(count_str[:-1]) * multiplier), 0)
            except ValueError:
                return 0

    try:
        return max(int(float(count_str)), 0)
    except ValueError:
        return 0


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse post timestamps.

    The actor emits ISO 8601 strings ("2024-01-05T12:00:00.000Z");
    older runs sometimes carry epoch seconds.
    """
    if value is None or value == "":
        return None

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    try:
        return datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def ensure_scheme(url: str) -> str:
    """Prefix ``https:`` to protocol-relative or scheme-less URLs."""
    url = url.strip()
    if url.startswith("//"):
        return f"https:{url}"
    if not url.startswith(("http://", "https://")):
        return f"https://{url}"
    return url


def pick_profile_image_url(raw: dict) -> str | None:
    """Select the best available profile image URL from a raw record."""
    for field in PROFILE_IMAGE_FIELDS:
        value = raw.get(field)
        if isinstance(value, str) and value.strip():
            return ensure_scheme(value)
    return None


def _string_list(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    return [str(item) for item in value if item is not None]


class RawPost(BaseModel):
    """Post entry under ``latestPosts`` in an actor record."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str | None = None
    type: str | None = None
    short_code: str | None = Field(default=None, alias="shortCode")
    url: str | None = None
    caption: str | None = None
    timestamp: Any = None
    likes_count: Any = Field(default=None, alias="likesCount")
    comments_count: Any = Field(default=None, alias="commentsCount")
    video_view_count: Any = Field(default=None, alias="videoViewCount")
    display_url: str | None = Field(default=None, alias="displayUrl")
    hashtags: Any = None
    mentions: Any = None
    product_type: str | None = Field(default=None, alias="productType")
    is_comments_disabled: bool | None = Field(default=None, alias="isCommentsDisabled")

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class RawProfile(BaseModel):
    """Top-level profile record from a ``details`` actor run."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    username: str
    full_name: str | None = Field(default=None, alias="fullName")
    biography: str | None = None
    followers_count: Any = Field(default=None, alias="followersCount")
    follows_count: Any = Field(default=None, alias="followsCount")
    posts_count: Any = Field(default=None, alias="postsCount")
    is_business_account: bool | None = Field(default=None, alias="isBusinessAccount")
    business_category_name: str | None = Field(default=None, alias="businessCategoryName")
    latest_posts: list[RawPost] | None = Field(default=None, alias="latestPosts")

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


def transform_post(raw: RawPost) -> PostDraft | None:
    """
    Map a raw post to a validated PostDraft.

    Posts without an id cannot be keyed and are skipped.
    """
    if not raw.id:
        return None

    kind = raw.type or "Image"
    display_url = raw.display_url.strip() if raw.display_url else None

    return PostDraft(
        external_id=raw.id,
        short_code=raw.short_code or "",
        kind=kind,
        permalink=raw.url or "",
        caption=raw.caption or "",
        published_at=parse_timestamp(raw.timestamp),
        like_count=normalize_count(raw.likes_count),
        comment_count=normalize_count(raw.comments_count),
        video_view_count=normalize_count(raw.video_view_count) if raw.video_view_count is not None else None,
        display_url=ensure_scheme(display_url) if display_url else None,
        is_video=kind == "Video",
        hashtags=_string_list(raw.hashtags),
        mentions=_string_list(raw.mentions),
        product_type=raw.product_type,
        is_comments_disabled=bool(raw.is_comments_disabled),
        media_ref=ensure_scheme(display_url) if display_url else "",
    )


def transform_record(raw: dict) -> tuple[ProfileDraft, list[PostDraft]]:
    """
    Decode the first dataset record into a profile draft and its posts.

    Args:
        raw: Untyped dataset item as returned by the actor platform

    Returns:
        Tuple of (ProfileDraft, list of PostDraft in dataset order)

    Raises:
        ParseError: If the record is an actor error item or lacks required fields
    """
    if not isinstance(raw, dict):
        raise ParseError(f"Unexpected dataset item type: {type(raw).__name__}")

    if raw.get("error") and not raw.get("username"):
        description = raw.get("errorDescription") or raw["error"]
        raise ParseError(f"Actor returned an error item: {description}")

    try:
        parsed = RawProfile.model_validate(raw)
    except ValidationError as e:
        raise ParseError(f"Invalid profile record: {e.error_count()} field error(s)") from e

    profile = ProfileDraft(
        external_id=parsed.id,
        username=parsed.username,
        display_name=parsed.full_name or "",
        bio=parsed.biography or "",
        follower_count=normalize_count(parsed.followers_count),
        following_count=normalize_count(parsed.follows_count),
        post_count=normalize_count(parsed.posts_count),
        profile_image_url=pick_profile_image_url(raw),
        is_business_account=bool(parsed.is_business_account),
        business_category=parsed.business_category_name,
    )

    posts = []
    for raw_post in parsed.latest_posts or []:
        post = transform_post(raw_post)
        if post is not None:
            posts.append(post)

    return profile, posts
