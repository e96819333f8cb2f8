"""Mapping between models and table rows."""

import json
from datetime import datetime, timezone

from gramingest.models.post import PostDraft, PostRecord
from gramingest.models.profile import ProfileDraft, ProfileRecord

# Columns added after the first schema revision; a write may drop them
# when the deployed table lacks them.
OPTIONAL_COLUMNS = frozenset({
    "profile_pic_from_supabase",
    "image_from_supabase",
    "business_category_name",
    "product_type",
    "is_comments_disabled",
    "video_view_count",
    "hashtags",
    "mentions",
    "updated_at",
})


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def profile_row(
    draft: ProfileDraft,
    user_id: str,
    image_ref: str,
    image_stored: bool,
) -> dict:
    return {
        "user_id": user_id,
        "instagram_id": draft.external_id,
        "username": draft.username,
        "full_name": draft.display_name,
        "biography": draft.bio,
        "followers_count": draft.follower_count,
        "follows_count": draft.following_count,
        "posts_count": draft.post_count,
        "profile_pic_url": image_ref,
        "profile_pic_from_supabase": image_stored,
        "is_business_account": draft.is_business_account,
        "business_category_name": draft.business_category,
        "updated_at": utcnow_iso(),
    }


def post_row(profile_id: str, draft: PostDraft) -> dict:
    return {
        "profile_id": profile_id,
        "instagram_id": draft.external_id,
        "short_code": draft.short_code,
        "type": draft.kind,
        "url": draft.permalink,
        "caption": draft.caption,
        "timestamp": draft.published_at.isoformat() if draft.published_at else None,
        "likes_count": draft.like_count,
        "comments_count": draft.comment_count,
        "video_view_count": draft.video_view_count,
        "display_url": draft.media_ref,
        "is_video": draft.is_video,
        "hashtags": draft.hashtags,
        "mentions": draft.mentions,
        "product_type": draft.product_type,
        "is_comments_disabled": draft.is_comments_disabled,
        "image_from_supabase": draft.media_stored,
    }


def _json_list(value) -> list[str] | None:
    if value is None or isinstance(value, list):
        return value
    try:
        decoded = json.loads(value)
    except (TypeError, ValueError):
        return None
    return decoded if isinstance(decoded, list) else None


def profile_from_row(row: dict) -> ProfileRecord:
    return ProfileRecord(
        id=str(row["id"]),
        user_id=str(row.get("user_id") or ""),
        external_id=str(row.get("instagram_id") or ""),
        username=row.get("username") or "",
        display_name=row.get("full_name") or "",
        bio=row.get("biography") or "",
        follower_count=row.get("followers_count") or 0,
        following_count=row.get("follows_count") or 0,
        post_count=row.get("posts_count") or 0,
        profile_image_ref=row.get("profile_pic_url") or "",
        profile_image_stored=bool(row.get("profile_pic_from_supabase")),
        is_business_account=bool(row.get("is_business_account")),
        business_category=row.get("business_category_name"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def post_from_row(row: dict) -> PostRecord:
    return PostRecord(
        id=str(row["id"]),
        profile_id=str(row.get("profile_id") or ""),
        external_id=str(row.get("instagram_id") or ""),
        short_code=row.get("short_code") or "",
        kind=row.get("type") or "Image",
        permalink=row.get("url") or "",
        caption=row.get("caption") or "",
        published_at=row.get("timestamp"),
        like_count=row.get("likes_count") or 0,
        comment_count=row.get("comments_count") or 0,
        video_view_count=row.get("video_view_count"),
        media_ref=row.get("display_url") or "",
        is_video=bool(row.get("is_video")),
        hashtags=_json_list(row.get("hashtags")),
        mentions=_json_list(row.get("mentions")),
        product_type=row.get("product_type"),
        is_comments_disabled=bool(row.get("is_comments_disabled")),
        media_stored=bool(row.get("image_from_supabase")),
    )
