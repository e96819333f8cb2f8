"""Export utilities for ingestion results and stored records."""

from datetime import datetime
from pathlib import Path

from gramingest.models.post import PostRecord
from gramingest.models.profile import ProfileRecord
from gramingest.models.result import IngestionResult


def to_json(result: IngestionResult, indent: int = 2) -> str:
    """
    Convert IngestionResult to JSON string.

    Args:
        result: IngestionResult to serialize
        indent: JSON indentation level

    Returns:
        JSON string
    """
    return result.model_dump_json(indent=indent)


def to_dict(result: IngestionResult) -> dict:
    """Convert IngestionResult to a JSON-compatible dictionary."""
    return result.model_dump(mode="json")


def save_json(
    result: IngestionResult,
    filepath: str | Path,
    indent: int = 2,
) -> Path:
    """
    Save IngestionResult to JSON file.

    Args:
        result: IngestionResult to save
        filepath: Output file path
        indent: JSON indentation level

    Returns:
        Path to saved file
    """
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(result.model_dump_json(indent=indent), encoding="utf-8")
    return path


def export_profiles(
    profiles: list[ProfileRecord],
    posts_by_profile: dict[str, list[PostRecord]],
) -> dict:
    """
    Merge stored profiles and their posts into one export-friendly dict.

    Args:
        profiles: Profiles to export
        posts_by_profile: Posts keyed by profile id

    Returns:
        Dict with 'profiles' and 'posts' arrays, plus metadata
    """
    exported_posts = []
    for profile in profiles:
        for post in posts_by_profile.get(profile.id, []):
            post_data = post.model_dump(mode="json")
            post_data["_username"] = profile.username
            exported_posts.append(post_data)

    return {
        "exported_at": datetime.now().isoformat(),
        "profiles_count": len(profiles),
        "posts_count": len(exported_posts),
        "profiles": [profile.model_dump(mode="json") for profile in profiles],
        "posts": exported_posts,
    }
