"""Unit tests for dataset record decoding - uses JSON fixtures, no internet."""

from datetime import datetime, timezone

import pytest

from gramingest.core.transformer import (
    ensure_scheme,
    normalize_count,
    parse_timestamp,
    pick_profile_image_url,
    transform_record,
)
from gramingest.exceptions import ParseError


class TestNormalizeCount:
    """Test count normalization."""

    @pytest.mark.parametrize("value,expected", [
        (1234, 1234),
        ("1,234", 1234),
        ("1.2K", 1200),
        ("3M", 3_000_000),
        (None, 0),
        ("", 0),
        ("n/a", 0),
        (-5, 0),
        (True, 0),
    ])
    def test_values(self, value, expected):
        assert normalize_count(value) == expected


class TestParseTimestamp:
    """Test timestamp parsing."""

    def test_iso_with_z(self):
        parsed = parse_timestamp("2024-03-02T08:15:00.000Z")
        assert parsed == datetime(2024, 3, 2, 8, 15, tzinfo=timezone.utc)

    def test_epoch_seconds(self):
        parsed = parse_timestamp(1709200000)
        assert parsed.tzinfo is not None
        assert parsed.year == 2024

    def test_garbage(self):
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(None) is None


class TestProfileImage:
    """Test profile image selection."""

    def test_hd_preferred(self):
        raw = {"profilePicUrl": "https://a/small.jpg", "profilePicUrlHD": "https://a/hd.jpg"}
        assert pick_profile_image_url(raw) == "https://a/hd.jpg"

    def test_snake_case_fallback(self):
        assert pick_profile_image_url({"profile_pic_url": "//a/p.jpg"}) == "https://a/p.jpg"

    def test_blank_fields_skipped(self):
        raw = {"profilePicUrlHD": "  ", "profilePicture": "https://a/p.jpg"}
        assert pick_profile_image_url(raw) == "https://a/p.jpg"

    def test_none(self):
        assert pick_profile_image_url({}) is None

    def test_ensure_scheme(self):
        assert ensure_scheme("cdn.example/a.jpg") == "https://cdn.example/a.jpg"
        assert ensure_scheme("http://cdn.example/a.jpg") == "http://cdn.example/a.jpg"


class TestTransformRecord:
    """Test full record decoding."""

    def test_profile_fields(self, alice_items):
        profile, _ = transform_record(alice_items[0])

        assert profile.external_id == "1784001"
        assert profile.username == "alice"
        assert profile.display_name == "Alice Example"
        assert profile.follower_count == 12840
        assert profile.following_count == 311
        assert profile.is_business_account is True
        assert profile.business_category == "Photographer"
        assert "alice_hd.jpg" in profile.profile_image_url

    def test_posts_in_order_and_id_less_skipped(self, alice_items):
        _, posts = transform_record(alice_items[0])
        assert [p.external_id for p in posts] == ["3301", "3302", "3303", "3304"]

    def test_post_fields(self, alice_items):
        _, posts = transform_record(alice_items[0])
        first, video, sidecar, _ = posts

        assert first.hashtags == ["film"]
        assert first.mentions == ["bob"]
        assert first.media_ref == first.display_url
        assert first.media_stored is False
        assert video.is_video is True
        assert video.video_view_count == 5120
        assert video.product_type == "clips"
        assert sidecar.like_count == 1200
        assert sidecar.is_comments_disabled is True

    def test_record_without_posts(self, alice_items):
        raw = dict(alice_items[0])
        raw.pop("latestPosts")
        _, posts = transform_record(raw)
        assert posts == []

    def test_error_item_raises(self):
        with pytest.raises(ParseError, match="not found"):
            transform_record({"error": "not_found", "errorDescription": "Profile not found"})

    def test_missing_username_raises(self):
        with pytest.raises(ParseError):
            transform_record({"id": "1"})

    def test_non_dict_raises(self):
        with pytest.raises(ParseError):
            transform_record(["alice"])
