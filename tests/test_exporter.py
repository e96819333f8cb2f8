"""Unit tests for exporter utilities - no internet."""

import json
from datetime import datetime

import pytest

from gramingest.core.exporter import export_profiles, save_json, to_dict, to_json
from gramingest.models.post import PostRecord
from gramingest.models.profile import ProfileRecord
from gramingest.models.result import IngestionResult


@pytest.fixture
def profile() -> ProfileRecord:
    return ProfileRecord(
        id="p-1",
        user_id="local",
        external_id="1784001",
        username="alice",
        follower_count=12840,
        profile_image_ref="/image-proxy/v/t51/alice_hd.jpg",
    )


@pytest.fixture
def result(profile) -> IngestionResult:
    return IngestionResult(
        success=True,
        dataset_id="ds-1",
        profile=profile,
        post_count=4,
        stored_image_count=3,
        total_image_count=5,
        ingested_at=datetime(2024, 3, 2, 9, 0),
        duration_ms=1520.5,
    )


class TestToJson:
    """Test JSON string conversion."""

    def test_to_json_is_valid_json(self, result):
        parsed = json.loads(to_json(result))
        assert parsed["profile"]["username"] == "alice"
        assert parsed["stored_image_count"] == 3

    def test_to_dict_has_expected_keys(self, result):
        d = to_dict(result)
        assert {"success", "dataset_id", "profile", "post_count", "ingested_at"} <= d.keys()
        assert d["ingested_at"] == "2024-03-02T09:00:00"


class TestSaveJson:
    """Test file I/O operations."""

    def test_save_creates_parent_dirs(self, tmp_path, result):
        filepath = save_json(result, tmp_path / "out" / "alice.json")

        assert filepath.exists()
        assert IngestionResult.model_validate_json(filepath.read_text(encoding="utf-8")) == result

    def test_failed_result_is_saved(self, tmp_path):
        failed = IngestionResult(
            success=False,
            dataset_id="ds-2",
            error="No Instagram profile data received",
            ingested_at=datetime(2024, 3, 2, 9, 0),
        )
        saved = json.loads(save_json(failed, tmp_path / "failed.json").read_text(encoding="utf-8"))
        assert saved["profile"] is None
        assert saved["error"] == failed.error


class TestExportProfiles:
    """Test multi-profile export."""

    def test_export_counts_and_usernames(self, profile):
        posts = [
            PostRecord(id="a", profile_id="p-1", external_id="3301", caption="Morning light"),
            PostRecord(id="b", profile_id="p-1", external_id="3302"),
        ]
        other = profile.model_copy(update={"id": "p-2", "username": "bob"})

        exported = export_profiles([profile, other], {"p-1": posts})

        assert exported["profiles_count"] == 2
        assert exported["posts_count"] == 2
        assert {p["_username"] for p in exported["posts"]} == {"alice"}
        assert "exported_at" in exported
