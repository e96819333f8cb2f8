"""Live validation - pull real actor datasets, decode them, save as test fixtures.

Usage:
    GRAMINGEST_APIFY_TOKEN=... python scripts/capture_dataset.py <dataset_id> [<dataset_id> ...]
"""

import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path

from gramingest.config import GramingestConfig
from gramingest.core.runner import JobRunnerClient
from gramingest.core.transformer import transform_record
from gramingest.exceptions import GramingestError

FIXTURES_DIR = Path(__file__).parent.parent / "tests" / "fixtures"


async def capture(runner: JobRunnerClient, dataset_id: str, save_fixture: bool = True) -> dict:
    """Fetch and decode a single dataset."""
    print(f"\n{'='*60}")
    print(f"Dataset {dataset_id}")
    print(f"{'='*60}")

    start = datetime.now()
    try:
        items = await runner.fetch_items(dataset_id)
    except GramingestError as e:
        print(f"❌ Fetch failed: {e}")
        return {"dataset_id": dataset_id, "success": False, "error": str(e)}

    duration_ms = (datetime.now() - start).total_seconds() * 1000
    print(f"✓ Fetched {len(items)} item(s) in {duration_ms:.0f}ms")

    if not items:
        print("  ❌ Dataset is empty")
        return {"dataset_id": dataset_id, "success": False, "error": "empty"}

    try:
        profile, posts = transform_record(items[0])
    except GramingestError as e:
        print(f"  ❌ Decode failed: {e}")
        return {"dataset_id": dataset_id, "success": False, "error": str(e)}

    print(f"\n--- Profile ---")
    print(f"  Username: @{profile.username}")
    print(f"  Name: {profile.display_name}")
    print(f"  Followers: {profile.follower_count:,}")
    print(f"  Profile image: {'yes' if profile.profile_image_url else '⚠️  missing'}")

    print(f"\n--- Posts ({len(posts)} decoded, {len(items[0].get('latestPosts') or [])} raw) ---")
    for i, post in enumerate(posts[:3]):
        caption = post.caption[:60] + "..." if len(post.caption) > 60 else post.caption
        print(f"  [{i+1}] {post.kind} {post.short_code}: {caption}")
        print(f"      Likes: {post.like_count:,} | Comments: {post.comment_count:,}")
    if len(posts) > 3:
        print(f"  ... and {len(posts) - 3} more posts")

    missing_images = sum(1 for post in posts if not post.display_url)
    if missing_images:
        print(f"  ⚠️  {missing_images} post(s) without a display URL")

    if save_fixture:
        FIXTURES_DIR.mkdir(parents=True, exist_ok=True)
        fixture_path = FIXTURES_DIR / f"{profile.username}_dataset.json"
        fixture_path.write_text(json.dumps(items, indent=2, ensure_ascii=False), encoding="utf-8")
        print(f"\n✓ Saved fixture: {fixture_path}")

    return {
        "dataset_id": dataset_id,
        "success": True,
        "username": profile.username,
        "posts_count": len(posts),
        "duration_ms": duration_ms,
    }


async def main(dataset_ids: list[str]):
    config = GramingestConfig()
    async with JobRunnerClient(config) as runner:
        results = [await capture(runner, dataset_id) for dataset_id in dataset_ids]

    print(f"\n{'='*60}")
    print("SUMMARY")
    print(f"{'='*60}")
    for r in results:
        mark = "✓" if r["success"] else "❌"
        detail = f"@{r['username']} ({r['posts_count']} posts)" if r["success"] else r["error"]
        print(f"  {mark} {r['dataset_id']}: {detail}")

    ok = sum(1 for r in results if r["success"])
    print(f"\n{ok}/{len(results)} datasets decoded")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)
    asyncio.run(main(sys.argv[1:]))
