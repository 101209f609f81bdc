"""Tests for digest building with time simulation."""
import pytest
from freezegun import freeze_time

from jobmatch.database import OpportunityInput
from jobmatch.delivery.digest import MAX_DIGEST_ITEMS, build_digest
from jobmatch.domain.opportunity import (
    CareerProfile,
    OpportunitySource,
    OpportunityStatus,
    ScoreResult,
    utcnow,
)


def store_score(db, profile_id, n, total):
    opportunity, _ = db.upsert_opportunity(OpportunityInput(
        dedupe_key=f"{n:064d}",
        source=OpportunitySource.GUPY,
        url=f"https://acme.gupy.io/jobs/{n}",
        title=f"Engineer {n}",
        company="Acme",
        captured_at=utcnow(),
    ), lambda text: [])
    return db.upsert_score(profile_id, opportunity.id, ScoreResult(total, total, total, []))


@pytest.fixture
def profile(db):
    return db.create_profile("user-1", CareerProfile(title="Engineer"))


@freeze_time("2024-01-15 10:00:00")
def test_digest_filters_threshold_and_status(db, profile):
    store_score(db, profile.id, 1, 90)
    store_score(db, profile.id, 2, 40)
    dismissed = store_score(db, profile.id, 3, 80)
    db.update_score_status(dismissed, "user-1", OpportunityStatus.DISMISSED)

    digest = build_digest(db, "user-1", threshold=50)

    assert digest["generated_at"] == "2024-01-15T10:00:00"
    (entry,) = digest["profiles"]
    assert entry["profile_title"] == "Engineer"
    assert [o["total_score"] for o in entry["opportunities"]] == [90]


def test_old_scores_fall_out_of_window(db, profile):
    with freeze_time("2024-01-15 10:00:00") as frozen:
        store_score(db, profile.id, 1, 90)

        frozen.move_to("2024-01-16 09:59:00")
        assert len(build_digest(db, "user-1")["profiles"]) == 1

        frozen.move_to("2024-01-16 10:01:00")
        assert build_digest(db, "user-1")["profiles"] == []
        assert len(build_digest(db, "user-1", window_hours=48)["profiles"]) == 1


@freeze_time("2024-01-15 10:00:00")
def test_digest_caps_items_per_profile(db, profile):
    for n in range(MAX_DIGEST_ITEMS + 5):
        store_score(db, profile.id, n, 50 + n)

    (entry,) = build_digest(db, "user-1")["profiles"]
    scores = [o["total_score"] for o in entry["opportunities"]]
    assert len(scores) == MAX_DIGEST_ITEMS
    assert scores == sorted(scores, reverse=True)
    assert scores[0] == 50 + MAX_DIGEST_ITEMS + 4


@freeze_time("2024-01-15 10:00:00")
def test_inactive_profiles_skipped(db):
    inactive = db.create_profile("user-1", CareerProfile(title="Old", is_active=False))
    store_score(db, inactive.id, 1, 99)

    assert build_digest(db, "user-1")["profiles"] == []
