"""
Event store tests: identity, created/updated/status_changed/unchanged
reconciliation, stage history, source registry and the crawl-run ledger.
Each test gets a fresh in-memory SQLite database.
"""

import pytest

from regwatch.database import CrawlRunFinalizedError, Database
from regwatch.schemas import (
    CrawlRunCounts, CrawlRunStatus, RegulationEventInput, RegulationStage, SourceDescriptor,
    SourceKind, UpsertStatus,
)


SOURCE = SourceDescriptor(
    id="ca_leg", name="California State Legislature", url="https://leginfo.legislature.ca.gov",
    kind=SourceKind.WEBPAGE, jurisdiction="California, United States", reliability_tier=5,
)


def fresh_db() -> Database:
    db = Database("sqlite://")
    db.create_tables()
    return db


def make_event(**overrides) -> RegulationEventInput:
    values = dict(
        title="California Age-Appropriate Design Code",
        jurisdiction_country="United States",
        jurisdiction_state="California",
        stage=RegulationStage.INTRODUCED,
        impact_score=4,
        likelihood_score=3,
        confidence_score=4,
        chili_score=3,
        summary="Requires online services likely accessed by children to assess and mitigate risks.",
        business_impact="High",
        required_solutions=["Age assurance", "DPIA"],
        affected_products=["Instagram"],
        competitor_responses=["TikTok added default private accounts"],
        provenance_links=["https://leginfo.legislature.ca.gov", "https://leginfo.legislature.ca.gov/ab2273"],
        raw_source_text="AB 2273 full text",
        published_date="2025-02-10",
        source=SOURCE,
    )
    values.update(overrides)
    return RegulationEventInput(**values)


# ════════════════════════════════════════════════════════════════════
# Identity
# ════════════════════════════════════════════════════════════════════

def test_identity_is_case_insensitive_and_deterministic():
    a = Database.event_identity("United States", "California", "Kids Online Safety Act")
    b = Database.event_identity("UNITED STATES", "california", "  kids online safety act ")
    assert a == b
    assert len(a) == 40


def test_identity_treats_missing_state_as_empty():
    assert Database.event_identity("United Kingdom", None, "Online Safety Act") == \
        Database.event_identity("United Kingdom", "", "Online Safety Act")


def test_identity_differs_by_jurisdiction():
    assert Database.event_identity("United States", "Utah", "Social Media Act") != \
        Database.event_identity("United States", "Texas", "Social Media Act")


# ════════════════════════════════════════════════════════════════════
# Reconciliation
# ════════════════════════════════════════════════════════════════════

def test_created_then_unchanged_keeps_one_row():
    db = fresh_db()
    first = db.upsert_regulation_event(make_event())
    assert first.status == UpsertStatus.CREATED.value
    assert first.was_status_change is False

    second = db.upsert_regulation_event(make_event())
    assert second.status == UpsertStatus.UNCHANGED.value
    assert second.id == first.id
    assert second.previous_stage == RegulationStage.INTRODUCED.value
    assert db.count_events() == 1
    assert db.get_event_status_change_count(first.id) == 0


def test_unchanged_bumps_crawl_timestamp():
    db = fresh_db()
    result = db.upsert_regulation_event(make_event())
    before = db.get_event(result.id)
    db.upsert_regulation_event(make_event())
    after = db.get_event(result.id)
    assert after["last_crawled_at"] >= before["last_crawled_at"]
    assert after["created_at"] == before["created_at"]


def test_stage_change_records_history():
    db = fresh_db()
    db.upsert_regulation_event(make_event(stage=RegulationStage.INTRODUCED))
    result = db.upsert_regulation_event(make_event(stage=RegulationStage.PASSED))

    assert result.status == UpsertStatus.STATUS_CHANGED.value
    assert result.was_status_change is True
    assert result.previous_stage == RegulationStage.INTRODUCED.value
    assert db.get_event(result.id)["stage"] == RegulationStage.PASSED.value

    history = db.list_event_history(result.id)
    assert len(history) == 1
    assert history[0]["previous_stage"] == "introduced"
    assert history[0]["new_stage"] == "passed"


def test_content_change_without_stage_change_is_updated():
    db = fresh_db()
    db.upsert_regulation_event(make_event())
    result = db.upsert_regulation_event(make_event(impact_score=5, affected_products=["Instagram", "Threads"]))

    assert result.status == UpsertStatus.UPDATED.value
    assert result.was_status_change is False
    assert db.get_event_status_change_count(result.id) == 0

    stored = db.get_event(result.id)
    assert stored["impact_score"] == 5
    assert stored["affected_products"] == ["Instagram", "Threads"]


def test_title_case_variants_reconcile_to_one_row():
    db = fresh_db()
    db.upsert_regulation_event(make_event())
    result = db.upsert_regulation_event(make_event(title="CALIFORNIA AGE-APPROPRIATE DESIGN CODE"))
    assert result.status in (UpsertStatus.UNCHANGED.value, UpsertStatus.UPDATED.value)
    assert db.count_events() == 1


def test_empty_state_stored_as_null():
    db = fresh_db()
    result = db.upsert_regulation_event(make_event(jurisdiction_country="United Kingdom", jurisdiction_state=""))
    stored = db.get_event(result.id)
    assert stored["jurisdiction_state"] is None
    assert result.id == Database.event_identity("United Kingdom", None, make_event().title)


def test_blank_country_defaults_to_unknown():
    db = fresh_db()
    result = db.upsert_regulation_event(make_event(jurisdiction_country="  ", jurisdiction_state=None))
    assert db.get_event(result.id)["jurisdiction_country"] == "Unknown"


def test_scores_clamped_before_storage():
    db = fresh_db()
    result = db.upsert_regulation_event(make_event(impact_score=11, likelihood_score=0, chili_score=2.5))
    stored = db.get_event(result.id)
    assert (stored["impact_score"], stored["likelihood_score"], stored["chili_score"]) == (5, 1, 3)


def test_empty_summary_and_impact_get_defaults():
    db = fresh_db()
    result = db.upsert_regulation_event(make_event(summary="", business_impact=""))
    stored = db.get_event(result.id)
    assert stored["summary"] == "Regulation item: California Age-Appropriate Design Code"
    assert stored["business_impact"] == "Unknown"


def test_history_is_ordered_oldest_first():
    db = fresh_db()
    db.upsert_regulation_event(make_event(stage=RegulationStage.INTRODUCED))
    db.upsert_regulation_event(make_event(stage=RegulationStage.COMMITTEE_REVIEW))
    db.upsert_regulation_event(make_event(stage=RegulationStage.PASSED))
    result = db.upsert_regulation_event(make_event(stage=RegulationStage.ENACTED))

    history = db.list_event_history(result.id)
    assert [(h["previous_stage"], h["new_stage"]) for h in history] == [
        ("introduced", "committee_review"),
        ("committee_review", "passed"),
        ("passed", "enacted"),
    ]


def test_missing_event_lookups():
    db = fresh_db()
    assert db.get_event("nope") is None
    assert db.list_event_history("nope") == []
    assert db.get_event_status_change_count("nope") == 0


# ════════════════════════════════════════════════════════════════════
# Source registry
# ════════════════════════════════════════════════════════════════════

def test_source_registry_upserts_by_url():
    db = fresh_db()
    first_id = db.upsert_source(SOURCE)
    renamed = SOURCE.model_copy(update={"name": "CA Legislature", "reliability_tier": 4})
    second_id = db.upsert_source(renamed)

    assert first_id == second_id
    row = db.get_source_by_url(SOURCE.url)
    assert row["name"] == "CA Legislature"
    assert row["reliability_tier"] == 4
    assert row["kind"] == "webpage"
    assert row["last_crawled_at"] is not None
    assert db.get_source_by_url("https://missing.example") is None


def test_news_search_sources_sharing_an_endpoint_keep_separate_rows():
    from regwatch.config import get_source_catalog
    from regwatch.tools.feed_parser import source_registry_url

    kosa, age = get_source_catalog(["news_kosa", "news_age_verification"])
    assert kosa.url == age.url

    db = fresh_db()
    kosa_event = db.upsert_regulation_event(make_event(title="KOSA advances", source=kosa))
    age_event = db.upsert_regulation_event(make_event(title="Age verification bill", source=age))

    kosa_row = db.get_source_by_url(source_registry_url(kosa))
    age_row = db.get_source_by_url(source_registry_url(age))
    assert kosa_row["catalog_id"] == "news_kosa"
    assert age_row["catalog_id"] == "news_age_verification"
    assert kosa_row["id"] != age_row["id"]
    assert db.get_event(kosa_event.id)["source_id"] == kosa_row["id"]
    assert db.get_event(age_event.id)["source_id"] == age_row["id"]
    assert db.get_event(kosa_event.id)["source_url"] == source_registry_url(kosa)


def test_event_links_to_source_row():
    db = fresh_db()
    result = db.upsert_regulation_event(make_event())
    stored = db.get_event(result.id)
    assert stored["source_url"] == SOURCE.url
    assert stored["source_id"] == db.get_source_by_url(SOURCE.url)["id"]


# ════════════════════════════════════════════════════════════════════
# Crawl-run ledger
# ════════════════════════════════════════════════════════════════════

def test_crawl_run_lifecycle():
    db = fresh_db()
    assert db.get_last_crawl_time() is None

    run_id = db.create_crawl_run()
    running = db.get_crawl_run(run_id)
    assert running["status"] == CrawlRunStatus.RUNNING.value
    assert running["finished_at"] is None
    assert db.get_last_crawl_time() is None

    counts = CrawlRunCounts(sources_attempted=3, sources_succeeded=2, sources_failed=1,
                            items_discovered=7, events_created=2, events_unchanged=1, events_ignored=4)
    finished_at = db.finalize_crawl_run(run_id, CrawlRunStatus.PARTIAL, counts)

    row = db.get_crawl_run(run_id)
    assert row["status"] == "partial"
    assert row["finished_at"] == finished_at.isoformat()
    assert row["sources_failed"] == 1
    assert row["events_unchanged"] == 1
    assert row["events_ignored"] == 4
    assert db.get_last_crawl_time() == finished_at


def test_finalize_twice_raises():
    db = fresh_db()
    run_id = db.create_crawl_run()
    db.finalize_crawl_run(run_id, CrawlRunStatus.COMPLETED, CrawlRunCounts())
    with pytest.raises(CrawlRunFinalizedError):
        db.finalize_crawl_run(run_id, CrawlRunStatus.FAILED, CrawlRunCounts())
    assert db.get_crawl_run(run_id)["status"] == "completed"


def test_finalize_unknown_run_raises():
    db = fresh_db()
    with pytest.raises(ValueError):
        db.finalize_crawl_run(999, CrawlRunStatus.COMPLETED, CrawlRunCounts())
    assert db.get_crawl_run(999) is None
