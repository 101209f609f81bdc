"""Tests for request validation models."""
import pytest
from pydantic import ValidationError

from jobmatch.domain.opportunity import OpportunitySource, OpportunityStatus
from jobmatch.ingest.schemas import CareerProfileInput, IngestPayload, OpportunityItem, StatusUpdate

VALID_ITEM = {"title": "Engineer", "company": "Acme", "url": "https://x.test/jobs/1"}


def payload(**overrides):
    values = {
        "source": "gupy",
        "page_url": "https://acme.gupy.io/",
        "collected_at": "2024-01-15T10:00:00Z",
        "opportunities": [VALID_ITEM],
    }
    values.update(overrides)
    return values


def test_valid_payload():
    parsed = IngestPayload.model_validate(payload())

    assert parsed.source == OpportunitySource.GUPY
    assert parsed.collected_at.tzinfo is not None
    assert parsed.opportunities[0].location is None


def test_url_is_kept_verbatim():
    url = "https://x.test/jobs/1?utm_source=a#frag"
    assert OpportunityItem.model_validate(dict(VALID_ITEM, url=url)).url == url


@pytest.mark.parametrize("overrides", [
    {"title": ""},
    {"title": "x" * 501},
    {"company": "x" * 301},
    {"url": "x.test/jobs/1"},
    {"url": "https://x.test/" + "a" * 2000},
    {"location": "x" * 301},
    {"description_snippet": "x" * 5001},
    {"external_id": "x" * 501},
    {"employment_type": "x" * 101},
    {"posted_at": "last week"},
])
def test_invalid_items(overrides):
    with pytest.raises(ValidationError):
        OpportunityItem.model_validate(dict(VALID_ITEM, **overrides))


@pytest.mark.parametrize("overrides", [
    {"source": "indeed"},
    {"opportunities": []},
    {"opportunities": [VALID_ITEM] * 101},
    {"page_url": "about:blank"},
])
def test_invalid_payloads(overrides):
    with pytest.raises(ValidationError):
        IngestPayload.model_validate(payload(**overrides))


def test_hundred_items_allowed():
    assert len(IngestPayload.model_validate(payload(opportunities=[VALID_ITEM] * 100)).opportunities) == 100


def test_profile_input_bounds():
    skill = {"skill_name": "react", "weight": 80}
    assert CareerProfileInput.model_validate({"title": "Dev", "skills": [skill]}).skills[0].required is False

    with pytest.raises(ValidationError):
        CareerProfileInput.model_validate({"title": "Dev", "skills": [skill] * 51})
    with pytest.raises(ValidationError):
        CareerProfileInput.model_validate({"title": "", "skills": [skill]})
    with pytest.raises(ValidationError):
        CareerProfileInput.model_validate({"title": "Dev", "skills": [dict(skill, weight=-1)]})


@pytest.mark.parametrize("status", ["saved", "dismissed", "applied"])
def test_user_statuses(status):
    assert StatusUpdate.model_validate({"status": status}).status == OpportunityStatus(status)


@pytest.mark.parametrize("status", ["new", "archived"])
def test_rejected_statuses(status):
    with pytest.raises(ValidationError):
        StatusUpdate.model_validate({"status": status})
