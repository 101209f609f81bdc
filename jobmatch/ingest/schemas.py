"""Request and response models for the HTTP API."""
from datetime import datetime
from typing import List, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, field_validator

from jobmatch.domain.opportunity import OpportunitySource, OpportunityStatus

MAX_BATCH_ITEMS = 100


def _check_url(value: str) -> str:
    parts = urlsplit(value)
    if parts.scheme not in ('http', 'https') or not parts.netloc:
        raise ValueError("must be an absolute http(s) URL")
    return value


class OpportunityItem(BaseModel):
    """One scraped listing inside an ingest payload."""
    title: str = Field(min_length=1, max_length=500)
    company: str = Field(min_length=1, max_length=300)
    url: str = Field(max_length=2000)
    location: Optional[str] = Field(default=None, max_length=300)
    description_snippet: Optional[str] = Field(default=None, max_length=5000)
    external_id: Optional[str] = Field(default=None, max_length=500)
    employment_type: Optional[str] = Field(default=None, max_length=100)
    posted_at: Optional[datetime] = None

    @field_validator('url')
    @classmethod
    def validate_url(cls, value: str) -> str:
        return _check_url(value)


class IngestPayload(BaseModel):
    """Body of POST /api/v1/extension/ingest."""
    source: OpportunitySource
    page_url: str = Field(max_length=2000)
    collected_at: datetime
    opportunities: List[OpportunityItem] = Field(min_length=1, max_length=MAX_BATCH_ITEMS)

    @field_validator('page_url')
    @classmethod
    def validate_page_url(cls, value: str) -> str:
        return _check_url(value)


class IngestResponse(BaseModel):
    inserted: int
    updated: int
    ids: List[str]


class SkillWeightInput(BaseModel):
    skill_name: str = Field(min_length=1, max_length=100)
    weight: int = Field(ge=0, le=100)
    required: bool = False


class CareerProfileInput(BaseModel):
    """Body of POST /api/v1/profiles."""
    title: str = Field(min_length=1, max_length=200)
    function_area: Optional[str] = Field(default=None, max_length=200)
    location_pref: Optional[str] = Field(default=None, max_length=200)
    seniority: Optional[str] = Field(default=None, max_length=50)
    work_mode: Optional[str] = Field(default=None, max_length=50)
    is_active: bool = True
    skills: List[SkillWeightInput] = Field(min_length=1, max_length=50)


class StatusUpdate(BaseModel):
    """Body of PATCH /api/v1/scores/{score_id}/status."""
    status: OpportunityStatus

    @field_validator('status')
    @classmethod
    def validate_user_status(cls, value: OpportunityStatus) -> OpportunityStatus:
        if value == OpportunityStatus.NEW:
            raise ValueError("status must be one of: saved, dismissed, applied")
        return value


class CareerProfileUpdate(BaseModel):
    """Body of PATCH /api/v1/profiles/{profile_id}; omitted fields are left as stored."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    function_area: Optional[str] = Field(default=None, max_length=200)
    location_pref: Optional[str] = Field(default=None, max_length=200)
    seniority: Optional[str] = Field(default=None, max_length=50)
    work_mode: Optional[str] = Field(default=None, max_length=50)
    is_active: Optional[bool] = None
    skills: Optional[List[SkillWeightInput]] = Field(default=None, min_length=1, max_length=50)
