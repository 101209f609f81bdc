from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, Any


def utcnow() -> datetime:
    """Naive UTC timestamp, the format stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values pass through."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class OpportunitySource(Enum):
    """Enumeration of sites listings are collected from."""
    LINKEDIN = "linkedin"
    GUPY = "gupy"


class OpportunityStatus(Enum):
    """User-owned state of a scored opportunity."""
    NEW = "new"
    SAVED = "saved"
    DISMISSED = "dismissed"
    APPLIED = "applied"


@dataclass
class RawOpportunityRecord:
    """A scraped listing waiting in the client-side queue."""
    title: str
    company: str
    url: str
    source: OpportunitySource
    page_url: str
    collected_at: datetime
    location: Optional[str] = None
    description_snippet: Optional[str] = None
    external_id: Optional[str] = None
    employment_type: Optional[str] = None
    posted_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate the record after initialization."""
        if not self.title or not self.company or not self.url:
            raise ValueError("Title, company, and URL are required fields")

        if not isinstance(self.source, OpportunitySource):
            self.source = OpportunitySource(self.source)

    @property
    def queue_key(self) -> str:
        """Same-request key used by the queue to drop in-flight duplicates."""
        return f"{self.source.value}:{self.url}"

    def to_payload_item(self) -> Dict[str, Any]:
        """Serialize to the wire format, omitting unset optional fields."""
        item: Dict[str, Any] = {
            'title': self.title,
            'company': self.company,
            'url': self.url,
        }
        optional = {
            'location': self.location,
            'description_snippet': self.description_snippet,
            'external_id': self.external_id,
            'employment_type': self.employment_type,
            'posted_at': self.posted_at.isoformat() if self.posted_at else None,
        }
        item.update({key: value for key, value in optional.items() if value is not None})
        return item


@dataclass
class OpportunitySkill:
    """A skill extracted from an opportunity's description."""
    skill_name: str
    confidence: float


@dataclass
class Opportunity:
    """A deduplicated job listing as seen by the scoring engine."""
    id: str
    dedupe_key: str
    source: OpportunitySource
    url: str
    title: str
    company: str
    captured_at: datetime
    external_id: Optional[str] = None
    location: Optional[str] = None
    employment_type: Optional[str] = None
    description_raw: Optional[str] = None
    language: Optional[str] = None
    posted_at: Optional[datetime] = None
    skills: List[OpportunitySkill] = field(default_factory=list)


@dataclass
class ProfileSkill:
    """A weighted skill on a career profile."""
    skill_name: str
    weight: int
    required: bool = False

    def __post_init__(self):
        if not 0 <= self.weight <= 100:
            raise ValueError("Skill weight must be between 0 and 100")


@dataclass
class CareerProfile:
    """A user-authored target role with weighted skills."""
    title: str
    id: Optional[str] = None
    user_id: Optional[str] = None
    function_area: Optional[str] = None
    location_pref: Optional[str] = None
    seniority: Optional[str] = None
    work_mode: Optional[str] = None
    is_active: bool = True
    skills: List[ProfileSkill] = field(default_factory=list)


@dataclass
class ScoreReason:
    """One itemized contribution to a score."""
    factor: str
    score: int
    detail: str

    def to_dict(self) -> Dict[str, Any]:
        return {'factor': self.factor, 'score': self.score, 'detail': self.detail}


@dataclass
class ScoreResult:
    """Outcome of scoring one profile against one opportunity."""
    total_score: int
    rule_score: int
    semantic_score: int
    reasons: List[ScoreReason] = field(default_factory=list)
