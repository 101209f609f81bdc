"""Server-side ingestion: dedupe, upsert, extract skills and score."""
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from jobmatch.database import Database, OpportunityInput
from jobmatch.domain.dedupe import dedupe_key
from jobmatch.domain.opportunity import to_naive_utc
from jobmatch.domain.scoring import ScoringEngine
from jobmatch.domain.skills import ExtractedSkill, extract_skills
from jobmatch.ingest.schemas import IngestPayload

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    """Counts of created and updated opportunities for one batch."""
    inserted: int = 0
    updated: int = 0
    ids: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {'inserted': self.inserted, 'updated': self.updated, 'ids': list(self.ids)}


class IngestionService:
    """Turns a validated ingest payload into stored, scored opportunities."""

    def __init__(self, db: Database,
                 extractor: Optional[Callable[[Optional[str]], List[ExtractedSkill]]] = None,
                 engine: Optional[ScoringEngine] = None,
                 metrics=None):
        """Initialize the service.

        Args:
            db: Database to persist into
            extractor: Skill extractor run on newly created opportunities
            engine: Scoring engine
            metrics: Optional MetricsCollector updated per batch
        """
        self.db = db
        self.extractor = extractor or extract_skills
        self.engine = engine or ScoringEngine()
        self.metrics = metrics

    def ingest(self, user_id: str, payload: IngestPayload) -> IngestResult:
        """Store every item of a batch and score it against the user's active profiles.

        Args:
            user_id: Owner of the token that sent the batch
            payload: Validated ingest payload

        Returns:
            IngestResult with inserted ids listed before updated ids
        """
        profiles = self.db.get_active_profiles(user_id)
        captured_at = to_naive_utc(payload.collected_at)

        inserted: List[str] = []
        updated: List[str] = []
        scored = 0

        for item in payload.opportunities:
            data = OpportunityInput(
                dedupe_key=dedupe_key(payload.source, item.url, item.external_id),
                source=payload.source,
                url=item.url,
                title=item.title,
                company=item.company,
                captured_at=captured_at,
                external_id=item.external_id,
                location=item.location,
                employment_type=item.employment_type,
                description_raw=item.description_snippet,
                posted_at=to_naive_utc(item.posted_at),
            )
            opportunity, created = self.db.upsert_opportunity(data, self.extractor)
            (inserted if created else updated).append(opportunity.id)

            for profile in profiles:
                result = self.engine.score(profile, opportunity)
                self.db.upsert_score(profile.id, opportunity.id, result)
                scored += 1

        logger.info(
            f"Ingested {len(payload.opportunities)} {payload.source.value} items for user {user_id}: "
            f"{len(inserted)} inserted, {len(updated)} updated, {scored} scores written"
        )
        if self.metrics is not None:
            self.metrics.record_batch(
                payload.source.value, len(payload.opportunities), len(inserted), len(updated), scored
            )

        return IngestResult(
            inserted=len(inserted),
            updated=len(updated),
            ids=inserted + updated,
        )
