"""HTTP API routes for ingest, profiles, scores and digests."""
import logging
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from jobmatch.auth import TokenValidator
from jobmatch.database import Database, ProfilePatch, ScoredMatch
from jobmatch.delivery.digest import build_digest
from jobmatch.delivery.web.metrics import MetricsCollector
from jobmatch.domain.opportunity import CareerProfile, OpportunityStatus, ProfileSkill
from jobmatch.ingest.client import INGEST_PATH
from jobmatch.ingest.schemas import (
    CareerProfileInput,
    CareerProfileUpdate,
    IngestPayload,
    IngestResponse,
    StatusUpdate,
)
from jobmatch.ingest.service import IngestionService

logger = logging.getLogger(__name__)


class UnauthorizedRequest(Exception):
    """Missing, malformed or revoked bearer token."""


def profile_to_dict(profile: CareerProfile) -> Dict[str, Any]:
    return {
        'id': profile.id,
        'title': profile.title,
        'function_area': profile.function_area,
        'location_pref': profile.location_pref,
        'seniority': profile.seniority,
        'work_mode': profile.work_mode,
        'is_active': profile.is_active,
        'skills': [
            {'skill_name': s.skill_name, 'weight': s.weight, 'required': s.required}
            for s in profile.skills
        ],
    }


def match_to_dict(match: ScoredMatch) -> Dict[str, Any]:
    opportunity = match.opportunity
    return {
        'score_id': match.score_id,
        'profile_id': match.profile_id,
        'total_score': match.total_score,
        'rule_score': match.rule_score,
        'semantic_score': match.semantic_score,
        'reasons': match.reasons,
        'status': match.status.value,
        'scored_at': match.scored_at.isoformat(),
        'opportunity': {
            'id': opportunity.id,
            'source': opportunity.source.value,
            'url': opportunity.url,
            'title': opportunity.title,
            'company': opportunity.company,
            'location': opportunity.location,
            'employment_type': opportunity.employment_type,
            'captured_at': opportunity.captured_at.isoformat(),
            'skills': [
                {'skill_name': s.skill_name, 'confidence': s.confidence}
                for s in opportunity.skills
            ],
        },
    }


class ApiRouteHandler:
    """Registers the JSON API on a FastAPI app."""

    def __init__(self, app: FastAPI, db: Database,
                 metrics: Optional[MetricsCollector] = None,
                 digest_config: Optional[Dict[str, int]] = None):
        """Initialize the route handler.

        Args:
            app: FastAPI application instance
            db: Database backing every route
            metrics: Collector updated by the ingest route
            digest_config: Default 'threshold' and 'window_hours' for digests
        """
        self.app = app
        self.db = db
        self.metrics = metrics or MetricsCollector()
        self.validator = TokenValidator(db)
        self.service = IngestionService(db, metrics=self.metrics)
        self.digest_config = digest_config or {'threshold': 50, 'window_hours': 24}
        self._setup_error_handlers()
        self._setup_routes()

    def _setup_error_handlers(self):
        @self.app.exception_handler(UnauthorizedRequest)
        async def unauthorized_handler(request: Request, exc: UnauthorizedRequest):
            return JSONResponse(status_code=401, content={"error": "Unauthorized"})

        @self.app.exception_handler(RequestValidationError)
        async def validation_handler(request: Request, exc: RequestValidationError):
            if request.url.path == INGEST_PATH:
                self.metrics.record_ingest_error("validation")
            details = [
                {
                    'loc': [str(part) for part in error.get('loc', ())],
                    'msg': error.get('msg', ''),
                    'type': error.get('type', ''),
                }
                for error in exc.errors()
            ]
            return JSONResponse(
                status_code=400,
                content={"error": "Validation error", "details": details},
            )

    def _setup_routes(self):
        """Set up FastAPI routes."""
        validator = self.validator

        def require_user(background_tasks: BackgroundTasks,
                         authorization: Optional[str] = Header(default=None)) -> str:
            found = validator.lookup(authorization)
            if found is None:
                self.metrics.record_unauthorized()
                raise UnauthorizedRequest()
            token_id, user_id = found
            background_tasks.add_task(validator.mark_used, token_id)
            return user_id

        async def read_ingest_payload(request: Request,
                                      user_id: str = Depends(require_user)) -> IngestPayload:
            # The body is only read once the token has been accepted
            raw = await request.body()
            try:
                return IngestPayload.model_validate_json(raw)
            except ValidationError as e:
                raise RequestValidationError(
                    [dict(error, loc=('body',) + tuple(error.get('loc', ()))) for error in e.errors()]
                )

        @self.app.post(INGEST_PATH, response_model=IngestResponse)
        def ingest(payload: IngestPayload = Depends(read_ingest_payload),
                   user_id: str = Depends(require_user)):
            """Store a batch of scraped listings and score them."""
            try:
                result = self.service.ingest(user_id, payload)
            except SQLAlchemyError as e:
                self.metrics.record_ingest_error("database")
                logger.error(f"Database error during ingest for user {user_id}: {str(e)}")
                return JSONResponse(status_code=500, content={"error": "Internal server error"})
            return result.to_dict()

        @self.app.get("/api/v1/profiles")
        def list_profiles(user_id: str = Depends(require_user)):
            """List the caller's career profiles."""
            return {'profiles': [profile_to_dict(p) for p in self.db.get_profiles(user_id)]}

        @self.app.post("/api/v1/profiles", status_code=201)
        def create_profile(body: CareerProfileInput, user_id: str = Depends(require_user)):
            """Create a career profile for the caller."""
            profile = CareerProfile(
                title=body.title,
                function_area=body.function_area,
                location_pref=body.location_pref,
                seniority=body.seniority,
                work_mode=body.work_mode,
                is_active=body.is_active,
                skills=[ProfileSkill(s.skill_name, s.weight, s.required) for s in body.skills],
            )
            created = self.db.create_profile(user_id, profile)
            logger.info(f"Created profile '{created.title}' for user {user_id}")
            return profile_to_dict(created)

        @self.app.patch("/api/v1/profiles/{profile_id}")
        def update_profile(profile_id: str, body: CareerProfileUpdate,
                           user_id: str = Depends(require_user)):
            """Partially update a profile; given skills replace the stored ones."""
            skills = None
            if body.skills is not None:
                skills = [ProfileSkill(s.skill_name, s.weight, s.required) for s in body.skills]
            patch = ProfilePatch.from_values(
                skills=skills, **body.model_dump(exclude_unset=True, exclude={'skills'})
            )
            updated = self.db.update_profile(profile_id, user_id, patch)
            if updated is None:
                return JSONResponse(status_code=404, content={"error": "Profile not found"})
            return profile_to_dict(updated)

        @self.app.delete("/api/v1/profiles/{profile_id}", status_code=204)
        def delete_profile(profile_id: str, user_id: str = Depends(require_user)):
            """Delete a profile together with its scores."""
            if not self.db.delete_profile(profile_id, user_id):
                return JSONResponse(status_code=404, content={"error": "Profile not found"})
            return Response(status_code=204)

        @self.app.get("/api/v1/opportunities")
        def list_opportunities(
            profile_id: str = Query(...),
            status: Optional[OpportunityStatus] = Query(default=None),
            min_score: Optional[int] = Query(default=None, ge=0, le=100),
            limit: int = Query(default=20, ge=1, le=100),
            offset: int = Query(default=0, ge=0),
            user_id: str = Depends(require_user),
        ):
            """Scored opportunities for one of the caller's profiles, best first."""
            if self.db.get_profile(profile_id, user_id=user_id) is None:
                return JSONResponse(status_code=404, content={"error": "Profile not found"})

            filters: Dict[str, Any] = {'min_score': min_score}
            if status is not None:
                filters['status'] = status.value
            matches = self.db.search_scores(profile_id, filters, limit=limit, offset=offset)
            return {'opportunities': [match_to_dict(m) for m in matches]}

        @self.app.patch("/api/v1/scores/{score_id}/status")
        def update_status(score_id: str, body: StatusUpdate,
                          user_id: str = Depends(require_user)):
            """Mark a scored opportunity as saved, dismissed or applied."""
            match = self.db.update_score_status(score_id, user_id, body.status)
            if match is None:
                return JSONResponse(status_code=404, content={"error": "Score not found"})
            return match_to_dict(match)

        @self.app.get("/api/v1/digest")
        def get_digest(
            threshold: Optional[int] = Query(default=None, ge=0, le=100),
            hours: Optional[int] = Query(default=None, ge=1, le=24 * 30),
            user_id: str = Depends(require_user),
        ):
            """New matches above a threshold for each active profile."""
            return build_digest(
                self.db,
                user_id,
                threshold=self.digest_config['threshold'] if threshold is None else threshold,
                window_hours=self.digest_config['window_hours'] if hours is None else hours,
            )
