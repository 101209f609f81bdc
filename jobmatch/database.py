"""Database models and connection management."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any, Callable, Tuple
import logging
import uuid

from sqlalchemy import (
    create_engine, Column, Integer, String, DateTime, Boolean, Text, JSON, Float,
    ForeignKey, UniqueConstraint, func,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker, relationship, Session
from sqlalchemy.pool import StaticPool

from jobmatch.domain.opportunity import (
    CareerProfile,
    Opportunity,
    OpportunitySkill,
    OpportunitySource,
    OpportunityStatus,
    ProfileSkill,
    ScoreResult,
    utcnow,
)
from jobmatch.domain.skills import ExtractedSkill

logger = logging.getLogger(__name__)

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


class OpportunityModel(Base):
    """SQLAlchemy model for deduplicated job listings."""
    __tablename__ = 'opportunities'

    id = Column(String(36), primary_key=True, default=new_id)
    dedupe_key = Column(String(64), nullable=False, unique=True, index=True)
    source = Column(String(20), nullable=False, index=True)
    external_id = Column(String(500), nullable=True)
    url = Column(String(2000), nullable=False)
    title = Column(String(500), nullable=False, index=True)
    company = Column(String(300), nullable=False, index=True)
    location = Column(String(300), nullable=True)
    employment_type = Column(String(100), nullable=True)
    description_raw = Column(Text, nullable=True)
    language = Column(String(10), nullable=True)
    posted_at = Column(DateTime, nullable=True)
    captured_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    skills = relationship('OpportunitySkillModel', cascade='all, delete-orphan', lazy='selectin',
                          order_by='OpportunitySkillModel.id')


class OpportunitySkillModel(Base):
    """SQLAlchemy model for skills extracted from an opportunity."""
    __tablename__ = 'opportunity_skills'

    id = Column(Integer, primary_key=True, autoincrement=True)
    opportunity_id = Column(String(36), ForeignKey('opportunities.id'), nullable=False, index=True)
    skill_name = Column(String(100), nullable=False)
    confidence = Column(Float, nullable=False)


class CareerProfileModel(Base):
    """SQLAlchemy model for a user's career profile."""
    __tablename__ = 'career_profiles'

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    function_area = Column(String(200), nullable=True)
    location_pref = Column(String(200), nullable=True)
    seniority = Column(String(50), nullable=True)
    work_mode = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime, default=utcnow)

    skills = relationship('ProfileSkillModel', cascade='all, delete-orphan', lazy='selectin',
                          order_by='ProfileSkillModel.id')


class ProfileSkillModel(Base):
    """SQLAlchemy model for a weighted profile skill."""
    __tablename__ = 'profile_skills'

    id = Column(Integer, primary_key=True, autoincrement=True)
    profile_id = Column(String(36), ForeignKey('career_profiles.id'), nullable=False, index=True)
    skill_name = Column(String(100), nullable=False)
    weight = Column(Integer, nullable=False)
    required = Column(Boolean, default=False)


class ProfileOpportunityScoreModel(Base):
    """SQLAlchemy model for the score of one profile/opportunity pair."""
    __tablename__ = 'profile_opportunity_scores'
    __table_args__ = (
        UniqueConstraint('profile_id', 'opportunity_id', name='uq_profile_opportunity'),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    profile_id = Column(String(36), ForeignKey('career_profiles.id'), nullable=False, index=True)
    opportunity_id = Column(String(36), ForeignKey('opportunities.id'), nullable=False, index=True)
    total_score = Column(Integer, nullable=False, index=True)
    rule_score = Column(Integer, nullable=False)
    semantic_score = Column(Integer, nullable=False)
    reasons = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default=OpportunityStatus.NEW.value, index=True)
    scored_at = Column(DateTime, nullable=False, index=True)

    opportunity = relationship('OpportunityModel', lazy='joined')


class UserTokenModel(Base):
    """SQLAlchemy model for hashed personal access tokens."""
    __tablename__ = 'user_tokens'

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    last_used_at = Column(DateTime, nullable=True)
    revoked_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)


@dataclass
class OpportunityPatch:
    """Mutable opportunity fields carried by a re-ingested listing.

    Only fields that were present in the incoming item are listed, so a
    listing re-scraped without a location keeps its stored one.
    """
    fields: Dict[str, Any] = field(default_factory=dict)

    MUTABLE_FIELDS = ('title', 'company', 'location', 'employment_type', 'description_raw')

    @classmethod
    def from_values(cls, **values: Any) -> 'OpportunityPatch':
        unknown = set(values) - set(cls.MUTABLE_FIELDS)
        if unknown:
            raise ValueError(f"Not mutable opportunity fields: {sorted(unknown)}")
        return cls({name: value for name, value in values.items() if value is not None})

    def apply(self, model: OpportunityModel) -> None:
        for name, value in self.fields.items():
            setattr(model, name, value)


@dataclass
class ProfilePatch:
    """Partial update of a career profile.

    Scalar fields are set only when given; skills, when given, replace the
    stored list wholesale.
    """
    fields: Dict[str, Any] = field(default_factory=dict)
    skills: Optional[List[ProfileSkill]] = None

    MUTABLE_FIELDS = ('title', 'function_area', 'location_pref', 'seniority', 'work_mode', 'is_active')

    @classmethod
    def from_values(cls, skills: Optional[List[ProfileSkill]] = None, **values: Any) -> 'ProfilePatch':
        unknown = set(values) - set(cls.MUTABLE_FIELDS)
        if unknown:
            raise ValueError(f"Not mutable profile fields: {sorted(unknown)}")
        return cls({name: value for name, value in values.items() if value is not None}, skills)

    def is_empty(self) -> bool:
        return not self.fields and self.skills is None

    def apply(self, model: CareerProfileModel) -> None:
        for name, value in self.fields.items():
            setattr(model, name, value)
        if self.skills is not None:
            model.skills = [
                ProfileSkillModel(skill_name=s.skill_name, weight=s.weight, required=s.required)
                for s in self.skills
            ]


@dataclass
class OpportunityInput:
    """Everything needed to create an opportunity row."""
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
    posted_at: Optional[datetime] = None

    def patch(self) -> OpportunityPatch:
        return OpportunityPatch.from_values(
            title=self.title,
            company=self.company,
            location=self.location,
            employment_type=self.employment_type,
            description_raw=self.description_raw,
        )


@dataclass
class ScoredMatch:
    """A stored score joined with its opportunity."""
    score_id: str
    profile_id: str
    opportunity: Opportunity
    total_score: int
    rule_score: int
    semantic_score: int
    reasons: List[Dict[str, Any]]
    status: OpportunityStatus
    scored_at: datetime


def _to_opportunity(model: OpportunityModel) -> Opportunity:
    return Opportunity(
        id=model.id,
        dedupe_key=model.dedupe_key,
        source=OpportunitySource(model.source),
        url=model.url,
        title=model.title,
        company=model.company,
        captured_at=model.captured_at,
        external_id=model.external_id,
        location=model.location,
        employment_type=model.employment_type,
        description_raw=model.description_raw,
        language=model.language,
        posted_at=model.posted_at,
        skills=[OpportunitySkill(s.skill_name, s.confidence) for s in model.skills],
    )


def _to_profile(model: CareerProfileModel) -> CareerProfile:
    return CareerProfile(
        id=model.id,
        user_id=model.user_id,
        title=model.title,
        function_area=model.function_area,
        location_pref=model.location_pref,
        seniority=model.seniority,
        work_mode=model.work_mode,
        is_active=bool(model.is_active),
        skills=[ProfileSkill(s.skill_name, s.weight, bool(s.required)) for s in model.skills],
    )


def _to_match(model: ProfileOpportunityScoreModel) -> ScoredMatch:
    return ScoredMatch(
        score_id=model.id,
        profile_id=model.profile_id,
        opportunity=_to_opportunity(model.opportunity),
        total_score=model.total_score,
        rule_score=model.rule_score,
        semantic_score=model.semantic_score,
        reasons=list(model.reasons or []),
        status=OpportunityStatus(model.status),
        scored_at=model.scored_at,
    )


class Database:
    """Database connection and operation manager."""

    def __init__(self, db_url: str = "sqlite:///jobmatch.db", echo: bool = False):
        """Initialize database connection.

        Args:
            db_url: Database connection URL
            echo: Log emitted SQL
        """
        engine_kwargs: Dict[str, Any] = {'echo': echo}
        if db_url.startswith('sqlite') and ':memory:' in db_url:
            # One shared connection so every thread sees the same in-memory DB
            engine_kwargs.update(
                connect_args={'check_same_thread': False},
                poolclass=StaticPool,
            )
        elif db_url.startswith('sqlite'):
            engine_kwargs['connect_args'] = {'check_same_thread': False}

        self.engine = create_engine(db_url, **engine_kwargs)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)
        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        Base.metadata.create_all(self.engine)

    # Opportunities

    def upsert_opportunity(
        self,
        data: OpportunityInput,
        extract: Callable[[Optional[str]], List[ExtractedSkill]],
    ) -> Tuple[Opportunity, bool]:
        """Create or update the opportunity identified by its dedupe key.

        Creation runs inside a savepoint; losing a concurrent race on the
        unique dedupe key falls back to updating the winner's row. Skills are
        extracted and stored only when the row is created.

        Args:
            data: Incoming opportunity fields
            extract: Skill extractor applied to the description on create

        Returns:
            Tuple of (opportunity with skills, True if it was created)
        """
        with self.Session() as session:
            model = self._find_by_dedupe_key(session, data.dedupe_key)
            created = False

            if model is None:
                try:
                    with session.begin_nested():
                        model = OpportunityModel(
                            dedupe_key=data.dedupe_key,
                            source=data.source.value,
                            external_id=data.external_id,
                            url=data.url,
                            title=data.title,
                            company=data.company,
                            location=data.location,
                            employment_type=data.employment_type,
                            description_raw=data.description_raw,
                            posted_at=data.posted_at,
                            captured_at=data.captured_at,
                        )
                        model.skills = [
                            OpportunitySkillModel(skill_name=s.skill_name, confidence=s.confidence)
                            for s in extract(data.description_raw)
                        ]
                        session.add(model)
                    created = True
                except IntegrityError:
                    logger.info(f"Concurrent insert for dedupe key {data.dedupe_key[:12]}, updating instead")
                    model = self._find_by_dedupe_key(session, data.dedupe_key)
                    if model is None:
                        raise

            if not created:
                data.patch().apply(model)
                model.updated_at = utcnow()

            session.commit()
            return _to_opportunity(model), created

    @staticmethod
    def _find_by_dedupe_key(session: Session, dedupe_key: str) -> Optional[OpportunityModel]:
        return session.query(OpportunityModel).filter_by(dedupe_key=dedupe_key).first()

    def get_opportunity(self, opportunity_id: str) -> Optional[Opportunity]:
        """Get an opportunity with its skills by ID."""
        with self.Session() as session:
            model = session.query(OpportunityModel).filter_by(id=opportunity_id).first()
            return _to_opportunity(model) if model else None

    def count_opportunities(self, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count opportunities, optionally filtered by source."""
        with self.Session() as session:
            query = session.query(func.count(OpportunityModel.id))
            if filters and filters.get('source'):
                query = query.filter(OpportunityModel.source == filters['source'])
            return query.scalar() or 0

    # Career profiles

    def create_profile(self, user_id: str, profile: CareerProfile) -> CareerProfile:
        """Store a new career profile for a user."""
        with self.Session() as session:
            model = CareerProfileModel(
                user_id=user_id,
                title=profile.title,
                function_area=profile.function_area,
                location_pref=profile.location_pref,
                seniority=profile.seniority,
                work_mode=profile.work_mode,
                is_active=profile.is_active,
                skills=[
                    ProfileSkillModel(skill_name=s.skill_name, weight=s.weight, required=s.required)
                    for s in profile.skills
                ],
            )
            session.add(model)
            session.commit()
            return _to_profile(model)

    def get_profiles(self, user_id: str, active_only: bool = False) -> List[CareerProfile]:
        """Get a user's career profiles, newest first."""
        with self.Session() as session:
            query = session.query(CareerProfileModel).filter_by(user_id=user_id)
            if active_only:
                query = query.filter(CareerProfileModel.is_active.is_(True))
            models = query.order_by(CareerProfileModel.created_at.desc()).all()
            return [_to_profile(m) for m in models]

    def get_active_profiles(self, user_id: str) -> List[CareerProfile]:
        """Get the active career profiles the pipeline scores against."""
        return self.get_profiles(user_id, active_only=True)

    def get_profile(self, profile_id: str, user_id: Optional[str] = None) -> Optional[CareerProfile]:
        """Get a profile by ID, optionally requiring it to belong to a user."""
        with self.Session() as session:
            query = session.query(CareerProfileModel).filter_by(id=profile_id)
            if user_id is not None:
                query = query.filter_by(user_id=user_id)
            model = query.first()
            return _to_profile(model) if model else None

    def update_profile(self, profile_id: str, user_id: str,
                       patch: ProfilePatch) -> Optional[CareerProfile]:
        """Apply a partial update to one of the user's profiles.

        Stored scores are kept; an inactive profile is simply skipped by
        later ingests.

        Returns:
            The updated profile, or None if no such profile belongs to the user
        """
        with self.Session() as session:
            model = session.query(CareerProfileModel).filter_by(
                id=profile_id, user_id=user_id
            ).first()
            if model is None:
                return None
            patch.apply(model)
            session.commit()
            return _to_profile(model)

    def delete_profile(self, profile_id: str, user_id: str) -> bool:
        """Delete one of the user's profiles with its skills and scores.

        Returns:
            bool: True if the profile existed and was deleted
        """
        with self.Session() as session:
            model = session.query(CareerProfileModel).filter_by(
                id=profile_id, user_id=user_id
            ).first()
            if model is None:
                return False
            session.query(ProfileOpportunityScoreModel).filter_by(
                profile_id=profile_id
            ).delete(synchronize_session=False)
            session.delete(model)
            session.commit()
            logger.info(f"Deleted profile {profile_id} of user {user_id}")
            return True

    # Scores

    def upsert_score(self, profile_id: str, opportunity_id: str, result: ScoreResult) -> str:
        """Create or overwrite the score of a profile/opportunity pair.

        The user-owned status is left untouched on overwrite.

        Returns:
            ID of the score row
        """
        values = {
            'total_score': result.total_score,
            'rule_score': result.rule_score,
            'semantic_score': result.semantic_score,
            'reasons': [reason.to_dict() for reason in result.reasons],
            'scored_at': utcnow(),
        }
        with self.Session() as session:
            model = self._find_score(session, profile_id, opportunity_id)
            if model is None:
                try:
                    with session.begin_nested():
                        model = ProfileOpportunityScoreModel(
                            profile_id=profile_id,
                            opportunity_id=opportunity_id,
                            status=OpportunityStatus.NEW.value,
                            **values,
                        )
                        session.add(model)
                except IntegrityError:
                    model = self._find_score(session, profile_id, opportunity_id)
                    if model is None:
                        raise
                    for name, value in values.items():
                        setattr(model, name, value)
            else:
                for name, value in values.items():
                    setattr(model, name, value)

            session.commit()
            return model.id

    @staticmethod
    def _find_score(session: Session, profile_id: str,
                    opportunity_id: str) -> Optional[ProfileOpportunityScoreModel]:
        return session.query(ProfileOpportunityScoreModel).filter_by(
            profile_id=profile_id, opportunity_id=opportunity_id
        ).first()

    def get_score(self, profile_id: str, opportunity_id: str) -> Optional[ScoredMatch]:
        """Get the stored score of a profile/opportunity pair."""
        with self.Session() as session:
            model = self._find_score(session, profile_id, opportunity_id)
            return _to_match(model) if model else None

    def search_scores(self, profile_id: str, filters: Optional[Dict[str, Any]] = None,
                      limit: int = 20, offset: int = 0) -> List[ScoredMatch]:
        """Scored opportunities for a profile, best first.

        Args:
            profile_id: Profile whose scores to list
            filters: Optional 'status' and 'min_score' criteria
            limit: Maximum number of results to return
            offset: Number of results to skip

        Returns:
            Matches ordered by total score, then most recently scored
        """
        filters = filters or {}
        with self.Session() as session:
            query = session.query(ProfileOpportunityScoreModel).filter_by(profile_id=profile_id)
            if filters.get('status'):
                query = query.filter(ProfileOpportunityScoreModel.status == filters['status'])
            if filters.get('min_score') is not None:
                query = query.filter(ProfileOpportunityScoreModel.total_score >= filters['min_score'])
            models = query.order_by(
                ProfileOpportunityScoreModel.total_score.desc(),
                ProfileOpportunityScoreModel.scored_at.desc(),
            ).offset(offset).limit(limit).all()
            return [_to_match(m) for m in models]

    def find_new_matches(self, profile_id: str, threshold: int, since: datetime,
                         limit: int = 10) -> List[ScoredMatch]:
        """Digest read contract: unseen, recent scores above a threshold."""
        with self.Session() as session:
            models = session.query(ProfileOpportunityScoreModel).filter(
                ProfileOpportunityScoreModel.profile_id == profile_id,
                ProfileOpportunityScoreModel.status == OpportunityStatus.NEW.value,
                ProfileOpportunityScoreModel.total_score >= threshold,
                ProfileOpportunityScoreModel.scored_at >= since,
            ).order_by(ProfileOpportunityScoreModel.total_score.desc()).limit(limit).all()
            return [_to_match(m) for m in models]

    def update_score_status(self, score_id: str, user_id: str,
                            status: OpportunityStatus) -> Optional[ScoredMatch]:
        """Set the status of a score owned by one of the user's profiles.

        Returns:
            The updated match, or None if no such score belongs to the user
        """
        with self.Session() as session:
            model = session.query(ProfileOpportunityScoreModel).join(
                CareerProfileModel,
                CareerProfileModel.id == ProfileOpportunityScoreModel.profile_id,
            ).filter(
                ProfileOpportunityScoreModel.id == score_id,
                CareerProfileModel.user_id == user_id,
            ).first()
            if model is None:
                return None
            model.status = status.value
            session.commit()
            return _to_match(model)

    # Tokens

    def add_token(self, user_id: str, name: str, token_hash: str) -> UserTokenModel:
        """Store a hashed token for a user."""
        with self.Session() as session:
            model = UserTokenModel(user_id=user_id, name=name, token_hash=token_hash)
            session.add(model)
            session.commit()
            return model

    def find_active_token(self, token_hash: str) -> Optional[UserTokenModel]:
        """Look up a non-revoked token by its hash."""
        with self.Session() as session:
            return session.query(UserTokenModel).filter(
                UserTokenModel.token_hash == token_hash,
                UserTokenModel.revoked_at.is_(None),
            ).first()

    def list_tokens(self, user_id: str) -> List[UserTokenModel]:
        """Active tokens of a user, oldest first; hashes are never shown."""
        with self.Session() as session:
            return session.query(UserTokenModel).filter(
                UserTokenModel.user_id == user_id,
                UserTokenModel.revoked_at.is_(None),
            ).order_by(UserTokenModel.created_at).all()

    def touch_token(self, token_id: str) -> None:
        """Record that a token was just used."""
        with self.Session() as session:
            session.query(UserTokenModel).filter_by(id=token_id).update(
                {UserTokenModel.last_used_at: utcnow()}
            )
            session.commit()

    def revoke_token(self, token_id: str, user_id: Optional[str] = None) -> bool:
        """Revoke a token.

        Returns:
            bool: True if an active token was revoked
        """
        try:
            with self.Session() as session:
                query = session.query(UserTokenModel).filter(
                    UserTokenModel.id == token_id,
                    UserTokenModel.revoked_at.is_(None),
                )
                if user_id is not None:
                    query = query.filter(UserTokenModel.user_id == user_id)
                model = query.first()
                if model is None:
                    return False
                model.revoked_at = utcnow()
                session.commit()
                return True
        except SQLAlchemyError as e:
            logger.error(f"Error revoking token {token_id}: {str(e)}")
            return False
