"""Domain module for listings, profiles, dedupe keys, skills and scoring."""

from .opportunity import (
    CareerProfile,
    Opportunity,
    OpportunitySkill,
    OpportunitySource,
    OpportunityStatus,
    ProfileSkill,
    RawOpportunityRecord,
    ScoreReason,
    ScoreResult,
)
from .dedupe import DedupeKeyer, dedupe_key
from .skills import ExtractedSkill, SkillExtractor, extract_skills
from .scoring import ScoringEngine, create_scoring_engine

__all__ = [
    'CareerProfile', 'Opportunity', 'OpportunitySkill', 'OpportunitySource',
    'OpportunityStatus', 'ProfileSkill', 'RawOpportunityRecord', 'ScoreReason',
    'ScoreResult', 'DedupeKeyer', 'dedupe_key', 'ExtractedSkill', 'SkillExtractor',
    'extract_skills', 'ScoringEngine', 'create_scoring_engine',
]
