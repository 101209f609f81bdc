"""Explainable profile-to-opportunity scoring."""
import logging
import math
from typing import List, Optional, Tuple

from jobmatch.domain.opportunity import (
    CareerProfile,
    Opportunity,
    ScoreReason,
    ScoreResult,
)

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves going up."""
    return int(math.floor(value + 0.5))


def clamp(value: float, lower: float = 0, upper: float = 100) -> float:
    return max(lower, min(upper, value))


class ScoringEngine:
    """Scores a career profile against an opportunity.

    The total blends a rule score (weighted skill, title and location
    matching) with a semantic score (word overlap between profile and
    listing text). Every contribution is itemized as a ScoreReason.
    """

    RULE_WEIGHT = 0.7
    SEMANTIC_WEIGHT = 0.3
    TITLE_WEIGHT = 20
    LOCATION_WEIGHT = 10
    MIN_WORD_LENGTH = 3

    def score(self, profile: CareerProfile, opportunity: Opportunity) -> ScoreResult:
        """Score one profile/opportunity pair.

        Args:
            profile: Career profile with weighted skills
            opportunity: Opportunity with its extracted skills

        Returns:
            ScoreResult with rule reasons followed by the semantic reason
        """
        rule_score, rule_reasons = self.rule_score(profile, opportunity)
        semantic_score, semantic_reason = self.semantic_score(profile, opportunity)

        total = round_half_up(
            rule_score * self.RULE_WEIGHT + semantic_score * self.SEMANTIC_WEIGHT
        )
        total = int(clamp(total))

        logger.debug(
            f"Scored '{opportunity.title}' for '{profile.title}': "
            f"total={total} rule={rule_score} semantic={semantic_score}"
        )
        return ScoreResult(
            total_score=total,
            rule_score=rule_score,
            semantic_score=semantic_score,
            reasons=rule_reasons + [semantic_reason],
        )

    def rule_score(self, profile: CareerProfile,
                   opportunity: Opportunity) -> Tuple[int, List[ScoreReason]]:
        """Weighted average of skill, title and location matches, 0-100."""
        reasons: List[ScoreReason] = []
        total_weight = 0.0
        earned = 0.0

        opportunity_skills = {skill.skill_name.lower() for skill in opportunity.skills}
        description = (opportunity.description_raw or '').lower()

        for skill in profile.skills:
            name = skill.skill_name.lower()
            total_weight += skill.weight

            if name in opportunity_skills or name in description:
                earned += skill.weight
                reasons.append(ScoreReason(
                    factor='skill_match',
                    score=skill.weight,
                    detail=f'Skill "{skill.skill_name}" matched (weight: {skill.weight})',
                ))
            elif skill.required:
                reasons.append(ScoreReason(
                    factor='skill_missing_required',
                    score=0,
                    detail=f'Required skill "{skill.skill_name}" not found',
                ))

        # Title tokens always count in the denominator
        title_words = (profile.title or '').lower().split()
        opportunity_title = (opportunity.title or '').lower()
        matched_words = sum(1 for word in title_words if word in opportunity_title)
        total_weight += self.TITLE_WEIGHT
        if matched_words:
            title_score = matched_words / len(title_words) * self.TITLE_WEIGHT
            earned += title_score
            reasons.append(ScoreReason(
                factor='title_match',
                score=round_half_up(title_score),
                detail=f'Title match: {matched_words}/{len(title_words)} words',
            ))

        if profile.location_pref and opportunity.location:
            total_weight += self.LOCATION_WEIGHT
            if profile.location_pref.lower() in opportunity.location.lower():
                earned += self.LOCATION_WEIGHT
                reasons.append(ScoreReason(
                    factor='location_match',
                    score=self.LOCATION_WEIGHT,
                    detail=f'Location "{opportunity.location}" matches preference',
                ))

        if total_weight <= 0:
            return 0, reasons

        return round_half_up(clamp(earned / total_weight * 100)), reasons

    def semantic_score(self, profile: CareerProfile,
                       opportunity: Opportunity) -> Tuple[int, ScoreReason]:
        """Share of profile words that also occur in the opportunity text.

        Placeholder for embedding similarity.
        """
        profile_words = self._words([
            profile.title,
            profile.function_area,
            profile.seniority,
            *(skill.skill_name for skill in profile.skills),
        ])
        opportunity_words = self._words([
            opportunity.title,
            opportunity.company,
            opportunity.description_raw,
        ])

        overlap = len(profile_words & opportunity_words)
        if profile_words:
            score = int(clamp(round_half_up(overlap / len(profile_words) * 100)))
        else:
            score = 0

        reason = ScoreReason(
            factor='semantic_similarity',
            score=score,
            detail=(
                f'Text overlap: {overlap}/{len(profile_words)} profile terms '
                f'found in opportunity'
            ),
        )
        return score, reason

    def _words(self, parts: List[Optional[str]]) -> set:
        text = ' '.join(part for part in parts if part).lower()
        return {word for word in text.split() if len(word) >= self.MIN_WORD_LENGTH}


def create_scoring_engine() -> ScoringEngine:
    """Factory function to create a scoring engine."""
    return ScoringEngine()
