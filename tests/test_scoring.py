"""Tests for profile/opportunity scoring."""
from jobmatch.domain.opportunity import CareerProfile, ProfileSkill
from jobmatch.domain.scoring import ScoringEngine, clamp, round_half_up


def factors(result):
    return [reason.factor for reason in result.reasons]


class TestScoringEngine:
    """Test rule, semantic and total scores."""

    def test_high_match(self, frontend_profile, high_match):
        result = ScoringEngine().score(frontend_profile, high_match)

        assert result.rule_score == 100
        assert result.semantic_score == 88
        assert result.total_score == 96
        assert result.total_score >= 60
        assert result.rule_score >= 50

    def test_low_match(self, frontend_profile, low_match):
        result = ScoringEngine().score(frontend_profile, low_match)

        assert result.total_score <= 40
        assert factors(result) == [
            "skill_missing_required",
            "skill_missing_required",
            "semantic_similarity",
        ]
        assert all(r.score == 0 for r in result.reasons if r.factor == "skill_missing_required")

    def test_partial_match_between(self, frontend_profile, high_match, low_match, partial_match):
        engine = ScoringEngine()
        high = engine.score(frontend_profile, high_match)
        low = engine.score(frontend_profile, low_match)
        partial = engine.score(frontend_profile, partial_match)

        assert low.total_score < partial.total_score <= high.total_score
        assert partial.rule_score == 72
        assert partial.semantic_score == 25
        assert partial.total_score == 58

    def test_scores_within_bounds(self, frontend_profile, high_match, low_match, partial_match):
        engine = ScoringEngine()
        for opportunity in (high_match, low_match, partial_match):
            result = engine.score(frontend_profile, opportunity)
            for value in (result.total_score, result.rule_score, result.semantic_score):
                assert 0 <= value <= 100
            expected = result.rule_score * 0.7 + result.semantic_score * 0.3
            assert abs(result.total_score - expected) <= 1

    def test_reasons_end_with_single_semantic_reason(self, frontend_profile, high_match):
        result = ScoringEngine().score(frontend_profile, high_match)
        assert factors(result)[-1] == "semantic_similarity"
        assert factors(result).count("semantic_similarity") == 1
        assert factors(result) == [
            "skill_match", "skill_match", "skill_match", "skill_match",
            "title_match", "location_match", "semantic_similarity",
        ]

    def test_skill_matched_in_description_only(self, opportunity_factory):
        profile = CareerProfile(title="Engineer", skills=[ProfileSkill("graphql", 50, required=True)])
        opportunity = opportunity_factory("Engineer", "Acme", "We use GraphQL everywhere")

        result = ScoringEngine().score(profile, opportunity)

        skill_reason = result.reasons[0]
        assert skill_reason.factor == "skill_match"
        assert skill_reason.score == 50

    def test_title_reason_only_when_tokens_match(self, opportunity_factory):
        profile = CareerProfile(title="Product Designer")
        no_match = ScoringEngine().score(profile, opportunity_factory("Data Scientist", "Acme", None))
        half_match = ScoringEngine().score(profile, opportunity_factory("Product Manager", "Acme", None))

        assert "title_match" not in factors(no_match)
        assert no_match.rule_score == 0
        title_reason = half_match.reasons[0]
        assert title_reason.factor == "title_match"
        assert title_reason.score == 10
        assert half_match.rule_score == 50

    def test_location_ignored_when_unset(self, opportunity_factory):
        profile = CareerProfile(title="Engineer", location_pref="Remote")
        result = ScoringEngine().score(profile, opportunity_factory("Engineer", "Acme", None))

        assert "location_match" not in factors(result)
        assert result.rule_score == 100

    def test_empty_profile_scores_zero(self, opportunity_factory):
        profile = CareerProfile(title="")
        result = ScoringEngine().score(profile, opportunity_factory("Engineer", "Acme", None))

        assert result.rule_score == 0
        assert result.semantic_score == 0
        assert result.total_score == 0
        assert factors(result) == ["semantic_similarity"]


def test_round_half_up():
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(57.9) == 58
    assert round_half_up(2.4) == 2


def test_clamp():
    assert clamp(-5) == 0
    assert clamp(150) == 100
    assert clamp(42) == 42
