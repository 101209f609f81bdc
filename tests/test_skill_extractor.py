"""Tests for keyword skill extraction."""
import pytest

from jobmatch.domain.skills import SkillExtractor, create_skill_extractor, extract_skills


def names(text):
    return [skill.skill_name for skill in extract_skills(text)]


def test_extracts_languages():
    found = names("We need someone proficient in JavaScript, TypeScript, and Python")
    assert {"javascript", "typescript", "python"} <= set(found)


def test_extracts_frameworks():
    found = names("Experience with React, Next.js, and Node.js is required")
    assert {"react", "next.js", "node.js"} <= set(found)


def test_extracts_cloud_devops():
    found = names("Must have experience with AWS, Docker, and Kubernetes in production environments")
    assert {"aws", "docker", "kubernetes"} <= set(found)


def test_confidence_within_bounds():
    for skill in extract_skills("React TypeScript Node.js"):
        assert 0 < skill.confidence <= 1


def test_repetition_raises_confidence_up_to_cap():
    skills = {s.skill_name: s.confidence for s in extract_skills(
        "React React React React is our core framework. We love React."
    )}
    assert skills["react"] >= 0.8
    assert skills["react"] == SkillExtractor.MAX_CONFIDENCE


def test_single_mention_confidence():
    skills = {s.skill_name: s.confidence for s in extract_skills("Docker experience")}
    assert skills["docker"] == 0.6


@pytest.mark.parametrize("text", ["", None])
def test_empty_input(text):
    assert extract_skills(text) == []


def test_unrelated_text_finds_little():
    assert len(extract_skills("Looking for a motivated team player with great communication")) <= 1


def test_case_insensitive():
    assert {"react", "typescript", "node.js"} <= set(names("REACT, typescript, Node.JS"))


def test_no_duplicate_names():
    found = names("Python python PYTHON and Django with Python")
    assert len(found) == len(set(found))


class TestShortSkills:
    """Short keywords only match as whole tokens."""

    def test_whole_token_matches(self):
        found = names("Backend in Go and R, some C# too")
        assert "go" in found
        assert "r" in found
        assert "c#" in found

    def test_substrings_do_not_match(self):
        found = names("Google Docs and great React skills")
        assert "go" not in found
        assert "r" not in found

    def test_short_skill_confidence(self):
        skills = {s.skill_name: s.confidence for s in extract_skills("Go Go Go")}
        assert skills["go"] == SkillExtractor.SHORT_SKILL_CONFIDENCE


def test_category_subset():
    extractor = create_skill_extractor(["frontend"])
    found = [s.skill_name for s in extractor.extract("React and Python")]
    assert found == ["react"]
