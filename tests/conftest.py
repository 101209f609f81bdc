"""Shared fixtures."""
from datetime import datetime

import pytest

from jobmatch.database import Database
from jobmatch.domain.opportunity import (
    CareerProfile,
    Opportunity,
    OpportunitySkill,
    OpportunitySource,
    ProfileSkill,
)


@pytest.fixture
def db():
    """Create a test database instance."""
    return Database("sqlite:///:memory:")


@pytest.fixture
def frontend_profile():
    return CareerProfile(
        title="Senior Frontend Engineer",
        function_area="Engineering",
        location_pref="Remote",
        seniority="senior",
        skills=[
            ProfileSkill("react", 80, required=True),
            ProfileSkill("typescript", 70, required=True),
            ProfileSkill("css", 40),
            ProfileSkill("node.js", 30),
        ],
    )


def make_opportunity(title, company, description, location=None, skills=()):
    return Opportunity(
        id="opp-1",
        dedupe_key="0" * 64,
        source=OpportunitySource.LINKEDIN,
        url="https://www.linkedin.com/jobs/view/1",
        title=title,
        company=company,
        captured_at=datetime(2024, 1, 15, 10, 0, 0),
        location=location,
        description_raw=description,
        skills=[OpportunitySkill(name, 0.7) for name in skills],
    )


@pytest.fixture
def high_match():
    return make_opportunity(
        "Senior Frontend Engineer",
        "TechCorp",
        "We are looking for a Senior Frontend Engineer with strong React and "
        "TypeScript skills. Experience with CSS and Node.js is a plus. Remote position.",
        location="Remote",
        skills=("react", "typescript", "css", "node.js"),
    )


@pytest.fixture
def low_match():
    return make_opportunity(
        "Data Scientist",
        "DataCo",
        "Looking for a data scientist with Python, pandas, and machine learning experience.",
        location="New York",
        skills=("python", "pandas", "machine learning"),
    )


@pytest.fixture
def partial_match():
    return make_opportunity(
        "Full Stack Developer",
        "StartupX",
        "Full stack developer needed. Must know React and Node.js. TypeScript preferred.",
        location="Hybrid - São Paulo",
        skills=("react", "node.js"),
    )


@pytest.fixture
def opportunity_factory():
    """Build in-memory opportunities for scoring tests."""
    return make_opportunity
