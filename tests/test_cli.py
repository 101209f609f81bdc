"""Integration tests for the CLI."""
from pathlib import Path

import pytest
from click.testing import CliRunner

from jobmatch.cli import cli
from jobmatch.database import Database, OpportunityInput
from jobmatch.domain.opportunity import (
    CareerProfile,
    OpportunitySource,
    ProfileSkill,
    ScoreResult,
    utcnow,
)

ENDPOINT = "http://api.test/api/v1/extension/ingest"

PROFILES_YAML = """
profiles:
  - title: Senior Frontend Engineer
    location_pref: Remote
    skills:
      - {skill_name: react, weight: 80, required: true}
      - {skill_name: typescript, weight: 70, required: true}
"""

RECORDS_YAML = """
source: linkedin
page_url: https://www.linkedin.com/jobs/search
collected_at: "2024-01-15T10:00:00Z"
opportunities:
  - {title: Frontend Engineer, company: TechCorp, url: "https://www.linkedin.com/jobs/view/1"}
  - {title: Frontend Engineer, company: TechCorp, url: "https://www.linkedin.com/jobs/view/1"}
  - {title: Data Scientist, company: DataCo, url: "https://www.linkedin.com/jobs/view/2"}
"""


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'cli.db'}"


@pytest.fixture
def profiles_file(tmp_path: Path) -> Path:
    path = tmp_path / "profiles.yml"
    path.write_text(PROFILES_YAML)
    return path


@pytest.fixture
def records_file(tmp_path: Path) -> Path:
    path = tmp_path / "records.yml"
    path.write_text(RECORDS_YAML)
    return path


def invoke(runner, db_url, *args):
    return runner.invoke(cli, ['--db-url', db_url, *args], obj={})


def test_cli_help(runner):
    result = runner.invoke(cli, ['--help'])
    assert result.exit_code == 0
    for command in ('init-db', 'serve', 'token', 'profile', 'push', 'scores', 'digest', 'score-text'):
        assert command in result.output


def test_init_db(runner, db_url):
    result = invoke(runner, db_url, 'init-db')
    assert result.exit_code == 0
    assert "Database ready" in result.output


class TestTokenCommands:
    """token create / revoke / list."""

    def test_create_prints_token_once(self, runner, db_url):
        result = invoke(runner, db_url, 'token', 'create', '--name', 'laptop', '--user', 'alice')

        assert result.exit_code == 0
        plain = result.output.strip().splitlines()[-1]
        assert plain.startswith("jm_")

        from jobmatch.auth import TokenValidator
        assert TokenValidator(Database(db_url)).validate(f"Bearer {plain}") == "alice"

    def test_revoke(self, runner, db_url):
        from jobmatch.auth import TokenValidator

        db = Database(db_url)
        token_id, plain = TokenValidator(db).issue("alice", "laptop")

        result = invoke(runner, db_url, 'token', 'revoke', token_id)
        assert result.exit_code == 0
        assert TokenValidator(db).lookup(f"Bearer {plain}") is None

    def test_revoke_unknown(self, runner, db_url):
        result = invoke(runner, db_url, 'token', 'revoke', 'missing')
        assert result.exit_code == 1

    def test_list_shows_active_tokens(self, runner, db_url):
        from jobmatch.auth import TokenValidator

        db = Database(db_url)
        TokenValidator(db).issue("alice", "laptop")
        revoked_id, _ = TokenValidator(db).issue("alice", "phone")
        db.revoke_token(revoked_id)

        result = invoke(runner, db_url, 'token', 'list', '--user', 'alice')
        assert result.exit_code == 0
        assert "Active Tokens (alice)" in result.output
        assert "laptop" in result.output
        assert "phone" not in result.output

    def test_list_empty(self, runner, db_url):
        result = invoke(runner, db_url, 'token', 'list', '--user', 'nobody')
        assert "No active tokens" in result.output


class TestProfileCommands:
    """profile add / list / activate / deactivate / delete."""

    def test_add_and_list(self, runner, db_url, profiles_file):
        result = invoke(runner, db_url, 'profile', 'add', str(profiles_file))
        assert result.exit_code == 0
        assert "Added profile" in result.output

        (stored,) = Database(db_url).get_profiles('local')
        assert stored.title == "Senior Frontend Engineer"
        assert [s.skill_name for s in stored.skills] == ["react", "typescript"]

        result = invoke(runner, db_url, 'profile', 'list')
        assert result.exit_code == 0
        assert "Career Profiles (local)" in result.output

    def test_list_empty(self, runner, db_url):
        result = invoke(runner, db_url, 'profile', 'list', '--user', 'nobody')
        assert "No profiles found" in result.output

    def test_add_invalid_file(self, runner, db_url, tmp_path):
        bad = tmp_path / "bad.yml"
        bad.write_text("- location_pref: Remote\n")

        result = invoke(runner, db_url, 'profile', 'add', str(bad))
        assert result.exit_code == 1
        assert "Invalid profile file" in result.output

    def test_deactivate_activate_and_delete(self, runner, db_url):
        db = Database(db_url)
        stored = db.create_profile('local', CareerProfile(title="Frontend"))

        result = invoke(runner, db_url, 'profile', 'deactivate', stored.id)
        assert result.exit_code == 0
        assert db.get_active_profiles('local') == []

        invoke(runner, db_url, 'profile', 'activate', stored.id)
        assert [p.id for p in db.get_active_profiles('local')] == [stored.id]

        result = invoke(runner, db_url, 'profile', 'delete', stored.id)
        assert result.exit_code == 0
        assert db.get_profile(stored.id) is None

    def test_unknown_profile(self, runner, db_url):
        assert invoke(runner, db_url, 'profile', 'deactivate', 'missing').exit_code == 1
        assert invoke(runner, db_url, 'profile', 'delete', 'missing').exit_code == 1


class TestPush:
    """push sends queued records through the ingest client."""

    def test_push_success(self, runner, records_file, requests_mock):
        requests_mock.post(ENDPOINT, json={"inserted": 2, "updated": 0, "ids": ["a", "b"]})

        result = runner.invoke(cli, [
            'push', str(records_file), '--api-url', 'http://api.test', '--token', 'jm_secret',
        ], obj={})

        assert result.exit_code == 0, result.output
        assert requests_mock.call_count == 1
        sent = requests_mock.last_request
        assert sent.headers["Authorization"] == "Bearer jm_secret"
        assert len(sent.json()["opportunities"]) == 2
        assert "Push Summary" in result.output

    def test_push_without_token_fails(self, runner, records_file, requests_mock, monkeypatch):
        monkeypatch.delenv('INGEST_TOKEN', raising=False)

        result = runner.invoke(cli, ['push', str(records_file), '--api-url', 'http://api.test'], obj={})

        assert result.exit_code == 1
        assert requests_mock.call_count == 0

    def test_push_rejects_oversized_chunks(self, runner, records_file, requests_mock, monkeypatch):
        monkeypatch.setenv('QUEUE_CHUNK_SIZE', '150')

        result = runner.invoke(cli, [
            'push', str(records_file), '--api-url', 'http://api.test', '--token', 'jm_secret',
        ], obj={})

        assert result.exit_code == 1
        assert "Invalid queue settings" in result.output
        assert requests_mock.call_count == 0

    def test_push_invalid_records(self, runner, tmp_path):
        bad = tmp_path / "bad.yml"
        bad.write_text("source: indeed\nopportunities: []\n")

        result = runner.invoke(cli, ['push', str(bad), '--token', 'jm_secret'], obj={})
        assert result.exit_code == 1
        assert "Invalid records file" in result.output


class TestReadCommands:
    """scores, digest and score-text."""

    @pytest.fixture
    def scored_profile(self, db_url):
        db = Database(db_url)
        stored = db.create_profile('local', CareerProfile(
            title="Frontend", skills=[ProfileSkill("react", 80, True)],
        ))
        opportunity, _ = db.upsert_opportunity(OpportunityInput(
            dedupe_key="a" * 64,
            source=OpportunitySource.LINKEDIN,
            url="https://www.linkedin.com/jobs/view/1",
            title="React Developer",
            company="TechCorp",
            captured_at=utcnow(),
        ), lambda text: [])
        db.upsert_score(stored.id, opportunity.id, ScoreResult(77, 80, 70, []))
        return stored

    def test_scores(self, runner, db_url, scored_profile):
        result = invoke(runner, db_url, 'scores', '--profile-id', scored_profile.id)

        assert result.exit_code == 0
        assert "Scored Opportunities" in result.output
        assert "77" in result.output

    def test_scores_unknown_profile(self, runner, db_url):
        result = invoke(runner, db_url, 'scores', '--profile-id', 'missing')
        assert result.exit_code == 1

    def test_scores_min_score_filters(self, runner, db_url, scored_profile):
        result = invoke(runner, db_url, 'scores', '--profile-id', scored_profile.id, '--min-score', '90')
        assert "No scored opportunities found" in result.output

    def test_digest(self, runner, db_url, scored_profile):
        result = invoke(runner, db_url, 'digest', '--threshold', '50')

        assert result.exit_code == 0
        assert "New matches for Frontend" in result.output

    def test_digest_empty(self, runner, db_url, scored_profile):
        result = invoke(runner, db_url, 'digest', '--threshold', '90')
        assert "No new matches" in result.output

    def test_score_text(self, runner, profiles_file):
        result = runner.invoke(cli, [
            'score-text', str(profiles_file),
            '--title', 'Senior Frontend Engineer',
            '--location', 'Remote',
            '--description', 'React and TypeScript required.',
        ], obj={})

        assert result.exit_code == 0, result.output
        assert "Total" in result.output
        assert "Reasons" in result.output
