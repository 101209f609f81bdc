"""Configuration: environment settings plus YAML record and profile files."""
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
import yaml
import os
import logging
from dotenv import load_dotenv

from .domain.opportunity import (
    CareerProfile,
    OpportunitySource,
    ProfileSkill,
    RawOpportunityRecord,
    utcnow,
)

logger = logging.getLogger(__name__)


def _read_yaml(path: Path) -> Any:
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    with open(path, "r") as f:
        return yaml.safe_load(f)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace('Z', '+00:00'))


def load_records(path: Path) -> List[RawOpportunityRecord]:
    """Load scraped listings to push from a YAML file.

    The file holds one or more pages:

        pages:
          - source: linkedin
            page_url: https://www.linkedin.com/jobs/search
            collected_at: 2024-01-15T10:00:00Z
            opportunities:
              - title: Senior Frontend Engineer
                company: TechCorp
                url: https://www.linkedin.com/jobs/view/1

    A single page may also be given at the top level.

    Args:
        path: Path to the YAML file
    Returns:
        List of RawOpportunityRecord objects
    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If a page has an unknown source or a listing lacks required fields
    """
    data = _read_yaml(path) or {}
    pages = data.get('pages', [data]) if isinstance(data, dict) else data

    records = []
    for page in pages:
        try:
            source = OpportunitySource(page.get("source"))
        except ValueError:
            raise ValueError(f"Invalid source: {page.get('source')!r}")
        page_url = page.get("page_url", "")
        collected_at = _parse_datetime(page.get("collected_at")) or utcnow()

        for item in page.get("opportunities", []):
            records.append(RawOpportunityRecord(
                title=item.get("title", ""),
                company=item.get("company", ""),
                url=item.get("url", ""),
                source=source,
                page_url=page_url,
                collected_at=collected_at,
                location=item.get("location"),
                description_snippet=item.get("description_snippet"),
                external_id=item.get("external_id"),
                employment_type=item.get("employment_type"),
                posted_at=_parse_datetime(item.get("posted_at")),
            ))
    return records


def load_profiles(path: Path) -> List[CareerProfile]:
    """Load career profiles from a YAML file (a list, or a 'profiles' key)."""
    data = _read_yaml(path) or []
    if isinstance(data, dict) and 'profiles' in data:
        data = data['profiles']

    profiles = []
    for item in data:
        if not item.get("title"):
            raise ValueError("Profile title is required")
        profiles.append(CareerProfile(
            title=item["title"],
            function_area=item.get("function_area"),
            location_pref=item.get("location_pref"),
            seniority=item.get("seniority"),
            work_mode=item.get("work_mode"),
            is_active=item.get("is_active", True),
            skills=[
                ProfileSkill(
                    skill_name=skill["skill_name"],
                    weight=int(skill.get("weight", 50)),
                    required=bool(skill.get("required", False)),
                )
                for skill in item.get("skills", [])
            ],
        ))
    return profiles


_TRUE_VALUES = ('true', '1', 'yes', 'on')


class Config:
    """Settings read from the environment, optionally seeded from a .env file."""

    def __init__(self, env_file: Optional[str] = None):
        """Load a .env file into the environment when one is available.

        Args:
            env_file: Path to a .env file; ./.env is tried when it is missing
        """
        for candidate in (env_file, ".env"):
            if candidate and os.path.exists(candidate):
                load_dotenv(candidate)
                logger.info(f"Loaded environment from {candidate}")
                break
        else:
            logger.debug("No .env file, reading process environment only")

    def get(self, key: str, default: Any = None, required: bool = False) -> Any:
        """Return the raw environment value of key.

        Raises:
            ValueError: If required is set and the key is not defined
        """
        value = os.environ.get(key, default)
        if value is None and required:
            raise ValueError(f"Missing required setting {key}")
        return value

    def _typed(self, key: str, default: Any, cast: Callable[[Any], Any]) -> Any:
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return cast(raw)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring {key}={raw!r}, expected {cast.__name__}; using {default}")
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        raw = self.get(key)
        if raw is None:
            return default
        return str(raw).strip().lower() in _TRUE_VALUES

    def get_int(self, key: str, default: int = 0) -> int:
        return self._typed(key, default, int)

    def get_float(self, key: str, default: float = 0.0) -> float:
        return self._typed(key, default, float)

    def get_list(self, key: str, default: Optional[list] = None, separator: str = ",") -> list:
        """Split a separator-delimited value, dropping blank entries."""
        raw = self.get(key)
        if not raw:
            return list(default or [])
        return [part.strip() for part in str(raw).split(separator) if part.strip()]

    def get_database_config(self) -> Dict[str, Any]:
        return {
            'url': self.get('DATABASE_URL', 'sqlite:///jobmatch.db'),
            'echo': self.get_bool('DATABASE_ECHO'),
        }

    def get_web_config(self) -> Dict[str, Any]:
        """Bind address of the API server."""
        return {
            'host': self.get('WEB_HOST', '0.0.0.0'),
            'port': self.get_int('WEB_PORT', 8000),
            'reload': self.get_bool('WEB_RELOAD'),
        }

    def get_queue_config(self) -> Dict[str, Any]:
        """Get ingest queue configuration.

        Returns:
            Endpoint, token, timing, batching and retry settings of the push client
        """
        delays = []
        for item in self.get_list('QUEUE_RETRY_DELAYS', ['2', '4', '8']):
            try:
                delays.append(float(item))
            except ValueError:
                logger.warning(f"Invalid retry delay {item!r} in QUEUE_RETRY_DELAYS, ignoring")

        return {
            'api_url': self.get('INGEST_API_URL', 'http://localhost:8000'),
            'token': self.get('INGEST_TOKEN'),
            'debounce_seconds': self.get_float('QUEUE_DEBOUNCE_SECONDS', 1.0),
            'flush_interval': self.get_float('QUEUE_FLUSH_INTERVAL', 30.0),
            'chunk_size': self.get_int('QUEUE_CHUNK_SIZE', 50),
            'max_retries': self.get_int('QUEUE_MAX_RETRIES', 3),
            'retry_delays': delays or [2.0, 4.0, 8.0],
            'request_timeout': self.get_float('QUEUE_REQUEST_TIMEOUT', 15.0),
        }

    def get_digest_config(self) -> Dict[str, int]:
        return {
            'threshold': self.get_int('DIGEST_THRESHOLD', 50),
            'window_hours': self.get_int('DIGEST_WINDOW_HOURS', 24),
        }

    def get_all_config(self) -> Dict[str, Any]:
        return {
            'database': self.get_database_config(),
            'web': self.get_web_config(),
            'queue': self.get_queue_config(),
            'digest': self.get_digest_config(),
        }


config = Config()
