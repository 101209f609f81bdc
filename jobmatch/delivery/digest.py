"""Daily digest of new high-scoring matches per career profile."""
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List

from jobmatch.database import Database, ScoredMatch
from jobmatch.domain.opportunity import utcnow

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 50
DEFAULT_WINDOW_HOURS = 24
MAX_DIGEST_ITEMS = 10


@dataclass
class ProfileDigest:
    """Matches for one profile."""
    profile_id: str
    profile_title: str
    opportunities: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'profile_id': self.profile_id,
            'profile_title': self.profile_title,
            'opportunities': self.opportunities,
        }


def _match_item(match: ScoredMatch) -> Dict[str, Any]:
    return {
        'score_id': match.score_id,
        'title': match.opportunity.title,
        'company': match.opportunity.company,
        'url': match.opportunity.url,
        'total_score': match.total_score,
        'reasons': match.reasons,
    }


def build_digest(db: Database, user_id: str, threshold: int = DEFAULT_THRESHOLD,
                 window_hours: int = DEFAULT_WINDOW_HOURS) -> Dict[str, Any]:
    """Collect unseen matches scored within the window for each active profile.

    Args:
        db: Database to read from
        user_id: Owner of the profiles
        threshold: Minimum total score
        window_hours: How far back scored_at may lie

    Returns:
        Digest dict; profiles without matches are left out
    """
    generated_at = utcnow()
    since = generated_at - timedelta(hours=window_hours)

    digests = []
    for profile in db.get_active_profiles(user_id):
        matches = db.find_new_matches(profile.id, threshold, since, limit=MAX_DIGEST_ITEMS)
        if not matches:
            continue
        digests.append(ProfileDigest(
            profile_id=profile.id,
            profile_title=profile.title,
            opportunities=[_match_item(m) for m in matches],
        ).to_dict())

    logger.info(f"Built digest for user {user_id}: {len(digests)} profiles with matches")
    return {
        'user_id': user_id,
        'threshold': threshold,
        'window_hours': window_hours,
        'profiles': digests,
        'generated_at': generated_at.isoformat(),
    }
