"""Canonical dedupe keys for collected job listings."""
import hashlib
import logging
from typing import Optional, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from jobmatch.domain.opportunity import OpportunitySource

logger = logging.getLogger(__name__)


class DedupeKeyer:
    """Derives the stable key that identifies one listing across ingestions."""

    # Query parameters sites append for click tracking
    TRACKING_PARAMS = (
        'utm_source',
        'utm_medium',
        'utm_campaign',
        'utm_term',
        'utm_content',
        'refId',
        'trackingId',
        'trk',
    )

    def __init__(self, tracking_params: Optional[tuple] = None):
        """Initialize the keyer.

        Args:
            tracking_params: Query parameters to strip (None for the defaults)
        """
        self.tracking_params = frozenset(tracking_params or self.TRACKING_PARAMS)

    def normalize_url(self, url: str) -> str:
        """Strip tracking parameters and the fragment from a URL.

        Args:
            url: Listing URL as scraped

        Returns:
            Normalized URL, or the input unchanged if it is not an absolute URL
        """
        try:
            parts = urlsplit(url)
        except ValueError:
            logger.debug(f"Could not parse URL, using it verbatim: {url!r}")
            return url

        if not parts.scheme or not parts.netloc:
            return url

        query = [
            (name, value)
            for name, value in parse_qsl(parts.query, keep_blank_values=True)
            if name not in self.tracking_params
        ]
        return urlunsplit((
            parts.scheme,
            parts.netloc.lower(),
            parts.path or '/',
            urlencode(query),
            '',
        ))

    def key(self, source: Union[OpportunitySource, str], url: str,
            external_id: Optional[str] = None) -> str:
        """Compute the dedupe key for a listing.

        An external id, when present, wins over the URL so that rotated
        tracking URLs of one posting collapse into a single record.

        Args:
            source: Site the listing came from
            url: Listing URL
            external_id: Site-specific listing id, if known

        Returns:
            64-character lowercase hex SHA-256 digest
        """
        source_value = source.value if isinstance(source, OpportunitySource) else str(source)

        if external_id:
            return self._hash(f"{source_value}:ext:{external_id}")

        return self._hash(f"{source_value}:url:{self.normalize_url(url)}")

    @staticmethod
    def _hash(value: str) -> str:
        return hashlib.sha256(value.encode('utf-8')).hexdigest()


_default_keyer = DedupeKeyer()


def dedupe_key(source: Union[OpportunitySource, str], url: str,
               external_id: Optional[str] = None) -> str:
    """Compute a dedupe key with the default tracking-parameter list."""
    return _default_keyer.key(source, url, external_id)
