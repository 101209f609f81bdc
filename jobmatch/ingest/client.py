"""HTTP transport for delivering batches to the ingest endpoint."""
import logging
from typing import Any, Dict, Optional

import requests

from jobmatch.error_handling import DeliveryError, ErrorHandler, UnauthorizedError

logger = logging.getLogger(__name__)

INGEST_PATH = "/api/v1/extension/ingest"


class IngestClient:
    """Sends one batch per call with a bearer token and a per-attempt timeout."""

    def __init__(self, api_url: str, token: Optional[str], timeout: float = 15.0,
                 session: Optional[requests.Session] = None):
        """Initialize the client.

        Args:
            api_url: Base URL of the server, e.g. http://localhost:8000
            token: Personal access token; None makes every send fail as unauthorized
            timeout: Seconds to wait for each attempt
            session: Optional session to reuse (tests inject one)
        """
        self.api_url = api_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()
        self.error_handler = ErrorHandler()

    @property
    def endpoint(self) -> str:
        return f"{self.api_url}{INGEST_PATH}"

    def send_batch(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a batch and return the decoded response.

        Args:
            payload: Ingest body with source, page_url, collected_at and opportunities

        Returns:
            Response body with inserted, updated and ids

        Raises:
            UnauthorizedError: No token configured or the token was rejected
            DeliveryError: Any other failure, safe to retry
        """
        if not self.token:
            raise UnauthorizedError("No ingest token configured")

        headers = {
            'Authorization': f"Bearer {self.token}",
            'Content-Type': 'application/json',
        }
        try:
            response = self.session.post(
                self.endpoint, json=payload, headers=headers, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise self.error_handler.classify_exception(e, self.endpoint) from e

        self.error_handler.check_response(response, self.endpoint)

        try:
            body = response.json()
        except ValueError as e:
            raise DeliveryError(f"Invalid JSON in response: {str(e)}") from e

        logger.debug(
            f"Delivered {len(payload.get('opportunities', []))} items: "
            f"inserted={body.get('inserted')} updated={body.get('updated')}"
        )
        return body
