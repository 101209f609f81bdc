"""Error classification for ingest delivery."""
import logging
from typing import Dict, Optional

import requests

logger = logging.getLogger(__name__)


class DeliveryError(Exception):
    """A batch could not be delivered; retrying may succeed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UnauthorizedError(DeliveryError):
    """The ingest endpoint rejected the token; retrying cannot succeed."""

    def __init__(self, message: str = "Unauthorized: invalid or missing token"):
        super().__init__(message, status_code=401)


class ErrorHandler:
    """Maps transport failures and HTTP responses onto delivery errors."""

    def __init__(self):
        """Initialize the error handler."""
        self.error_counts: Dict[str, int] = {}

    def _count(self, target: str) -> None:
        self.error_counts[target] = self.error_counts.get(target, 0) + 1

    def classify_exception(self, error: Exception, target: str) -> DeliveryError:
        """Wrap a requests exception.

        Args:
            error: The exception raised while sending
            target: Name of the endpoint, used in log messages

        Returns:
            DeliveryError describing the failure
        """
        self._count(target)

        if isinstance(error, requests.exceptions.Timeout):
            logger.warning(f"Timeout sending to {target}: {str(error)}")
            return DeliveryError(f"Request timed out: {str(error)}")

        elif isinstance(error, requests.exceptions.ConnectionError):
            logger.warning(f"Connection error sending to {target}: {str(error)}")
            return DeliveryError(f"Connection failed: {str(error)}")

        else:
            logger.error(f"Unhandled error sending to {target}: {type(error).__name__}: {str(error)}")
            return DeliveryError(f"{type(error).__name__}: {str(error)}")

    def check_response(self, response: requests.Response, target: str) -> None:
        """Raise if an HTTP response is not a success.

        Args:
            response: The HTTP response
            target: Name of the endpoint

        Raises:
            UnauthorizedError: On 401
            DeliveryError: On any other non-2xx status
        """
        status_code = response.status_code
        if 200 <= status_code < 300:
            return

        self._count(target)

        if status_code == 401:
            logger.error(f"Token rejected (401) by {target}")
            raise UnauthorizedError()

        elif status_code == 429:
            logger.warning(f"Rate limit exceeded (429) for {target}")

        elif status_code >= 500:
            logger.warning(f"Server error ({status_code}) from {target}")

        else:
            logger.error(f"HTTP error ({status_code}) from {target}")

        raise DeliveryError(f"HTTP {status_code}: {response.text[:200]}", status_code=status_code)
