import logging
from typing import Any

import httpx

from ..models import DirectoryProfile

logger = logging.getLogger(__name__)


class DirectoryClient:
    """Client for the identity directory (``GET /identity/{fid}``).

    The directory is a best-effort cache over the social hub; callers decide
    what to do with failures.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        """Initialize the directory client.

        Args:
            base_url: Directory root, e.g. ``https://app.example/api``
            timeout: Per-request timeout in seconds
            transport: Optional transport override
        """
        if not base_url:
            raise ValueError("Directory base URL is required")

        self.base_url: str = base_url.rstrip("/")
        self.timeout: float = timeout
        self.transport: httpx.AsyncBaseTransport | None = transport

    async def _get(self, path: str) -> Any:
        """Send a GET request to the directory.

        Args:
            path: API endpoint path

        Returns:
            Decoded JSON response

        Raises:
            httpx.HTTPStatusError: For non-2xx responses
            httpx.TimeoutException: When the request exceeds the timeout
            ValueError: When the body is not JSON
        """
        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            full_url: str = self.base_url + path
            logger.debug(f"GET {full_url}")
            response: httpx.Response = await client.get(full_url)
            response.raise_for_status()
            return response.json()

    async def lookup(self, fid: int) -> DirectoryProfile:
        """Fetch the directory profile for a numeric user id.

        Args:
            fid: Numeric social identity

        Returns:
            Typed profile; fields the directory does not know are None

        Raises:
            httpx.HTTPError: Transport failure, timeout or non-2xx status
            ValueError: Malformed response body
        """
        payload = await self._get(f"/identity/{fid}")
        return DirectoryProfile.from_payload(payload)
