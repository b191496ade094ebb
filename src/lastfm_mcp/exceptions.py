"""Exception classes for the Last.fm MCP server."""

from typing import Optional

import httpx


class LastfmMCPError(Exception):
    """Base exception for all errors raised by this package."""

    pass


class UpstreamResponseError(LastfmMCPError):
    """Upstream HTTP call finished with a non-success status.

    Raised by ``fetch_with_retry`` for statuses that are never retried
    (4xx other than 429) and for retryable statuses once the retry budget
    is exhausted.

    Attributes:
        response: The final httpx.Response
        status_code: HTTP status code
        status_text: HTTP reason phrase
        attempts: Number of attempts made before giving up
    """

    def __init__(self, response: httpx.Response, attempts: int = 1):
        """Initialize from the failing response.

        Args:
            response: Non-success response returned by the upstream API
            attempts: Attempts made so far
        """
        self.response = response
        self.status_code = response.status_code
        self.status_text = response.reason_phrase
        self.attempts = attempts
        super().__init__(f"HTTP {self.status_code}: {self.status_text}")

    @property
    def retry_after(self) -> Optional[str]:
        """Raw Retry-After header value, if the upstream sent one."""
        return self.response.headers.get("Retry-After")


class LastfmAPIError(LastfmMCPError):
    """Last.fm answered with an error payload.

    Attributes:
        code: Last.fm error code (e.g. 6 = invalid parameters, 29 = rate limit)
        message: Error message from Last.fm
    """

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"Last.fm API error {code}: {message}")


class KVStoreError(LastfmMCPError):
    """Key-value backend failed to complete an operation."""

    pass
