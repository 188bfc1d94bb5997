"""
Google OAuth access tokens for the booking calendar.

The booking service acts as a single calendar owner: it holds a long-lived
refresh token and exchanges it for short-lived access tokens, cached until
shortly before they expire.
"""

import asyncio
from datetime import UTC, datetime, timedelta

import httpx

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

# Request timeouts and retry configuration
REQUEST_TIMEOUT = 10  # seconds
MAX_RETRIES = 3
BACKOFF_FACTOR = 2  # 2, 4 seconds
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}
TOKEN_REFRESH_BUFFER_SECONDS = 60


class GoogleOAuthError(Exception):
    """Custom exception for Google OAuth-related errors."""

    def __init__(
        self, message: str, error_code: str | None = None, response_data: dict | None = None
    ):
        super().__init__(message)
        self.error_code = error_code
        self.response_data = response_data or {}


class TokenResponse:
    """Structured representation of OAuth token response."""

    def __init__(self, data: dict):
        self.access_token = data.get("access_token")
        self.token_type = data.get("token_type", "Bearer")
        self.expires_in = data.get("expires_in")
        self.scope = data.get("scope", "")

        if self.expires_in:
            self.expires_at = datetime.now(UTC) + timedelta(seconds=int(self.expires_in))
        else:
            self.expires_at = None

    def is_valid(self) -> bool:
        return bool(self.access_token and self.token_type)

    def is_fresh(self, buffer_seconds: int = TOKEN_REFRESH_BUFFER_SECONDS) -> bool:
        if not self.is_valid():
            return False
        if self.expires_at is None:
            return True
        return datetime.now(UTC) + timedelta(seconds=buffer_seconds) < self.expires_at


class GoogleAccessTokenProvider:
    """Exchanges the configured refresh token for access tokens."""

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        refresh_token: str | None = None,
    ):
        self.client_id = client_id or settings.GOOGLE_CLIENT_ID
        self.client_secret = client_secret or settings.GOOGLE_CLIENT_SECRET
        self.refresh_token = refresh_token or settings.GOOGLE_REFRESH_TOKEN
        self._token: TokenResponse | None = None
        self._lock = asyncio.Lock()
        self._validate_config()

    def _validate_config(self) -> None:
        if not self.client_id:
            raise GoogleOAuthError("GOOGLE_CLIENT_ID not configured")
        if not self.client_secret:
            raise GoogleOAuthError("GOOGLE_CLIENT_SECRET not configured")
        if not self.refresh_token:
            raise GoogleOAuthError("GOOGLE_REFRESH_TOKEN not configured")

    async def get_access_token(self) -> str:
        """Return a cached access token, refreshing it when close to expiry."""
        async with self._lock:
            if self._token is None or not self._token.is_fresh():
                self._token = await self.refresh_access_token()
            return self._token.access_token

    async def refresh_access_token(self) -> TokenResponse:
        """
        Refresh access token using the refresh token.

        Raises:
            GoogleOAuthError: If token refresh fails
        """
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": self.refresh_token,
            "grant_type": "refresh_token",
        }

        try:
            response = await self._post_with_retry(GOOGLE_TOKEN_URL, data)
        except httpx.RequestError as e:
            logger.error(
                "Network error during token refresh", error=str(e), error_type=type(e).__name__
            )
            raise GoogleOAuthError(f"Network error during token refresh: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if not response.is_success:
            error_code = payload.get("error", str(response.status_code))
            logger.error(
                "Google token refresh rejected",
                status_code=response.status_code,
                error_code=error_code,
            )
            raise GoogleOAuthError(
                f"Token refresh failed: {payload.get('error_description', error_code)}",
                error_code=error_code,
                response_data=payload,
            )

        token = TokenResponse(payload)
        if not token.is_valid():
            raise GoogleOAuthError("Token refresh response missing access_token", response_data=payload)

        logger.info("Google access token refreshed", expires_in=token.expires_in)
        return token

    async def _post_with_retry(self, url: str, data: dict) -> httpx.Response:
        headers = {"Content-Type": "application/x-www-form-urlencoded"}

        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            for attempt in range(1, MAX_RETRIES + 1):
                try:
                    response = await client.post(url, data=data, headers=headers)
                    if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                        wait_time = BACKOFF_FACTOR**attempt
                        logger.warning(
                            "Google OAuth transient status",
                            status_code=response.status_code,
                            attempt=attempt,
                            wait_time=wait_time,
                        )
                        await asyncio.sleep(wait_time)
                        continue
                    return response

                except httpx.RequestError as exc:
                    if attempt == MAX_RETRIES:
                        raise
                    wait_time = BACKOFF_FACTOR**attempt
                    logger.warning(
                        "Google OAuth request error, retrying",
                        attempt=attempt,
                        wait_time=wait_time,
                        error=str(exc),
                    )
                    await asyncio.sleep(wait_time)

        raise RuntimeError("Google OAuth retry loop exhausted")
