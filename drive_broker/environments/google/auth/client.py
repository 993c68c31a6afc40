"""
Google OAuth Client - the token authority of the broker.

Implements the OAuth 2.0 authorization code flow against Google's
authorization server for any number of independent end users. The client
holds no per-user state: every call receives the token material it works on.

Key Features:
=============
1. Authorization URL generation (offline access, consent prompt)
2. Code-to-token exchange
3. Token refresh, and validate-or-refresh with an expiry safety margin
4. Best-effort token revocation
5. Profile lookup for display name and picture

References:
===========
- OAuth 2.0: https://developers.google.com/identity/protocols/oauth2
- Token endpoint: https://oauth2.googleapis.com/token
- Userinfo: https://www.googleapis.com/oauth2/v3/userinfo
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from drive_broker.core.config import settings
from drive_broker.core.timestamps import format_timestamp, parse_timestamp
from drive_broker.environments.base import (
    TokenProvider,
    TokenResult,
    UserInfo,
    AuthError,
    TransportError,
)
from drive_broker.environments.google.auth.schemas import (
    GoogleErrorResponse,
    GoogleTokenResponse,
    GoogleUserInfo,
    DRIVE_SCOPES,
    PROFILE_SCOPES,
)


logger = logging.getLogger("drive_broker.environments.google.auth")


class GoogleAuthClient(TokenProvider):
    """
    Google OAuth 2.0 token authority.

    Example Usage:
        client = GoogleAuthClient()

        # Step 1: Send the user to the consent screen
        url = client.build_authorization_url()

        # Step 2: Exchange the code Google hands back
        tokens = await client.exchange_code(code="4/0Ab...")

        # Step 3: Before each proxied call
        tokens = await client.validate_or_refresh(user_id, credential)
    """

    provider_name = "google"

    AUTHORIZATION_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"
    REVOKE_URL = "https://oauth2.googleapis.com/revoke"

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        expiry_margin_seconds: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the Google OAuth client.

        Args:
            client_id: Google OAuth Client ID (defaults to settings)
            client_secret: Google OAuth Client Secret (defaults to settings)
            redirect_uri: OAuth callback URL (defaults to settings)
            expiry_margin_seconds: Refresh tokens expiring within this window
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.client_id = client_id or settings.GOOGLE_CLIENT_ID
        self.client_secret = client_secret or settings.GOOGLE_CLIENT_SECRET
        self.redirect_uri = redirect_uri or settings.GOOGLE_REDIRECT_URI
        self.expiry_margin = timedelta(
            seconds=settings.TOKEN_EXPIRY_MARGIN_SECONDS
            if expiry_margin_seconds is None
            else expiry_margin_seconds
        )
        self._transport = transport

        if not self.client_id or not self.client_secret:
            logger.warning(
                "Google OAuth not configured. Set GOOGLE_CLIENT_ID and "
                "GOOGLE_CLIENT_SECRET in environment variables."
            )

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    # -------------------------------------------------------------------------
    # AUTHORIZATION URL
    # -------------------------------------------------------------------------

    def build_authorization_url(self, state: Optional[str] = None) -> str:
        """
        Generate the Google OAuth consent URL for Drive access.

        access_type=offline and prompt=consent make Google return a refresh
        token every time, which the broker needs to act while the user is away.

        Returns:
            Full authorization URL to redirect the user to
        """
        scopes = list(DRIVE_SCOPES)
        for scope in PROFILE_SCOPES:
            if scope not in scopes:
                scopes.append(scope)

        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(scopes),
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
        }
        if state:
            params["state"] = state

        return f"{self.AUTHORIZATION_URL}?{urlencode(params)}"

    # -------------------------------------------------------------------------
    # TOKEN EXCHANGE
    # -------------------------------------------------------------------------

    async def exchange_code(
        self,
        code: str,
        redirect_uri: Optional[str] = None,
    ) -> TokenResult:
        """
        Exchange authorization code for access and refresh tokens.

        Codes are single-use: a second exchange of the same code fails with
        invalid_grant. The orchestrator guards against that with last_auth_code.

        Returns:
            TokenResult; error is set when Google rejects the code or the
            network call fails
        """
        token_data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri or self.redirect_uri,
        }

        logger.info("Exchanging authorization code for tokens")

        async with self._http() as client:
            try:
                response = await client.post(self.TOKEN_URL, data=token_data)
            except httpx.HTTPError as e:
                logger.error(f"Network error during token exchange: {e}")
                return TokenResult(error=f"Network error: {e}")

        if response.status_code != 200:
            error_msg = self._error_message(response)
            logger.error(f"Token exchange failed: {error_msg}")
            return TokenResult(error=f"Token exchange failed: {error_msg}")

        try:
            token_response = GoogleTokenResponse(**response.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"Unexpected token exchange response: {e}")
            return TokenResult(error=f"Invalid token response: {e}")

        logger.info(
            "Successfully obtained Google tokens",
            extra={
                "has_refresh_token": token_response.refresh_token is not None,
                "expires_in": token_response.expires_in,
            }
        )

        return self._to_result(token_response)

    # -------------------------------------------------------------------------
    # TOKEN REFRESH
    # -------------------------------------------------------------------------

    async def refresh(self, user_id: Optional[str], refresh_token: str) -> TokenResult:
        """
        Use refresh token to get a new access token.

        Args:
            user_id: Identity the token belongs to (logging only)
            refresh_token: The refresh token from the initial authorization

        Returns:
            TokenResult with a new access token (refresh token kept if
            Google does not rotate it)

        Raises:
            AuthError: If Google rejects the refresh token
            TransportError: If the token endpoint cannot be reached
        """
        refresh_data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }

        logger.info(f"Refreshing access token for user [{user_id}]")

        async with self._http() as client:
            try:
                response = await client.post(self.TOKEN_URL, data=refresh_data)
            except httpx.HTTPError as e:
                logger.error(f"Network error during token refresh: {e}")
                raise TransportError(f"Error renewing the token [{e}]") from e

        if response.status_code != 200:
            error_msg = self._error_message(response)
            logger.warning(f"Token refresh failed for user [{user_id}]: {error_msg}")
            raise AuthError(
                f"Error renewing the token [{response.status_code}] [{error_msg}]",
                status_code=response.status_code,
                response=response.text,
            )

        try:
            token_response = GoogleTokenResponse(**response.json())
        except (ValueError, ValidationError) as e:
            raise TransportError(f"Invalid token response: {e}") from e

        logger.info(
            f"Successfully refreshed access token for user [{user_id}]",
            extra={"expires_in": token_response.expires_in}
        )

        result = self._to_result(token_response)
        if not result.refresh_token:
            result.refresh_token = refresh_token
        return result

    async def validate_or_refresh(self, user_id: Optional[str], credential: Any) -> TokenResult:
        """
        Return the stored token if it is still fresh, otherwise refresh it.

        A token counts as fresh when it expires later than now plus the
        safety margin. A token without a known expiration is refreshed when a
        refresh token exists, and trusted as-is otherwise.

        Args:
            user_id: Identity the credential belongs to
            credential: Anything with access_token, refresh_token and
                expiration_time attributes (usually a UserCredential)

        Raises:
            AuthError: If a needed refresh is rejected by Google
            TransportError: If a needed refresh cannot reach Google
        """
        access_token = getattr(credential, "access_token", None)
        refresh_token = getattr(credential, "refresh_token", None)
        expires_at = parse_timestamp(getattr(credential, "expiration_time", None))

        if access_token and expires_at is not None:
            if datetime.now(timezone.utc) < expires_at - self.expiry_margin:
                return TokenResult(
                    access_token=access_token,
                    refresh_token=refresh_token,
                    expiration_time=format_timestamp(expires_at),
                )

        if refresh_token:
            return await self.refresh(user_id, refresh_token)

        if access_token and expires_at is None:
            # Supplied without expiry or refresh token; nothing to renew it with
            return TokenResult(access_token=access_token)

        if access_token:
            return TokenResult(error="Token expired and no refresh token available")
        return TokenResult(error="No token available")

    # -------------------------------------------------------------------------
    # USER INFO
    # -------------------------------------------------------------------------

    async def get_user_info(self, access_token: str) -> UserInfo:
        """
        Get the profile of the Google account behind access_token.

        Raises:
            AuthError: If Google rejects the token
            TransportError: If the userinfo endpoint cannot be reached
        """
        async with self._http() as client:
            try:
                response = await client.get(
                    self.USERINFO_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
            except httpx.HTTPError as e:
                logger.error(f"Network error fetching user info: {e}")
                raise TransportError(f"Network error: {e}") from e

        if response.status_code != 200:
            logger.error(f"Failed to fetch user info: {response.text}")
            raise AuthError(
                "Failed to fetch user info",
                status_code=response.status_code,
                response=response.text,
            )

        try:
            google_user = GoogleUserInfo(**response.json())
        except (ValueError, ValidationError) as e:
            raise TransportError(f"Invalid user info response: {e}") from e

        return UserInfo(
            provider_user_id=google_user.sub,
            email=google_user.email,
            name=google_user.name,
            picture_url=google_user.picture,
            extra_data={
                "given_name": google_user.given_name,
                "family_name": google_user.family_name,
                "locale": google_user.locale,
            },
        )

    # -------------------------------------------------------------------------
    # TOKEN REVOCATION
    # -------------------------------------------------------------------------

    async def revoke(self, access_token: Optional[str], refresh_token: Optional[str]) -> None:
        """
        Revoke the user's token pair on Google's side.

        Best-effort: a failed revocation is logged and never blocks the
        disconnect that triggered it.
        """
        for token in (access_token, refresh_token):
            if not token:
                continue
            try:
                async with self._http() as client:
                    response = await client.post(
                        self.REVOKE_URL,
                        params={"token": token},
                        headers={"Content-Type": "application/x-www-form-urlencoded"},
                    )
                if response.status_code == 200:
                    logger.info("Successfully revoked Google token")
                else:
                    logger.warning(f"Token revocation returned status {response.status_code}")
            except httpx.HTTPError as e:
                logger.warning(f"Network error during token revocation: {e}")

    # -------------------------------------------------------------------------
    # UTILITY METHODS
    # -------------------------------------------------------------------------

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            return GoogleErrorResponse(**response.json()).describe(response.text)
        except (ValueError, ValidationError, TypeError):
            return response.text

    @staticmethod
    def _to_result(token_response: GoogleTokenResponse) -> TokenResult:
        expires_at = token_response.get_expires_at()
        return TokenResult(
            access_token=token_response.access_token,
            refresh_token=token_response.refresh_token,
            expiration_time=format_timestamp(expires_at) if expires_at else None,
        )
