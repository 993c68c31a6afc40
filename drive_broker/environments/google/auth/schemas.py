"""
Google OAuth Schemas - Data structures for Google authentication.

Pydantic models for what Google's token and userinfo endpoints return,
plus the scope constants the broker requests.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# OAUTH SCOPE CONSTANTS
# ---------------------------------------------------------------------------
# Reference: https://developers.google.com/identity/protocols/oauth2/scopes

# Profile scopes - display name and picture shown after connecting
PROFILE_SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]

# Drive scopes - full access, the proxy forwards arbitrary Drive calls
DRIVE_SCOPES = [
    "https://www.googleapis.com/auth/drive",
]


# ---------------------------------------------------------------------------
# TOKEN RESPONSES
# ---------------------------------------------------------------------------

class GoogleTokenResponse(BaseModel):
    """
    Response from Google's token endpoint, for both code exchange and refresh.

    Example response from Google:
    {
        "access_token": "ya29.a0AfB_byC...",
        "expires_in": 3599,
        "refresh_token": "1//0eXyz...",
        "scope": "openid https://www.googleapis.com/auth/drive",
        "token_type": "Bearer",
        "id_token": "eyJhbGciOiJSUzI1NiIs..."
    }
    """
    access_token: str = Field(..., description="OAuth access token")
    token_type: str = Field(default="Bearer", description="Token type (usually Bearer)")
    expires_in: Optional[int] = Field(None, description="Seconds until expiration")
    refresh_token: Optional[str] = Field(None, description="Refresh token for renewal")
    scope: Optional[str] = Field(None, description="Space-separated scopes granted")
    id_token: Optional[str] = Field(None, description="JWT with user info (OpenID)")

    def get_expires_at(self) -> Optional[datetime]:
        """Calculate expiration datetime from expires_in seconds."""
        if self.expires_in:
            return datetime.now(timezone.utc) + timedelta(seconds=self.expires_in)
        return None


class GoogleErrorResponse(BaseModel):
    """
    Error body of the token endpoint.

    Example:
    {"error": "invalid_grant", "error_description": "Token has been expired or revoked."}
    """
    error: Optional[str] = None
    error_description: Optional[str] = None

    def describe(self, fallback: str) -> str:
        return self.error_description or self.error or fallback


# ---------------------------------------------------------------------------
# USER INFO
# ---------------------------------------------------------------------------

class GoogleUserInfo(BaseModel):
    """
    User information from Google's userinfo endpoint.

    Example:
    {
        "sub": "123456789",
        "email": "user@gmail.com",
        "email_verified": true,
        "name": "John Doe",
        "picture": "https://lh3.googleusercontent.com/a/..."
    }
    """
    sub: str = Field(..., description="Unique Google user ID")
    email: Optional[str] = Field(None, description="User's email address")
    email_verified: Optional[bool] = Field(None, description="Is email verified?")
    name: Optional[str] = Field(None, description="User's display name")
    given_name: Optional[str] = Field(None, description="First name")
    family_name: Optional[str] = Field(None, description="Last name")
    picture: Optional[str] = Field(None, description="Profile picture URL")
    locale: Optional[str] = Field(None, description="User's locale (e.g., 'en')")
