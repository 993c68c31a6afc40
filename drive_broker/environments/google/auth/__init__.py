"""
Google Auth Module - OAuth 2.0 token authority.
"""

from drive_broker.environments.google.auth.client import GoogleAuthClient
from drive_broker.environments.google.auth.schemas import (
    DRIVE_SCOPES,
    PROFILE_SCOPES,
    GoogleErrorResponse,
    GoogleTokenResponse,
    GoogleUserInfo,
)

__all__ = [
    "GoogleAuthClient",
    "GoogleTokenResponse",
    "GoogleErrorResponse",
    "GoogleUserInfo",
    "DRIVE_SCOPES",
    "PROFILE_SCOPES",
]
