"""
Google Environment Module - OAuth and Drive v3.

Usage:
======
    from drive_broker.environments.google import GoogleAuthClient, GoogleDriveClient

    auth_client = GoogleAuthClient()
    url = auth_client.build_authorization_url()

    tokens = await auth_client.exchange_code(code)
    drive = GoogleDriveClient()
    result = await drive.get(ProxyConfig(user_id, tokens.access_token), "files")
"""

from drive_broker.environments.google.auth import (
    GoogleAuthClient,
    DRIVE_SCOPES,
    PROFILE_SCOPES,
)
from drive_broker.environments.google.drive import GoogleDriveClient, build_url

__all__ = [
    "GoogleAuthClient",
    "GoogleDriveClient",
    "DRIVE_SCOPES",
    "PROFILE_SCOPES",
    "build_url",
]
