"""
Google Drive Module - generic request proxy for the Drive v3 API.
"""

from drive_broker.environments.google.drive.client import (
    GoogleDriveClient,
    build_url,
    encode_params,
    extract_error_message,
)

__all__ = [
    "GoogleDriveClient",
    "build_url",
    "encode_params",
    "extract_error_message",
]
