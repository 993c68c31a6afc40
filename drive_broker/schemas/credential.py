"""
Credential schemas - Pydantic models for the per-user credential lifecycle.

UserCredential is the value the orchestrator reads, merges and saves.
ConnectRequest is what a connectUser invocation may carry. Both accept the
platform's camelCase JSON keys through aliases and serialize back to them.
"""

from typing import Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# STATUS MESSAGES
# ---------------------------------------------------------------------------
STATUS_CONNECT_FAILED = (
    "An error happened when connecting to Google. Please contact to administrator."
)
STATUS_CONNECTED = "Connection established."
STATUS_DISCONNECTED = "Connection disabled."


def connected_as(name: str) -> str:
    return f"Connection established as {name}."


class UserCredential(BaseModel):
    """
    Token material and profile data of one connected identity.

    Example (wire form):
    {
        "_id": "5f2b...",
        "token": "ya29.xxx",
        "refreshToken": "1//xxx",
        "expirationTime": "2024-05-01T10:20:30.123+0000",
        "lastCode": "4/0Ab...",
        "name": "Jane Doe",
        "picture": "https://lh3.googleusercontent.com/a/...",
        "result": "Connection established as Jane Doe.",
        "timezone": "America/New_York"
    }
    """
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(None, alias="_id")
    access_token: Optional[str] = Field(None, alias="token")
    refresh_token: Optional[str] = Field(None, alias="refreshToken")
    expiration_time: Optional[str] = Field(None, alias="expirationTime")
    last_auth_code: Optional[str] = Field(None, alias="lastCode")
    display_name: Optional[str] = Field(None, alias="name")
    picture_url: Optional[str] = Field(None, alias="picture")
    status_message: Optional[str] = Field(None, alias="result")
    timezone: Optional[str] = None

    @property
    def is_connected(self) -> bool:
        return bool(self.access_token)

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True)


class ConnectRequest(BaseModel):
    """
    Fields a connectUser call may supply. Every field is optional and
    overrides the stored value only when present.

    auth_code and redirect_uri are transient: they drive the code exchange
    and are never persisted.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status_message: Optional[str] = Field(None, alias="result")
    display_name: Optional[str] = Field(None, alias="name")
    picture_url: Optional[str] = Field(None, alias="picture")
    access_token: Optional[str] = Field(None, alias="token")
    auth_code: Optional[str] = Field(None, alias="code")
    last_auth_code: Optional[str] = Field(None, alias="lastCode")
    redirect_uri: Optional[str] = Field(None, alias="redirectUri")
    refresh_token: Optional[str] = Field(None, alias="refreshToken")
    expiration_time: Optional[str] = Field(None, alias="expirationTime")
    timezone: Optional[str] = None


ModelT = TypeVar("ModelT", bound=BaseModel)


def merge_non_null(base: ModelT, override: Optional[BaseModel]) -> ModelT:
    """
    Return a copy of base where every non-None field of override wins.

    Fields of override that base does not declare are ignored, so a
    ConnectRequest can be merged straight into a UserCredential.
    """
    if override is None:
        return base.model_copy()

    updates = {
        name: value
        for name, value in override.model_dump(exclude_none=True).items()
        if name in type(base).model_fields
    }
    return base.model_copy(update=updates)
