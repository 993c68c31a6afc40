"""
Base classes and interfaces for provider integrations.

This module defines the contracts shared by the token authority and the
request proxy, plus the value types that flow between them and the
session orchestrator.

Design Pattern: Strategy + Result type
======================================
- TokenProvider: Abstract base for OAuth providers (strategy for auth)
- ProxyResult: What every proxied call returns; failures are values,
  not exceptions, so callers pattern-match on ErrorKind
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


# ---------------------------------------------------------------------------
# CUSTOM EXCEPTIONS
# ---------------------------------------------------------------------------
# ArgumentError is the only one that reaches the platform as a failure;
# the others are converted into structured error results.


class EnvironmentError(Exception):
    """Base exception for all provider-related errors."""
    pass


class ArgumentError(EnvironmentError):
    """Raised when caller input is missing or cannot yield a usable token."""

    status_code = 400


class AuthError(EnvironmentError):
    """Raised when Google rejects the credentials (code, refresh token, bearer)."""

    def __init__(self, message: str, status_code: Optional[int] = None, response: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class UpstreamError(EnvironmentError):
    """Raised when Google answers with any other non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None, response: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class TransportError(EnvironmentError):
    """Raised on network or serialization failures."""
    pass


# ---------------------------------------------------------------------------
# DATA STRUCTURES
# ---------------------------------------------------------------------------


class ErrorKind(str, Enum):
    ARGUMENT = "argument"
    AUTH = "auth"
    UPSTREAM = "upstream"
    TRANSPORT = "transport"


@dataclass
class TokenResult:
    """
    Outcome of a token operation (exchange, refresh, validation).

    Never persisted on its own; the orchestrator copies the fields into
    the user's credential right away. error is set instead of raising
    when the caller only needs to know that no usable token exists.
    """
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expiration_time: Optional[str] = None  # canonical text format
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.access_token)


@dataclass
class UserInfo:
    """Profile of the Google account behind a token."""
    provider_user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    picture_url: Optional[str] = None
    extra_data: Optional[Dict[str, Any]] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.provider_user_id,
            "email": self.email,
            "name": self.name,
            "picture": self.picture_url,
        }


@dataclass(frozen=True)
class ProxyConfig:
    """
    Per-call configuration of the request proxy.

    Immutable and created for a single invocation, so concurrent sessions
    for different users never share client state.
    """
    user_id: Optional[str]
    access_token: str


@dataclass
class ProxyError:
    """Structured failure of a proxied call."""
    kind: ErrorKind
    message: str
    http_status: Optional[int] = None
    response: Any = None

    @property
    def is_http_error(self) -> bool:
        return self.kind in (ErrorKind.AUTH, ErrorKind.UPSTREAM) and self.http_status is not None

    def to_json(self) -> Dict[str, Any]:
        return {
            "code": self.kind.value,
            "message": self.message,
            "httpStatus": self.http_status,
        }


@dataclass
class ProxyResult:
    """Success payload or structured error; exactly one of them is set."""
    data: Any = field(default_factory=dict)
    error: Optional[ProxyError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: Any) -> "ProxyResult":
        return cls(data=data)

    @classmethod
    def failure(cls, error: ProxyError) -> "ProxyResult":
        return cls(data=None, error=error)

    def to_json(self) -> Any:
        if self.error is not None:
            return self.error.to_json()
        return self.data


# ---------------------------------------------------------------------------
# ABSTRACT BASE CLASSES
# ---------------------------------------------------------------------------


class TokenProvider(ABC):
    """
    Abstract base class for OAuth token authorities.

    The provider is responsible for:
    - Building authorization URLs
    - Exchanging authorization codes for tokens
    - Refreshing and validating tokens
    - Revoking tokens
    - Looking up the profile behind a token
    """

    provider_name: str = ""

    @abstractmethod
    def build_authorization_url(self, state: Optional[str] = None) -> str:
        """Build the consent URL; no network call."""
        pass

    @abstractmethod
    async def exchange_code(self, code: str, redirect_uri: Optional[str] = None) -> TokenResult:
        """
        Exchange a one-time authorization code for tokens.

        Codes are single-use; callers must not submit a consumed code.
        """
        pass

    @abstractmethod
    async def refresh(self, user_id: Optional[str], refresh_token: str) -> TokenResult:
        """
        Exchange a refresh token for a new access token.

        Raises:
            AuthError: If the refresh token is invalid or revoked
        """
        pass

    @abstractmethod
    async def validate_or_refresh(self, user_id: Optional[str], credential: Any) -> TokenResult:
        """Return the current token if still fresh, else refresh it."""
        pass

    @abstractmethod
    async def revoke(self, access_token: Optional[str], refresh_token: Optional[str]) -> None:
        """Best-effort revocation; never raises."""
        pass

    @abstractmethod
    async def get_user_info(self, access_token: str) -> UserInfo:
        """Fetch the profile of the account behind access_token."""
        pass
