"""
User Credential model - stores the Google token material of one end user.

Each row is the persisted state of a single connected identity. The
platform's user identifier is the primary key, so a save is always an
upsert and there is never more than one credential per identity.

Design Principles:
==================
1. Identity keyed: user_id is opaque and owned by the hosting platform
2. Disconnected == no access_token: a row without a token is not usable
3. Dedup guard: last_auth_code remembers the last consumed authorization code
4. Text timestamps: expiration_time is stored in the canonical text format
   so it survives a round trip through the platform unchanged

Example Usage:
    record = UserCredentialRecord(
        user_id="5f2b...",
        access_token="ya29.xxx",
        refresh_token="1//xxx",
        expiration_time="2024-05-01T10:20:30.123+0000",
    )
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from drive_broker.db.base import Base


class UserCredentialRecord(Base):
    """
    SQLAlchemy ORM model for the 'user_credentials' table.

    Only the session orchestrator writes to this table, through the
    credential store adapter.
    """

    __tablename__ = "user_credentials"

    # ---------------------------------------------------------------------------
    # PRIMARY KEY
    # ---------------------------------------------------------------------------
    # user_id: Identity of the end user on the hosting platform
    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)

    # ---------------------------------------------------------------------------
    # TOKEN DATA
    # ---------------------------------------------------------------------------
    # access_token: Short-lived bearer token sent to the Drive API
    access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # refresh_token: Long-lived token used to renew access_token
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # expiration_time: When access_token stops working (canonical text)
    expiration_time: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)

    # last_auth_code: Authorization code already exchanged for tokens
    # - Google rejects a second exchange of the same code with invalid_grant
    last_auth_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ---------------------------------------------------------------------------
    # PROFILE AND STATUS
    # ---------------------------------------------------------------------------
    display_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    picture_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # status_message: Human-readable result of the last connect attempt
    status_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    timezone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # ---------------------------------------------------------------------------
    # TIMESTAMPS
    # ---------------------------------------------------------------------------
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<UserCredentialRecord(user_id='{self.user_id}', connected={self.access_token is not None})>"
