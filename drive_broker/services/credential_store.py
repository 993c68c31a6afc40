"""
Credential Store - keyed persistence of UserCredential records.

The orchestrator talks to this narrow interface only:
- find_by_id(user_id)  -> UserCredential or None
- save(credential)     -> UserCredential (upsert keyed by user_id)
- remove_by_id(user_id)

The store never decides on its own to change or delete a credential.

Two backends:
- SqlCredentialStore: the user_credentials table (default)
- InMemoryCredentialStore: a dict, for tests and single-process tooling

Concurrency note: each call is atomic on its own, but a read followed by a
save is not. The orchestrator serializes those per identity inside one
process; separate worker processes can still interleave (last write wins).
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from drive_broker.models.user_credential import UserCredentialRecord
from drive_broker.schemas.credential import UserCredential


logger = logging.getLogger("drive_broker.services.credential_store")

# Columns copied between the ORM row and the pydantic value
_FIELDS = (
    "access_token",
    "refresh_token",
    "expiration_time",
    "last_auth_code",
    "display_name",
    "picture_url",
    "status_message",
    "timezone",
)


class CredentialStore(ABC):
    """Abstract base class for credential persistence."""

    @abstractmethod
    def find_by_id(self, user_id: str) -> Optional[UserCredential]:
        """Get the stored credential of a user, or None."""
        pass

    @abstractmethod
    def save(self, credential: UserCredential) -> UserCredential:
        """Insert or replace the credential keyed by credential.user_id."""
        pass

    @abstractmethod
    def remove_by_id(self, user_id: str) -> None:
        """Delete the credential of a user; missing records are ignored."""
        pass


class SqlCredentialStore(CredentialStore):
    """
    Credential store backed by the user_credentials table.

    Opens one short-lived session per operation so the store can be shared
    by concurrent requests.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def find_by_id(self, user_id: str) -> Optional[UserCredential]:
        with self._session_factory() as db:
            record = db.get(UserCredentialRecord, user_id)
            if record is None:
                logger.debug(f"User configuration [{user_id}] was not found")
                return None
            return _to_credential(record)

    def save(self, credential: UserCredential) -> UserCredential:
        if not credential.user_id:
            raise ValueError("Cannot save a credential without user_id")

        with self._session_factory() as db:
            record = db.get(UserCredentialRecord, credential.user_id)
            if record is None:
                record = UserCredentialRecord(user_id=credential.user_id)
                db.add(record)

            for name in _FIELDS:
                setattr(record, name, getattr(credential, name))

            db.commit()
            db.refresh(record)

            logger.debug(f"User configuration [{credential.user_id}] was saved")
            return _to_credential(record)

    def remove_by_id(self, user_id: str) -> None:
        with self._session_factory() as db:
            record = db.get(UserCredentialRecord, user_id)
            if record is not None:
                db.delete(record)
                db.commit()
                logger.debug(f"User configuration [{user_id}] was deleted")


class InMemoryCredentialStore(CredentialStore):
    """Credential store that keeps records in a dict."""

    def __init__(self) -> None:
        self._records: Dict[str, UserCredential] = {}

    def find_by_id(self, user_id: str) -> Optional[UserCredential]:
        record = self._records.get(user_id)
        return record.model_copy() if record else None

    def save(self, credential: UserCredential) -> UserCredential:
        if not credential.user_id:
            raise ValueError("Cannot save a credential without user_id")
        self._records[credential.user_id] = credential.model_copy()
        return credential.model_copy()

    def remove_by_id(self, user_id: str) -> None:
        self._records.pop(user_id, None)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._records


def _to_credential(record: UserCredentialRecord) -> UserCredential:
    return UserCredential(
        user_id=record.user_id,
        **{name: getattr(record, name) for name in _FIELDS},
    )
