"""
Session Orchestrator - per-user connection lifecycle of the Drive broker.

Combines the credential store, the token authority and the request proxy
into the operations the platform invokes.

Lifecycle:
==========
    Disconnected --connect--> Connected --token expires--> Connected (silent refresh)
         ^                        |
         +---- disconnect --------+  (explicit, or forced when Google rejects
                                      the credentials and a refresh fails)

There is no error state: every failure collapses to Disconnected with a
status message the user can read.

Concurrency:
============
Entry points that read, modify and save a credential run under an
asyncio.Lock keyed by user id. This only serializes work inside one
process; with several workers two refreshes for the same user can still
race and the last save wins.
"""

import asyncio
import http
import logging
import mimetypes
import tempfile
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from drive_broker.environments.base import (
    ArgumentError,
    AuthError,
    ErrorKind,
    ProxyConfig,
    ProxyError,
    ProxyResult,
    TokenProvider,
    TokenResult,
    TransportError,
    UpstreamError,
)
from drive_broker.environments.google.drive.client import BODY_VERBS, GoogleDriveClient
from drive_broker.schemas.credential import (
    STATUS_CONNECT_FAILED,
    STATUS_CONNECTED,
    STATUS_DISCONNECTED,
    ConnectRequest,
    UserCredential,
    connected_as,
    merge_non_null,
)
from drive_broker.services.app_logs import AppLogs, app_logs
from drive_broker.services.credential_store import CredentialStore
from drive_broker.services.events import USER_DISCONNECTED, EventEmitter
from drive_broker.services.files import FileTransferHelper


logger = logging.getLogger("drive_broker.services.session_orchestrator")

INVALID_USER_CONFIGURATION = "Invalid user configuration"

TEMP_FILE_PREFIX = "googlefile-"
DEFAULT_EXPORT_MIME_TYPE = "application/pdf"

# Signatures of a Drive error caused by a dead access token
INVALID_CREDENTIAL_SIGNATURES = ("invalid credentials", "autherror")

# Signatures of a refresh rejected because the grant itself is gone
REVOKED_GRANT_SIGNATURES = ("invalid_grant", "revoked")


class SessionOrchestrator:
    """
    Per-user orchestration of connect, disconnect and proxied Drive calls.

    Example:
        orchestrator = SessionOrchestrator(store, GoogleAuthClient(), GoogleDriveClient(), events, files)

        event = await orchestrator.connect("5f2b...", {"code": "4/0Ab..."})
        result = await orchestrator.request("GET", "5f2b...", {"path": "files"})
    """

    def __init__(
        self,
        store: CredentialStore,
        auth_client: TokenProvider,
        drive_client: GoogleDriveClient,
        events: EventEmitter,
        files: FileTransferHelper,
        logs: Optional[AppLogs] = None,
    ):
        self.store = store
        self.auth = auth_client
        self.drive = drive_client
        self.events = events
        self.files = files
        self.app_logs = logs or app_logs
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_holders: Dict[str, int] = {}

    @asynccontextmanager
    async def _lock(self, user_id: str) -> AsyncIterator[None]:
        """Serialize work on one user; the entry goes away once nobody holds or awaits it."""
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._lock_holders[user_id] = self._lock_holders.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_holders[user_id] -= 1
            if not self._lock_holders[user_id]:
                del self._lock_holders[user_id]
                del self._locks[user_id]

    # -------------------------------------------------------------------------
    # CONNECT
    # -------------------------------------------------------------------------

    async def connect(
        self,
        user_id: Optional[str],
        body: Any = None,
        user_email: Optional[str] = None,
        function_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Establish (or re-establish) the Google connection of a user.

        The stored record is merged with the request (non-null fields win).
        A new authorization code is exchanged once; the same code sent again
        is ignored. The resulting token is validated or refreshed, and the
        profile is fetched to personalize the status message.

        Args:
            user_id: Platform identity
            body: ConnectRequest or its JSON form (code, redirectUri, token, ...)
            user_email: Platform email, echoed in the event
            function_id: Invoking function, forwarded to events

        Returns:
            The "user connected" event {userId, userEmail, configuration},
            or the disconnect summary when no usable token results

        Raises:
            ArgumentError: If user_id is missing
        """
        if not user_id:
            raise ArgumentError("User ID is required")

        if isinstance(body, ConnectRequest):
            request = body
        else:
            request = ConnectRequest.model_validate(body or {})

        async with self._lock(user_id):
            return await self._connect(user_id, request, user_email, function_id)

    async def _connect(self, user_id, request: ConnectRequest, user_email, function_id):
        credential = UserCredential(user_id=user_id, status_message=STATUS_CONNECT_FAILED)
        connected = False

        try:
            credential = merge_non_null(credential, self.store.find_by_id(user_id))
            credential = merge_non_null(credential, request)

            code = request.auth_code
            if code and code != credential.last_auth_code:
                credential = await self._exchange_code(credential, code, request.redirect_uri)
            elif code:
                logger.info(f"Authorization code already used for user [{user_id}], exchange skipped")

            tokens = await self.auth.validate_or_refresh(user_id, credential)
            if tokens.ok:
                credential = _with_tokens(credential, tokens)
            else:
                logger.info(f"No usable token for user [{user_id}]: {tokens.error}")
                credential = credential.model_copy(update={"access_token": None})

            if credential.access_token:
                credential = await self._with_profile(credential)

            credential = self.store.save(credential)
            connected = credential.is_connected

        except Exception as e:
            logger.warning(f"Error connecting user [{user_id}]: {e}", exc_info=True)
            self.app_logs.error(
                f"Error connecting to Google: {e}",
                user_id=user_id,
                function_id=function_id,
            )
            connected = False

        if connected:
            event = {
                "userId": user_id,
                "userEmail": user_email,
                "configuration": credential.to_json(),
            }
            self.app_logs.info(credential.status_message, user_id=user_id, function_id=function_id)
            await self.events.send_user_connected_event(function_id, user_id, event)
            return event

        logger.info(f"User [{user_id}] cannot be connected to Google")
        return await self._disconnect(user_id, user_email, function_id, revoke_token=True)

    async def _exchange_code(self, credential: UserCredential, code: str, redirect_uri: Optional[str]) -> UserCredential:
        tokens = await self.auth.exchange_code(code, redirect_uri)
        if not tokens.ok:
            logger.warning(f"Authorization code rejected for user [{credential.user_id}]: {tokens.error}")
            return credential

        credential = _with_tokens(credential, tokens)
        return credential.model_copy(update={
            "last_auth_code": code,
            "status_message": STATUS_CONNECTED,
        })

    async def _with_profile(self, credential: UserCredential) -> UserCredential:
        credential = credential.model_copy(update={"status_message": STATUS_CONNECTED})
        try:
            info = await self.auth.get_user_info(credential.access_token)
        except (AuthError, TransportError) as e:
            logger.warning(f"Profile of user [{credential.user_id}] not available: {e}")
            return credential

        updates = {}
        if info.name:
            updates["display_name"] = info.name
            updates["status_message"] = connected_as(info.name)
        if info.picture_url:
            updates["picture_url"] = info.picture_url
        return credential.model_copy(update=updates)

    # -------------------------------------------------------------------------
    # DISCONNECT
    # -------------------------------------------------------------------------

    async def disconnect(
        self,
        user_id: Optional[str],
        revoke_token: bool = True,
        user_email: Optional[str] = None,
        function_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Tear down the Google connection of a user.

        The stored credential is deleted only when the platform acknowledges
        the synchronous userDisconnected event. The asynchronous "user
        disconnected" notification is always sent.

        Returns:
            {configuration, userId, userEmail} with the disconnected default

        Raises:
            ArgumentError: If user_id is missing
        """
        if not user_id:
            raise ArgumentError("User ID is required")

        async with self._lock(user_id):
            return await self._disconnect(user_id, user_email, function_id, revoke_token)

    async def _disconnect(self, user_id, user_email, function_id, revoke_token: bool) -> Dict[str, Any]:
        configuration = UserCredential(status_message=STATUS_DISCONNECTED)

        if revoke_token:
            try:
                stored = self.store.find_by_id(user_id)
                if stored is not None:
                    await self.auth.revoke(stored.access_token, stored.refresh_token)
            except Exception as e:
                logger.warning(f"Token of user [{user_id}] could not be revoked: {e}")

        try:
            ack = await self.events.send_sync(USER_DISCONNECTED, None, function_id, user_id)
            if ack is not None:
                self.store.remove_by_id(user_id)
                logger.info(f"User [{user_id}] disconnected, configuration removed")
            else:
                logger.info(f"Disconnection of user [{user_id}] not acknowledged, configuration kept")
        except Exception as e:
            logger.warning(f"Error disconnecting user [{user_id}]: {e}", exc_info=True)

        await self.events.send_user_disconnected_event(function_id, user_id)

        return {
            "configuration": configuration.model_dump(by_alias=True, exclude={"user_id"}),
            "userId": user_id,
            "userEmail": user_email,
        }

    # -------------------------------------------------------------------------
    # TOKEN RESOLUTION
    # -------------------------------------------------------------------------

    async def resolve_token(
        self,
        user_id: Optional[str],
        body_token: Optional[str] = None,
        user_email: Optional[str] = None,
        function_id: Optional[str] = None,
    ) -> ProxyConfig:
        """
        Produce the ProxyConfig for one proxied call.

        With a user identity the stored token is validated or refreshed; if
        that cannot produce a live token the user is disconnected (without
        revocation). Without identity the token from the request body is used.

        Raises:
            ArgumentError: If no usable token can be produced
            AuthError: If Google rejected the refresh for another reason
            TransportError: If Google could not be reached
        """
        if user_id:
            async with self._lock(user_id):
                credential = await self._check_user_or_disconnect(user_id, user_email, function_id)
                if credential is None or not credential.access_token:
                    logger.info(f"Token was not generated for user [{user_id}]")
                    await self._disconnect(user_id, user_email, function_id, revoke_token=False)
                    raise ArgumentError(INVALID_USER_CONFIGURATION)
                return ProxyConfig(user_id=user_id, access_token=credential.access_token)

        if body_token:
            return ProxyConfig(user_id=None, access_token=body_token)

        raise ArgumentError(INVALID_USER_CONFIGURATION)

    async def _check_user_or_disconnect(self, user_id, user_email, function_id) -> Optional[UserCredential]:
        try:
            return await self._check_user(user_id)
        except AuthError as e:
            if _is_revoked_grant(e):
                logger.info(f"Grant of user [{user_id}] was revoked, disconnecting")
                self.app_logs.error(str(e), user_id=user_id, function_id=function_id)
                await self._disconnect(user_id, user_email, function_id, revoke_token=False)
            raise

    async def check_user(self, user_id: str) -> Optional[UserCredential]:
        """
        Validate or refresh the stored credential of a user.

        Returns:
            The (possibly refreshed and saved) credential, or None when the
            user has no stored record or no live token can be produced
        """
        async with self._lock(user_id):
            try:
                return await self._check_user(user_id)
            except (AuthError, TransportError) as e:
                logger.warning(f"Credentials of user [{user_id}] could not be checked: {e}")
                return None

    async def _check_user(self, user_id: str) -> Optional[UserCredential]:
        stored = self.store.find_by_id(user_id)
        if stored is None:
            return None

        tokens = await self.auth.validate_or_refresh(user_id, stored)
        if not tokens.ok:
            logger.info(f"No usable token for user [{user_id}]: {tokens.error}")
            return None

        refreshed = _with_tokens(stored, tokens)
        if refreshed == stored:
            return stored
        return self.store.save(refreshed)

    async def refresh_user_credentials(self, user_id: str) -> Optional[UserCredential]:
        """Force a refresh with the stored refresh token and save the result."""
        async with self._lock(user_id):
            return await self._refresh_user_credentials(user_id)

    async def _refresh_user_credentials(self, user_id: str) -> Optional[UserCredential]:
        stored = self.store.find_by_id(user_id)
        if stored is None or not stored.refresh_token:
            return None

        try:
            tokens = await self.auth.refresh(user_id, stored.refresh_token)
        except (AuthError, TransportError) as e:
            logger.warning(f"Refresh for user [{user_id}] failed: {e}")
            return None

        if not tokens.ok:
            return None
        return self.store.save(_with_tokens(stored, tokens))

    # -------------------------------------------------------------------------
    # DISCONNECTION CHECK
    # -------------------------------------------------------------------------

    async def check_disconnection(
        self,
        user_id: Optional[str],
        error: Any,
        function_id: Optional[str] = None,
    ) -> bool:
        """
        React to a Drive error that may mean the credentials are dead.

        When the error looks like invalid credentials, one refresh is
        attempted; only if that fails is the user disconnected (with
        revocation).

        Args:
            user_id: Identity the failing call was made for (None skips)
            error: ProxyError, AuthError or UpstreamError

        Returns:
            True when the user was disconnected
        """
        if not user_id:
            return False
        if not _matches(_signature(error), INVALID_CREDENTIAL_SIGNATURES):
            return False

        async with self._lock(user_id):
            logger.info(f"Credentials of user [{user_id}] rejected by Google, refreshing")
            if await self._refresh_user_credentials(user_id) is not None:
                return False

            self.app_logs.error(
                "Google rejected the credentials and they could not be renewed",
                user_id=user_id,
                function_id=function_id,
            )
            await self._disconnect(user_id, None, function_id, revoke_token=True)
            return True

    # -------------------------------------------------------------------------
    # PLAIN FUNCTIONS
    # -------------------------------------------------------------------------

    def authentication_url(self, state: Optional[str] = None) -> Dict[str, str]:
        return {"url": self.auth.build_authorization_url(state)}

    async def get_user_information(self, user_id: Optional[str]) -> Dict[str, Any]:
        """
        Profile of the Google account a user is connected with.

        Returns:
            {"status": True, "information": {...}} or {"status": False}
        """
        if not user_id:
            raise ArgumentError("User ID is required")

        credential = await self.check_user(user_id)
        if credential is None or not credential.access_token:
            return {"status": False}

        try:
            info = await self.auth.get_user_info(credential.access_token)
        except (AuthError, TransportError) as e:
            logger.warning(f"Profile of user [{user_id}] not available: {e}")
            return {"status": False}

        return {"status": True, "information": info.to_json()}

    # -------------------------------------------------------------------------
    # PROXIED REQUESTS
    # -------------------------------------------------------------------------

    async def request(
        self,
        verb: str,
        user_id: Optional[str],
        params: Optional[Dict[str, Any]] = None,
        user_email: Optional[str] = None,
        function_id: Optional[str] = None,
    ) -> ProxyResult:
        """
        Run one generic Drive request on behalf of a user.

        params carries path, params (query modifiers), body and, for calls
        without user identity, token. Upstream HTTP failures are checked for
        dead credentials before the error is returned.
        """
        params = params or {}
        config = await self.resolve_token(user_id, params.get("token"), user_email, function_id)

        body = None
        if verb.upper() in BODY_VERBS:
            body = params.get("body") or params.get("params") or {}

        result = await self.drive.execute(config, verb, params.get("path"), params.get("params"), body)

        if not result.ok and result.error.is_http_error:
            await self.check_disconnection(config.user_id, result.error, function_id)
        return result

    # -------------------------------------------------------------------------
    # FILE TRANSFERS
    # -------------------------------------------------------------------------

    async def upload_file(self, user_id, params: Dict[str, Any], user_email=None, function_id=None) -> ProxyResult:
        """Upload a platform file to Drive; returns {fileId, parents}."""
        config = await self.resolve_token(user_id, params.get("token"), user_email, function_id)
        file_id = _required(params, "fileId")

        local = self.files.download(file_id)
        metadata = self.files.metadata(file_id)
        name = params.get("name") or metadata.get("fileName") or local.name
        mime_type = params.get("mimeType") or metadata.get("contentType")

        async def operation():
            with open(local, "rb") as stream:
                created = await self.drive.upload_file(
                    config,
                    stream,
                    name,
                    mime_type=mime_type,
                    folder_id=params.get("folderId"),
                    original_mime_type=params.get("originalMimeType"),
                )
            return {"fileId": created.get("id"), "parents": created.get("parents")}

        return await self._transfer(config, function_id, operation)

    async def download_file(self, user_id, params: Dict[str, Any], user_email=None, function_id=None) -> ProxyResult:
        """Copy the content of a Drive file into a new platform file."""
        config = await self.resolve_token(user_id, params.get("token"), user_email, function_id)
        file_id = _required(params, "fileId")

        async def operation():
            metadata = await self.drive.get_file_metadata(config, file_id)
            with tempfile.TemporaryFile(prefix=TEMP_FILE_PREFIX) as tmp:
                await self.drive.download_file(config, file_id, tmp)
                tmp.seek(0)
                return self.files.upload(
                    _file_name(metadata.get("name") or file_id),
                    tmp,
                    metadata.get("mimeType"),
                )

        return await self._transfer(config, function_id, operation)

    async def download_export_link(self, user_id, params: Dict[str, Any], user_email=None, function_id=None) -> ProxyResult:
        """
        Export a Google Docs file through its exportLinks entry.

        params.mimeType picks the link (PDF when absent).
        """
        config = await self.resolve_token(user_id, params.get("token"), user_email, function_id)
        file_id = _required(params, "fileId")
        mime_type = params.get("mimeType") or DEFAULT_EXPORT_MIME_TYPE

        async def operation():
            metadata = await self.drive.get_file_metadata(config, file_id, fields="id,name,mimeType,exportLinks")
            link = (metadata.get("exportLinks") or {}).get(mime_type)
            if not link:
                raise ArgumentError(f"File [{file_id}] has no export link for [{mime_type}]")

            with tempfile.TemporaryFile(prefix=TEMP_FILE_PREFIX) as tmp:
                await self.drive.download_to(config, link, tmp)
                tmp.seek(0)
                name = _file_name(metadata.get("name") or file_id) + _extension(mime_type)
                return self.files.upload(name, tmp, mime_type)

        return await self._transfer(config, function_id, operation)

    async def export_file(self, user_id, params: Dict[str, Any], user_email=None, function_id=None) -> ProxyResult:
        """
        Export a Google Docs file with files.export.

        params: fileId and/or path, mimeType, params (query modifiers).
        """
        config = await self.resolve_token(user_id, params.get("token"), user_email, function_id)
        file_id = params.get("fileId")
        query = dict(params.get("params") or {})
        mime_type = query.get("mimeType") or params.get("mimeType")
        if not mime_type:
            raise ArgumentError("mimeType is required")
        query.setdefault("mimeType", mime_type)

        path = params.get("path")
        if not path:
            if not file_id:
                raise ArgumentError("fileId or path is required")
            path = f"/files/{file_id}/export"

        async def operation():
            name = "export"
            if file_id:
                metadata = await self.drive.get_file_metadata(config, file_id)
                name = metadata.get("name") or file_id

            with tempfile.TemporaryFile(prefix=TEMP_FILE_PREFIX) as tmp:
                await self.drive.download_to(config, path, tmp, query)
                tmp.seek(0)
                return self.files.upload(_file_name(name) + _extension(mime_type), tmp, mime_type)

        return await self._transfer(config, function_id, operation)

    async def _transfer(
        self,
        config: ProxyConfig,
        function_id: Optional[str],
        operation: Callable[[], Awaitable[Any]],
    ) -> ProxyResult:
        try:
            return ProxyResult.success(await operation())
        except (AuthError, UpstreamError) as e:
            await self.check_disconnection(config.user_id, e, function_id)
            kind = ErrorKind.AUTH if isinstance(e, AuthError) else ErrorKind.UPSTREAM
            return ProxyResult.failure(ProxyError(
                kind=kind,
                message=str(e),
                http_status=e.status_code,
                response=e.response,
            ))
        except TransportError as e:
            return ProxyResult.failure(ProxyError(kind=ErrorKind.TRANSPORT, message=str(e)))
        except OSError as e:
            logger.error(f"Local file error during transfer: {e}")
            return ProxyResult.failure(ProxyError(kind=ErrorKind.TRANSPORT, message=str(e)))


# ---------------------------------------------------------------------------
# HELPERS
# ---------------------------------------------------------------------------


def _with_tokens(credential: UserCredential, tokens: TokenResult) -> UserCredential:
    updates = {
        "access_token": tokens.access_token,
        "expiration_time": tokens.expiration_time,
    }
    if tokens.refresh_token:
        updates["refresh_token"] = tokens.refresh_token
    return credential.model_copy(update=updates)


def _signature(error: Any) -> str:
    """Lower-cased text of an error: status, reason, body and message."""
    status = getattr(error, "http_status", None) or getattr(error, "status_code", None)
    reason = ""
    if isinstance(status, int):
        try:
            reason = http.HTTPStatus(status).phrase
        except ValueError:
            pass
    message = error.message if isinstance(error, ProxyError) else str(error)
    response = getattr(error, "response", None) or ""
    return f"{status} - {reason} - {response} - {message}".lower()


def _matches(signature: str, needles) -> bool:
    return any(needle in signature for needle in needles)


def _is_revoked_grant(error: AuthError) -> bool:
    """A refresh rejected with 401 or an invalid_grant body means the grant is dead."""
    return error.status_code == 401 or _matches(_signature(error), REVOKED_GRANT_SIGNATURES)


def _required(params: Dict[str, Any], key: str) -> Any:
    value = params.get(key)
    if not value:
        raise ArgumentError(f"{key} is required")
    return value


def _file_name(name: str) -> str:
    return name.replace("/", "-")


def _extension(mime_type: Optional[str]) -> str:
    if not mime_type:
        return ""
    return mimetypes.guess_extension(mime_type) or ""
