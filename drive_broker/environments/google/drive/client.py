"""
Google Drive API Client - generic request proxy for the Drive v3 REST API.

Every call receives an immutable ProxyConfig {user_id, access_token}; the
client keeps no credentials of its own, so one instance can serve any
number of users concurrently.

Key Features:
=============
1. Generic verbs (GET/POST/PUT/PATCH/DELETE) against any Drive path
2. URL building relative to the v3 root, absolute URLs passed through
3. RFC 3339 timestamps in responses rewritten in the canonical format
4. Failures returned as ProxyResult errors, never raised
5. Media transfers (download, export, export links, resumable upload)

API Reference:
==============
- Drive v3: https://developers.google.com/drive/api/reference/rest/v3
- Uploads: https://developers.google.com/drive/api/guides/manage-uploads
"""

import json
import logging
from typing import Any, AsyncIterator, BinaryIO, Mapping, Optional

import httpx

from drive_broker.core.config import settings
from drive_broker.core.timestamps import normalize_timestamps
from drive_broker.environments.base import (
    AuthError,
    ErrorKind,
    ProxyConfig,
    ProxyError,
    ProxyResult,
    TransportError,
    UpstreamError,
)


logger = logging.getLogger("drive_broker.environments.google.drive")

BODY_VERBS = ("POST", "PUT", "PATCH")
SUPPORTED_VERBS = ("GET", "DELETE") + BODY_VERBS

CHUNK_SIZE = 256 * 1024

REQUEST_FAILED = "Exception when execute request"


def build_url(path: Optional[str], base_url: Optional[str] = None) -> str:
    """
    Resolve a request path against the Drive API root.

    build_url(None)           -> base
    build_url("/files")       -> base + "/files"
    build_url("files")        -> base + "/files"
    build_url("https://x/y")  -> "https://x/y"
    """
    base = base_url or settings.DRIVE_API_URL
    if path is None:
        return base
    if path.startswith("https://") or path.startswith("http://"):
        return path
    if path.startswith("/"):
        return f"{base}{path}"
    return f"{base}/{path}"


def encode_params(params: Optional[Mapping[str, Any]]) -> list:
    """
    Turn request modifiers into ordered query parameters.

    Booleans become "true"/"false" as Google expects; None values are dropped.
    Callers send None instead of an empty list so the query string of an
    absolute URL (export links) is left alone.
    """
    if not params:
        return []

    encoded = []
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            encoded.append((key, "true" if value else "false"))
        elif isinstance(value, (dict, list)):
            encoded.append((key, json.dumps(value)))
        else:
            encoded.append((key, value))
    return encoded


def extract_error_message(body: Optional[str]) -> str:
    """
    Pick the most useful message out of a Drive error body.

    Google nests it: {"error": {"code": 404, "message": "File not found: x."}}.
    A top-level "message" wins; otherwise the raw body is returned.
    """
    if not body:
        return ""
    try:
        data = json.loads(body)
    except ValueError:
        return body

    if isinstance(data, dict):
        if isinstance(data.get("message"), str):
            return data["message"]
        error = data.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
    return body


class GoogleDriveClient:
    """
    Stateless Google Drive API proxy.

    Example:
        client = GoogleDriveClient()
        config = ProxyConfig(user_id="5f2b...", access_token="ya29.xxx")

        result = await client.execute(config, "GET", "files", {"pageSize": 10})
        if result.ok:
            files = result.data["files"]
    """

    service_name = "drive"

    def __init__(
        self,
        base_url: Optional[str] = None,
        upload_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url or settings.DRIVE_API_URL
        self.upload_url = upload_url or settings.DRIVE_UPLOAD_URL
        self._transport = transport

    # -------------------------------------------------------------------------
    # HTTP CLIENT MANAGEMENT
    # -------------------------------------------------------------------------

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    @staticmethod
    def _get_headers(config: ProxyConfig) -> dict:
        """Get authorization headers for API requests."""
        return {
            "Authorization": f"Bearer {config.access_token}",
            "Accept": "application/json",
        }

    def build_url(self, path: Optional[str]) -> str:
        return build_url(path, self.base_url)

    # -------------------------------------------------------------------------
    # GENERIC REQUESTS
    # -------------------------------------------------------------------------

    async def execute(
        self,
        config: ProxyConfig,
        verb: str,
        url: Optional[str],
        query_params: Optional[Mapping[str, Any]] = None,
        body: Any = None,
    ) -> ProxyResult:
        """
        Send one request to the Drive API with the caller's token.

        Args:
            config: Per-call user identity and access token
            verb: GET, POST, PUT, PATCH or DELETE
            url: Absolute URL or path relative to the v3 root
            query_params: Ordered request modifiers (fields, pageSize, ...)
            body: JSON body for POST/PUT/PATCH

        Returns:
            ProxyResult with the normalized JSON payload, or a ProxyError.
            Never raises.
        """
        method = (verb or "").upper()
        if method not in SUPPORTED_VERBS:
            return ProxyResult.failure(ProxyError(
                kind=ErrorKind.ARGUMENT,
                message=f"Unsupported HTTP verb [{verb}]",
                http_status=400,
            ))

        target = self.build_url(url)

        try:
            async with self._http() as client:
                response = await client.request(
                    method=method,
                    url=target,
                    headers=self._get_headers(config),
                    params=encode_params(query_params) or None,
                    json=body if method in BODY_VERBS else None,
                )

            if response.is_error:
                return ProxyResult.failure(self._http_error(config, response))

            data = response.json() if response.content else {}
            data = normalize_timestamps(data)

            logger.info(
                f"Google response [{method} {target}] [{response.status_code}]",
                extra={"user_id": config.user_id},
            )
            return ProxyResult.success(data)

        except httpx.HTTPError as e:
            message = f"{REQUEST_FAILED} [{e}]"
            logger.info(message)
            return ProxyResult.failure(ProxyError(kind=ErrorKind.TRANSPORT, message=message))
        except ValueError as e:
            message = f"{REQUEST_FAILED} [invalid JSON response: {e}]"
            logger.info(message)
            return ProxyResult.failure(ProxyError(kind=ErrorKind.TRANSPORT, message=message))
        except Exception as e:
            message = f"{REQUEST_FAILED} [{e}]"
            logger.exception(message)
            return ProxyResult.failure(ProxyError(kind=ErrorKind.TRANSPORT, message=message))

    async def get(self, config: ProxyConfig, url: Optional[str], params: Optional[Mapping[str, Any]] = None) -> ProxyResult:
        return await self.execute(config, "GET", url, params)

    async def post(self, config: ProxyConfig, url: Optional[str], params: Optional[Mapping[str, Any]] = None, body: Any = None) -> ProxyResult:
        return await self.execute(config, "POST", url, params, body)

    async def put(self, config: ProxyConfig, url: Optional[str], params: Optional[Mapping[str, Any]] = None, body: Any = None) -> ProxyResult:
        return await self.execute(config, "PUT", url, params, body)

    async def patch(self, config: ProxyConfig, url: Optional[str], params: Optional[Mapping[str, Any]] = None, body: Any = None) -> ProxyResult:
        return await self.execute(config, "PATCH", url, params, body)

    async def delete(self, config: ProxyConfig, url: Optional[str], params: Optional[Mapping[str, Any]] = None) -> ProxyResult:
        return await self.execute(config, "DELETE", url, params)

    def _http_error(self, config: ProxyConfig, response: httpx.Response) -> ProxyError:
        detail = extract_error_message(response.text) or response.reason_phrase
        message = f"{REQUEST_FAILED} [{detail}]"
        logger.info(
            f"Drive API error for user [{config.user_id}]: {response.status_code} - {detail}"
        )
        return ProxyError(
            kind=ErrorKind.AUTH if response.status_code == 401 else ErrorKind.UPSTREAM,
            message=message,
            http_status=response.status_code,
            response=response.text,
        )

    # -------------------------------------------------------------------------
    # MEDIA TRANSFERS
    # -------------------------------------------------------------------------
    # Unlike execute(), these raise: the orchestrator owns the temporary
    # file they write to and converts failures after cleaning it up.

    async def get_file_metadata(
        self,
        config: ProxyConfig,
        file_id: str,
        fields: str = "id,name,mimeType",
    ) -> dict:
        """
        Fetch metadata of a file (name and MIME type unless fields says otherwise).

        Raises:
            AuthError, UpstreamError, TransportError
        """
        result = await self.get(
            config,
            f"/files/{file_id}",
            {"fields": fields, "supportsAllDrives": True},
        )
        if not result.ok:
            raise self._to_exception(result.error)
        return result.data

    async def download_to(
        self,
        config: ProxyConfig,
        url: Optional[str],
        out: BinaryIO,
        params: Optional[Mapping[str, Any]] = None,
    ) -> int:
        """
        Stream the body of a GET request into out.

        Returns:
            Number of bytes written

        Raises:
            AuthError, UpstreamError, TransportError
        """
        target = self.build_url(url)
        written = 0
        try:
            async with self._http() as client:
                async with client.stream(
                    "GET",
                    target,
                    headers={"Authorization": f"Bearer {config.access_token}"},
                    params=encode_params(params) or None,
                    follow_redirects=True,
                ) as response:
                    if response.is_error:
                        await response.aread()
                        raise self._to_exception(self._http_error(config, response))
                    async for chunk in response.aiter_bytes(CHUNK_SIZE):
                        out.write(chunk)
                        written += len(chunk)
        except httpx.HTTPError as e:
            raise TransportError(f"{REQUEST_FAILED} [{e}]") from e

        logger.info(f"Downloaded {written} bytes from [{target}]")
        return written

    async def download_file(self, config: ProxyConfig, file_id: str, out: BinaryIO) -> int:
        """Download the binary content of a non-Google-Docs file."""
        return await self.download_to(
            config,
            f"/files/{file_id}",
            out,
            {"alt": "media", "supportsAllDrives": True},
        )

    async def export_file(self, config: ProxyConfig, file_id: str, mime_type: str, out: BinaryIO) -> int:
        """Export a Google Docs file to mime_type."""
        return await self.download_to(
            config,
            f"/files/{file_id}/export",
            out,
            {"mimeType": mime_type},
        )

    async def upload_file(
        self,
        config: ProxyConfig,
        stream: BinaryIO,
        name: str,
        mime_type: Optional[str] = None,
        folder_id: Optional[str] = None,
        original_mime_type: Optional[str] = None,
    ) -> dict:
        """
        Upload content as a new Drive file using a resumable session.

        When original_mime_type is given the content is sent with that type
        and mime_type becomes the target type, which makes Drive convert it
        (e.g. text/csv into application/vnd.google-apps.spreadsheet).

        Returns:
            {"id": ..., "parents": [...]} of the created file

        Raises:
            AuthError, UpstreamError, TransportError
        """
        metadata: dict = {"name": name}
        if folder_id:
            metadata["parents"] = [folder_id]
        if original_mime_type and mime_type:
            metadata["mimeType"] = mime_type
        content_type = original_mime_type or mime_type or "application/octet-stream"

        headers = self._get_headers(config)
        try:
            async with self._http() as client:
                session = await client.post(
                    f"{self.upload_url}/files",
                    headers={**headers, "X-Upload-Content-Type": content_type},
                    params=encode_params({
                        "uploadType": "resumable",
                        "supportsAllDrives": True,
                        "fields": "id,parents",
                    }),
                    json=metadata,
                )
                if session.is_error:
                    raise self._to_exception(self._http_error(config, session))

                location = session.headers.get("Location")
                if not location:
                    raise TransportError("Upload session was not created")

                response = await client.put(
                    location,
                    headers={"Authorization": headers["Authorization"], "Content-Type": content_type},
                    content=_iter_chunks(stream),
                )
                if response.is_error:
                    raise self._to_exception(self._http_error(config, response))

                created = response.json()
        except httpx.HTTPError as e:
            raise TransportError(f"{REQUEST_FAILED} [{e}]") from e
        except ValueError as e:
            raise TransportError(f"{REQUEST_FAILED} [invalid JSON response: {e}]") from e

        logger.info(f"Uploaded file [{name}] as [{created.get('id')}]")
        return created

    @staticmethod
    def _to_exception(error: ProxyError) -> Exception:
        if error.kind == ErrorKind.AUTH:
            return AuthError(error.message, status_code=error.http_status, response=error.response)
        if error.kind == ErrorKind.UPSTREAM:
            return UpstreamError(error.message, status_code=error.http_status, response=error.response)
        return TransportError(error.message)


async def _iter_chunks(stream: BinaryIO) -> AsyncIterator[bytes]:
    while True:
        chunk = stream.read(CHUNK_SIZE)
        if not chunk:
            break
        yield chunk
