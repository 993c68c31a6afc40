"""
Functions Router - the function surface the platform invokes.

Every function is a POST with the same envelope (FunctionRequest):
{userId, userEmail, functionId, params}.

Endpoints:
==========
- POST /functions/connectUser          → Connect (code exchange, refresh, profile)
- POST /functions/disconnectUser       → Disconnect (revoke, remove, notify)
- POST /functions/authenticationUrl    → Google consent URL
- POST /functions/getUserInformation   → Profile of the connected account
- POST /functions/_uploadFile          → Platform file → Drive
- POST /functions/_downloadFile        → Drive file → platform file
- POST /functions/_downloadExportLink  → Google Docs export link → platform file
- POST /functions/_exportFile          → files.export → platform file
- POST /functions/_getRequest, _postRequest, _putRequest,
       _patchRequest, _deleteRequest   → Generic Drive v3 requests

Internal names are accepted with and without the leading underscore.

Errors:
=======
- ArgumentError → HTTP 400 {"code": "argument", "message", "httpStatus": 400}
- Anything Google answers → HTTP 200 with {"code", "message", "httpStatus"}
"""

import logging
from typing import Any, Awaitable

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from drive_broker.deps import get_orchestrator
from drive_broker.environments.base import (
    ArgumentError,
    AuthError,
    ErrorKind,
    ProxyError,
    ProxyResult,
    TransportError,
    UpstreamError,
)
from drive_broker.schemas.function import FunctionError, FunctionRequest
from drive_broker.services.session_orchestrator import SessionOrchestrator


logger = logging.getLogger("drive_broker.routers.functions")


# ---------------------------------------------------------------------------
# ROUTER SETUP
# ---------------------------------------------------------------------------
router = APIRouter(
    prefix="/functions",
    tags=["functions"],
    responses={400: {"model": FunctionError, "description": "Invalid arguments"}},
)


async def _run(call: Awaitable[Any]) -> Any:
    """Await an orchestrator call and shape its outcome for the platform."""
    try:
        result = await call
    except ArgumentError as e:
        logger.info(f"Invalid arguments: {e}")
        error = FunctionError(code=ErrorKind.ARGUMENT.value, message=str(e), httpStatus=400)
        return JSONResponse(status_code=400, content=error.model_dump(by_alias=True))
    except AuthError as e:
        return ProxyError(ErrorKind.AUTH, str(e), e.status_code).to_json()
    except UpstreamError as e:
        return ProxyError(ErrorKind.UPSTREAM, str(e), e.status_code).to_json()
    except TransportError as e:
        return ProxyError(ErrorKind.TRANSPORT, str(e)).to_json()

    if isinstance(result, ProxyResult):
        return result.to_json()
    return result


# ---------------------------------------------------------------------------
# CONNECTION LIFECYCLE
# ---------------------------------------------------------------------------


@router.post("/connectUser")
async def connect_user(
    request: FunctionRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """
    Connect a user to Google.

    params may carry code and redirectUri (from the consent redirect), or
    token/refreshToken/expirationTime supplied directly.

    Returns:
        {"userId", "userEmail", "configuration"}; configuration.token is
        absent when the connection failed
    """
    return await _run(orchestrator.connect(
        request.user_id,
        request.params,
        user_email=request.user_email,
        function_id=request.function_id,
    ))


@router.post("/disconnectUser")
async def disconnect_user(
    request: FunctionRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """Disconnect a user; params.revokeToken=false skips revocation."""
    return await _run(orchestrator.disconnect(
        request.user_id,
        revoke_token=request.params.get("revokeToken", True) is not False,
        user_email=request.user_email,
        function_id=request.function_id,
    ))


@router.post("/authenticationUrl")
async def authentication_url(
    request: FunctionRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    return orchestrator.authentication_url(request.params.get("state"))


@router.post("/getUserInformation")
async def get_user_information(
    request: FunctionRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    return await _run(orchestrator.get_user_information(request.user_id))


# ---------------------------------------------------------------------------
# FILE TRANSFERS
# ---------------------------------------------------------------------------


@router.post("/_uploadFile")
@router.post("/uploadFile", include_in_schema=False)
async def upload_file(
    request: FunctionRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """params: fileId (platform file), name, mimeType, folderId, originalMimeType."""
    return await _run(orchestrator.upload_file(
        request.user_id, request.params, request.user_email, request.function_id
    ))


@router.post("/_downloadFile")
@router.post("/downloadFile", include_in_schema=False)
async def download_file(
    request: FunctionRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """params: fileId (Drive file)."""
    return await _run(orchestrator.download_file(
        request.user_id, request.params, request.user_email, request.function_id
    ))


@router.post("/_downloadExportLink")
@router.post("/downloadExportLink", include_in_schema=False)
async def download_export_link(
    request: FunctionRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """params: fileId (Google Docs file), mimeType (defaults to PDF)."""
    return await _run(orchestrator.download_export_link(
        request.user_id, request.params, request.user_email, request.function_id
    ))


@router.post("/_exportFile")
@router.post("/exportFile", include_in_schema=False)
async def export_file(
    request: FunctionRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """params: fileId and/or path, mimeType, params."""
    return await _run(orchestrator.export_file(
        request.user_id, request.params, request.user_email, request.function_id
    ))


# ---------------------------------------------------------------------------
# GENERIC REQUESTS
# ---------------------------------------------------------------------------
# params: path (relative to the v3 root, or absolute), params (query
# modifiers), body (POST/PUT/PATCH), token (calls without userId)


@router.post("/_getRequest")
@router.post("/getRequest", include_in_schema=False)
async def get_request(
    request: FunctionRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    return await _proxy("GET", request, orchestrator)


@router.post("/_postRequest")
@router.post("/postRequest", include_in_schema=False)
async def post_request(
    request: FunctionRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    return await _proxy("POST", request, orchestrator)


@router.post("/_putRequest")
@router.post("/putRequest", include_in_schema=False)
async def put_request(
    request: FunctionRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    return await _proxy("PUT", request, orchestrator)


@router.post("/_patchRequest")
@router.post("/patchRequest", include_in_schema=False)
async def patch_request(
    request: FunctionRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    return await _proxy("PATCH", request, orchestrator)


@router.post("/_deleteRequest")
@router.post("/deleteRequest", include_in_schema=False)
async def delete_request(
    request: FunctionRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    return await _proxy("DELETE", request, orchestrator)


async def _proxy(verb: str, request: FunctionRequest, orchestrator: SessionOrchestrator):
    return await _run(orchestrator.request(
        verb,
        request.user_id,
        request.params,
        user_email=request.user_email,
        function_id=request.function_id,
    ))
