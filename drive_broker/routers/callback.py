"""
Callback Router - landing endpoints for Google's consent redirect.

The platform reads the authorization code from the redirect and hands it
to connectUser; these endpoints only have to answer.

Endpoints:
==========
- GET /          → "ok"
- GET /callback  → "ok"
"""

import logging
from typing import Optional

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse


logger = logging.getLogger("drive_broker.routers.callback")

router = APIRouter(tags=["callback"])


@router.get("/", response_class=PlainTextResponse, include_in_schema=False)
@router.get("/callback", response_class=PlainTextResponse)
async def callback(code: Optional[str] = None, error: Optional[str] = None):
    """Acknowledge the OAuth redirect."""
    if error:
        logger.warning(f"Google consent returned an error: {error}")
    elif code:
        logger.info("Authorization code received on callback")
    return "ok"
