"""
Main application entry point - FastAPI app instance and configuration.
This is where the ASGI application is created and configured.
Run with: uvicorn drive_broker.main:app --reload
"""

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session

from drive_broker.core.config import settings
from drive_broker.db.session import get_db
from drive_broker.routers import callback, functions

# ---------------------------------------------------------------------------
# CREATE FASTAPI APPLICATION
# ---------------------------------------------------------------------------
# Visit http://localhost:8000/docs to try the function endpoints
app = FastAPI(
    title=settings.APP_NAME,
    debug=settings.DEBUG,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ---------------------------------------------------------------------------
# CORS MIDDLEWARE
# ---------------------------------------------------------------------------
# The platform calls the functions from its own origin.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# REGISTER ROUTERS
# ---------------------------------------------------------------------------
# functions.router: /functions/... platform function surface
# callback.router: / and /callback for the OAuth redirect
app.include_router(functions.router)
app.include_router(callback.router)


# ---------------------------------------------------------------------------
# HEALTH CHECK ENDPOINTS
# ---------------------------------------------------------------------------
@app.get("/health", tags=["health"])
def health_check():
    """
    Simple liveness check; does not touch the database.

    Returns:
        {"status": "ok"}
    """
    return {"status": "ok"}


@app.get("/ready", tags=["health"])
def readiness_check(db: Session = Depends(get_db)):
    """
    Readiness check: the credential database answers.

    Returns:
        {"status": "ok", "database": "ok"}
    """
    db.execute(text("SELECT 1"))
    return {"status": "ok", "database": "ok"}
