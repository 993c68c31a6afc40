"""
Dependencies module - reusable FastAPI dependencies for route handlers.
The main dependency here is get_orchestrator, which wires the session
orchestrator to its collaborators once per process.
"""

from typing import Optional

from drive_broker.db.session import SessionLocal
from drive_broker.environments.google.auth.client import GoogleAuthClient
from drive_broker.environments.google.drive.client import GoogleDriveClient
from drive_broker.services.app_logs import app_logs
from drive_broker.services.credential_store import SqlCredentialStore
from drive_broker.services.events import EventDispatcher
from drive_broker.services.files import LocalFileStore
from drive_broker.services.session_orchestrator import SessionOrchestrator

# ---------------------------------------------------------------------------
# SHARED INSTANCES
# ---------------------------------------------------------------------------
# The orchestrator holds the per-user locks, so every request must see the
# same instance. Tests replace it with app.dependency_overrides.
event_dispatcher = EventDispatcher()

_orchestrator: Optional[SessionOrchestrator] = None


def get_orchestrator() -> SessionOrchestrator:
    """
    Return the process-wide SessionOrchestrator, creating it on first use.

    Usage in a route:
        @router.post("/connectUser")
        async def connect_user(orchestrator: SessionOrchestrator = Depends(get_orchestrator)):
            ...
    """
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = SessionOrchestrator(
            store=SqlCredentialStore(SessionLocal),
            auth_client=GoogleAuthClient(),
            drive_client=GoogleDriveClient(),
            events=event_dispatcher,
            files=LocalFileStore(),
            logs=app_logs,
        )
    return _orchestrator
