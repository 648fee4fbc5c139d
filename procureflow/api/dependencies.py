"""Shared FastAPI dependencies: caller identity and orchestrator wiring.

Authentication happens upstream of this service. The gateway forwards
the verified user id in the X-User-Id header; requests without it are
treated as anonymous, which the agent routes allow and the purchase
request routes do not.
"""

import logging
import re

from fastapi import Depends, Header, HTTPException, Request

from procureflow.services.conversation_handler import OrchestratorDependencies

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"
_USER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.@:-]{1,128}$")


def get_user_id(
    x_user_id: str | None = Header(default=None, alias=USER_ID_HEADER),
) -> str | None:
    """Return the caller's user id, or None for anonymous requests.

    Raises:
        HTTPException: 400 when the header is present but malformed.
    """
    if x_user_id is None or not x_user_id.strip():
        return None
    user_id = x_user_id.strip()
    if not _USER_ID_PATTERN.match(user_id):
        raise HTTPException(status_code=400, detail=f"Invalid {USER_ID_HEADER} header")
    return user_id


def require_user_id(user_id: str | None = Depends(get_user_id)) -> str:
    """Like get_user_id, but anonymous callers get a 401."""
    if user_id is None:
        raise HTTPException(status_code=401, detail=f"Missing {USER_ID_HEADER} header")
    return user_id


def get_orchestrator_dependencies(request: Request) -> OrchestratorDependencies:
    """Collaborators built once at app creation and shared by all turns."""
    return request.app.state.orchestrator_dependencies
