# jobmatch/api/deps.py
from fastapi import Header, HTTPException, Request

from jobmatch.core.actor import AuthenticatedActor
from jobmatch.services.container import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_actor(
    x_user_id: str | None = Header(default=None),
    x_user_role: str = Header(default="jobseeker"),
) -> AuthenticatedActor:
    """Identity comes from the fronting auth layer as trusted headers."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return AuthenticatedActor(id=x_user_id, role=x_user_role)
