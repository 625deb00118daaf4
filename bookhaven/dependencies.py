"""
FastAPI dependencies shared by the routers.

Sign-in is handled by the identity platform in front of this service;
requests arrive with the signed-in user in ``X-User-Id`` (and, on first
contact, ``X-User-Name`` / ``X-User-Email`` for the profile). Requests
without it browse anonymously; each anonymous browser is given a session
cookie so that its view state is its own.
"""

import uuid
from typing import Optional

from fastapi import Depends, Header, Request, Response

from . import config
from .models import Identity
from .session import SessionRegistry, ViewerSession


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_identity(
    x_user_id: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
    x_user_email: Optional[str] = Header(default=None),
) -> Optional[Identity]:
    if not x_user_id:
        return None
    return Identity(id=x_user_id, name=x_user_name, email=x_user_email or "")


def get_client_id(request: Request, response: Response) -> str:
    """The anonymous client's cookie, issuing a new one on first contact."""
    client_id = request.cookies.get(config.SESSION_COOKIE)
    if not client_id:
        client_id = uuid.uuid4().hex
        response.set_cookie(config.SESSION_COOKIE, client_id, httponly=True, samesite="lax")
    return client_id


def get_session(
    request: Request,
    response: Response,
    registry: SessionRegistry = Depends(get_registry),
    identity: Optional[Identity] = Depends(get_identity),
) -> ViewerSession:
    if identity is not None:
        return registry.get(identity)
    return registry.get(None, get_client_id(request, response))
