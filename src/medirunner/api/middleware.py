"""Middleware: admin API key authentication and the session cookie."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

if TYPE_CHECKING:
    from fastapi import Response

    from medirunner.config import Settings

_bearer_scheme = HTTPBearer(auto_error=False)


def _get_settings_from_request(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


async def verify_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> None:
    """Check the Bearer token against the configured API key.

    If no API key is configured (MEDIRUNNER_API_KEY not set), all requests pass.
    If configured, requests must include 'Authorization: Bearer <key>'.
    """
    settings = _get_settings_from_request(request)
    if settings.api_key is None:
        return

    if credentials is None or not secrets.compare_digest(credentials.credentials.encode(), settings.api_key.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )


def issue_session(response: Response, settings: Settings, identity_id: int) -> None:
    """Attach the session cookie for an authenticated identity."""
    response.set_cookie(
        settings.session_cookie_name,
        str(identity_id),
        httponly=True,
        samesite="lax",
        path="/",
    )


def clear_session(response: Response, settings: Settings) -> None:
    response.delete_cookie(settings.session_cookie_name, path="/", httponly=True, samesite="lax")


def session_identity_id(request: Request) -> int | None:
    """Return the identity id carried by the session cookie, if it parses."""
    # The cookie holds a plain, unsigned id: any client can claim any identity with it.
    settings = _get_settings_from_request(request)
    raw = request.cookies.get(settings.session_cookie_name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None
