"""FastAPI dependencies — explicit component wiring and session resolution."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine

from otp_login.auth.session import Authenticated, Session, SessionResolver
from otp_login.cache.ephemeral import EphemeralStore
from otp_login.errors import AuthenticationRequired
from otp_login.services.auth_service import OTPAuthService


@dataclass
class Services:
    """Components constructed once per process and shared by all requests."""

    auth: OTPAuthService
    sessions: SessionResolver
    ephemeral_store: EphemeralStore
    engine: AsyncEngine


def get_services(request: Request) -> Services:
    return request.app.state.services


async def current_session(
    request: Request, services: Services = Depends(get_services)
) -> Session:
    """Anonymous without a credential; raises ``TokenInvalid`` on a bad one."""
    return await services.sessions.resolve(request.headers.get("Authorization"))


async def require_user(session: Session = Depends(current_session)) -> Authenticated:
    if not isinstance(session, Authenticated):
        raise AuthenticationRequired("Unauthorized")
    return session
