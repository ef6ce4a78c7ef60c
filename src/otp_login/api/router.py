"""HTTP routes for OTP login.

Endpoints
---------
POST /request      → issue an OTP for a phone number (rate limited)
POST /verify       → verify the OTP, register if needed, return a token
GET  /protected    → sample resource requiring a bearer token
GET  /users/{id}   → fetch a single identity (bearer token required)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from otp_login.api.dependencies import Services, current_session, get_services, require_user
from otp_login.api.schemas import (
    IdentityOut,
    MessageResponse,
    OTPRequest,
    OTPVerifyRequest,
    ProtectedResponse,
    UserEnvelope,
    VerifyResponse,
)
from otp_login.auth.session import Authenticated
from otp_login.errors import ValidationError

# Every request is resolved to a session first, so a bad credential is
# rejected even on the public routes.
router = APIRouter(tags=["auth"], dependencies=[Depends(current_session)])


@router.post("/request", response_model=MessageResponse)
async def request_otp(body: OTPRequest, services: Services = Depends(get_services)):
    """Generate an OTP for the phone number and store it for two minutes."""
    await services.auth.request_otp(body.phone_number)
    return MessageResponse(success=True, message="OTP sent successfully")


@router.post("/verify", response_model=VerifyResponse)
async def verify_otp(body: OTPVerifyRequest, services: Services = Depends(get_services)):
    """Verify the OTP, create the user if needed and return a bearer token."""
    user, issued = await services.auth.verify_otp(body.phone_number, body.otp)
    return VerifyResponse(
        success=True,
        message="User authenticated",
        data=IdentityOut.model_validate(user),
        token=issued.token,
    )


@router.get("/protected", response_model=ProtectedResponse)
async def protected(session: Authenticated = Depends(require_user)):
    phone = session.user.phone_number
    return ProtectedResponse(
        message=f"Hello {phone}!",
        phone=phone,
        expires_at=session.claims.expires_at,
    )


@router.get("/users/{user_id}", response_model=UserEnvelope)
async def get_user(
    user_id: str,
    _: Authenticated = Depends(require_user),
    services: Services = Depends(get_services),
):
    try:
        parsed_id = int(user_id)
    except ValueError:
        raise ValidationError("invalid user id") from None
    user = await services.auth.get_user(parsed_id)
    return UserEnvelope(user=IdentityOut.model_validate(user))
