"""Request / response models for the HTTP surface."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, field_validator


class _StrictBody(BaseModel):
    # Unknown fields are a malformed payload
    model_config = ConfigDict(extra="forbid")


class OTPRequest(_StrictBody):
    phone_number: str = ""


class OTPVerifyRequest(_StrictBody):
    phone_number: str = ""
    otp: str = ""


class IdentityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    phone_number: str

    @field_validator("created_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        # SQLite hands back naive datetimes; stored values are always UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class MessageResponse(BaseModel):
    success: bool
    message: str


class VerifyResponse(MessageResponse):
    data: IdentityOut
    token: str


class ProtectedResponse(BaseModel):
    message: str
    phone: str
    expires_at: datetime


class UserEnvelope(BaseModel):
    user: IdentityOut
