"""SQLAlchemy User model."""

from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


class User(Base):
    """An identity proven by control of a phone number.

    Created on the first successful OTP verification and never mutated
    afterwards.
    """

    __tablename__ = "users"

    # SQLite only autoincrements INTEGER PRIMARY KEY columns
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    phone_number: Mapped[str] = mapped_column(
        String(32), nullable=False, unique=True, doc="E.164 phone number, immutable"
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} phone_number={self.phone_number!r}>"
