"""
Identity service: SQLAlchemy ORM models for the auth domain.

Tables owned by this module:
  - accounts    Registered accounts keyed by email

OTP records are not persisted here; they live in the OTP ledger (otp.py).
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from identity.auth.utils import hash_password
from identity.database import Base


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    # Exact (case-sensitive) match is the lookup key for every auth flow
    email: Mapped[str] = mapped_column(
        sa.String(255), unique=True, nullable=False, index=True
    )
    phone_number: Mapped[str | None] = mapped_column(sa.String(20), nullable=True)
    password_hash: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    @property
    def password(self) -> str:
        raise AttributeError("password is write-only")

    @password.setter
    def password(self, plain: str) -> None:
        # Assigning the plaintext always recomputes the digest
        self.password_hash = hash_password(plain)

    def __repr__(self) -> str:
        return f"<Account id={self.id} email={self.email!r}>"
