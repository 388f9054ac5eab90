"""User directory models mirrored from Clerk."""

from dataclasses import dataclass
from enum import Enum

from sqlalchemy import Column, DateTime, Enum as SQLEnum, String

from mediaforge.storage.models import Base, utcnow


class UserRole(str, Enum):
    """Dashboard roles."""
    USER = "user"
    ADMIN = "admin"


class User(Base):
    """Local mirror of a Clerk user.

    Rows are written by the Clerk ``user.created`` webhook. Credit and
    referral tables key on the Clerk id without a foreign key, since a
    signed-in user may act before the webhook has been delivered.
    """
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)  # Clerk user ID
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    image_url = Column(String(1024), nullable=True)
    role = Column(SQLEnum(UserRole), default=UserRole.USER, nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def display_name(self) -> str:
        return self.first_name or self.email.split("@")[0] or "User"

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"


@dataclass(frozen=True)
class Identity:
    """Authenticated caller, passed explicitly into every operation."""

    user_id: str
    email: str | None = None
    is_admin: bool = False
