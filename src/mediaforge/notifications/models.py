"""Notification database models."""

from enum import Enum

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum as SQLEnum, Integer, String, Text

from mediaforge.storage.models import Base, utcnow


class NotificationType(str, Enum):
    """Notification categories."""
    WELCOME = "welcome"
    CREDIT = "credit"
    SYSTEM = "system"
    INFO = "info"


class Notification(Base):
    """Per-user system message."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(SQLEnum(NotificationType), nullable=False, default=NotificationType.INFO)
    is_read = Column(Boolean, nullable=False, default=False)
    metadata_json = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "type": self.type.value,
            "isRead": self.is_read,
            "metadata": self.metadata_json,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification(id={self.id}, user={self.user_id}, read={self.is_read})>"
