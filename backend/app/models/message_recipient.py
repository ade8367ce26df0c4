# backend/app/models/message_recipient.py
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, utcnow


class MessageRecipient(Base):
    __tablename__ = "mail_recipients"

    message_id: Mapped[int] = mapped_column(ForeignKey("mails.id"), primary_key=True)
    recipient_id: Mapped[int] = mapped_column(ForeignKey("users.id"), primary_key=True, index=True)

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    message = relationship("Message", back_populates="recipients")
    recipient = relationship("User")

    def mark_read(self, at: datetime | None = None) -> None:
        self.is_read = True
        self.read_at = at or utcnow()

    def mark_recipient_deleted(self) -> None:
        """Hide the message from this recipient's inbox. The row itself stays."""
        self.is_deleted = True
