# backend/app/models/thread.py
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, utcnow


class Thread(Base):
    """A conversation. Created by the first send, never deleted, subject fixed."""

    __tablename__ = "mail_threads"

    id: Mapped[int] = mapped_column(primary_key=True)

    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    creator = relationship("User")
    messages = relationship("Message", back_populates="thread", order_by="Message.id")
