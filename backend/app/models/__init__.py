# backend/app/models/__init__.py
from .user import Role, User
from .project import Project, ProjectMember
from .thread import Thread
from .message import Message
from .message_recipient import MessageRecipient
from .attachment import Attachment
from .notification import Notification

__all__ = [
    "Role",
    "User",
    "Project",
    "ProjectMember",
    "Thread",
    "Message",
    "MessageRecipient",
    "Attachment",
    "Notification",
]
