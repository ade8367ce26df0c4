from __future__ import annotations

import json
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.security.sanitizer import InputSanitizer


class MailSendForm(BaseModel):
    """
    Text fields of a multipart send request.
    Emptiness is checked by the messaging engine; this only sanitizes.
    """
    model_config = ConfigDict(extra='forbid')

    subject: str = Field(default='', max_length=255)
    body: str = Field(default='', max_length=50000)
    recipients: List[int] = Field(default_factory=list, max_length=100)

    @field_validator('recipients', mode='before')
    @classmethod
    def parse_recipients(cls, v: Any) -> Any:
        """Accept a JSON list ("[2,3]") or a comma-separated string ("2, 3")."""
        if v is None:
            return []
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return []
            try:
                parsed = json.loads(v)
            except ValueError:
                parsed = [p.strip() for p in v.split(',') if p.strip()]
            return parsed if isinstance(parsed, list) else [parsed]
        return v

    @field_validator('subject')
    @classmethod
    def validate_subject(cls, v: str) -> str:
        return InputSanitizer.sanitize_subject(v)

    @field_validator('body')
    @classmethod
    def validate_body(cls, v: str) -> str:
        return InputSanitizer.sanitize_body(v)


class MailReplyForm(BaseModel):
    model_config = ConfigDict(extra='forbid')

    body: str = Field(default='', max_length=50000)

    @field_validator('body')
    @classmethod
    def validate_body(cls, v: str) -> str:
        return InputSanitizer.sanitize_body(v)


class StatusResponse(BaseModel):
    """Response for read/delete operations."""
    success: bool = True
    message: Optional[str] = None


class MailSendResponse(BaseModel):
    success: bool = True
    mail_id: int
    thread_id: int


class MailReplyResponse(BaseModel):
    success: bool = True
    message: str = 'Reply sent successfully'
    mail_id: int
    thread_id: int


class AttachmentItem(BaseModel):
    id: int
    original_name: str
    file_name: str
    file_path: str
    mime_type: str
    file_size: int


class ReplyItem(BaseModel):
    id: int
    body: str
    created_at: datetime
    sender_id: int
    sender_name: str


class InboxItem(BaseModel):
    """Latest message of a thread the user received."""
    id: int
    thread_id: int
    subject: str
    preview: str
    created_at: datetime
    sender_id: int
    sender_name: str
    sender_email: str
    is_read: bool
    attachments_count: int
    attachments: List[AttachmentItem] = []
    has_replies: bool
    replies_count: int
    replies: List[ReplyItem] = []


class InboxResponse(BaseModel):
    success: bool = True
    inbox_count: int
    data: List[InboxItem]


class RecipientRef(BaseModel):
    id: int
    name: str
    email: str


class SentItem(BaseModel):
    id: int
    thread_id: int
    subject: str
    preview: str
    created_at: datetime
    recipients: str
    recipient_list: List[RecipientRef] = []
    attachments_count: int
    attachments: List[AttachmentItem] = []


class SentResponse(BaseModel):
    success: bool = True
    sent_count: int
    data: List[SentItem]


class ThreadMail(BaseModel):
    id: int
    subject: str
    body: str
    created_at: datetime
    sender_id: int
    sender_name: str
    sender_email: str
    attachments: List[AttachmentItem] = []


class ThreadDetail(BaseModel):
    thread_id: int
    subject: str
    mails: List[ThreadMail]


class ThreadDetailResponse(BaseModel):
    success: bool = True
    data: ThreadDetail


class UserSuggestion(BaseModel):
    id: int
    name: str
    email: str
    role: str


class SuggestionsResponse(BaseModel):
    success: bool = True
    count: int
    data: List[UserSuggestion]


class AdminRecipient(BaseModel):
    recipient_id: int
    recipient_name: str
    recipient_email: str
    is_read: bool
    read_at: Optional[datetime] = None
    is_deleted: bool


class AdminMail(ThreadMail):
    sender_deleted: bool
    recipients: List[AdminRecipient] = []


class AdminCreator(BaseModel):
    id: int
    name: str


class AdminThread(BaseModel):
    thread_id: int
    subject: str
    created_at: datetime
    created_by: AdminCreator
    mails: List[AdminMail]


class AdminThreadsResponse(BaseModel):
    success: bool = True
    total_threads: int
    data: List[AdminThread]
