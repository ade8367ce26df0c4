from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.api.deps import get_messaging_engine, require_super_admin
from app.core.config import settings
from app.core.security import get_current_user
from app.crud import mails as mail_queries
from app.crud.users import suggest_recipients
from app.db.session import get_db
from app.models.user import User
from app.schemas.message import (
    AdminThreadsResponse,
    InboxResponse,
    MailReplyForm,
    MailReplyResponse,
    MailSendForm,
    MailSendResponse,
    SentResponse,
    StatusResponse,
    SuggestionsResponse,
    ThreadDetailResponse,
)
from app.services.messaging import MessagingEngine
from app.storage.uploads import discard, save_uploads


router = APIRouter(prefix='/mails', tags=['mails'])


def _bad_request(exc: ValidationError) -> HTTPException:
    first = exc.errors()[0] if exc.errors() else {}
    loc = '.'.join(str(p) for p in first.get('loc', ()))
    msg = first.get('msg', 'Invalid input')
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=f'{loc}: {msg}' if loc else msg,
    )


@router.post('', response_model=MailSendResponse)
def send_mail(
    subject: str = Form(default=''),
    body: str = Form(default=''),
    recipients: str = Form(default=''),
    attachments: Optional[List[UploadFile]] = File(default=None),
    engine: MessagingEngine = Depends(get_messaging_engine),
    current_user: User = Depends(get_current_user),
):
    try:
        form = MailSendForm(subject=subject, body=body, recipients=recipients)
    except ValidationError as e:
        raise _bad_request(e)

    stored = save_uploads(attachments)
    try:
        result = engine.send(current_user.id, form.subject, form.body, form.recipients, stored)
    except Exception:
        discard(stored)
        raise

    return MailSendResponse(mail_id=result.message_id, thread_id=result.thread_id)


@router.get('/users/suggestions', response_model=SuggestionsResponse)
def get_user_suggestions(
    q: str = Query(default=''),
    limit: int = Query(default=10, ge=1, le=50),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    users = suggest_recipients(db, current_user.id, q, settings.excluded_suggestion_roles, limit)
    return SuggestionsResponse(count=len(users), data=users)


@router.get('/inbox', response_model=InboxResponse)
def get_inbox(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    items = mail_queries.list_inbox(db, current_user.id, settings.preview_length)
    return InboxResponse(inbox_count=len(items), data=items)


@router.get('/sent', response_model=SentResponse)
def get_sent(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    items = mail_queries.list_sent(db, current_user.id, settings.preview_length)
    return SentResponse(sent_count=len(items), data=items)


@router.get('/admin/all', response_model=AdminThreadsResponse)
def get_all_mails_admin(
    db: Session = Depends(get_db),
    _admin: User = Depends(require_super_admin),
):
    threads = mail_queries.list_all_threads(db)
    return AdminThreadsResponse(total_threads=len(threads), data=threads)


@router.get('/{mail_id}', response_model=ThreadDetailResponse)
def get_mail_detail(
    mail_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ThreadDetailResponse(data=mail_queries.get_thread_detail(db, mail_id))


@router.put('/{mail_id}/read', response_model=StatusResponse)
def mark_as_read(
    mail_id: int,
    engine: MessagingEngine = Depends(get_messaging_engine),
    current_user: User = Depends(get_current_user),
):
    engine.mark_read(current_user.id, mail_id)
    return StatusResponse()


@router.delete('/{thread_id}', response_model=StatusResponse)
def delete_conversation(
    thread_id: int,
    engine: MessagingEngine = Depends(get_messaging_engine),
    current_user: User = Depends(get_current_user),
):
    engine.delete_conversation(current_user.id, thread_id)
    return StatusResponse(message='Conversation removed successfully')


@router.post('/{mail_id}/reply', response_model=MailReplyResponse)
def reply_mail(
    mail_id: int,
    body: str = Form(default=''),
    attachments: Optional[List[UploadFile]] = File(default=None),
    engine: MessagingEngine = Depends(get_messaging_engine),
    current_user: User = Depends(get_current_user),
):
    try:
        form = MailReplyForm(body=body)
    except ValidationError as e:
        raise _bad_request(e)

    stored = save_uploads(attachments)
    try:
        result = engine.reply(current_user.id, mail_id, form.body, stored)
    except Exception:
        discard(stored)
        raise

    return MailReplyResponse(mail_id=result.message_id, thread_id=result.thread_id)
