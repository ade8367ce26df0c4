import pytest
from pydantic import ValidationError

from app.schemas.message import MailReplyForm, MailSendForm


@pytest.mark.parametrize(
    "body",
    [
        "The onclick handler fires twice",
        "Is javascript: allowed in hrefs?",
        "Paste <script> tags into the docs page",
        "Logs are in ../shared/logs",
    ],
)
def test_ordinary_mail_text_is_kept_verbatim(body):
    assert MailReplyForm(body=body).body == body
    assert MailSendForm(subject="Note", body=body, recipients="2").body == body


def test_subject_with_relative_path_is_accepted():
    form = MailSendForm(subject="Move files to ../archive", body="done", recipients="[2, 3]")
    assert form.subject == "Move files to ../archive"
    assert form.recipients == [2, 3]


@pytest.mark.parametrize("raw, expected", [("2, 3", [2, 3]), ("[4]", [4]), ("5", [5]), ("", [])])
def test_recipients_parsing(raw, expected):
    assert MailSendForm(subject="s", body="b", recipients=raw).recipients == expected


def test_subject_line_break_rejected():
    with pytest.raises(ValidationError):
        MailSendForm(subject="two\nlines", body="b", recipients="2")


def test_body_null_byte_rejected():
    with pytest.raises(ValidationError):
        MailReplyForm(body="bad\x00byte")
