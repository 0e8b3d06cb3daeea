import base64
import uuid
from unittest.mock import AsyncMock, Mock
from datetime import datetime, timezone

import pytest
from googleapiclient.errors import HttpError

from spendsync.exceptions import MailProviderError
from spendsync.services import gmail_provider
from spendsync.services.gmail_provider import (
    GmailMailProvider,
    extract_bodies,
    fetch_message_ids,
    message_date,
    to_email_message,
)


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii")


class _Call:
    def __init__(self, response):
        self._response = response

    def execute(self):
        return self._response


class _Messages:
    def __init__(self, pages):
        self.pages = pages
        self.requests = []

    def list(self, **kwargs):
        self.requests.append(kwargs)
        return _Call(self.pages[len(self.requests) - 1])


class _Service:
    def __init__(self, pages):
        self.messages_api = _Messages(pages)

    def users(self):
        return self

    def messages(self):
        return self.messages_api


def test_fetch_message_ids_follows_page_tokens():
    service = _Service([
        {"messages": [{"id": "a"}, {"id": "b"}], "nextPageToken": "t1"},
        {"messages": [{"id": "c"}]},
    ])

    ids = fetch_message_ids(service, "subject:(upi)", None)

    assert ids == ["a", "b", "c"]
    assert service.messages_api.requests[1]["pageToken"] == "t1"


def test_fetch_message_ids_stops_at_max_results():
    service = _Service([
        {"messages": [{"id": "a"}, {"id": "b"}, {"id": "c"}], "nextPageToken": "t1"},
    ])

    ids = fetch_message_ids(service, "q", 2)

    assert ids == ["a", "b"]
    assert len(service.messages_api.requests) == 1
    assert service.messages_api.requests[0]["maxResults"] == 2


def test_extract_bodies_walks_nested_parts():
    payload = {
        "mimeType": "multipart/mixed",
        "parts": [
            {
                "mimeType": "multipart/alternative",
                "parts": [
                    {"mimeType": "text/plain", "body": {"data": _b64("Rs.250.00 debited")}},
                    {"mimeType": "text/html", "body": {"data": _b64("<p>Rs.250.00</p>")}},
                ],
            },
            {"mimeType": "application/pdf", "body": {"attachmentId": "x"}},
        ],
    }

    bodies = extract_bodies(payload)

    assert bodies == {"text": "Rs.250.00 debited", "html": "<p>Rs.250.00</p>"}


def test_message_date_prefers_internal_date():
    message = {"internalDate": "1715765400000", "payload": {"headers": []}}

    assert message_date(message) == datetime(2024, 5, 15, 9, 30, tzinfo=timezone.utc)


def test_message_date_falls_back_to_date_header():
    message = {"payload": {"headers": [{"name": "Date", "value": "Wed, 15 May 2024 09:30:00 +0000"}]}}

    assert message_date(message) == datetime(2024, 5, 15, 9, 30, tzinfo=timezone.utc)


def test_to_email_message_maps_headers_and_body():
    user_id = uuid.uuid4()
    message = {
        "id": "msg-1",
        "snippet": "Rs.250.00 debited",
        "internalDate": "1715765400000",
        "payload": {
            "mimeType": "text/plain",
            "headers": [
                {"name": "From", "value": "alerts@hdfcbank.net"},
                {"name": "Subject", "value": "UPI txn"},
            ],
            "body": {"data": _b64("  Rs.250.00 debited  ")},
        },
    }

    email = to_email_message(user_id, message)

    assert email.provider_message_id == "msg-1"
    assert email.user_id == user_id
    assert email.from_address == "alerts@hdfcbank.net"
    assert email.subject == "UPI txn"
    assert email.body_text == "Rs.250.00 debited"
    assert email.body_html is None
    assert email.provider == "gmail"


async def test_list_emails_wraps_http_errors(monkeypatch):
    def failing_list(service, query, max_results):
        raise HttpError(Mock(status=500, reason="backend error"), b"{}")

    monkeypatch.setattr(gmail_provider, "build", lambda *args, **kwargs: object())
    monkeypatch.setattr(gmail_provider, "fetch_message_ids", failing_list)
    loader = AsyncMock(return_value=object())
    provider = GmailMailProvider(loader)
    user_id = uuid.uuid4()

    with pytest.raises(MailProviderError):
        await provider.list_emails(user_id, "subject:(upi)", 10)

    loader.assert_awaited_once_with(user_id)


async def test_empty_batch_skips_the_provider():
    loader = AsyncMock()
    provider = GmailMailProvider(loader)

    assert await provider.fetch_content_batch(uuid.uuid4(), []) == []
    loader.assert_not_awaited()
