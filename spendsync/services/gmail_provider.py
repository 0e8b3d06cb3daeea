"""
Gmail implementation of the mail provider port (google-api-python-client).

The client library is synchronous; calls run in a worker thread so the event
loop keeps serving requests and other jobs.
"""
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Awaitable, Callable, Dict, List, Optional, Sequence
from pathlib import Path
import asyncio
import base64
import uuid

from googleapiclient.discovery import build
from google.auth.transport.requests import Request
from googleapiclient.errors import HttpError
from google.oauth2.credentials import Credentials

from mailparse.records import EmailMessage
from spendsync.exceptions import MailProviderError
from spendsync.logging_config import get_logger

logger = get_logger(__name__)

CredentialsLoader = Callable[[uuid.UUID], Awaitable[Credentials]]

LIST_PAGE_SIZE = 500
SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]


def fetch_message_ids(service, query: str, max_results: Optional[int]) -> List[str]:
    """
    Fetch message IDs from Gmail with pagination.

    Args:
        service: Gmail API service instance
        query: Gmail search query string
        max_results: Maximum number of ids to return (None for all)

    Returns:
        List of message ids, newest first
    """
    message_ids: List[str] = []
    page_token = None
    page_size = min(max_results, LIST_PAGE_SIZE) if max_results else LIST_PAGE_SIZE

    while True:
        response = service.users().messages().list(
            userId='me',
            q=query,
            maxResults=page_size,
            pageToken=page_token
        ).execute()

        message_ids.extend(m['id'] for m in response.get('messages', []) if m.get('id'))

        page_token = response.get('nextPageToken')
        if not page_token or (max_results is not None and len(message_ids) >= max_results):
            break

    return message_ids[:max_results] if max_results is not None else message_ids


def extract_bodies(payload: dict) -> Dict[str, str]:
    """
    Collect decoded text/plain and text/html content from a (nested) payload.

    Returns:
        {"text": ..., "html": ...}
    """
    bodies = {"text": "", "html": ""}

    def visit(part: dict) -> None:
        for child in part.get('parts', []) or []:
            visit(child)
        data = part.get('body', {}).get('data')
        if not data:
            return
        decoded = base64.urlsafe_b64decode(data).decode('utf-8', errors='ignore')
        mime_type = part.get('mimeType', '')
        if mime_type == 'text/plain':
            bodies["text"] += decoded
        elif mime_type == 'text/html':
            bodies["html"] += decoded

    visit(payload)
    return bodies


def message_date(message: dict) -> datetime:
    """internalDate (ms since epoch), else the Date header, else now"""
    if 'internalDate' in message:
        return datetime.fromtimestamp(int(message['internalDate']) / 1000.0, tz=timezone.utc)
    headers = message.get('payload', {}).get('headers', [])
    date_header = next((h['value'] for h in headers if h['name'].lower() == 'date'), None)
    if date_header:
        parsed = parsedate_to_datetime(date_header)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc)


def to_email_message(user_id: uuid.UUID, message: dict) -> EmailMessage:
    payload = message.get('payload', {})
    headers = {h['name'].lower(): h['value'] for h in payload.get('headers', [])}
    bodies = extract_bodies(payload)
    return EmailMessage(
        provider_message_id=message['id'],
        user_id=user_id,
        from_address=headers.get('from', ''),
        subject=headers.get('subject', ''),
        received_at=message_date(message),
        body_text=bodies["text"].strip(),
        body_html=bodies["html"].strip() or None,
        snippet=message.get('snippet'),
        provider="gmail",
    )


class GmailMailProvider:
    def __init__(self, credentials_loader: CredentialsLoader):
        self._credentials_loader = credentials_loader

    async def _service(self, user_id: uuid.UUID):
        credentials = await self._credentials_loader(user_id)
        return build('gmail', 'v1', credentials=credentials, cache_discovery=False)

    async def list_emails(self, user_id: uuid.UUID, query: str, max_results: int) -> List[str]:
        try:
            service = await self._service(user_id)
            return await asyncio.to_thread(fetch_message_ids, service, query, max_results)
        except HttpError as e:
            raise MailProviderError(f"Gmail list failed for user {user_id}: {e}") from e

    async def fetch_content_batch(self, user_id: uuid.UUID, message_ids: Sequence[str]) -> List[EmailMessage]:
        """Fetch full messages with one batch HTTP request"""
        if not message_ids:
            return []
        service = await self._service(user_id)
        return await asyncio.to_thread(self._fetch_batch_sync, service, user_id, list(message_ids))

    def _fetch_batch_sync(self, service, user_id: uuid.UUID, message_ids: List[str]) -> List[EmailMessage]:
        messages: Dict[str, dict] = {}

        def on_response(request_id, response, exception):
            if exception is not None:
                logger.warning(f"Gmail get failed for message {request_id}: {exception}")
                return
            messages[request_id] = response

        batch = service.new_batch_http_request(callback=on_response)
        for message_id in message_ids:
            batch.add(
                service.users().messages().get(userId='me', id=message_id, format='full'),
                request_id=message_id,
            )
        try:
            batch.execute()
        except HttpError as e:
            raise MailProviderError(f"Gmail batch fetch failed for user {user_id}: {e}") from e

        # keep the requested order; messages that failed individually are left out
        return [to_email_message(user_id, messages[mid]) for mid in message_ids if mid in messages]


def token_file_credentials_loader(token_dir: str) -> CredentialsLoader:
    """
    Load per-user authorized-user JSON files (<token_dir>/<user_id>.json),
    refreshing expired access tokens. Obtaining the tokens is outside this service.
    """
    async def load(user_id: uuid.UUID) -> Credentials:
        path = Path(token_dir) / f"{user_id}.json"
        if not path.exists():
            raise MailProviderError(f"No Gmail authorization stored for user {user_id}")
        credentials = Credentials.from_authorized_user_file(str(path), SCOPES)
        if not credentials.valid:
            if not (credentials.expired and credentials.refresh_token):
                raise MailProviderError(f"Gmail authorization for user {user_id} is invalid")
            await asyncio.to_thread(credentials.refresh, Request())
        return credentials

    return load
