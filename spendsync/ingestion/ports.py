from typing import List, Protocol, Sequence
import uuid

from mailparse.records import EmailMessage


class MailProvider(Protocol):
    """Source of a user's transactional email"""

    async def list_emails(self, user_id: uuid.UUID, query: str, max_results: int) -> List[str]:
        """Provider message ids matching a search query"""
        ...

    async def fetch_content_batch(self, user_id: uuid.UUID, message_ids: Sequence[str]) -> List[EmailMessage]:
        """Full content for a batch of message ids; raises MailProviderError on failure"""
        ...
