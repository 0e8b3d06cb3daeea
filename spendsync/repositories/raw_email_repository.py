from typing import List, Optional, Tuple
import uuid

from sqlalchemy import update, func, literal_column
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from mailparse.records import EmailMessage
from spendsync.models.raw_email import RawEmail


def to_message(row: RawEmail) -> EmailMessage:
    """Stored row -> parser input"""
    return EmailMessage(
        provider_message_id=row.provider_message_id,
        user_id=row.user_id,
        from_address=row.from_address,
        subject=row.subject,
        received_at=row.received_at,
        body_text=row.body_text,
        body_html=row.body_html,
        snippet=row.snippet,
        provider=row.provider,
        category=row.category,
        id=row.id,
        processed=row.processed,
    )


class RawEmailRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(self, email: EmailMessage) -> Tuple[bool, uuid.UUID]:
        """
        Insert or refresh an email keyed on (user, provider, provider message id).

        Returns:
            (is_new, id): is_new is True only when the row was inserted
        """
        stmt = pg_insert(RawEmail).values(
            id=uuid.uuid4(),
            user_id=email.user_id,
            category=email.category,
            provider=email.provider,
            provider_message_id=email.provider_message_id,
            from_address=email.from_address,
            subject=email.subject,
            body_text=email.body_text or "",
            body_html=email.body_html,
            snippet=email.snippet,
            received_at=email.received_at,
            processed=False,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[RawEmail.user_id, RawEmail.provider, RawEmail.provider_message_id],
            set_={
                "from_address": stmt.excluded.from_address,
                "subject": stmt.excluded.subject,
                "body_text": stmt.excluded.body_text,
                "body_html": stmt.excluded.body_html,
                "snippet": stmt.excluded.snippet,
                "updated_at": func.now(),
            },
        ).returning(RawEmail.id, literal_column("(xmax = 0)").label("inserted"))
        row = (await self.session.execute(stmt)).one()
        await self.session.commit()
        return bool(row.inserted), row.id

    async def find_by_id(self, user_id: uuid.UUID, email_id: uuid.UUID) -> Optional[RawEmail]:
        result = await self.session.execute(
            select(RawEmail).filter(RawEmail.id == email_id, RawEmail.user_id == user_id)
        )
        return result.scalar_one_or_none()

    def _user_conditions(self, user_id: uuid.UUID, category: str, unprocessed_only: bool) -> list:
        conditions = [RawEmail.user_id == user_id, RawEmail.category == category]
        if unprocessed_only:
            conditions.append(RawEmail.processed.is_(False))
        return conditions

    async def list_by_user(
        self,
        user_id: uuid.UUID,
        category: str = "expenses",
        unprocessed_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> List[RawEmail]:
        result = await self.session.execute(
            select(RawEmail)
            .filter(*self._user_conditions(user_id, category, unprocessed_only))
            .order_by(RawEmail.received_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def count_by_user(
        self,
        user_id: uuid.UUID,
        category: str = "expenses",
        unprocessed_only: bool = False,
    ) -> int:
        result = await self.session.execute(
            select(func.count(RawEmail.id)).filter(*self._user_conditions(user_id, category, unprocessed_only))
        )
        return result.scalar_one()

    async def list_page_after(
        self,
        user_id: uuid.UUID,
        after_id: Optional[uuid.UUID],
        limit: int,
        category: str = "expenses",
        unprocessed_only: bool = False,
    ) -> List[EmailMessage]:
        """
        Keyset page of stored emails ordered by id.

        Keyset (not offset) paging keeps pages stable while a reprocess run
        flips rows from unprocessed to processed underneath it.
        """
        conditions = self._user_conditions(user_id, category, unprocessed_only)
        if after_id is not None:
            conditions.append(RawEmail.id > after_id)
        result = await self.session.execute(
            select(RawEmail).filter(*conditions).order_by(RawEmail.id).limit(limit)
        )
        return [to_message(row) for row in result.scalars().all()]

    async def mark_processed(self, email_id: uuid.UUID) -> bool:
        """Flip processed false -> true; returns False if it was already set"""
        result = await self.session.execute(
            update(RawEmail)
            .where(RawEmail.id == email_id, RawEmail.processed.is_(False))
            .values(processed=True, updated_at=func.now())
        )
        await self.session.commit()
        return result.rowcount == 1
