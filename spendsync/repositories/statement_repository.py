from typing import List
import uuid

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from mailparse.records import ParsedStatement
from spendsync.models.statement import Statement


class StatementRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(self, statement: ParsedStatement) -> uuid.UUID:
        stmt = pg_insert(Statement).values(
            id=statement.id,
            user_id=statement.user_id,
            issuer=statement.issuer,
            period_start=statement.period_start,
            period_end=statement.period_end,
            total_due=statement.total_due,
            minimum_due=statement.minimum_due,
            due_date=statement.due_date,
            currency=statement.currency,
            source_email_id=statement.source_email_id,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Statement.user_id, Statement.issuer, Statement.period_start, Statement.period_end],
            set_={
                "total_due": stmt.excluded.total_due,
                "minimum_due": stmt.excluded.minimum_due,
                "due_date": stmt.excluded.due_date,
                "source_email_id": stmt.excluded.source_email_id,
                "updated_at": func.now(),
            },
        ).returning(Statement.id)
        statement_id = (await self.session.execute(stmt)).scalar_one()
        await self.session.commit()
        return statement_id

    async def list_by_user(self, user_id: uuid.UUID, limit: int = 24) -> List[Statement]:
        result = await self.session.execute(
            select(Statement)
            .filter(Statement.user_id == user_id)
            .order_by(Statement.period_end.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
