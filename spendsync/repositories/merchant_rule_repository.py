from typing import List, Optional
import uuid

from sqlalchemy import delete, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from mailparse.utils import merchant_key, normalize_merchant
from spendsync.models.merchant_category_rule import MerchantCategoryRule


class MerchantRuleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_all_by_user(self, user_id: uuid.UUID) -> List[MerchantCategoryRule]:
        result = await self.session.execute(
            select(MerchantCategoryRule)
            .filter(MerchantCategoryRule.user_id == user_id)
            .order_by(MerchantCategoryRule.merchant)
        )
        return list(result.scalars().all())

    async def upsert(
        self,
        user_id: uuid.UUID,
        merchant: str,
        category: str,
        subcategory: str,
        category_metadata: Optional[dict] = None,
    ) -> uuid.UUID:
        stmt = pg_insert(MerchantCategoryRule).values(
            id=uuid.uuid4(),
            user_id=user_id,
            merchant=normalize_merchant(merchant),
            merchant_key=merchant_key(merchant),
            category=category,
            subcategory=subcategory,
            category_metadata=category_metadata or {},
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[MerchantCategoryRule.user_id, MerchantCategoryRule.merchant_key],
            set_={
                "merchant": stmt.excluded.merchant,
                "category": stmt.excluded.category,
                "subcategory": stmt.excluded.subcategory,
                "category_metadata": stmt.excluded.category_metadata,
                "updated_at": func.now(),
            },
        ).returning(MerchantCategoryRule.id)
        rule_id = (await self.session.execute(stmt)).scalar_one()
        await self.session.commit()
        return rule_id

    async def delete_by_merchant(self, user_id: uuid.UUID, merchant: str) -> bool:
        result = await self.session.execute(
            delete(MerchantCategoryRule).where(
                MerchantCategoryRule.user_id == user_id,
                MerchantCategoryRule.merchant_key == merchant_key(merchant),
            )
        )
        await self.session.commit()
        return result.rowcount > 0
