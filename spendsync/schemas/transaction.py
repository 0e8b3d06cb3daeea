from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel, Field


class TransactionUpdate(BaseModel):
    category: Optional[str] = None
    subcategory: Optional[str] = None
    merchant: Optional[str] = None
    transaction_mode: Optional[str] = None
    card_last4: Optional[str] = Field(default=None, min_length=4, max_length=4)
    requires_review: Optional[bool] = None


class BulkUpdateRequest(BaseModel):
    transaction_ids: List[UUID] = Field(min_length=1)
    category: str
    subcategory: Optional[str] = None


class BulkCategorizeRequest(BaseModel):
    merchant: str = Field(min_length=1)
    category: str = Field(min_length=1)
    subcategory: Optional[str] = None


class BulkResult(BaseModel):
    updated: int
