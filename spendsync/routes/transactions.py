from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from spendsync.dependencies import get_expenses_service
from spendsync.repositories.transaction_repository import TransactionFilters
from spendsync.schemas.transaction import BulkCategorizeRequest, BulkResult, BulkUpdateRequest, TransactionUpdate
from spendsync.services.expenses_service import ExpensesService

router = APIRouter(prefix="/expenses", tags=["Expenses"])


@router.get("/transactions")
async def list_transactions(
    user_id: UUID,
    category: Optional[str] = None,
    transaction_mode: Optional[str] = None,
    transaction_type: Optional[str] = None,
    card_last4: Optional[str] = None,
    requires_review: Optional[bool] = None,
    search: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200),
    service: ExpensesService = Depends(get_expenses_service),
):
    filters = TransactionFilters(
        category=category,
        transaction_mode=transaction_mode,
        transaction_type=transaction_type,
        card_last4=card_last4,
        requires_review=requires_review,
        search=search,
        date_from=date_from,
        date_to=date_to,
    )
    return await service.list_transactions(user_id, filters, page, page_size)


@router.get("/transactions/{transaction_id}")
async def get_transaction(user_id: UUID, transaction_id: UUID, service: ExpensesService = Depends(get_expenses_service)):
    return await service.get_transaction(user_id, transaction_id)


@router.patch("/transactions/{transaction_id}")
async def update_transaction(
    user_id: UUID,
    transaction_id: UUID,
    update: TransactionUpdate,
    service: ExpensesService = Depends(get_expenses_service),
):
    return await service.update_transaction(user_id, transaction_id, update.model_dump(exclude_none=True))


@router.post("/transactions/bulk-update", response_model=BulkResult)
async def bulk_update_transactions(
    user_id: UUID,
    request: BulkUpdateRequest,
    service: ExpensesService = Depends(get_expenses_service),
):
    updated = await service.bulk_update_transactions(user_id, request.transaction_ids, request.category, request.subcategory)
    return BulkResult(updated=updated)


@router.get("/merchants")
async def list_merchants(user_id: UUID, service: ExpensesService = Depends(get_expenses_service)):
    return await service.distinct_merchants(user_id)


@router.post("/merchants/categorize", response_model=BulkResult)
async def categorize_merchant(
    user_id: UUID,
    request: BulkCategorizeRequest,
    service: ExpensesService = Depends(get_expenses_service),
):
    updated = await service.bulk_categorize_merchant(user_id, request.merchant, request.category, request.subcategory)
    return BulkResult(updated=updated)


@router.get("/merchant-rules")
async def list_merchant_rules(user_id: UUID, service: ExpensesService = Depends(get_expenses_service)):
    return await service.list_merchant_rules(user_id)


@router.delete("/merchant-rules/{merchant}", status_code=204)
async def delete_merchant_rule(user_id: UUID, merchant: str, service: ExpensesService = Depends(get_expenses_service)):
    await service.delete_merchant_rule(user_id, merchant)


@router.get("/emails")
async def list_emails(
    user_id: UUID,
    unprocessed_only: bool = False,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200),
    service: ExpensesService = Depends(get_expenses_service),
):
    return await service.list_raw_emails(user_id, unprocessed_only, page, page_size)


@router.get("/emails/{email_id}")
async def get_email(user_id: UUID, email_id: UUID, service: ExpensesService = Depends(get_expenses_service)):
    return await service.get_raw_email(user_id, email_id)


@router.get("/statements")
async def list_statements(
    user_id: UUID,
    limit: int = Query(default=24, ge=1, le=120),
    service: ExpensesService = Depends(get_expenses_service),
):
    return await service.list_statements(user_id, limit)
