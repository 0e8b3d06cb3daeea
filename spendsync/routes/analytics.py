from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from spendsync.dependencies import get_expenses_service
from spendsync.services.expenses_service import ExpensesService

router = APIRouter(prefix="/expenses/analytics", tags=["Expense Analytics"])

Period = Literal["week", "month", "quarter", "year"]


@router.get("/summary")
async def spending_summary(user_id: UUID, period: Period = "month", service: ExpensesService = Depends(get_expenses_service)):
    return await service.spending_summary(user_id, period)


@router.get("/by-category")
async def spending_by_category(user_id: UUID, period: Period = "month", service: ExpensesService = Depends(get_expenses_service)):
    return await service.spending_by_category(user_id, period)


@router.get("/by-mode")
async def spending_by_mode(user_id: UUID, period: Period = "month", service: ExpensesService = Depends(get_expenses_service)):
    return await service.spending_by_mode(user_id, period)


@router.get("/by-card")
async def spending_by_card(user_id: UUID, period: Period = "month", service: ExpensesService = Depends(get_expenses_service)):
    return await service.spending_by_card(user_id, period)


@router.get("/by-day-of-week")
async def spending_by_day_of_week(user_id: UUID, period: Period = "month", service: ExpensesService = Depends(get_expenses_service)):
    return await service.spending_by_day_of_week(user_id, period)


@router.get("/cumulative")
async def cumulative_spend(user_id: UUID, period: Period = "month", service: ExpensesService = Depends(get_expenses_service)):
    return await service.cumulative_spend(user_id, period)


@router.get("/comparison")
async def period_comparison(user_id: UUID, period: Period = "month", service: ExpensesService = Depends(get_expenses_service)):
    return await service.period_comparison(user_id, period)


@router.get("/top-merchants")
async def top_merchants(
    user_id: UUID,
    period: Period = "month",
    limit: int = Query(default=10, ge=1, le=50),
    service: ExpensesService = Depends(get_expenses_service),
):
    return await service.top_merchants(user_id, period, limit)


@router.get("/largest")
async def largest_transactions(
    user_id: UUID,
    period: Period = "month",
    limit: int = Query(default=10, ge=1, le=50),
    service: ExpensesService = Depends(get_expenses_service),
):
    return await service.largest_transactions(user_id, period, limit)


@router.get("/monthly-trend")
async def monthly_trend(
    user_id: UUID,
    months: int = Query(default=12, ge=1, le=36),
    service: ExpensesService = Depends(get_expenses_service),
):
    return await service.monthly_trend(user_id, months)


@router.get("/daily")
async def daily_spending(user_id: UUID, period: Period = "month", service: ExpensesService = Depends(get_expenses_service)):
    return await service.daily_spending(user_id, period)


@router.get("/velocity")
async def spending_velocity(
    user_id: UUID,
    period: Period = "month",
    window_days: int = Query(default=7, ge=1, le=30),
    service: ExpensesService = Depends(get_expenses_service),
):
    return await service.spending_velocity(user_id, period, window_days)


@router.get("/category-trend")
async def category_trend(
    user_id: UUID,
    months: int = Query(default=6, ge=1, le=36),
    service: ExpensesService = Depends(get_expenses_service),
):
    return await service.category_trend(user_id, months)


@router.get("/savings-rate")
async def savings_rate(
    user_id: UUID,
    months: int = Query(default=12, ge=1, le=36),
    service: ExpensesService = Depends(get_expenses_service),
):
    return await service.savings_rate(user_id, months)


@router.get("/card-categories")
async def card_category_breakdown(user_id: UUID, period: Period = "month", service: ExpensesService = Depends(get_expenses_service)):
    return await service.card_category_breakdown(user_id, period)


@router.get("/top-vpas")
async def top_vpas(
    user_id: UUID,
    period: Period = "month",
    limit: int = Query(default=10, ge=1, le=50),
    service: ExpensesService = Depends(get_expenses_service),
):
    return await service.top_vpas(user_id, period, limit)


@router.get("/milestones")
async def milestone_etas(user_id: UUID, service: ExpensesService = Depends(get_expenses_service)):
    return await service.milestone_etas(user_id)
