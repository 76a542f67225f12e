"""
Reports management routers.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from clinic_api.auth.dependencies import get_clinic_auth
from clinic_api.common.dates import now_local
from clinic_api.common.schemas import JSendResponse
from clinic_api.common.utils import error_response
from clinic_api.reports.schemas import SummaryResponse, MonthlyReport, RankingType, RankingsResponse
from clinic_api.reports.services import get_sales_summary, get_monthly_report, get_rankings

router = APIRouter()


@router.get("/summary", response_model=JSendResponse[SummaryResponse])
async def get_summary(
    start_date: Optional[str] = Query(None, description="Start date for summary (YYYY, YYYY-MM, or YYYY-MM-DD). Defaults to today if not provided."),
    end_date: Optional[str] = Query(None, description="End date for summary (YYYY, YYYY-MM, or YYYY-MM-DD). Defaults to today if not provided."),
    auth_info: tuple = Depends(get_clinic_auth)
):
    """
    Get sales summary statistics for a clinic.

    By default, returns today's sales only. Use start_date and end_date
    parameters to specify a different date range.

    Returns summary statistics including:
    - revenue, cost and margin of COMPLETED sales
    - sales: Number of sales
    - patients: Number of distinct patients who bought
    - unitsByClass / salesByTier: Product mix and combo tiers
    - date: Current local date time
    """
    try:
        user_id, clinic_info = auth_info
        summary = await get_sales_summary(clinic_info['id'], start_date=start_date, end_date=end_date)
        return JSendResponse.success(summary)
    except Exception as e:
        return error_response(e)


@router.get("/monthly", response_model=JSendResponse[MonthlyReport])
async def get_monthly(
    year: Optional[int] = Query(None, ge=2000, le=2100, description="Year, defaults to the current one"),
    month: Optional[int] = Query(None, ge=1, le=12, description="Month, defaults to the current one"),
    auth_info: tuple = Depends(get_clinic_auth)
):
    """
    Monthly income statement with revenue goal, daily goal chart and closing projection.
    """
    try:
        user_id, clinic_info = auth_info
        today = now_local().date()
        report = await get_monthly_report(clinic_info['id'], year or today.year, month or today.month, today=today)
        return JSendResponse.success(report)
    except Exception as e:
        return error_response(e)


@router.get("/rankings", response_model=JSendResponse[RankingsResponse])
async def get_month_rankings(
    year: Optional[int] = Query(None, ge=2000, le=2100, description="Year, defaults to the current one"),
    month: Optional[int] = Query(None, ge=1, le=12, description="Month, defaults to the current one"),
    ranking_type: RankingType = Query(RankingType.PATIENTS, alias="type", description="patients or products"),
    limit: Optional[int] = Query(None, ge=1, le=100, description="Keep only the top entries"),
    auth_info: tuple = Depends(get_clinic_auth)
):
    """
    Rank the month's patients by amount spent, or its products by units sold.
    """
    try:
        user_id, clinic_info = auth_info
        today = now_local().date()
        rankings = await get_rankings(clinic_info['id'], year or today.year, month or today.month, ranking_type, limit=limit)
        return JSendResponse.success(rankings)
    except Exception as e:
        return error_response(e)
