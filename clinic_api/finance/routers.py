"""
This module contains the FastAPI routers for finance endpoints.
"""
from typing import Optional

from fastapi import APIRouter, Query, Path, Depends

from clinic_api.auth.dependencies import get_clinic_auth, get_clinic_owner_access
from clinic_api.common.schemas import JSendResponse, ItemWrapper, DeleteResult
from clinic_api.common.cache import invalidate_clinic_reports
from clinic_api.common.utils import error_response
from clinic_api.finance.schemas import (
    ExpenseCreate, ExpenseInDB, ExpensesData, CostType, ClinicSettings, ClinicSettingsUpdate
)
from clinic_api.finance.services import (
    create_expense, get_expenses, delete_expense, get_clinic_settings, update_clinic_settings
)

router = APIRouter()


@router.post("/expenses", response_model=JSendResponse[ItemWrapper[ExpenseInDB]])
async def create_expense_endpoint(
        expense: ExpenseCreate,
        clinic_access: tuple = Depends(get_clinic_owner_access)
):
    """
    Record a fixed or variable cost for a month.
    """
    try:
        user_id, clinic_info = clinic_access
        created = await create_expense(expense, clinic_info['id'])
        await invalidate_clinic_reports(clinic_info['id'])
        return JSendResponse.success(ItemWrapper[ExpenseInDB](item=created))
    except Exception as e:
        return error_response(e)


@router.get("/expenses", response_model=JSendResponse[ExpensesData])
async def list_expenses(
        year: Optional[int] = Query(None, ge=2000, le=2100, description="Period year"),
        month: Optional[int] = Query(None, ge=1, le=12, description="Period month"),
        cost_type: Optional[CostType] = Query(None, description="FIXED or VARIABLE"),
        auth_info: tuple = Depends(get_clinic_auth)
):
    try:
        user_id, clinic_info = auth_info
        expenses = await get_expenses(clinic_info['id'], year=year, month=month, cost_type=cost_type)
        return JSendResponse.success(ExpensesData(items=expenses, total=sum(e.amount for e in expenses)))
    except Exception as e:
        return error_response(e)


@router.delete("/expenses/{expense_id}", response_model=JSendResponse[DeleteResult])
async def delete_expense_endpoint(
        expense_id: str = Path(..., description="Expense ID"),
        clinic_access: tuple = Depends(get_clinic_owner_access)
):
    try:
        user_id, clinic_info = clinic_access
        await delete_expense(expense_id, clinic_info['id'])
        await invalidate_clinic_reports(clinic_info['id'])
        return JSendResponse.success(DeleteResult(message="Expense deleted successfully"))
    except Exception as e:
        return error_response(e)


@router.get("/settings", response_model=JSendResponse[ClinicSettings])
async def get_settings(auth_info: tuple = Depends(get_clinic_auth)):
    try:
        user_id, clinic_info = auth_info
        return JSendResponse.success(await get_clinic_settings(clinic_info['id']))
    except Exception as e:
        return error_response(e)


@router.put("/settings", response_model=JSendResponse[ClinicSettings])
async def update_settings(
        update: ClinicSettingsUpdate,
        clinic_access: tuple = Depends(get_clinic_owner_access)
):
    """
    Update tax rate, card fee, innovation reserve, profit target or holidays.
    """
    try:
        user_id, clinic_info = clinic_access
        settings = await update_clinic_settings(clinic_info['id'], update)
        await invalidate_clinic_reports(clinic_info['id'])
        return JSendResponse.success(settings)
    except Exception as e:
        return error_response(e)
