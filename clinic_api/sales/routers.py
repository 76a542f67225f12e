"""
This module contains the FastAPI routers for sales endpoints.
"""
from typing import Optional

from fastapi import APIRouter, Query, Path, Depends, Header
from fastapi.responses import JSONResponse

from clinic_api.auth.dependencies import get_clinic_auth
from clinic_api.common.schemas import JSendResponse, ItemWrapper
from clinic_api.common.utils import error_response
from clinic_api.inventory.schemas import SaleableLot
from clinic_api.inventory.services import get_saleable_lots
from clinic_api.sales.pricing import PaymentMethod, SaleValidationError
from clinic_api.sales.schemas import SaleRequest, SaleQuote, SaleInDB, SaleStatus, SalesData
from clinic_api.sales.services import quote_sale, create_sale, get_sale, list_sales

router = APIRouter()


def _sale_error(exc: Exception):
    """
    Field errors of an invalid draft are a JSend fail; everything else an error.

    The fail body carries field messages instead of the route's data model, so it is
    sent as a plain JSONResponse.
    """
    if isinstance(exc, SaleValidationError):
        return JSONResponse(content=JSendResponse.fail(exc.errors).model_dump(mode='json'))
    return error_response(exc)


@router.post("/quote", response_model=JSendResponse[SaleQuote])
async def quote_sale_endpoint(
        request: SaleRequest,
        auth_info: tuple = Depends(get_clinic_auth)
):
    """
    Price a draft for the checkout summary. Nothing is written and the patient may
    still be unselected.
    """
    try:
        user_id, clinic_info = auth_info
        return JSendResponse.success(await quote_sale(request, clinic_info['id'], require_patient=False))
    except Exception as e:
        return _sale_error(e)


@router.post("", response_model=JSendResponse[ItemWrapper[SaleInDB]])
async def create_sale_endpoint(
        request: SaleRequest,
        idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
        auth_info: tuple = Depends(get_clinic_auth)
):
    """
    Submit a sale. Stock is debited, the commission (if any) is booked and the sale
    is marked COMPLETED, or everything is rolled back.

    Send the same Idempotency-Key header when retrying a checkout to avoid selling twice.
    """
    try:
        user_id, clinic_info = auth_info
        sale = await create_sale(request, clinic_info['id'], user_id=user_id, idempotency_key=idempotency_key)
        return JSendResponse.success(ItemWrapper[SaleInDB](item=sale))
    except Exception as e:
        return _sale_error(e)


@router.get("", response_model=JSendResponse[SalesData])
async def list_sales_endpoint(
        page: int = Query(1, ge=1, description="Page number"),
        size: int = Query(20, ge=1, le=200, description="Items per page"),
        patient_id: Optional[str] = Query(None, description="Filter by patient"),
        professional_id: Optional[str] = Query(None, description="Filter by professional"),
        payment_method: Optional[PaymentMethod] = Query(None, description="PIX, DEBIT or CREDIT"),
        status: Optional[SaleStatus] = Query(None, description="PENDING, COMPLETED or FAILED"),
        start_date: Optional[str] = Query(None, description="Start date (YYYY, YYYY-MM or YYYY-MM-DD)"),
        end_date: Optional[str] = Query(None, description="End date (YYYY, YYYY-MM or YYYY-MM-DD)"),
        auth_info: tuple = Depends(get_clinic_auth)
):
    try:
        user_id, clinic_info = auth_info
        sales = await list_sales(
            clinic_info['id'],
            page=page,
            size=size,
            patient_id=patient_id,
            professional_id=professional_id,
            payment_method=payment_method,
            status=status,
            start_date=start_date,
            end_date=end_date
        )
        return JSendResponse.success(sales)
    except Exception as e:
        return error_response(e)


@router.get("/lots", response_model=JSendResponse[list[SaleableLot]])
async def saleable_lots(auth_info: tuple = Depends(get_clinic_auth)):
    """
    Lots that can be sold right now: stock left and an active SKU.
    """
    try:
        user_id, clinic_info = auth_info
        return JSendResponse.success(await get_saleable_lots(clinic_info['id']))
    except Exception as e:
        return error_response(e)


@router.get("/{sale_id}", response_model=JSendResponse[ItemWrapper[SaleInDB]])
async def get_sale_endpoint(
        sale_id: str = Path(..., description="Sale ID"),
        auth_info: tuple = Depends(get_clinic_auth)
):
    try:
        user_id, clinic_info = auth_info
        sale = await get_sale(sale_id, clinic_info['id'])
        return JSendResponse.success(ItemWrapper[SaleInDB](item=sale))
    except Exception as e:
        return error_response(e)
