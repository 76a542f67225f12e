"""
This module contains the FastAPI routers for inventory endpoints.
"""
from typing import Optional

from fastapi import APIRouter, Query, Path, Depends

from clinic_api.auth.dependencies import get_clinic_auth
from clinic_api.common.schemas import JSendResponse, ItemWrapper
from clinic_api.common.utils import error_response
from clinic_api.inventory.schemas import (
    SkuCreate, SkuUpdate, SkuInDB, SkusData, LotCreate, LotInDB, LotsData, MovementsData,
    ExpiringLot, LowStockSku
)
from clinic_api.inventory.services import (
    create_sku, get_skus, get_sku_by_id, update_sku, create_lot, get_lots,
    get_movements, get_expiring_lots, get_low_stock_skus
)

router = APIRouter()


@router.post("/skus", response_model=JSendResponse[ItemWrapper[SkuInDB]])
async def create_sku_endpoint(
        sku: SkuCreate,
        auth_info: tuple = Depends(get_clinic_auth)
):
    """
    Register a SKU in the clinic catalog.
    """
    try:
        user_id, clinic_info = auth_info
        created = await create_sku(sku, clinic_info['id'])
        return JSendResponse.success(ItemWrapper[SkuInDB](item=created))
    except Exception as e:
        return error_response(e)


@router.get("/skus", response_model=JSendResponse[SkusData])
async def list_skus(
        page: int = Query(1, ge=1, description="Page number"),
        size: int = Query(50, ge=1, le=500, description="Items per page"),
        active_only: bool = Query(False, description="Only active SKUs"),
        auth_info: tuple = Depends(get_clinic_auth)
):
    """
    List the clinic catalog sorted by name.
    """
    try:
        user_id, clinic_info = auth_info
        return JSendResponse.success(await get_skus(clinic_info['id'], page, size, active_only))
    except Exception as e:
        return error_response(e)


@router.get("/skus/{sku_id}", response_model=JSendResponse[ItemWrapper[SkuInDB]])
async def get_sku(
        sku_id: str = Path(..., description="SKU ID"),
        auth_info: tuple = Depends(get_clinic_auth)
):
    try:
        user_id, clinic_info = auth_info
        sku = await get_sku_by_id(sku_id, clinic_info['id'])
        return JSendResponse.success(ItemWrapper[SkuInDB](item=sku))
    except Exception as e:
        return error_response(e)


@router.put("/skus/{sku_id}", response_model=JSendResponse[ItemWrapper[SkuInDB]])
async def update_sku_endpoint(
        update: SkuUpdate,
        sku_id: str = Path(..., description="SKU ID"),
        auth_info: tuple = Depends(get_clinic_auth)
):
    try:
        user_id, clinic_info = auth_info
        sku = await update_sku(sku_id, clinic_info['id'], update)
        return JSendResponse.success(ItemWrapper[SkuInDB](item=sku))
    except Exception as e:
        return error_response(e)


@router.post("/lots", response_model=JSendResponse[ItemWrapper[LotInDB]])
async def create_lot_endpoint(
        lot: LotCreate,
        auth_info: tuple = Depends(get_clinic_auth)
):
    """
    Receive a lot into stock. An IN movement is logged with the caller as user.
    """
    try:
        user_id, clinic_info = auth_info
        created = await create_lot(lot, clinic_info['id'], user=user_id)
        return JSendResponse.success(ItemWrapper[LotInDB](item=created))
    except Exception as e:
        return error_response(e)


@router.get("/lots", response_model=JSendResponse[LotsData])
async def list_lots(
        sku_id: Optional[str] = Query(None, description="Only lots of this SKU"),
        available_only: bool = Query(False, description="Only lots with stock"),
        auth_info: tuple = Depends(get_clinic_auth)
):
    try:
        user_id, clinic_info = auth_info
        lots = await get_lots(clinic_info['id'], sku_id=sku_id, available_only=available_only)
        return JSendResponse.success(LotsData(items=lots))
    except Exception as e:
        return error_response(e)


@router.get("/movements", response_model=JSendResponse[MovementsData])
async def list_movements(
        limit: int = Query(50, ge=1, le=500, description="Maximum number of movements"),
        lot_id: Optional[str] = Query(None, description="Only movements of this lot"),
        auth_info: tuple = Depends(get_clinic_auth)
):
    """
    Stock movement history, newest first.
    """
    try:
        user_id, clinic_info = auth_info
        movements = await get_movements(clinic_info['id'], limit=limit, lot_id=lot_id)
        return JSendResponse.success(MovementsData(items=movements))
    except Exception as e:
        return error_response(e)


@router.get("/alerts/expiring", response_model=JSendResponse[list[ExpiringLot]])
async def expiring_lots(
        days: int = Query(30, ge=0, le=365, description="Expiry window in days"),
        auth_info: tuple = Depends(get_clinic_auth)
):
    try:
        user_id, clinic_info = auth_info
        return JSendResponse.success(await get_expiring_lots(clinic_info['id'], days=days))
    except Exception as e:
        return error_response(e)


@router.get("/alerts/low-stock", response_model=JSendResponse[list[LowStockSku]])
async def low_stock(auth_info: tuple = Depends(get_clinic_auth)):
    try:
        user_id, clinic_info = auth_info
        return JSendResponse.success(await get_low_stock_skus(clinic_info['id']))
    except Exception as e:
        return error_response(e)
