"""
This module contains the business logic for inventory: SKUs, lots and stock movements.

Lot quantities only change through debit_lot / credit_lot / create_lot, each of which
writes the lot and its movement record together.
"""
import logging
from datetime import datetime, timezone, date, timedelta
from typing import Dict, List, Optional

from fastapi import HTTPException
from firebase_admin import firestore

from clinic_api.common.dates import now_local, parse_iso_date
from clinic_api.inventory.schemas import (
    SkuCreate, SkuUpdate, SkuInDB, LotCreate, LotInDB, StockMovement, MovementType,
    SaleableLot, ExpiringLot, LowStockSku, SkusData
)
from clinic_api.sales.categories import normalize_category

logger = logging.getLogger(__name__)

SKUS_COLLECTION = "skus"
LOTS_COLLECTION = "lots"
MOVEMENTS_COLLECTION = "stockMovements"


def get_firestore_client():
    return firestore.client()


def _sku_from_doc(doc_id: str, data: dict) -> SkuInDB:
    data = dict(data)
    data['id'] = doc_id
    data['canonicalClass'] = normalize_category(data.get('therapeuticClass'))
    return SkuInDB(**data)


def _lot_from_doc(doc_id: str, data: dict) -> LotInDB:
    data = dict(data)
    data['id'] = doc_id
    return LotInDB(**data)


def _movement_data(clinic_id: str, lot_id: str, movement_type: MovementType, quantity: int,
                   user: Optional[str], note: Optional[str] = None, sale_id: Optional[str] = None) -> dict:
    return {
        "clinicId": clinic_id,
        "lotId": lot_id,
        "type": movement_type.value,
        "quantity": quantity,
        "user": user,
        "note": note,
        "saleId": sale_id,
        "createdAt": datetime.now(timezone.utc),
    }


# ---------------------------------------------------------------------------
# SKUs
# ---------------------------------------------------------------------------

async def create_sku(sku_data: SkuCreate, clinic_id: str) -> SkuInDB:
    """
    Create a catalog entry in a clinic.

    Raises:
        HTTPException: 400 without clinic, 500 on backend failure
    """
    if not clinic_id:
        raise HTTPException(status_code=400, detail="Missing clinic ID parameter")

    now = datetime.now(timezone.utc)
    data = sku_data.model_dump()
    data.update({"clinicId": clinic_id, "createdAt": now, "updatedAt": now})

    try:
        db = get_firestore_client()
        doc_ref = db.collection(SKUS_COLLECTION).document()
        doc_ref.set(data)
        logger.info("Created SKU %s in clinic %s", doc_ref.id, clinic_id)
        return _sku_from_doc(doc_ref.id, data)
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(exc)}")


async def get_skus(clinic_id: str, page: int = 1, size: int = 50, active_only: bool = False) -> SkusData:
    """
    List the SKUs of a clinic, sorted by name.
    """
    if not clinic_id:
        raise HTTPException(status_code=400, detail="Missing clinic ID parameter")

    try:
        db = get_firestore_client()
        docs = db.collection(SKUS_COLLECTION).where('clinicId', '==', clinic_id).stream()
        skus = []
        for doc in docs:
            data = doc.to_dict()
            if not data or (active_only and not data.get('active', True)):
                continue
            skus.append(_sku_from_doc(doc.id, data))
        skus.sort(key=lambda sku: sku.name.lower())
        return SkusData.from_list(skus, page, size)
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(exc)}")


async def get_sku_by_id(sku_id: str, clinic_id: str) -> SkuInDB:
    """
    Retrieve a single SKU within a clinic.

    Raises:
        HTTPException: 404 if it does not exist or belongs to another clinic
    """
    if not sku_id:
        raise HTTPException(status_code=400, detail="Missing SKU ID parameter")

    try:
        db = get_firestore_client()
        doc = db.collection(SKUS_COLLECTION).document(sku_id).get()

        if not doc.exists:
            raise HTTPException(status_code=404, detail="SKU not found")

        data = doc.to_dict()
        if data.get('clinicId') != clinic_id:
            raise HTTPException(status_code=404, detail="SKU not found in the specified clinic")

        return _sku_from_doc(doc.id, data)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(exc)}")


async def update_sku(sku_id: str, clinic_id: str, update: SkuUpdate) -> SkuInDB:
    """Update only the provided fields of a SKU."""
    current = await get_sku_by_id(sku_id, clinic_id)

    changes = update.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        return current
    changes['updatedAt'] = datetime.now(timezone.utc)

    try:
        db = get_firestore_client()
        db.collection(SKUS_COLLECTION).document(sku_id).update(changes)
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(exc)}")

    merged = current.model_dump(exclude={'id', 'canonicalClass'})
    merged.update(changes)
    return _sku_from_doc(sku_id, merged)


# ---------------------------------------------------------------------------
# Lots
# ---------------------------------------------------------------------------

async def create_lot(lot_data: LotCreate, clinic_id: str, user: Optional[str] = None) -> LotInDB:
    """
    Receive a lot into stock and log an IN movement in the same batch.

    Raises:
        HTTPException: 404 if the SKU is unknown in this clinic
    """
    await get_sku_by_id(lot_data.skuId, clinic_id)

    now = datetime.now(timezone.utc)
    data = {
        "clinicId": clinic_id,
        "skuId": lot_data.skuId,
        "availableQuantity": lot_data.quantity,
        "initialQuantity": lot_data.quantity,
        "expiryDate": lot_data.expiryDate,
        "unitCost": lot_data.unitCost,
        "entryDate": now,
    }

    try:
        db = get_firestore_client()
        lot_ref = db.collection(LOTS_COLLECTION).document()
        movement_ref = db.collection(MOVEMENTS_COLLECTION).document()

        batch = db.batch()
        batch.set(lot_ref, data)
        batch.set(movement_ref, _movement_data(
            clinic_id, lot_ref.id, MovementType.IN, lot_data.quantity, user, lot_data.note
        ))
        batch.commit()

        logger.info("Received lot %s (%s units of SKU %s) in clinic %s",
                    lot_ref.id, lot_data.quantity, lot_data.skuId, clinic_id)
        return _lot_from_doc(lot_ref.id, data)
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(exc)}")


async def get_lots(clinic_id: str, sku_id: Optional[str] = None, available_only: bool = False) -> List[LotInDB]:
    """List lots of a clinic ordered by expiry date (first to expire first)."""
    if not clinic_id:
        raise HTTPException(status_code=400, detail="Missing clinic ID parameter")

    try:
        db = get_firestore_client()
        query = db.collection(LOTS_COLLECTION).where('clinicId', '==', clinic_id)
        if sku_id:
            query = query.where('skuId', '==', sku_id)

        lots = []
        for doc in query.stream():
            data = doc.to_dict()
            if not data:
                continue
            if available_only and data.get('availableQuantity', 0) <= 0:
                continue
            lots.append(_lot_from_doc(doc.id, data))
        lots.sort(key=lambda lot: lot.expiryDate)
        return lots
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(exc)}")


async def get_saleable_lots(clinic_id: str) -> List[SaleableLot]:
    """
    Lots with stock of active SKUs, joined with the SKU data shown at checkout.
    """
    skus = {sku.id: sku for sku in (await get_skus(clinic_id, page=1, size=10_000, active_only=True)).items}
    lots = await get_lots(clinic_id, available_only=True)

    saleable = []
    for lot in lots:
        sku = skus.get(lot.skuId)
        if sku is None:
            continue
        saleable.append(SaleableLot(
            lotId=lot.id,
            skuId=sku.id,
            productName=sku.name,
            therapeuticClass=sku.therapeuticClass,
            canonicalClass=sku.canonicalClass,
            unitPrice=sku.unitPrice,
            unitCost=lot.unitCost,
            availableQuantity=lot.availableQuantity,
            expiryDate=lot.expiryDate,
        ))
    return saleable


# ---------------------------------------------------------------------------
# Stock debit / credit
# ---------------------------------------------------------------------------

def _debit_in_transaction(transaction_obj, db, lot_id: str, quantity: int, clinic_id: str,
                          user: Optional[str], sale_id: Optional[str]) -> int:
    """
    Re-read the lot inside the transaction, decrement it and append an OUT movement.

    Returns:
        The remaining available quantity
    """
    lot_ref = db.collection(LOTS_COLLECTION).document(lot_id)
    snapshot = lot_ref.get(transaction=transaction_obj)

    if not snapshot.exists:
        raise HTTPException(status_code=404, detail=f"Lot {lot_id} not found")

    lot = snapshot.to_dict()
    if lot.get('clinicId') != clinic_id:
        raise HTTPException(status_code=404, detail=f"Lot {lot_id} not found in the specified clinic")

    available = int(lot.get('availableQuantity', 0))
    if quantity > available:
        raise HTTPException(
            status_code=409,
            detail=f"Insufficient stock in lot {lot_id}: requested {quantity}, available {available}"
        )

    remaining = available - quantity
    transaction_obj.update(lot_ref, {
        "availableQuantity": remaining,
        "updatedAt": datetime.now(timezone.utc),
    })
    transaction_obj.set(
        db.collection(MOVEMENTS_COLLECTION).document(),
        _movement_data(clinic_id, lot_id, MovementType.OUT, quantity, user, sale_id=sale_id)
    )
    return remaining


def _credit_in_transaction(transaction_obj, db, lot_id: str, quantity: int, clinic_id: str,
                           user: Optional[str], sale_id: Optional[str], movement_type: MovementType) -> int:
    lot_ref = db.collection(LOTS_COLLECTION).document(lot_id)
    snapshot = lot_ref.get(transaction=transaction_obj)

    if not snapshot.exists:
        raise HTTPException(status_code=404, detail=f"Lot {lot_id} not found")

    lot = snapshot.to_dict()
    if lot.get('clinicId') != clinic_id:
        raise HTTPException(status_code=404, detail=f"Lot {lot_id} not found in the specified clinic")

    restored = int(lot.get('availableQuantity', 0)) + quantity
    transaction_obj.update(lot_ref, {
        "availableQuantity": restored,
        "updatedAt": datetime.now(timezone.utc),
    })
    transaction_obj.set(
        db.collection(MOVEMENTS_COLLECTION).document(),
        _movement_data(clinic_id, lot_id, movement_type, quantity, user, sale_id=sale_id)
    )
    return restored


async def debit_lot(lot_id: str, quantity: int, clinic_id: str,
                    user: Optional[str] = None, sale_id: Optional[str] = None) -> int:
    """
    Consume units of a lot for a sale.

    The available quantity is validated against the stored figure inside a Firestore
    transaction, so it never goes negative even if the checkout read was stale.

    Returns:
        The remaining available quantity

    Raises:
        HTTPException: 404 unknown lot, 409 insufficient stock, 500 backend failure
    """
    db = get_firestore_client()
    try:
        remaining = firestore.transactional(_debit_in_transaction)(
            db.transaction(), db, lot_id, quantity, clinic_id, user, sale_id
        )
        logger.info("Debited %s units from lot %s (sale %s), %s left", quantity, lot_id, sale_id, remaining)
        return remaining
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to debit lot {lot_id}: {str(exc)}")


async def credit_lot(lot_id: str, quantity: int, clinic_id: str, user: Optional[str] = None,
                     sale_id: Optional[str] = None,
                     movement_type: MovementType = MovementType.REVERSAL) -> int:
    """
    Return units to a lot, e.g. when a sale that already debited it is rolled back.

    Returns:
        The new available quantity
    """
    db = get_firestore_client()
    try:
        restored = firestore.transactional(_credit_in_transaction)(
            db.transaction(), db, lot_id, quantity, clinic_id, user, sale_id, movement_type
        )
        logger.info("Credited %s units to lot %s (sale %s), now %s", quantity, lot_id, sale_id, restored)
        return restored
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to credit lot {lot_id}: {str(exc)}")


# ---------------------------------------------------------------------------
# Movements and alerts
# ---------------------------------------------------------------------------

async def get_movements(clinic_id: str, limit: int = 50, lot_id: Optional[str] = None) -> List[StockMovement]:
    """Latest stock movements of a clinic, newest first."""
    try:
        db = get_firestore_client()
        query = db.collection(MOVEMENTS_COLLECTION).where('clinicId', '==', clinic_id)
        if lot_id:
            query = query.where('lotId', '==', lot_id)

        movements = []
        for doc in query.stream():
            data = doc.to_dict()
            if not data:
                continue
            data['id'] = doc.id
            movements.append(StockMovement(**data))

        movements.sort(key=lambda m: m.createdAt or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
        return movements[:limit]
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(exc)}")


async def get_expiring_lots(clinic_id: str, days: int = 30, today: Optional[date] = None) -> List[ExpiringLot]:
    """
    Lots with stock whose expiry date falls within the next `days` days.
    Already expired lots with stock are included and flagged.
    """
    today = today or now_local().date()
    limit_date = today + timedelta(days=days)

    skus = {sku.id: sku for sku in (await get_skus(clinic_id, page=1, size=10_000)).items}
    expiring = []
    for lot in await get_lots(clinic_id, available_only=True):
        expiry = parse_iso_date(lot.expiryDate)
        if expiry is None or expiry > limit_date:
            continue
        sku = skus.get(lot.skuId)
        expiring.append(ExpiringLot(
            lotId=lot.id,
            skuId=lot.skuId,
            productName=sku.name if sku else "",
            availableQuantity=lot.availableQuantity,
            expiryDate=lot.expiryDate,
            daysToExpiry=(expiry - today).days,
            expired=expiry < today,
        ))
    return expiring


async def get_low_stock_skus(clinic_id: str) -> List[LowStockSku]:
    """Active SKUs whose total available quantity is below their minimum stock."""
    skus = (await get_skus(clinic_id, page=1, size=10_000, active_only=True)).items

    available: Dict[str, int] = {}
    for lot in await get_lots(clinic_id, available_only=True):
        available[lot.skuId] = available.get(lot.skuId, 0) + lot.availableQuantity

    low = []
    for sku in skus:
        on_hand = available.get(sku.id, 0)
        if sku.minimumStock > 0 and on_hand < sku.minimumStock:
            low.append(LowStockSku(
                skuId=sku.id,
                name=sku.name,
                availableQuantity=on_hand,
                minimumStock=sku.minimumStock,
                shortfall=sku.minimumStock - on_hand,
            ))
    return low
