"""
This module contains the business logic for sales: checkout quotes, sale creation
and sale history.

A sale is written by a saga:

    record sale (PENDING) -> debit each lot -> record commission -> mark COMPLETED

A failure at any step rolls back the steps already done (the sale ends up FAILED,
debited lots are credited back, the commission expense is deleted). When the client
sends an idempotency key the sale id is derived from it, so a retried checkout either
returns the sale it already created or is rejected while the first attempt is running.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import HTTPException
from firebase_admin import firestore

from clinic_api.common.cache import invalidate_clinic_reports
from clinic_api.common.dates import now_local, parse_flexible_date, parse_iso_date
from clinic_api.finance.services import create_commission_expense, delete_expense
from clinic_api.inventory.schemas import MovementType
from clinic_api.inventory.services import get_saleable_lots, debit_lot, credit_lot
from clinic_api.patients.services import patient_exists
from clinic_api.professionals.schemas import ProfessionalInfo
from clinic_api.professionals.services import get_professional
from clinic_api.sales.combos import count_buckets, classify_tier
from clinic_api.sales.commission import derive_commission
from clinic_api.sales.pricing import (
    PricedLine, PaymentMethod, SaleValidationError, compute_totals, payment_terms, validate_sale_draft
)
from clinic_api.sales.saga import Saga
from clinic_api.sales.schemas import SaleRequest, SaleItem, SaleQuote, SaleInDB, SaleStatus, SalesData

logger = logging.getLogger(__name__)

SALES_COLLECTION = "sales"


def get_firestore_client():
    return firestore.client()


def sale_id_for_key(clinic_id: str, idempotency_key: str) -> str:
    """Deterministic sale id for an idempotency key, scoped to the clinic."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"clinic-sale:{clinic_id}:{idempotency_key}"))


def _sale_from_doc(doc_id: str, data: dict) -> SaleInDB:
    data = dict(data)
    data['id'] = doc_id
    return SaleInDB(**data)


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------

async def quote_sale(request: SaleRequest, clinic_id: str, require_patient: bool = True) -> SaleQuote:
    """
    Price a sale draft against the current stock without writing anything.

    Args:
        request: The draft
        clinic_id: Clinic the lots must belong to
        require_patient: Whether a missing patient is a validation error

    Returns:
        SaleQuote with the line items, totals and combo tier

    Raises:
        SaleValidationError: With one message per offending field
    """
    entry_percent, installments = payment_terms(request.paymentMethod, request.entryPercent, request.installments)
    saleable = {lot.lotId: lot for lot in await get_saleable_lots(clinic_id)}

    try:
        validate_sale_draft(
            request.patientId,
            [(item.lotId, item.quantity) for item in request.items],
            {lot_id: lot.availableQuantity for lot_id, lot in saleable.items()},
            request.discount,
            entry_percent,
            installments
        )
    except SaleValidationError as exc:
        errors = exc.errors
        if not require_patient:
            errors = {field: message for field, message in errors.items() if field != "patientId"}
        if errors:
            raise SaleValidationError(errors)

    items = []
    for requested in request.items:
        lot = saleable[requested.lotId]
        items.append(SaleItem(
            lotId=lot.lotId,
            skuId=lot.skuId,
            productName=lot.productName,
            therapeuticClass=lot.therapeuticClass,
            canonicalClass=lot.canonicalClass,
            quantity=requested.quantity,
            unitPrice=lot.unitPrice,
            unitCost=lot.unitCost,
            lineTotal=lot.unitPrice * requested.quantity,
        ))

    totals = compute_totals(
        [PricedLine(lotId=item.lotId, quantity=item.quantity, unitPrice=item.unitPrice,
                    unitCost=item.unitCost, therapeuticClass=item.canonicalClass) for item in items],
        discount=request.discount,
        entry_percent=entry_percent,
        installments=installments
    )
    counts = count_buckets((item.canonicalClass, item.quantity) for item in items)

    return SaleQuote(
        items=items,
        paymentMethod=request.paymentMethod,
        installments=installments,
        entryPercent=entry_percent,
        discount=request.discount,
        totals=totals,
        comboCounts=counts,
        tier=classify_tier(counts),
    )


async def _check_participants(request: SaleRequest, clinic_id: str) -> Optional[ProfessionalInfo]:
    """Make sure the patient and professional exist in the clinic. Returns the professional."""
    errors = {}
    professional = None

    if not await patient_exists(request.patientId, clinic_id):
        errors["patientId"] = "Patient not found"

    if request.professionalId:
        try:
            professional = await get_professional(request.professionalId, clinic_id)
            if not professional.active:
                errors["professionalId"] = "Professional is inactive"
        except HTTPException as exc:
            if exc.status_code != 404:
                raise
            errors["professionalId"] = "Professional not found"

    if errors:
        raise SaleValidationError(errors)
    return professional


# ---------------------------------------------------------------------------
# Sale creation
# ---------------------------------------------------------------------------

def _claim_sale_in_transaction(transaction_obj, sale_ref, data: dict) -> Optional[dict]:
    """
    Write the PENDING sale unless a sale with the same id exists and has not FAILED.

    Returns:
        The stored sale when it already COMPLETED, otherwise None
    """
    snapshot = sale_ref.get(transaction=transaction_obj)
    if snapshot.exists:
        current = snapshot.to_dict() or {}
        current_status = current.get('status')
        if current_status == SaleStatus.COMPLETED.value:
            return current
        if current_status != SaleStatus.FAILED.value:
            raise HTTPException(
                status_code=409,
                detail=f"Sale {sale_ref.id} is already {current_status}"
            )
    transaction_obj.set(sale_ref, data)
    return None


async def record_pending_sale(db, sale_ref, data: dict) -> Optional[dict]:
    try:
        return firestore.transactional(_claim_sale_in_transaction)(db.transaction(), sale_ref, data)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to record sale: {str(exc)}")


async def create_sale(request: SaleRequest, clinic_id: str, user_id: Optional[str] = None,
                      idempotency_key: Optional[str] = None) -> SaleInDB:
    """
    Validate, persist and complete a sale.

    Args:
        request: The sale draft
        clinic_id: Clinic of the sale
        user_id: User recorded on the sale and on its stock movements
        idempotency_key: Client-chosen key identifying this checkout attempt

    Returns:
        The COMPLETED sale (the stored one when the key was already used successfully)

    Raises:
        SaleValidationError: Before anything is written, for an invalid draft
        HTTPException: 409 while a sale with the same key is PENDING or when stock ran out,
            404 for a lot that disappeared, 500 on backend failure
    """
    if not clinic_id:
        raise HTTPException(status_code=400, detail="Missing clinic ID parameter")

    db = get_firestore_client()

    if idempotency_key:
        sale_id = sale_id_for_key(clinic_id, idempotency_key)
        existing = db.collection(SALES_COLLECTION).document(sale_id).get()
        if existing.exists:
            existing_data = existing.to_dict() or {}
            existing_status = existing_data.get('status')
            if existing_status == SaleStatus.COMPLETED.value:
                logger.info("Replaying completed sale %s for idempotency key %s", sale_id, idempotency_key)
                return _sale_from_doc(sale_id, existing_data)
            if existing_status == SaleStatus.PENDING.value:
                raise HTTPException(
                    status_code=409,
                    detail="A sale with this idempotency key is still being processed"
                )
            logger.info("Retrying failed sale %s for idempotency key %s", sale_id, idempotency_key)
    else:
        sale_id = db.collection(SALES_COLLECTION).document().id

    quote = await quote_sale(request, clinic_id)
    professional = await _check_participants(request, clinic_id)

    sale_date = request.saleDate or now_local().date().isoformat()
    commission = None
    if professional is not None:
        commission = derive_commission(
            sale_id,
            parse_iso_date(sale_date),
            quote.totals.finalPrice,
            professional.id,
            professional.profile,
            professional.commissionRate
        )

    now = datetime.now(timezone.utc)
    sale_data = {
        "clinicId": clinic_id,
        "patientId": request.patientId,
        "professionalId": request.professionalId,
        "saleDate": sale_date,
        "paymentMethod": quote.paymentMethod.value,
        "installments": quote.installments,
        "entryPercent": quote.entryPercent,
        "discount": quote.discount,
        "items": [item.model_dump(mode='json') for item in quote.items],
        "totals": quote.totals.model_dump(),
        "comboCounts": quote.comboCounts.model_dump(),
        "tier": quote.tier.value,
        "status": SaleStatus.PENDING.value,
        "idempotencyKey": idempotency_key,
        "commissionExpenseId": None,
        "createdBy": user_id,
        "createdAt": now,
        "updatedAt": now,
    }
    sale_ref = db.collection(SALES_COLLECTION).document(sale_id)

    # A concurrent attempt with the same key may have completed since the check above
    completed = await record_pending_sale(db, sale_ref, dict(sale_data))
    if completed is not None:
        logger.info("Replaying completed sale %s for idempotency key %s", sale_id, idempotency_key)
        return _sale_from_doc(sale_id, completed)

    async def fail_sale():
        try:
            sale_ref.update({"status": SaleStatus.FAILED.value, "updatedAt": datetime.now(timezone.utc)})
        except Exception:
            logger.exception("Could not mark sale %s as FAILED", sale_id)

    async def record_commission():
        expense = await create_commission_expense(commission, clinic_id)
        sale_data["commissionExpenseId"] = expense.id
        return expense

    async def remove_commission(expense):
        await delete_expense(expense.id, clinic_id)

    async def complete_sale():
        changes = {
            "status": SaleStatus.COMPLETED.value,
            "commissionExpenseId": sale_data["commissionExpenseId"],
            "updatedAt": datetime.now(timezone.utc),
        }
        sale_ref.update(changes)
        sale_data.update(changes)

    saga = Saga(f"sale {sale_id}")
    for item in quote.items:
        saga.add_step(
            f"debit_lot {item.lotId}",
            lambda item=item: debit_lot(item.lotId, item.quantity, clinic_id, user=user_id, sale_id=sale_id),
            lambda _, item=item: credit_lot(item.lotId, item.quantity, clinic_id, user=user_id,
                                            sale_id=sale_id, movement_type=MovementType.REVERSAL)
        )
    if commission is not None:
        saga.add_step("record_commission", record_commission, remove_commission)
    saga.add_step("complete_sale", complete_sale)

    try:
        await saga.run()
    except Exception:
        await fail_sale()
        raise
    await invalidate_clinic_reports(clinic_id)

    logger.info("Completed sale %s in clinic %s: %s items, final price %.2f, tier %s",
                sale_id, clinic_id, len(quote.items), quote.totals.finalPrice, quote.tier.value)
    return _sale_from_doc(sale_id, sale_data)


# ---------------------------------------------------------------------------
# Sale history
# ---------------------------------------------------------------------------

async def get_sale(sale_id: str, clinic_id: str) -> SaleInDB:
    """
    Retrieve a single sale within a clinic.

    Raises:
        HTTPException: 404 if it does not exist or belongs to another clinic
    """
    try:
        db = get_firestore_client()
        doc = db.collection(SALES_COLLECTION).document(sale_id).get()

        if not doc.exists:
            raise HTTPException(status_code=404, detail="Sale not found")

        data = doc.to_dict()
        if data.get('clinicId') != clinic_id:
            raise HTTPException(status_code=404, detail="Sale not found in the specified clinic")

        return _sale_from_doc(doc.id, data)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(exc)}")


async def _stream_sales(clinic_id: str) -> List[SaleInDB]:
    db = get_firestore_client()
    sales = []
    for doc in db.collection(SALES_COLLECTION).where('clinicId', '==', clinic_id).stream():
        data = doc.to_dict()
        if not data:
            continue
        sales.append(_sale_from_doc(doc.id, data))
    return sales


async def list_sales(
        clinic_id: str,
        page: int = 1,
        size: int = 20,
        patient_id: Optional[str] = None,
        professional_id: Optional[str] = None,
        payment_method: Optional[PaymentMethod] = None,
        status: Optional[SaleStatus] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None
) -> SalesData:
    """
    List the sales of a clinic, newest first.

    start_date and end_date accept YYYY, YYYY-MM or YYYY-MM-DD and bound the sale date
    inclusively.
    """
    if not clinic_id:
        raise HTTPException(status_code=400, detail="Missing clinic ID parameter")

    start = parse_flexible_date(start_date)
    end = parse_flexible_date(end_date, is_end_date=True)
    start_str = start.date().isoformat() if start else None
    end_str = end.date().isoformat() if end else None

    try:
        sales = []
        for sale in await _stream_sales(clinic_id):
            if patient_id and sale.patientId != patient_id:
                continue
            if professional_id and sale.professionalId != professional_id:
                continue
            if payment_method and sale.paymentMethod != payment_method:
                continue
            if status and sale.status != status:
                continue
            if start_str and sale.saleDate < start_str:
                continue
            if end_str and sale.saleDate > end_str:
                continue
            sales.append(sale)

        sales.sort(key=lambda s: (s.saleDate, s.createdAt.isoformat() if s.createdAt else ""), reverse=True)
        return SalesData.from_list(sales, page, size)
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(exc)}")


async def get_completed_sales(clinic_id: str, start_date: str, end_date: str) -> List[SaleInDB]:
    """COMPLETED sales whose sale date (YYYY-MM-DD) lies in [start_date, end_date]."""
    try:
        return [
            sale for sale in await _stream_sales(clinic_id)
            if sale.status == SaleStatus.COMPLETED and start_date <= sale.saleDate <= end_date
        ]
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to load sales: {str(exc)}")
