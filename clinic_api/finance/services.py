"""
This module contains the business logic for clinic expenses and financial settings.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import HTTPException
from firebase_admin import firestore

from clinic_api.finance.schemas import (
    ExpenseCreate, ExpenseInDB, ExpenseCategory, CostType, ClinicSettings, ClinicSettingsUpdate
)
from clinic_api.sales.commission import CommissionDraft

logger = logging.getLogger(__name__)

EXPENSES_COLLECTION = "expenses"
SETTINGS_COLLECTION = "clinicSettings"


def get_firestore_client():
    return firestore.client()


def _expense_from_doc(doc_id: str, data: dict) -> ExpenseInDB:
    data = dict(data)
    data['id'] = doc_id
    return ExpenseInDB(**data)


async def create_expense(expense: ExpenseCreate, clinic_id: str, sale_id: Optional[str] = None,
                         professional_id: Optional[str] = None) -> ExpenseInDB:
    """
    Record a cost of the clinic for a given month.

    Raises:
        HTTPException: 400 without clinic, 500 on backend failure
    """
    if not clinic_id:
        raise HTTPException(status_code=400, detail="Missing clinic ID parameter")

    data = expense.model_dump(mode='json')
    data.update({
        "clinicId": clinic_id,
        "saleId": sale_id,
        "professionalId": professional_id,
        "createdAt": datetime.now(timezone.utc),
    })

    try:
        db = get_firestore_client()
        doc_ref = db.collection(EXPENSES_COLLECTION).document()
        doc_ref.set(data)
        logger.info("Recorded %s expense %s of %.2f in clinic %s",
                    data['category'], doc_ref.id, expense.amount, clinic_id)
        return _expense_from_doc(doc_ref.id, data)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to create expense: {str(e)}")


async def create_commission_expense(draft: CommissionDraft, clinic_id: str) -> ExpenseInDB:
    """Book the commission of a sale as a variable expense of the sale's month."""
    expense = ExpenseCreate(
        description=f"Commission for sale {draft.saleId} ({draft.rate:g}%)",
        category=ExpenseCategory.COMMISSION,
        costType=CostType.VARIABLE,
        amount=draft.amount,
        periodMonth=draft.periodMonth,
        periodYear=draft.periodYear,
    )
    return await create_expense(expense, clinic_id, sale_id=draft.saleId, professional_id=draft.professionalId)


async def delete_expense(expense_id: str, clinic_id: str) -> None:
    """
    Remove an expense of the clinic.

    Raises:
        HTTPException: 404 if it does not exist or belongs to another clinic
    """
    try:
        db = get_firestore_client()
        doc_ref = db.collection(EXPENSES_COLLECTION).document(expense_id)
        doc = doc_ref.get()
        if not doc.exists or doc.to_dict().get('clinicId') != clinic_id:
            raise HTTPException(status_code=404, detail="Expense not found")
        doc_ref.delete()
        logger.info("Deleted expense %s from clinic %s", expense_id, clinic_id)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete expense: {str(e)}")


async def get_expenses(clinic_id: str, year: Optional[int] = None, month: Optional[int] = None,
                       cost_type: Optional[CostType] = None) -> List[ExpenseInDB]:
    """List the expenses of a clinic, optionally restricted to a year and month."""
    if not clinic_id:
        raise HTTPException(status_code=400, detail="Missing clinic ID parameter")

    try:
        db = get_firestore_client()
        query = db.collection(EXPENSES_COLLECTION).where('clinicId', '==', clinic_id)
        if year is not None:
            query = query.where('periodYear', '==', year)
        if month is not None:
            query = query.where('periodMonth', '==', month)

        expenses = []
        for doc in query.stream():
            data = doc.to_dict()
            if not data:
                continue
            if cost_type is not None and data.get('costType') != cost_type.value:
                continue
            expenses.append(_expense_from_doc(doc.id, data))

        expenses.sort(key=lambda e: (e.periodYear, e.periodMonth, e.description))
        return expenses
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to retrieve expenses: {str(e)}")


async def get_clinic_settings(clinic_id: str) -> ClinicSettings:
    """Financial settings of a clinic, with defaults for anything never saved."""
    try:
        db = get_firestore_client()
        doc = db.collection(SETTINGS_COLLECTION).document(clinic_id).get()
        if not doc.exists:
            return ClinicSettings()
        return ClinicSettings(**(doc.to_dict() or {}))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to retrieve clinic settings: {str(e)}")


async def update_clinic_settings(clinic_id: str, update: ClinicSettingsUpdate) -> ClinicSettings:
    """Merge the provided fields into the stored settings."""
    current = await get_clinic_settings(clinic_id)
    merged = ClinicSettings(**{**current.model_dump(), **update.model_dump(exclude_none=True)})

    try:
        db = get_firestore_client()
        data = merged.model_dump()
        data['updatedAt'] = datetime.now(timezone.utc)
        db.collection(SETTINGS_COLLECTION).document(clinic_id).set(data, merge=True)
        logger.info("Updated financial settings of clinic %s", clinic_id)
        return merged
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to update clinic settings: {str(e)}")
