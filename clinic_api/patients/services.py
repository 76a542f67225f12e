"""
Patient management services for CRUD operations.
"""
import logging
from datetime import datetime, timezone
from typing import Dict

from firebase_admin import firestore
from fastapi import HTTPException

from clinic_api.common.schemas import PaginationResponse, ItemWrapper, DeleteResult, convert_timestamp
from clinic_api.patients.schemas import PatientCreate, PatientUpdate, PatientInfo

logger = logging.getLogger(__name__)

PATIENTS_COLLECTION = "patients"


def get_firestore_client():
    return firestore.client()


def _patient_from_doc(doc_id: str, data: dict) -> PatientInfo:
    return PatientInfo(
        id=doc_id,
        clinicId=data.get('clinicId'),
        name=data.get('name'),
        cpf=data.get('cpf'),
        birthDate=data.get('birthDate'),
        sex=data.get('sex'),
        phone=data.get('phone'),
        email=data.get('email'),
        leadSource=data.get('leadSource'),
        createdAt=convert_timestamp(data.get('createdAt')),
        updatedAt=convert_timestamp(data.get('updatedAt'))
    )


def _get_owned_doc(db, patient_id: str, clinic_id: str):
    patient_ref = db.collection(PATIENTS_COLLECTION).document(patient_id)
    patient_doc = patient_ref.get()

    if not patient_doc.exists:
        raise HTTPException(status_code=404, detail="Patient not found")

    patient_data = patient_doc.to_dict()
    if patient_data.get('clinicId') != clinic_id:
        raise HTTPException(status_code=404, detail="Patient not found in this clinic")

    return patient_ref, patient_data


async def create_patient(patient_data: PatientCreate, clinic_id: str) -> PatientInfo:
    """Register a new patient in a clinic."""
    if not clinic_id:
        raise HTTPException(status_code=400, detail="Missing clinic ID parameter")

    now = datetime.now(timezone.utc)
    doc_data = {
        "clinicId": clinic_id,
        "name": patient_data.name,
        "cpf": patient_data.cpf,
        "birthDate": patient_data.birthDate,
        "sex": patient_data.sex,
        "phone": patient_data.phone,
        # Store empty string if email was blank
        "email": str(patient_data.email) if patient_data.email else "",
        "leadSource": patient_data.leadSource,
        "createdAt": now,
        "updatedAt": now
    }

    try:
        db = get_firestore_client()
        doc_ref = db.collection(PATIENTS_COLLECTION).document()
        doc_ref.set(doc_data)
        logger.info("Created patient %s in clinic %s", doc_ref.id, clinic_id)
        return _patient_from_doc(doc_ref.id, doc_data)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to create patient: {str(e)}")


async def _all_patients(clinic_id: str):
    db = get_firestore_client()
    patients = []
    for doc in db.collection(PATIENTS_COLLECTION).where('clinicId', '==', clinic_id).stream():
        data = doc.to_dict()
        if not data:
            continue
        patients.append(_patient_from_doc(doc.id, data))
    return patients


async def get_patient_names(clinic_id: str) -> Dict[str, str]:
    """Patient id to name for every patient of a clinic."""
    try:
        return {patient.id: patient.name for patient in await _all_patients(clinic_id)}
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to retrieve patients: {str(e)}")


async def get_patients(clinic_id: str, page: int = 1, size: int = 10) -> PaginationResponse[PatientInfo]:
    """Get the patients of a clinic with pagination, newest first."""
    if not clinic_id:
        raise HTTPException(status_code=400, detail="Missing clinic ID parameter")

    try:
        patients = await _all_patients(clinic_id)
        patients.sort(key=lambda x: x.createdAt or "", reverse=True)
        return PaginationResponse[PatientInfo].from_list(patients, page, size)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to retrieve patients list: {str(e)}")


async def get_patient(patient_id: str, clinic_id: str) -> ItemWrapper[PatientInfo]:
    """Get a specific patient."""
    try:
        db = get_firestore_client()
        _, data = _get_owned_doc(db, patient_id, clinic_id)
        return ItemWrapper[PatientInfo](item=_patient_from_doc(patient_id, data))
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to retrieve patient: {str(e)}")


async def patient_exists(patient_id: str, clinic_id: str) -> bool:
    """True if the patient is registered in the clinic."""
    try:
        await get_patient(patient_id, clinic_id)
        return True
    except HTTPException as e:
        if e.status_code == 404:
            return False
        raise


async def update_patient(patient_id: str, clinic_id: str, update_data: PatientUpdate) -> ItemWrapper[PatientInfo]:
    """Update a patient's information."""
    try:
        db = get_firestore_client()
        patient_ref, current = _get_owned_doc(db, patient_id, clinic_id)

        update_dict = update_data.model_dump(exclude_none=True)
        update_dict["updatedAt"] = datetime.now(timezone.utc)
        patient_ref.update(update_dict)

        current.update(update_dict)
        return ItemWrapper[PatientInfo](item=_patient_from_doc(patient_id, current))
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to update patient: {str(e)}")


async def delete_patient(patient_id: str, clinic_id: str) -> DeleteResult:
    """Delete a patient."""
    try:
        db = get_firestore_client()
        patient_ref, _ = _get_owned_doc(db, patient_id, clinic_id)
        patient_ref.delete()
        logger.info("Deleted patient %s from clinic %s", patient_id, clinic_id)
        return DeleteResult(message="Patient deleted successfully")
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete patient: {str(e)}")


async def search_patients(query: str, clinic_id: str, page: int = 1, size: int = 10) -> PaginationResponse[PatientInfo]:
    """
    Search the patients of a clinic by name, CPF, phone or email.

    Args:
        query: The search query
        clinic_id: The clinic to search in
        page: Page number (starts from 1)
        size: Number of items per page

    Returns:
        Paginated patients ordered by relevance
    """
    if not clinic_id:
        raise HTTPException(status_code=400, detail="Missing clinic ID parameter")

    # An empty query lists everyone
    if not query or query.strip() == "":
        return await get_patients(clinic_id, page, size)

    query = query.lower().strip()
    query_digits = ''.join(ch for ch in query if ch.isdigit())

    try:
        scored = []
        for patient in await _all_patients(clinic_id):
            relevance_score = 0

            name = (patient.name or '').lower()
            if query in name:
                if name == query:
                    relevance_score += 15
                elif name.startswith(query):
                    relevance_score += 12
                else:
                    relevance_score += 10

            # CPF is stored as digits only, so match typed punctuation too
            if query_digits and query_digits in (patient.cpf or ''):
                relevance_score += 9

            if query in (patient.phone or '').lower():
                relevance_score += 8

            if query in (patient.email or '').lower():
                relevance_score += 5

            if relevance_score > 0:
                scored.append((relevance_score, patient))

        scored.sort(key=lambda x: x[0], reverse=True)
        return PaginationResponse[PatientInfo].from_list([p for _, p in scored], page, size)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to search patients: {str(e)}")
