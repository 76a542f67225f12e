"""
Professional management services.
"""
import logging
from datetime import datetime, timezone

from firebase_admin import firestore
from fastapi import HTTPException

from clinic_api.common.schemas import PaginationResponse, convert_timestamp
from clinic_api.professionals.schemas import ProfessionalCreate, ProfessionalUpdate, ProfessionalInfo
from clinic_api.sales.commission import ProfessionalProfile

logger = logging.getLogger(__name__)

PROFESSIONALS_COLLECTION = "professionals"


def get_firestore_client():
    return firestore.client()


def _professional_from_doc(doc_id: str, data: dict) -> ProfessionalInfo:
    return ProfessionalInfo(
        id=doc_id,
        clinicId=data.get('clinicId'),
        name=data.get('name'),
        email=data.get('email'),
        phone=data.get('phone'),
        profile=data.get('profile', ProfessionalProfile.COMMISSIONED),
        commissionRate=data.get('commissionRate', 0) or 0,
        active=data.get('active', True),
        createdAt=convert_timestamp(data.get('createdAt')),
        updatedAt=convert_timestamp(data.get('updatedAt'))
    )


async def create_professional(data: ProfessionalCreate, clinic_id: str) -> ProfessionalInfo:
    """Register a professional in a clinic."""
    if not clinic_id:
        raise HTTPException(status_code=400, detail="Missing clinic ID parameter")

    now = datetime.now(timezone.utc)
    doc_data = data.model_dump(mode='json')
    doc_data.update({
        "email": doc_data.get("email") or "",
        "clinicId": clinic_id,
        "createdAt": now,
        "updatedAt": now
    })

    try:
        db = get_firestore_client()
        doc_ref = db.collection(PROFESSIONALS_COLLECTION).document()
        doc_ref.set(doc_data)
        logger.info("Created professional %s (%s) in clinic %s", doc_ref.id, data.profile.value, clinic_id)
        return _professional_from_doc(doc_ref.id, doc_data)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to create professional: {str(e)}")


async def get_professionals(clinic_id: str, page: int = 1, size: int = 50,
                            active_only: bool = False) -> PaginationResponse[ProfessionalInfo]:
    """Get the professionals of a clinic sorted by name."""
    if not clinic_id:
        raise HTTPException(status_code=400, detail="Missing clinic ID parameter")

    try:
        db = get_firestore_client()
        professionals = []
        for doc in db.collection(PROFESSIONALS_COLLECTION).where('clinicId', '==', clinic_id).stream():
            data = doc.to_dict()
            if not data or (active_only and not data.get('active', True)):
                continue
            professionals.append(_professional_from_doc(doc.id, data))

        professionals.sort(key=lambda p: (p.name or "").lower())
        return PaginationResponse[ProfessionalInfo].from_list(professionals, page, size)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to retrieve professionals: {str(e)}")


async def get_professional(professional_id: str, clinic_id: str) -> ProfessionalInfo:
    """
    Get a specific professional.

    Raises:
        HTTPException: 404 if it does not exist or belongs to another clinic
    """
    try:
        db = get_firestore_client()
        doc = db.collection(PROFESSIONALS_COLLECTION).document(professional_id).get()

        if not doc.exists:
            raise HTTPException(status_code=404, detail="Professional not found")

        data = doc.to_dict()
        if data.get('clinicId') != clinic_id:
            raise HTTPException(status_code=404, detail="Professional not found in this clinic")

        return _professional_from_doc(doc.id, data)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to retrieve professional: {str(e)}")


async def update_professional(professional_id: str, clinic_id: str,
                              update_data: ProfessionalUpdate) -> ProfessionalInfo:
    """Update only the provided fields. Switching to the owner profile clears the rate."""
    current = await get_professional(professional_id, clinic_id)

    changes = update_data.model_dump(mode='json', exclude_none=True)
    if changes.get('profile') == ProfessionalProfile.OWNER.value:
        changes['commissionRate'] = 0
    changes['updatedAt'] = datetime.now(timezone.utc)

    try:
        db = get_firestore_client()
        db.collection(PROFESSIONALS_COLLECTION).document(professional_id).update(changes)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to update professional: {str(e)}")

    merged = current.model_dump(mode='json')
    merged.update(changes)
    return _professional_from_doc(professional_id, merged)
