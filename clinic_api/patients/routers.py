"""
Patient management routers with full CRUD operations.
"""

from fastapi import APIRouter, status, Depends, Path, Query
from fastapi.responses import JSONResponse

from clinic_api.auth.dependencies import get_clinic_auth
from clinic_api.common.utils import error_response
from clinic_api.patients.schemas import (
    PatientCreate, PatientUpdate, PatientResponse, PatientListResponse, PatientDeleteResponseModel
)
from clinic_api.patients.services import (
    create_patient,
    get_patients,
    get_patient,
    update_patient,
    delete_patient,
    search_patients
)
from clinic_api.common.schemas import ItemWrapper

router = APIRouter()


@router.post("", response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
async def create_patient_endpoint(
    patient_data: PatientCreate,
    auth_info: tuple = Depends(get_clinic_auth)
):
    """
    Register a new patient.
    """
    try:
        user_id, clinic_info = auth_info
        patient = await create_patient(patient_data, clinic_info['id'])
        result = PatientResponse.success(ItemWrapper(item=patient))
        return JSONResponse(status_code=status.HTTP_201_CREATED, content=result.model_dump(mode='json'))
    except Exception as e:
        return error_response(e)


@router.get("", response_model=PatientListResponse)
async def list_patients(
    page: int = Query(1, ge=1, description="Page number (starts from 1)"),
    size: int = Query(10, ge=1, le=100, description="Number of items per page (1-100)"),
    auth_info: tuple = Depends(get_clinic_auth)
):
    """
    Get all patients of the clinic with pagination.
    """
    try:
        user_id, clinic_info = auth_info
        return PatientListResponse.success(await get_patients(clinic_info['id'], page, size))
    except Exception as e:
        return error_response(e)


@router.get("/search", response_model=PatientListResponse)
async def search_patients_endpoint(
    q: str = Query(..., description="Search query for patients"),
    page: int = Query(1, ge=1, description="Page number (starts from 1)"),
    size: int = Query(10, ge=1, le=100, description="Number of items per page (1-100)"),
    auth_info: tuple = Depends(get_clinic_auth)
):
    """
    Search for patients by name, CPF, phone or email.
    """
    try:
        user_id, clinic_info = auth_info
        return PatientListResponse.success(await search_patients(q, clinic_info['id'], page, size))
    except Exception as e:
        return error_response(e)


@router.get("/{patient_id}", response_model=PatientResponse)
async def get_patient_endpoint(
    patient_id: str = Path(..., description="Patient ID"),
    auth_info: tuple = Depends(get_clinic_auth)
):
    try:
        user_id, clinic_info = auth_info
        return PatientResponse.success(await get_patient(patient_id, clinic_info['id']))
    except Exception as e:
        return error_response(e)


@router.put("/{patient_id}", response_model=PatientResponse)
async def update_patient_endpoint(
    update_data: PatientUpdate,
    patient_id: str = Path(..., description="Patient ID"),
    auth_info: tuple = Depends(get_clinic_auth)
):
    try:
        user_id, clinic_info = auth_info
        return PatientResponse.success(await update_patient(patient_id, clinic_info['id'], update_data))
    except Exception as e:
        return error_response(e)


@router.delete("/{patient_id}", response_model=PatientDeleteResponseModel)
async def delete_patient_endpoint(
    patient_id: str = Path(..., description="Patient ID"),
    auth_info: tuple = Depends(get_clinic_auth)
):
    try:
        user_id, clinic_info = auth_info
        return PatientDeleteResponseModel.success(await delete_patient(patient_id, clinic_info['id']))
    except Exception as e:
        return error_response(e)
