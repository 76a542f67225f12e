"""
Professional management routers. Only clinic owners and admins can change professionals.
"""

from fastapi import APIRouter, Depends, Path, Query

from clinic_api.auth.dependencies import get_clinic_auth, get_clinic_owner_access
from clinic_api.common.schemas import ItemWrapper
from clinic_api.common.utils import error_response
from clinic_api.professionals.schemas import (
    ProfessionalCreate, ProfessionalUpdate, ProfessionalResponse, ProfessionalListResponse
)
from clinic_api.professionals.services import (
    create_professional, get_professionals, get_professional, update_professional
)

router = APIRouter()


@router.post("", response_model=ProfessionalResponse)
async def create_professional_endpoint(
    data: ProfessionalCreate,
    clinic_access: tuple = Depends(get_clinic_owner_access)
):
    try:
        user_id, clinic_info = clinic_access
        professional = await create_professional(data, clinic_info['id'])
        return ProfessionalResponse.success(ItemWrapper(item=professional))
    except Exception as e:
        return error_response(e)


@router.get("", response_model=ProfessionalListResponse)
async def list_professionals(
    page: int = Query(1, ge=1, description="Page number (starts from 1)"),
    size: int = Query(50, ge=1, le=200, description="Number of items per page"),
    active_only: bool = Query(False, description="Only active professionals"),
    auth_info: tuple = Depends(get_clinic_auth)
):
    try:
        user_id, clinic_info = auth_info
        return ProfessionalListResponse.success(
            await get_professionals(clinic_info['id'], page, size, active_only)
        )
    except Exception as e:
        return error_response(e)


@router.get("/{professional_id}", response_model=ProfessionalResponse)
async def get_professional_endpoint(
    professional_id: str = Path(..., description="Professional ID"),
    auth_info: tuple = Depends(get_clinic_auth)
):
    try:
        user_id, clinic_info = auth_info
        professional = await get_professional(professional_id, clinic_info['id'])
        return ProfessionalResponse.success(ItemWrapper(item=professional))
    except Exception as e:
        return error_response(e)


@router.put("/{professional_id}", response_model=ProfessionalResponse)
async def update_professional_endpoint(
    update_data: ProfessionalUpdate,
    professional_id: str = Path(..., description="Professional ID"),
    clinic_access: tuple = Depends(get_clinic_owner_access)
):
    try:
        user_id, clinic_info = clinic_access
        professional = await update_professional(professional_id, clinic_info['id'], update_data)
        return ProfessionalResponse.success(ItemWrapper(item=professional))
    except Exception as e:
        return error_response(e)
