"""
Professional management schemas.
"""

from typing import Optional
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from clinic_api.common.schemas import JSendResponse, PaginationResponse, ItemWrapper
from clinic_api.sales.commission import ProfessionalProfile


class ProfessionalCreate(BaseModel):
    """
    Schema for registering a professional. commissionRate is a percentage of the
    final price of each sale and only matters for commissioned professionals.
    """
    name: str
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    profile: ProfessionalProfile = ProfessionalProfile.COMMISSIONED
    commissionRate: float = Field(0, ge=0, le=100)
    active: bool = True

    @field_validator('email', mode='before')
    @classmethod
    def validate_email(cls, v):
        if v == '':
            return None
        return v

    @model_validator(mode='after')
    def owner_has_no_rate(self):
        if self.profile == ProfessionalProfile.OWNER:
            self.commissionRate = 0
        return self


class ProfessionalUpdate(BaseModel):
    """
    Schema for updating a professional.
    """
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    profile: Optional[ProfessionalProfile] = None
    commissionRate: Optional[float] = Field(None, ge=0, le=100)
    active: Optional[bool] = None


class ProfessionalInfo(BaseModel):
    """
    Professional information returned in responses.
    """
    id: str
    clinicId: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    profile: ProfessionalProfile = ProfessionalProfile.COMMISSIONED
    commissionRate: float = 0
    active: bool = True
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class ProfessionalListResponse(JSendResponse[PaginationResponse[ProfessionalInfo]]):
    pass


class ProfessionalResponse(JSendResponse[ItemWrapper[ProfessionalInfo]]):
    """
    Response model for single professional operations with item wrapper.
    """
    pass
