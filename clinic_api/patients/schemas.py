"""
Patient management schemas for CRUD operations.
"""

from typing import Optional, Union
from pydantic import BaseModel, EmailStr, field_validator
from datetime import datetime

from clinic_api.common.schemas import JSendResponse, PaginationResponse, ItemWrapper, DeleteResult


def _format_birth_date(v):
    """Validate and format a date of birth to YYYY-MM-DD."""
    if v is None or v == '':
        return None

    if not isinstance(v, str):
        return None

    try:
        # Handle ISO datetime format like "2025-07-01T13:39:11.410Z"
        if 'T' in v:
            dt = datetime.fromisoformat(v.replace('Z', '+00:00'))
            return dt.strftime('%Y-%m-%d')

        dt = datetime.strptime(v, '%Y-%m-%d')
        return dt.strftime('%Y-%m-%d')

    except ValueError:
        raise ValueError(f"Invalid date format for birthDate: {v}. Expected YYYY-MM-DD or ISO datetime format.")


def _digits_only(v):
    if v is None:
        return None
    return ''.join(ch for ch in str(v) if ch.isdigit())


class PatientCreate(BaseModel):
    """
    Schema for registering a new patient.
    """
    name: str
    cpf: Optional[str] = None
    birthDate: Optional[str] = None
    sex: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    leadSource: Optional[str] = None

    @field_validator('email', mode='before')
    @classmethod
    def validate_email(cls, v):
        """Treat an empty email as missing."""
        if v == '':
            return None
        return v

    @field_validator('birthDate', mode='before')
    @classmethod
    def validate_birth_date(cls, v):
        return _format_birth_date(v)

    @field_validator('cpf', mode='before')
    @classmethod
    def validate_cpf(cls, v):
        """Store CPF as its 11 digits, whatever punctuation was typed."""
        digits = _digits_only(v)
        if not digits:
            return None
        if len(digits) != 11:
            raise ValueError("CPF must have 11 digits")
        return digits


class PatientUpdate(BaseModel):
    """
    Schema for updating patient information. Only provided fields are changed.
    """
    name: Optional[str] = None
    cpf: Optional[str] = None
    birthDate: Optional[str] = None
    sex: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[Union[EmailStr, str]] = None  # Empty string clears the field
    leadSource: Optional[str] = None

    @field_validator('birthDate', mode='before')
    @classmethod
    def validate_birth_date(cls, v):
        return _format_birth_date(v)

    @field_validator('cpf', mode='before')
    @classmethod
    def validate_cpf(cls, v):
        digits = _digits_only(v)
        if not digits:
            return None
        if len(digits) != 11:
            raise ValueError("CPF must have 11 digits")
        return digits


class PatientInfo(BaseModel):
    """
    Patient information returned in responses.
    """
    id: str
    clinicId: str
    name: str
    cpf: Optional[str] = None
    birthDate: Optional[str] = None
    sex: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    leadSource: Optional[str] = None
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class PatientListResponse(JSendResponse[PaginationResponse[PatientInfo]]):
    """
    Response model for patient list operations with pagination.
    """
    pass


class PatientResponse(JSendResponse[ItemWrapper[PatientInfo]]):
    """
    Response model for single patient operations with item wrapper.
    """
    pass


class PatientDeleteResponseModel(JSendResponse[DeleteResult]):
    pass
