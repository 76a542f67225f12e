"""
This module defines the Pydantic models used for inventory management:
catalog entries (SKUs), lots and the stock movement log.
"""
from datetime import datetime
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, Field, field_validator

from clinic_api.common.schemas import TimestampMixin, PaginationResponse
from clinic_api.sales.categories import TherapeuticClass


def _validate_iso_date(value):
    if value is None or value == '':
        return None
    if not isinstance(value, str):
        raise ValueError("Date must be a string in YYYY-MM-DD format")
    if 'T' in value:
        return datetime.fromisoformat(value.replace('Z', '+00:00')).strftime('%Y-%m-%d')
    return datetime.strptime(value, '%Y-%m-%d').date().isoformat()


class MovementType(str, Enum):
    """Kinds of stock movement."""
    IN = "IN"
    OUT = "OUT"
    REVERSAL = "REVERSAL"


class SkuBase(BaseModel):
    """
    Catalog entry. unitPrice is the list sale price; minimumStock is the number of units
    below which the SKU shows up in low-stock alerts.
    """
    name: str
    manufacturer: str = ""
    therapeuticClass: str = ""
    unitPrice: float = Field(..., ge=0)
    minimumStock: int = Field(0, ge=0)
    active: bool = True


class SkuCreate(SkuBase):
    pass


class SkuUpdate(BaseModel):
    """All fields optional; only provided fields are updated."""
    name: Optional[str] = None
    manufacturer: Optional[str] = None
    therapeuticClass: Optional[str] = None
    unitPrice: Optional[float] = Field(None, ge=0)
    minimumStock: Optional[int] = Field(None, ge=0)
    active: Optional[bool] = None


class SkuInDB(SkuBase, TimestampMixin):
    id: str
    clinicId: str
    canonicalClass: TherapeuticClass = TherapeuticClass.OTHER


class LotCreate(BaseModel):
    """A batch received into stock."""
    skuId: str
    quantity: int = Field(..., gt=0)
    expiryDate: str
    unitCost: float = Field(..., ge=0)
    note: Optional[str] = None

    @field_validator('expiryDate', mode='before')
    @classmethod
    def validate_expiry_date(cls, v):
        value = _validate_iso_date(v)
        if value is None:
            raise ValueError("expiryDate is required")
        return value


class LotInDB(BaseModel):
    id: str
    clinicId: str
    skuId: str
    availableQuantity: int
    initialQuantity: int = 0
    expiryDate: str
    unitCost: float
    entryDate: Optional[datetime] = None


class StockMovement(BaseModel):
    id: str
    clinicId: str
    lotId: str
    type: MovementType
    quantity: int
    user: Optional[str] = None
    note: Optional[str] = None
    saleId: Optional[str] = None
    createdAt: Optional[datetime] = None


class SaleableLot(BaseModel):
    """A lot with stock, joined with the catalog data needed at checkout."""
    lotId: str
    skuId: str
    productName: str
    therapeuticClass: str
    canonicalClass: TherapeuticClass
    unitPrice: float
    unitCost: float
    availableQuantity: int
    expiryDate: str


class ExpiringLot(BaseModel):
    lotId: str
    skuId: str
    productName: str
    availableQuantity: int
    expiryDate: str
    daysToExpiry: int
    expired: bool


class LowStockSku(BaseModel):
    skuId: str
    name: str
    availableQuantity: int
    minimumStock: int
    shortfall: int


class SkusData(PaginationResponse[SkuInDB]):
    pass


class LotsData(BaseModel):
    items: List[LotInDB]


class MovementsData(BaseModel):
    items: List[StockMovement]
