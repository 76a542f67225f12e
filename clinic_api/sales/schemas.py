"""
This module defines the Pydantic models for sale requests, quotes and stored sales.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from clinic_api.common.schemas import TimestampMixin, PaginationResponse
from clinic_api.sales.categories import TherapeuticClass
from clinic_api.sales.combos import BucketCounts, ComboTier
from clinic_api.sales.pricing import PaymentMethod, SaleTotals


class SaleStatus(str, Enum):
    """
    PENDING while stock is being debited, COMPLETED once every step succeeded,
    FAILED after a rollback. Only COMPLETED sales count in reports.
    """
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class SaleItemRequest(BaseModel):
    lotId: str
    quantity: int


class SaleRequest(BaseModel):
    """
    A sale draft as submitted from checkout. Quantities and amounts are checked by
    the sale validation step so every problem is reported at once.
    """
    patientId: Optional[str] = None
    professionalId: Optional[str] = None
    saleDate: Optional[str] = Field(None, description="YYYY-MM-DD, defaults to today")
    paymentMethod: PaymentMethod = PaymentMethod.PIX
    installments: int = 1
    discount: float = 0.0
    entryPercent: float = 0.0
    items: List[SaleItemRequest] = []

    @field_validator('saleDate', mode='before')
    @classmethod
    def validate_sale_date(cls, v):
        if v is None or v == '':
            return None
        if not isinstance(v, str):
            raise ValueError("saleDate must be a string in YYYY-MM-DD format")
        if 'T' in v:
            return datetime.fromisoformat(v.replace('Z', '+00:00')).strftime('%Y-%m-%d')
        return datetime.strptime(v, '%Y-%m-%d').date().isoformat()


class SaleItem(BaseModel):
    """A line item frozen at the prices in force when the sale was made."""
    lotId: str
    skuId: str
    productName: str
    therapeuticClass: str = ""
    canonicalClass: TherapeuticClass = TherapeuticClass.OTHER
    quantity: int
    unitPrice: float
    unitCost: float
    lineTotal: float


class SaleQuote(BaseModel):
    """Checkout summary of a draft. Entry and installments are the ones that apply to the method."""
    items: List[SaleItem]
    paymentMethod: PaymentMethod
    installments: int
    entryPercent: float
    discount: float
    totals: SaleTotals
    comboCounts: BucketCounts
    tier: ComboTier


class SaleInDB(BaseModel, TimestampMixin):
    id: str
    clinicId: str
    patientId: str
    professionalId: Optional[str] = None
    saleDate: str
    paymentMethod: PaymentMethod
    installments: int = 1
    entryPercent: float = 0.0
    discount: float = 0.0
    items: List[SaleItem] = []
    totals: SaleTotals = SaleTotals()
    comboCounts: BucketCounts = BucketCounts()
    tier: ComboTier = ComboTier.NONE
    status: SaleStatus = SaleStatus.PENDING
    idempotencyKey: Optional[str] = None
    commissionExpenseId: Optional[str] = None
    createdBy: Optional[str] = None


class SalesData(PaginationResponse[SaleInDB]):
    pass
