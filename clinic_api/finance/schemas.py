"""
This module defines the Pydantic models for clinic expenses and financial settings.
"""
from datetime import datetime
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, Field, field_validator

# Brazilian national holidays and carnival of 2025
DEFAULT_HOLIDAYS = [
    '2025-01-01', '2025-03-03', '2025-03-04', '2025-04-18', '2025-04-21', '2025-05-01', '2025-06-19',
    '2025-09-07', '2025-10-12', '2025-11-02', '2025-11-15', '2025-11-20', '2025-12-25'
]


class ExpenseCategory(str, Enum):
    COMMISSION = "COMMISSION"
    RENT = "RENT"
    PAYROLL = "PAYROLL"
    SUPPLIES = "SUPPLIES"
    MARKETING = "MARKETING"
    OTHER = "OTHER"


class CostType(str, Enum):
    """Fixed costs are paid whatever the sales volume; variable costs follow sales."""
    VARIABLE = "VARIABLE"
    FIXED = "FIXED"


class ExpenseCreate(BaseModel):
    description: str
    category: ExpenseCategory = ExpenseCategory.OTHER
    costType: CostType = CostType.FIXED
    amount: float = Field(..., gt=0)
    periodMonth: int = Field(..., ge=1, le=12)
    periodYear: int = Field(..., ge=2000, le=2100)


class ExpenseInDB(ExpenseCreate):
    id: str
    clinicId: str
    saleId: Optional[str] = None
    professionalId: Optional[str] = None
    createdAt: Optional[datetime] = None


class ExpensesData(BaseModel):
    items: List[ExpenseInDB]
    total: float = 0


class ClinicSettings(BaseModel):
    """
    Financial parameters of a clinic used by the monthly income statement.
    All *Pct fields are percentages (10 means 10 %).
    """
    taxRatePct: float = Field(0, ge=0, le=100)
    cardFeePct: float = Field(0, ge=0, le=100)
    innovationReservePct: float = Field(10, ge=0, lt=100)
    monthlyNetProfitTarget: float = Field(0, ge=0)
    holidays: List[str] = Field(default_factory=lambda: list(DEFAULT_HOLIDAYS))

    @field_validator('holidays')
    @classmethod
    def validate_holidays(cls, v):
        return sorted({datetime.strptime(day, '%Y-%m-%d').date().isoformat() for day in v})


class ClinicSettingsUpdate(BaseModel):
    taxRatePct: Optional[float] = Field(None, ge=0, le=100)
    cardFeePct: Optional[float] = Field(None, ge=0, le=100)
    innovationReservePct: Optional[float] = Field(None, ge=0, lt=100)
    monthlyNetProfitTarget: Optional[float] = Field(None, ge=0)
    holidays: Optional[List[str]] = None
