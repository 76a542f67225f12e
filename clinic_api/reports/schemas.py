"""
Schemas for reports operations.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from clinic_api.sales.categories import TherapeuticClass


class DateRangeSchema(BaseModel):
    """Date range schema for reports."""
    start: str = Field(..., description="Start date in YYYY-MM-DD format")
    end: str = Field(..., description="End date in YYYY-MM-DD format")


class SummaryResponse(BaseModel):
    """Summary of the COMPLETED sales of a period."""
    dateRange: DateRangeSchema
    revenue: float = Field(..., description="Sum of final prices")
    cost: float = Field(..., description="Sum of supply costs")
    margin: float = Field(..., description="Revenue minus cost")
    sales: int = Field(..., description="Number of sales")
    patients: int = Field(..., description="Distinct patients who bought")
    averageTicket: float = Field(0.0, description="Revenue per sale")
    unitsByClass: Dict[str, int] = Field(default_factory=dict, description="Units sold per therapeutic class")
    salesByTier: Dict[str, int] = Field(default_factory=dict, description="Sales per combo tier")
    date: datetime = Field(..., description="Local date time")


class DailyPoint(BaseModel):
    """One day of the monthly goal chart."""
    day: int
    date: str
    isBusinessDay: bool
    realized: float = 0.0
    dynamicTarget: float = Field(0.0, description="What is left of the goal divided by the business days left")
    cumulativeRealized: float = 0.0
    cumulativeTarget: float = 0.0


class MonthlyReport(BaseModel):
    """
    Monthly income statement (DRE) plus the revenue goal derived backwards from
    the net profit target, and the closing projection.
    """
    year: int
    month: int
    grossRevenue: float
    supplyCost: float
    taxes: float
    cardFees: float
    totalDeductions: float
    netRevenue: float
    contributionMargin: float
    contributionMarginPct: float
    fixedExpenses: float
    variableExpenses: float
    innovationReservePct: float
    innovationReserve: float
    ebitda: float
    netProfitTarget: float
    requiredRevenue: float
    businessDays: int
    elapsedBusinessDays: int
    realizedToDate: float
    gap: float
    percentRealized: float
    projectedClosing: float
    projectedPercent: float
    daily: List[DailyPoint] = []


class RankingType(str, Enum):
    PATIENTS = "patients"
    PRODUCTS = "products"


class PatientRank(BaseModel):
    """A patient's purchases in the month."""
    patientId: str
    name: str
    total: float = Field(..., description="Sum of final prices")
    visits: int = Field(..., description="Number of sales")
    averageTicket: float
    lastVisit: Optional[str] = Field(None, description="Latest sale date (YYYY-MM-DD)")


class ProductRank(BaseModel):
    """Units of a SKU sold in the month."""
    skuId: str
    productName: str
    canonicalClass: TherapeuticClass = TherapeuticClass.OTHER
    quantity: int
    revenue: float = Field(0.0, description="Sum of line totals before discount")


class RankingsResponse(BaseModel):
    """
    Monthly ranking of patients by amount spent or of products by units sold.
    Only the list matching `type` is filled.
    """
    year: int
    month: int
    type: RankingType
    patients: List[PatientRank] = []
    products: List[ProductRank] = []
