"""
Commission owed to the professional responsible for a sale.
"""
from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class ProfessionalProfile(str, Enum):
    """How a professional is paid."""
    OWNER = "owner"
    COMMISSIONED = "commissioned"


class CommissionDraft(BaseModel):
    """Expense record to be written for a sale's commission."""
    saleId: str
    professionalId: str
    amount: float
    rate: float
    periodMonth: int
    periodYear: int


def derive_commission(
        sale_id: str,
        sale_date: date,
        final_price: float,
        professional_id: Optional[str],
        profile: Optional[ProfessionalProfile],
        rate: Optional[float]
) -> Optional[CommissionDraft]:
    """
    Build the commission expense of a sale, if one is owed.

    A commission is owed only to commissioned professionals with a positive rate;
    it equals final_price * rate / 100 and is booked in the month of the sale.

    Returns:
        CommissionDraft, or None for owners, zero rates and sales without a professional
    """
    if not professional_id or profile != ProfessionalProfile.COMMISSIONED:
        return None
    if not rate or rate <= 0:
        return None

    return CommissionDraft(
        saleId=sale_id,
        professionalId=professional_id,
        amount=final_price * (rate / 100),
        rate=rate,
        periodMonth=sale_date.month,
        periodYear=sale_date.year,
    )
