"""
Sale composition and pricing.

Given the lots chosen for a sale, a flat discount, an entry (down-payment) percentage,
a payment method and an installment count, derive every monetary figure stored on the
sale and shown on the checkout summary. Everything here is pure and synchronous.
"""
import math
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel

from clinic_api.sales.categories import TherapeuticClass


class PaymentMethod(str, Enum):
    """Payment methods accepted at checkout."""
    PIX = "PIX"
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


# Only credit card sales can be split into an entry plus installments
INSTALLMENT_METHODS = frozenset({PaymentMethod.CREDIT})


class PricedLine(BaseModel):
    """A line item with the prices borrowed from its lot (cost) and SKU (sale price)."""
    lotId: str
    quantity: int
    unitPrice: float
    unitCost: float
    therapeuticClass: TherapeuticClass = TherapeuticClass.OTHER


class SaleTotals(BaseModel):
    """Derived figures of a sale."""
    grossTotal: float = 0.0
    costTotal: float = 0.0
    finalPrice: float = 0.0
    discountPercent: float = 0.0
    entryAmount: float = 0.0
    installmentPrincipal: float = 0.0
    installmentAmount: float = 0.0
    margin: float = 0.0
    marginPercent: float = 0.0
    marginFinal: float = 0.0
    marginFinalPercent: float = 0.0


class SaleValidationError(ValueError):
    """Raised before any persistence when a sale draft cannot be submitted."""

    def __init__(self, errors: Dict[str, str]):
        self.errors = errors
        super().__init__("; ".join(f"{field}: {message}" for field, message in errors.items()))


def _percent(part: float, whole: float) -> float:
    return part / whole * 100 if whole else 0.0


def _is_nan(value) -> bool:
    return isinstance(value, float) and math.isnan(value)


def payment_terms(payment_method: PaymentMethod, entry_percent: float, installments: int) -> Tuple[float, int]:
    """
    Entry percentage and installment count that actually apply to a payment method.

    PIX and debit are paid in full at checkout, so they always use (0, 1).
    """
    if payment_method in INSTALLMENT_METHODS:
        return entry_percent, installments
    return 0.0, 1


def compute_totals(
        lines: Iterable[PricedLine],
        discount: float = 0.0,
        entry_percent: float = 0.0,
        installments: int = 1
) -> SaleTotals:
    """
    Derive the totals of a sale.

    Args:
        lines: Priced line items
        discount: Flat discount amount; the final price is clamped at zero
        entry_percent: Share of the final price paid at checkout, 0-100
        installments: Number of installments for the remainder, at least 1

    Returns:
        SaleTotals; all zeros when any input is NaN
    """
    lines = list(lines)
    inputs = [discount, entry_percent, installments]
    for line in lines:
        inputs.extend([line.unitPrice, line.unitCost, line.quantity])
    if any(_is_nan(value) for value in inputs):
        return SaleTotals()

    gross_total = sum(line.unitPrice * line.quantity for line in lines)
    cost_total = sum(line.unitCost * line.quantity for line in lines)

    final_price = max(0.0, gross_total - discount)
    entry_amount = final_price * (entry_percent / 100)
    installment_principal = max(0.0, final_price - entry_amount)
    installment_amount = installment_principal / installments if installments >= 1 else 0.0

    margin = gross_total - cost_total
    margin_final = final_price - cost_total

    return SaleTotals(
        grossTotal=gross_total,
        costTotal=cost_total,
        finalPrice=final_price,
        discountPercent=_percent(discount, gross_total),
        entryAmount=entry_amount,
        installmentPrincipal=installment_principal,
        installmentAmount=installment_amount,
        margin=margin,
        marginPercent=_percent(margin, gross_total),
        marginFinal=margin_final,
        marginFinalPercent=_percent(margin_final, final_price),
    )


def validate_sale_draft(
        patient_id: Optional[str],
        requested: List[Tuple[str, int]],
        available: Dict[str, int],
        discount: float,
        entry_percent: float,
        installments: int
) -> None:
    """
    Check a sale draft before anything is written.

    Args:
        patient_id: Selected patient
        requested: (lot id, quantity) pairs in the order they were picked
        available: Last-read available quantity per lot id
        discount: Flat discount amount
        entry_percent: Entry percentage
        installments: Installment count

    Raises:
        SaleValidationError: With one message per offending field
    """
    errors: Dict[str, str] = {}

    if not patient_id:
        errors["patientId"] = "A patient must be selected"

    if not requested:
        errors["items"] = "At least one item must be selected"

    seen = set()
    for index, (lot_id, quantity) in enumerate(requested):
        field = f"items[{index}]"
        if lot_id in seen:
            errors[field] = f"Lot {lot_id} was selected more than once"
            continue
        seen.add(lot_id)
        if quantity < 1:
            errors[field] = "Quantity must be at least 1"
        elif quantity > available.get(lot_id, 0):
            errors[field] = (
                f"Requested {quantity} units of lot {lot_id} but only "
                f"{available.get(lot_id, 0)} are available"
            )

    if _is_nan(discount) or discount < 0:
        errors["discount"] = "Discount cannot be negative"
    if _is_nan(entry_percent) or not 0 <= entry_percent <= 100:
        errors["entryPercent"] = "Entry percentage must be between 0 and 100"
    if installments < 1:
        errors["installments"] = "Installment count must be at least 1"

    if errors:
        raise SaleValidationError(errors)
