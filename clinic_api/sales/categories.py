"""
Therapeutic class normalization.

SKUs carry a free-text therapeutic class typed by each clinic ("TOXINA BOTULÍNICA",
"Botox", "Ácido hialurônico", ...). Pricing dashboards and combo tiers need one of a
fixed set of classes, so labels are matched against an ordered keyword table.
"""
import unicodedata
from enum import Enum
from typing import Optional, Tuple


class TherapeuticClass(str, Enum):
    """Canonical therapeutic classes."""
    TOXIN = "Toxin Botulinum"
    FILLER = "Filler"
    BIOSTIMULATOR = "Biostimulator"
    BIOREGENERATOR = "Bioregenerator"
    TECHNOLOGY = "Technology"
    OTHER = "Other"


class ComboBucket(str, Enum):
    """Buckets used by combo tiers."""
    TOXIN = "toxin"
    FILLER = "filler"
    SPECIALTY = "specialty"


# Evaluated top to bottom, first match wins. Keywords are compared against the
# label after lowercasing and stripping accents.
CLASS_KEYWORDS: Tuple[Tuple[Tuple[str, ...], TherapeuticClass], ...] = (
    (("toxina", "toxin", "botul", "botox", "dysport", "xeomin"), TherapeuticClass.TOXIN),
    (("preench", "filler", "hialuron", "hyaluron"), TherapeuticClass.FILLER),
    (("bioestimul", "biostimul", "sculptra", "radiesse", "colageno"), TherapeuticClass.BIOSTIMULATOR),
    (("bioregener", "bioremodel", "skinbooster", "polinucleot"), TherapeuticClass.BIOREGENERATOR),
    (("tecnologia", "technology", "laser", "ultrassom", "ultrasound", "radiofrequ"), TherapeuticClass.TECHNOLOGY),
)

BUCKET_BY_CLASS = {
    TherapeuticClass.TOXIN: ComboBucket.TOXIN,
    TherapeuticClass.FILLER: ComboBucket.FILLER,
    TherapeuticClass.BIOSTIMULATOR: ComboBucket.SPECIALTY,
    TherapeuticClass.BIOREGENERATOR: ComboBucket.SPECIALTY,
    TherapeuticClass.TECHNOLOGY: ComboBucket.SPECIALTY,
}


def _fold(label: str) -> str:
    decomposed = unicodedata.normalize("NFKD", label)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()


def normalize_category(label: Optional[str]) -> TherapeuticClass:
    """
    Map a free-text therapeutic class label to its canonical class.

    Args:
        label: Label as typed on the SKU; None and empty strings are accepted

    Returns:
        The first class whose keywords occur in the label, or OTHER
    """
    if not label:
        return TherapeuticClass.OTHER

    folded = _fold(label)
    for keywords, therapeutic_class in CLASS_KEYWORDS:
        if any(keyword in folded for keyword in keywords):
            return therapeutic_class
    return TherapeuticClass.OTHER


def combo_bucket(therapeutic_class: TherapeuticClass) -> Optional[ComboBucket]:
    """Bucket a canonical class counts toward, or None for OTHER."""
    return BUCKET_BY_CLASS.get(therapeutic_class)
