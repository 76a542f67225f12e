"""
Combo tiers awarded to a sale by how many units of each therapeutic bucket it contains.
"""
from enum import Enum
from typing import Callable, Iterable, List, Tuple

from pydantic import BaseModel

from clinic_api.sales.categories import ComboBucket, TherapeuticClass, combo_bucket


class ComboTier(str, Enum):
    PLATINUM = "PLATINUM"
    GOLD = "GOLD"
    SILVER = "SILVER"
    BRONZE = "BRONZE"
    NONE = "NONE"


class BucketCounts(BaseModel):
    """Units sold per combo bucket."""
    toxin: int = 0
    filler: int = 0
    specialty: int = 0


def _at_least(toxin: int, filler: int, specialty: int) -> Callable[[BucketCounts], bool]:
    def predicate(counts: BucketCounts) -> bool:
        return counts.toxin >= toxin and counts.filler >= filler and counts.specialty >= specialty
    return predicate


# Highest tier first; the first satisfied predicate wins
TIER_RULES: List[Tuple[Callable[[BucketCounts], bool], ComboTier]] = [
    (_at_least(2, 5, 2), ComboTier.PLATINUM),
    (_at_least(2, 4, 1), ComboTier.GOLD),
    (_at_least(2, 2, 1), ComboTier.SILVER),
    (_at_least(1, 2, 1), ComboTier.BRONZE),
]


def count_buckets(items: Iterable[Tuple[TherapeuticClass, int]]) -> BucketCounts:
    """
    Add up units per bucket.

    Args:
        items: (canonical class, quantity) pairs; OTHER units are ignored
    """
    counts = BucketCounts()
    for therapeutic_class, quantity in items:
        bucket = combo_bucket(therapeutic_class)
        if bucket is ComboBucket.TOXIN:
            counts.toxin += quantity
        elif bucket is ComboBucket.FILLER:
            counts.filler += quantity
        elif bucket is ComboBucket.SPECIALTY:
            counts.specialty += quantity
    return counts


def classify_tier(counts: BucketCounts) -> ComboTier:
    for predicate, tier in TIER_RULES:
        if predicate(counts):
            return tier
    return ComboTier.NONE
