"""Расчёт логистических сборов: тяжёлые товары, упаковка, помол."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from storage.models import CartItem


# Тяжёлые товары: 150 найр за единицу
HEAVY_ITEM_LIST = [
    "yam",
    "rice",
    "beans",
    "garri",
    "potato",
    "onion",
    "tomato",
    "plantain",
    "spaghetti",
    "groundnut",
    "palm-oil",
]

HEAVY_ITEM_FEE = 150  # за единицу
OTHER_ITEM_FEE = 18  # за единицу

PACKAGING_FEES = {
    "nylon": 1500,
    "carton": 2500,
}

GRINDING_FEE = 1200  # за единицу, которую нужно смолоть

HOME_DELIVERY_FEE = 500


@dataclass(frozen=True)
class LogisticsItem:
    quantity: int
    is_heavy: bool
    needs_grinding: bool = False
    packaging_type: Optional[str] = None  # nylon, carton

    @classmethod
    def from_cart_item(cls, item: "CartItem", *, needs_grinding: bool = False) -> "LogisticsItem":
        return cls(
            quantity=item.quantity,
            is_heavy=is_heavy_item(item.product.name),
            needs_grinding=needs_grinding,
        )


def _normalize(name: str) -> str:
    return re.sub(r"[\s_-]+", "-", name.strip().lower())


def is_heavy_item(name: str) -> bool:
    """Товар тяжёлый, если в названии встречается слово из HEAVY_ITEM_LIST."""
    normalized = f"-{_normalize(name)}-"
    return any(f"-{heavy}" in normalized for heavy in HEAVY_ITEM_LIST)


def calculate_logistics(items: Iterable[LogisticsItem]) -> int:
    total = 0
    for item in items:
        if item.is_heavy:
            total += HEAVY_ITEM_FEE * item.quantity
        else:
            total += OTHER_ITEM_FEE * item.quantity
    return total


def calculate_packaging_fee(packaging_type: Optional[str] = None) -> int:
    if not packaging_type:
        return 0
    try:
        return PACKAGING_FEES[packaging_type]
    except KeyError:
        raise ValueError(f"Неизвестный тип упаковки: {packaging_type}") from None


def calculate_grinding_fee(items: Iterable[LogisticsItem]) -> int:
    return sum(GRINDING_FEE * item.quantity for item in items if item.needs_grinding)
