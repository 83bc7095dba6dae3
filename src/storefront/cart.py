"""Корзина покупателя, сохраняемая в хранилище сессии."""

from __future__ import annotations

import logging
from typing import List, Optional

from storage import LocalStorage, StorageDecodeError
from storage.models import CART_KEY, CartItem, ProductSnapshot

from .errors import InvalidQuantityError
from .notifications import Notifier

logger = logging.getLogger(__name__)


class CartStore:
    """Единственная точка чтения и записи корзины.

    Сначала load(), потом синхронизация: до первой загрузки save() ничего не
    пишет, чтобы пустое начальное состояние не затёрло сохранённую корзину.
    Между сессиями/вкладками блокировок нет, побеждает последняя запись.
    """

    def __init__(self, storage: LocalStorage, notifier: Optional[Notifier] = None) -> None:
        self._storage = storage
        self._notifier = notifier or Notifier()
        self._items: List[CartItem] = []
        self._loaded = False

    @property
    def items(self) -> List[CartItem]:
        return list(self._items)

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def load(self) -> List[CartItem]:
        """Прочитать корзину; при любой ошибке корзина пуста, исключений нет."""
        try:
            raw_items = await self._storage.get_json(CART_KEY, default=[])
            if not isinstance(raw_items, list):
                raise ValueError(f"Ожидался список, получено {type(raw_items).__name__}")
            self._items = [CartItem.from_dict(row) for row in raw_items]
        except (StorageDecodeError, ValueError, KeyError, TypeError) as exc:
            logger.error("Не удалось загрузить корзину сессии %s: %s", self._storage.session_id, exc)
            self._notifier.error("Error", "Failed to load cart data. Please refresh the page.")
            self._items = []
        finally:
            self._loaded = True
        return self.items

    async def save(self) -> None:
        if not self._loaded:
            logger.debug("Корзина ещё не загружена, запись пропущена")
            return
        await self._storage.set_json(CART_KEY, [item.to_dict() for item in self._items])

    def get(self, product_id: str) -> Optional[CartItem]:
        return next((item for item in self._items if item.product_id == product_id), None)

    async def add(self, product: ProductSnapshot, quantity: int) -> CartItem:
        """Добавить товар; если он уже в корзине, количество суммируется."""
        if quantity <= 0 or quantity > product.stock_qty:
            unit = product.unit or "kg"
            self._notifier.error(
                "Invalid Quantity",
                f"Please select a quantity between 1 and {product.stock_qty}{unit}.",
            )
            raise InvalidQuantityError(f"Количество {quantity} вне диапазона 1..{product.stock_qty}")

        item = self.get(product.id)
        if item:
            item.quantity += quantity
        else:
            item = CartItem(product_id=product.id, quantity=quantity, product=product)
            self._items.append(item)

        await self.save()
        self._notifier.notify(
            "Added to cart",
            f"{quantity}{product.unit or 'kg'} of {product.name} added to your cart.",
        )
        return item

    async def set_quantity(self, product_id: str, quantity: int) -> None:
        if quantity <= 0:
            await self.remove(product_id)
            return

        item = self.get(product_id)
        if not item:
            return
        item.quantity = quantity
        await self.save()

    async def remove(self, product_id: str) -> None:
        self._items = [item for item in self._items if item.product_id != product_id]
        await self.save()
        self._notifier.notify("Item Removed", "Item has been removed from your cart.")

    async def clear(self) -> None:
        self._items = []
        await self.save()

    @property
    def subtotal(self) -> float:
        return sum(item.line_total for item in self._items)

    @property
    def total_weight(self) -> int:
        return sum(item.quantity for item in self._items)

    @property
    def item_count(self) -> int:
        return len(self._items)

    @property
    def is_empty(self) -> bool:
        return not self._items
