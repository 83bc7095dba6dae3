"""Исключения витрины."""

from __future__ import annotations


class StorefrontError(Exception):
    """Базовое исключение витрины."""


class InvalidQuantityError(StorefrontError):
    """Количество вне допустимого диапазона (1..остаток на складе)."""


class CheckoutError(StorefrontError):
    """Оформление заказа невозможно: пустая корзина или не заполнены данные доставки."""


class InvalidTransitionError(StorefrontError):
    """Недопустимый переход машины состояний оплаты."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Переход {current} -> {target} запрещён")
        self.current = current
        self.target = target
