"""Страница оплаты: машина состояний pending -> processing -> success | failed."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional
from urllib.parse import urlencode

from quickmarket import QuickMarketAPIClient, QuickMarketAPIError
from storage import LocalStorage, StorageDecodeError
from storage.models import CART_KEY, COMPLETED_ORDER_KEY, PENDING_ORDER_KEY

from .errors import InvalidTransitionError
from .notifications import Notifier

logger = logging.getLogger(__name__)


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


ALLOWED_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PROCESSING, PaymentStatus.FAILED},
    PaymentStatus.PROCESSING: {PaymentStatus.SUCCESS, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.PENDING},
    PaymentStatus.SUCCESS: set(),
}


def transition(current: PaymentStatus, target: PaymentStatus) -> PaymentStatus:
    """Новое состояние; переход в то же состояние ничего не меняет."""
    if current == target:
        return current
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)
    return target


FAILURE_REASONS = {
    "insufficient_funds": {
        "title": "Insufficient Funds",
        "description": "Your account doesn't have enough funds to complete this transaction.",
        "action": "Please check your account balance or try a different payment method.",
    },
    "card_declined": {
        "title": "Card Declined",
        "description": "Your bank has declined this transaction.",
        "action": "Please contact your bank or try a different card.",
    },
    "network_error": {
        "title": "Network Error",
        "description": "There was a connection issue during payment processing.",
        "action": "Please check your internet connection and try again.",
    },
    "invalid_card": {
        "title": "Invalid Card Details",
        "description": "The card information provided is incorrect or invalid.",
        "action": "Please verify your card details and try again.",
    },
    "limit_exceeded": {
        "title": "Transaction Limit Exceeded",
        "description": "This transaction exceeds your daily or monthly limit.",
        "action": "Please contact your bank to increase your limit or try a smaller amount.",
    },
    "3ds_failed": {
        "title": "3D Secure Authentication Failed",
        "description": "The 3D Secure verification was not completed successfully.",
        "action": "Please try again and complete the 3D Secure verification.",
    },
}


def describe_failure(reason: Optional[str]) -> dict:
    return FAILURE_REASONS.get(reason or "", FAILURE_REASONS["network_error"])


def _parse_amount(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


@dataclass
class PaymentSession:
    """Данные оплаты: параметры URL плюс содержимое pending_order."""

    order_id: str
    amount: int  # найры
    reference: str
    items: list = field(default_factory=list)
    delivery_info: dict = field(default_factory=dict)

    @property
    def amount_in_kobo(self) -> int:
        return self.amount * 100


async def _read_order_blob(storage: LocalStorage, key: str) -> dict:
    try:
        data = await storage.get_json(key, default={})
    except StorageDecodeError as exc:
        logger.error("Повреждённые данные заказа по ключу %s: %s", key, exc)
        return {}
    return data if isinstance(data, dict) else {}


class PaymentController:
    """Контроллер страницы оплаты.

    mount() проверяет параметры URL, pay() запускает оплату по действию
    покупателя, retry() возвращает из failed в pending, unmount() закрывает
    страницу: отложенные шаги больше не меняют состояние и не переходят
    на другие страницы.
    """

    def __init__(
        self,
        storage: LocalStorage,
        client: QuickMarketAPIClient,
        notifier: Optional[Notifier] = None,
        *,
        email: str = "user@example.com",
        package_id: str = "weekly-package",
        location_id: str = "yaba",
        settle_delay: float = 3.0,
        display_delay: float = 2.0,
    ) -> None:
        self._storage = storage
        self._client = client
        self._notifier = notifier or Notifier()
        self._email = email
        self._package_id = package_id
        self._location_id = location_id
        self._settle_delay = settle_delay
        self._display_delay = display_delay
        self._closed = asyncio.Event()

        self.status = PaymentStatus.PENDING
        self.session: Optional[PaymentSession] = None
        self.redirect_to: Optional[str] = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def mount(self, query: Mapping[str, str]) -> bool:
        order_id = query.get("orderId")
        amount = _parse_amount(query.get("amount"))
        reference = query.get("reference")

        if not order_id or amount is None or not reference:
            logger.warning("Страница оплаты открыта без обязательных параметров: %s", dict(query))
            self._notifier.error(
                "Invalid Payment Session",
                "Payment information is missing. Redirecting to cart.",
            )
            self.redirect_to = "/cart"
            return False

        pending = await _read_order_blob(self._storage, PENDING_ORDER_KEY)
        self.session = PaymentSession(
            order_id=order_id,
            amount=amount,
            reference=reference,
            items=pending.get("items") or [],
            delivery_info=pending.get("deliveryInfo") or {},
        )
        return True

    def unmount(self) -> None:
        self._closed.set()

    def _set_status(self, target: PaymentStatus) -> bool:
        if self.closed:
            return False
        self.status = transition(self.status, target)
        return True

    async def _wait(self, delay: float) -> bool:
        """Подождать delay секунд; False, если страницу за это время закрыли."""
        if delay > 0:
            try:
                await asyncio.wait_for(self._closed.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        return not self.closed

    async def pay(self) -> PaymentStatus:
        if self.session is None or self.closed:
            return self.status
        if self.status == PaymentStatus.PROCESSING:
            return self.status

        self._set_status(PaymentStatus.PROCESSING)
        session = self.session

        try:
            await self._client.init_payment(
                email=self._email,
                amount=session.amount_in_kobo,
                package_id=self._package_id,
                location_id=self._location_id,
                reference=session.reference,
            )
        except QuickMarketAPIError as exc:
            logger.error("Не удалось инициализировать платёж %s: %s", session.reference, exc)
            if self._set_status(PaymentStatus.FAILED):
                self._notifier.error("Payment Failed", "Failed to initialize payment. Please try again.")
            return self.status

        # Здесь покупатель проходит оплату у Paystack
        if not await self._wait(self._settle_delay):
            return self.status

        await self._verify(session)
        return self.status

    async def _verify(self, session: PaymentSession) -> None:
        try:
            payload = await self._client.verify_payment(session.reference, session.order_id)
        except QuickMarketAPIError as exc:
            logger.error("Не удалось проверить платёж %s: %s", session.reference, exc)
            await self._fail(session, "Failed to verify payment status")
            return

        data = payload.get("data") or {}
        if payload.get("success") and data.get("status") == "success":
            await self._succeed(session)
        else:
            await self._fail(session, data.get("message") or "Payment verification failed")

    async def _succeed(self, session: PaymentSession) -> None:
        # Платёж подтверждён: корзину очищаем, даже если страницу уже закрыли
        completed = await self._storage.get_item(PENDING_ORDER_KEY)
        await self._storage.set_item(COMPLETED_ORDER_KEY, completed or "{}")
        await self._storage.remove_item(PENDING_ORDER_KEY)
        await self._storage.remove_item(CART_KEY)
        logger.info("Платёж %s по заказу %s подтверждён", session.reference, session.order_id)

        if not self._set_status(PaymentStatus.SUCCESS):
            return
        self._notifier.notify(
            "Payment Successful!",
            "Your order has been confirmed and payment processed.",
        )
        if await self._wait(self._display_delay):
            query = urlencode({
                "orderId": session.order_id,
                "reference": session.reference,
                "amount": session.amount,
            })
            self.redirect_to = f"/payment/success?{query}"

    async def _fail(self, session: PaymentSession, message: str) -> None:
        if not self._set_status(PaymentStatus.FAILED):
            return
        if await self._wait(self._display_delay):
            query = urlencode({
                "orderId": session.order_id,
                "reference": session.reference,
                "amount": session.amount,
                "reason": "network_error",
                "message": message,
            })
            self.redirect_to = f"/payment/failed?{query}"

    def retry(self) -> PaymentStatus:
        """Сбросить неудачную оплату в pending для повторной попытки."""
        if self._set_status(PaymentStatus.PENDING):
            self.redirect_to = None
        return self.status


@dataclass
class PaymentOutcome:
    """Данные для страниц /payment/success и /payment/failed."""

    order_id: str
    reference: str
    amount: int
    items: list = field(default_factory=list)
    delivery_info: dict = field(default_factory=dict)
    reason: Optional[str] = None
    message: Optional[str] = None

    @property
    def failure(self) -> dict:
        return describe_failure(self.reason)

    def retry_url(self, now_ms: Optional[int] = None) -> str:
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        query = urlencode({
            "orderId": self.order_id,
            "amount": self.amount,
            "reference": f"retry_{now_ms}_{self.order_id}",
        })
        return f"/payment?{query}"


async def load_success(
    query: Mapping[str, str], storage: LocalStorage, notifier: Optional[Notifier] = None
) -> Optional[PaymentOutcome]:
    """Данные страницы успеха; None, если параметров не хватает (уходим на /dashboard)."""
    outcome = _outcome_from_query(query)
    if outcome is None:
        (notifier or Notifier()).error(
            "Invalid Payment Session",
            "Payment information is missing. Redirecting to dashboard.",
        )
        return None

    completed = await _read_order_blob(storage, COMPLETED_ORDER_KEY)
    outcome.items = completed.get("items") or []
    outcome.delivery_info = completed.get("deliveryInfo") or {}
    await storage.remove_item(PENDING_ORDER_KEY)
    await storage.remove_item(CART_KEY)
    return outcome


async def load_failure(
    query: Mapping[str, str], storage: LocalStorage, notifier: Optional[Notifier] = None
) -> Optional[PaymentOutcome]:
    """Данные страницы ошибки; None, если параметров не хватает (уходим в /cart)."""
    outcome = _outcome_from_query(query)
    if outcome is None:
        (notifier or Notifier()).error(
            "Invalid Payment Session",
            "Payment information is missing. Redirecting to cart.",
        )
        return None

    pending = await _read_order_blob(storage, PENDING_ORDER_KEY)
    outcome.items = pending.get("items") or []
    outcome.delivery_info = pending.get("deliveryInfo") or {}
    outcome.reason = query.get("reason") or "network_error"
    outcome.message = query.get("message") or "Payment processing failed"
    return outcome


def _outcome_from_query(query: Mapping[str, str]) -> Optional[PaymentOutcome]:
    order_id = query.get("orderId")
    reference = query.get("reference")
    amount = _parse_amount(query.get("amount"))
    if not order_id or not reference or amount is None:
        return None
    return PaymentOutcome(order_id=order_id, reference=reference, amount=amount)
