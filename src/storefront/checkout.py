"""Переход от корзины к оплате: расчёт суммы и сохранение pending_order."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, List, Optional
from urllib.parse import urlencode

from quickmarket import PickupPoint, QuickMarketAPIClient, QuickMarketAPIError
from storage import LocalStorage
from storage.models import (
    PENDING_ORDER_KEY,
    CartItem,
    ContactInfo,
    CouponInfo,
    DeliveryInfo,
    DeliverySchedule,
    PendingOrder,
    SubscriptionInfo,
)

from .errors import CheckoutError
from .logistics import (
    HOME_DELIVERY_FEE,
    LogisticsItem,
    calculate_grinding_fee,
    calculate_logistics,
    calculate_packaging_fee,
)
from .notifications import Notifier

logger = logging.getLogger(__name__)

COUPON_CODES = {"save10": 0.10}

SUBSCRIPTION_DISCOUNTS = {
    "weekly": 0.15,
    "biweekly": 0.10,
    "monthly": 0.05,
}

TIME_SLOTS = [
    ("morning", "Morning (9:00 AM - 12:00 PM)"),
    ("afternoon", "Afternoon (12:00 PM - 4:00 PM)"),
    ("evening", "Evening (4:00 PM - 7:00 PM)"),
]

# Доставка только в четверг, пятницу и субботу
DELIVERY_WEEKDAYS = {3, 4, 5}


def delivery_dates(today: Optional[date] = None, limit: int = 3) -> List[tuple[str, str]]:
    """Ближайшие дни доставки в пределах двух недель: (ISO-дата, подпись)."""
    today = today or date.today()
    dates = []
    for offset in range(1, 15):
        day = today + timedelta(days=offset)
        if day.weekday() in DELIVERY_WEEKDAYS:
            dates.append((day.isoformat(), f"{day:%A}, {day:%b} {day.day}"))
        if len(dates) >= limit:
            break
    return dates


def apply_coupon(code: str, subtotal: float) -> Optional[CouponInfo]:
    """Купон со скидкой или None, если код неизвестен."""
    rate = COUPON_CODES.get(code.strip().lower())
    if rate is None:
        return None
    return CouponInfo(code=code, discount=math.floor(subtotal * rate), applied=True)


def subscription_discount(subscription: Optional[SubscriptionInfo], subtotal: float) -> int:
    if not subscription or not subscription.enabled:
        return 0
    return math.floor(subtotal * SUBSCRIPTION_DISCOUNTS.get(subscription.frequency, 0))


def generate_reference(order_id: str, now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"ref_{now_ms}_{order_id}"


@dataclass
class PaymentRequest:
    order_id: str
    amount: int
    reference: str

    def payment_url(self) -> str:
        query = urlencode({"orderId": self.order_id, "amount": self.amount, "reference": self.reference})
        return f"/payment?{query}"


@dataclass
class CheckoutForm:
    delivery_info: DeliveryInfo
    schedule: DeliverySchedule
    contact_info: Optional[ContactInfo] = None
    subscription: Optional[SubscriptionInfo] = None
    coupon: Optional[CouponInfo] = None
    packaging_type: Optional[str] = None
    grinding_product_ids: set[str] = field(default_factory=set)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: float
    delivery_fee: int
    logistics_fee: int
    packaging_fee: int
    grinding_fee: int
    coupon_discount: int
    subscription_discount: int

    @property
    def total(self) -> int:
        total = (
            self.subtotal
            + self.delivery_fee
            + self.logistics_fee
            + self.packaging_fee
            + self.grinding_fee
            - self.coupon_discount
            - self.subscription_discount
        )
        return max(0, round(total))


def delivery_fee(delivery_info: DeliveryInfo, pickup_points: Iterable[PickupPoint] = ()) -> int:
    if delivery_info.type == "pickup":
        point = next((p for p in pickup_points if p.id == delivery_info.pickup_point_id), None)
        return point.fee if point else 0
    return HOME_DELIVERY_FEE


def calculate_totals(
    items: List[CartItem],
    form: CheckoutForm,
    pickup_points: Iterable[PickupPoint] = (),
) -> OrderTotals:
    subtotal = sum(item.line_total for item in items)
    logistics_items = [
        LogisticsItem.from_cart_item(item, needs_grinding=item.product_id in form.grinding_product_ids)
        for item in items
    ]
    return OrderTotals(
        subtotal=subtotal,
        delivery_fee=delivery_fee(form.delivery_info, pickup_points),
        logistics_fee=calculate_logistics(logistics_items),
        packaging_fee=calculate_packaging_fee(form.packaging_type),
        grinding_fee=calculate_grinding_fee(logistics_items),
        coupon_discount=form.coupon.discount if form.coupon and form.coupon.applied else 0,
        subscription_discount=subscription_discount(form.subscription, subtotal),
    )


class CheckoutHandoff:
    """Готовит pending_order и параметры страницы оплаты."""

    def __init__(
        self,
        storage: LocalStorage,
        client: Optional[QuickMarketAPIClient] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._storage = storage
        self._client = client
        self._notifier = notifier or Notifier()

    def validate(self, items: List[CartItem], form: CheckoutForm) -> None:
        if not items:
            raise CheckoutError("Корзина пуста")

        checks = [
            (
                not form.schedule.date or not form.schedule.time_slot,
                "Delivery Schedule Required",
                "Please select a delivery date and time slot.",
            ),
            (
                form.delivery_info.type == "pickup" and not form.delivery_info.pickup_point_id,
                "Pickup Point Required",
                "Please select a pickup point.",
            ),
            (
                form.delivery_info.type == "home" and not form.delivery_info.home_address,
                "Delivery Address Required",
                "Please provide a delivery address.",
            ),
        ]
        for failed, title, description in checks:
            if failed:
                self._notifier.error(title, description)
                raise CheckoutError(description)

    async def start(
        self,
        items: List[CartItem],
        form: CheckoutForm,
        *,
        pickup_points: Iterable[PickupPoint] = (),
        order_id: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> PaymentRequest:
        """
        Начать оплату.

        Args:
            items: Позиции корзины (не пустой список)
            form: Доставка, расписание, контакты, купон и подписка
            pickup_points: Пункты самовывоза для расчёта стоимости доставки
            order_id: Готовый id заказа; если не задан, заказ создаётся через API
            reference: Готовый reference платежа; если не задан, генерируется

        Returns:
            Параметры для страницы оплаты
        """
        self.validate(items, form)
        totals = calculate_totals(items, form, pickup_points)

        pending = PendingOrder(
            items=[CartItem.from_dict(item.to_dict()) for item in items],
            delivery_info=form.delivery_info,
            total_amount=totals.total,
            contact_info=form.contact_info,
            delivery_schedule=form.schedule,
            subscription=form.subscription if form.subscription and form.subscription.enabled else None,
            coupon=form.coupon if form.coupon and form.coupon.applied else None,
        )

        if order_id is None:
            order_id = await self._create_remote_order(pending)

        pending.order_id = order_id
        pending.reference = reference or generate_reference(order_id)
        await self._storage.set_json(PENDING_ORDER_KEY, pending.to_dict())
        logger.info("Заказ %s передан на оплату, сумма %s", order_id, totals.total)

        self._notifier.notify(
            "Order Created Successfully!",
            f"Redirecting to payment for order #{order_id}",
        )
        return PaymentRequest(order_id=order_id, amount=totals.total, reference=pending.reference)

    async def _create_remote_order(self, pending: PendingOrder) -> str:
        if self._client is None:
            raise CheckoutError("Не задан ни order_id, ни клиент API для создания заказа")
        try:
            data = await self._client.create_order(pending.to_dict())
        except QuickMarketAPIError as exc:
            logger.error("Ошибка создания заказа: %s", exc)
            self._notifier.error("Order Failed", "Failed to create your order. Please try again.")
            raise CheckoutError(str(exc)) from exc
        return str(data["id"])
