"""Модели данных, которые хранятся в сессии покупателя."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


# Ключи хранилища (совпадают с ключами localStorage витрины)
CART_KEY = "quickmarket_cart"
PENDING_ORDER_KEY = "pending_order"
COMPLETED_ORDER_KEY = "completed_order"
SELECTED_AREA_KEY = "quickmarket_selected_area"
SEARCH_HISTORY_KEY = "quickmarket-search-history"
SELECTED_PLAN_KEY = "quickmarket_selected_plan"


@dataclass
class ProductSnapshot:
    """Снимок полей товара на момент добавления в корзину."""

    id: str
    name: str
    price_per_kg: float
    images: list[str] = field(default_factory=list)
    category: str = ""
    stock_qty: int = 0
    availability_status: str = "Available"
    unit: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ProductSnapshot":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            price_per_kg=float(data["pricePerKg"]),
            images=list(data.get("images") or []),
            category=data.get("category") or "",
            stock_qty=int(data.get("stockQty") or 0),
            availability_status=data.get("availabilityStatus") or "Available",
            unit=data.get("unit"),
        )

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "pricePerKg": self.price_per_kg,
            "images": self.images,
            "category": self.category,
            "stockQty": self.stock_qty,
            "availabilityStatus": self.availability_status,
        }
        if self.unit is not None:
            data["unit"] = self.unit
        return data


@dataclass
class CartItem:
    """Элемент корзины."""

    product_id: str
    quantity: int  # килограммы
    product: ProductSnapshot

    @property
    def line_total(self) -> float:
        return self.product.price_per_kg * self.quantity

    @classmethod
    def from_dict(cls, data: dict) -> "CartItem":
        quantity = int(data["quantity"])
        if quantity <= 0:
            raise ValueError(f"Некорректное количество: {quantity}")
        return cls(
            product_id=str(data["productId"]),
            quantity=quantity,
            product=ProductSnapshot.from_dict(data["product"]),
        )

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "quantity": self.quantity,
            "product": self.product.to_dict(),
        }


@dataclass
class DeliveryInfo:
    """Способ доставки: самовывоз или до двери."""

    type: str = "home"  # pickup, home
    pickup_point_id: Optional[str] = None
    home_address: Optional[str] = None
    special_instructions: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "DeliveryInfo":
        return cls(
            type=data.get("type") or "home",
            pickup_point_id=data.get("pickupPointId"),
            home_address=data.get("homeAddress"),
            special_instructions=data.get("specialInstructions"),
        )

    def to_dict(self) -> dict:
        data = {"type": self.type}
        if self.pickup_point_id is not None:
            data["pickupPointId"] = self.pickup_point_id
        if self.home_address is not None:
            data["homeAddress"] = self.home_address
        if self.special_instructions is not None:
            data["specialInstructions"] = self.special_instructions
        return data


@dataclass
class ContactInfo:
    name: str = ""
    phone: str = ""
    email: str = ""

    def to_dict(self) -> dict:
        return {"name": self.name, "phone": self.phone, "email": self.email}


@dataclass
class DeliverySchedule:
    date: str = ""
    time_slot: str = ""
    special_instructions: str = ""

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "timeSlot": self.time_slot,
            "specialInstructions": self.special_instructions,
        }


@dataclass
class SubscriptionInfo:
    enabled: bool = False
    frequency: str = "weekly"  # weekly, biweekly, monthly
    discount: int = 0

    def to_dict(self) -> dict:
        return {"enabled": self.enabled, "frequency": self.frequency, "discount": self.discount}


@dataclass
class CouponInfo:
    code: str = ""
    discount: int = 0
    applied: bool = False

    def to_dict(self) -> dict:
        return {"code": self.code, "discount": self.discount, "applied": self.applied}


@dataclass
class PendingOrder:
    """Копия корзины и выбора доставки, сделанная при переходе к оплате."""

    items: list[CartItem]
    delivery_info: DeliveryInfo
    order_id: Optional[str] = None
    reference: Optional[str] = None
    total_amount: int = 0
    contact_info: Optional[ContactInfo] = None
    delivery_schedule: Optional[DeliverySchedule] = None
    subscription: Optional[SubscriptionInfo] = None
    coupon: Optional[CouponInfo] = None

    def to_dict(self) -> dict:
        return {
            "items": [item.to_dict() for item in self.items],
            "deliveryInfo": self.delivery_info.to_dict(),
            "contactInfo": self.contact_info.to_dict() if self.contact_info else None,
            "deliverySchedule": self.delivery_schedule.to_dict() if self.delivery_schedule else None,
            "subscription": self.subscription.to_dict() if self.subscription else None,
            "coupon": self.coupon.to_dict() if self.coupon else None,
            "totalAmount": self.total_amount,
            "orderId": self.order_id,
            "reference": self.reference,
        }


@dataclass
class SearchHistoryEntry:
    query: str
    timestamp: int  # миллисекунды
    result_count: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "SearchHistoryEntry":
        return cls(
            query=data["query"],
            timestamp=int(data.get("timestamp") or 0),
            result_count=int(data.get("resultCount") or 0),
        )

    def to_dict(self) -> dict:
        return {"query": self.query, "timestamp": self.timestamp, "resultCount": self.result_count}
