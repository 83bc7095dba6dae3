"""Клиент Quick Market API: оплата, отслеживание заказов, локации, поиск."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import quote

import httpx
from dotenv import load_dotenv


ENV_VAR_BASE_URL = "QM_API_BASE_URL"
ENV_VAR_TOKEN = "QM_API_TOKEN"
ENV_VAR_TIMEOUT = "QM_API_TIMEOUT"

load_dotenv()


class QuickMarketAPIError(Exception):
    """Базовое исключение для ошибок при обращении к Quick Market API."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class Location:
    """Район доставки."""

    id: str
    name: str
    description: str = ""
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "Location":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            description=data.get("description") or "",
            is_active=bool(data.get("isActive", True)),
        )


@dataclass(frozen=True)
class PickupPoint:
    """Пункт самовывоза."""

    id: str
    name: str
    address: str
    fee: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "PickupPoint":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            address=data.get("address") or "",
            fee=int(data.get("fee") or 0),
        )


@dataclass(frozen=True)
class SearchSuggestion:
    text: str
    type: str  # product, category, popular
    count: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> "SearchSuggestion":
        return cls(text=data["text"], type=data.get("type") or "product", count=data.get("count"))


@dataclass(frozen=True)
class PaymentInit:
    """Ответ Paystack на инициализацию платежа."""

    authorization_url: str
    access_code: str
    reference: str

    @classmethod
    def from_dict(cls, data: dict) -> "PaymentInit":
        return cls(
            authorization_url=data.get("authorization_url") or "",
            access_code=data.get("access_code") or "",
            reference=data.get("reference") or "",
        )


@dataclass(frozen=True)
class TrackingUpdate:
    id: str
    timestamp: str
    status: str
    location: str = ""
    description: str = ""
    estimated_arrival: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "TrackingUpdate":
        return cls(
            id=str(data["id"]),
            timestamp=data["timestamp"],
            status=data["status"],
            location=data.get("location") or "",
            description=data.get("description") or "",
            estimated_arrival=data.get("estimatedArrival"),
        )


@dataclass(frozen=True)
class DeliveryPartner:
    id: str
    name: str
    phone: str
    rating: float = 0.0
    vehicle_info: str = ""
    photo: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "DeliveryPartner":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            phone=data.get("phone") or "",
            rating=float(data.get("rating") or 0),
            vehicle_info=data.get("vehicleInfo") or "",
            photo=data.get("photo"),
        )


@dataclass(frozen=True)
class TrackingSnapshot:
    """Состояние доставки заказа; при каждом опросе заменяется целиком."""

    order_id: str
    status: str
    tracking_updates: List[TrackingUpdate] = field(default_factory=list)
    delivery_partner: Optional[DeliveryPartner] = None
    delivery_info: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "TrackingSnapshot":
        partner = data.get("deliveryPartner")
        return cls(
            order_id=str(data["orderId"]),
            status=data["status"],
            tracking_updates=[TrackingUpdate.from_dict(row) for row in data.get("trackingUpdates") or []],
            delivery_partner=DeliveryPartner.from_dict(partner) if partner else None,
            delivery_info=dict(data.get("deliveryInfo") or {}),
        )


class QuickMarketAPIClient:
    """Асинхронный клиент для обращения к бэкенду Quick Market."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "QuickMarketAPIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @classmethod
    def from_env(
        cls,
        *,
        env_var: str = ENV_VAR_BASE_URL,
        token_var: str = ENV_VAR_TOKEN,
        timeout_var: str = ENV_VAR_TIMEOUT,
    ) -> "QuickMarketAPIClient":
        """Создать клиента, считав адрес API из .env / переменных окружения."""

        base_url = os.getenv(env_var)
        if not base_url:
            raise QuickMarketAPIError(
                f"Не найден адрес API в переменной окружения {env_var}. "
                "Создайте файл .env и задайте QM_API_BASE_URL."
            )
        timeout = float(os.getenv(timeout_var) or 10.0)
        return cls(base_url, timeout=timeout, token=os.getenv(token_var) or None)

    async def _request(self, method: str, path: str, *, require_success: bool = True, **kwargs) -> dict:
        """Базовый метод выполнения HTTP-запроса к API."""

        url = f"{self._base_url}{path}"
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise QuickMarketAPIError(f"Ошибка сети при запросе {url}: {exc}") from exc

        if not response.is_success:
            raise QuickMarketAPIError(
                f"Ошибка ответа API {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise QuickMarketAPIError(
                f"Ответ API не является JSON: {response.text[:200]}",
                status_code=response.status_code,
            ) from exc
        if not isinstance(payload, dict):
            raise QuickMarketAPIError(f"Неожиданный формат ответа API: {response.text[:200]}")

        if require_success and not payload.get("success", False):
            raise QuickMarketAPIError(payload.get("error") or "Неизвестная ошибка API")

        return payload

    async def init_payment(
        self,
        *,
        email: str,
        amount: int,  # в кобо
        package_id: str,
        location_id: str,
        reference: str,
    ) -> PaymentInit:
        """Инициализировать платёж Paystack."""

        payload = await self._request(
            "POST",
            "/api/payments/paystack/init",
            json={
                "email": email,
                "amount": amount,
                "packageId": package_id,
                "locationId": location_id,
                "reference": reference,
            },
        )
        return PaymentInit.from_dict(payload.get("data") or {})

    async def verify_payment(self, reference: str, order_id: str) -> dict:
        """Проверить платёж. Возвращает ответ целиком: success и data (status, message)."""

        payload = await self._request(
            "POST",
            "/api/payments/paystack/verify",
            require_success=False,
            json={"reference": reference, "orderId": order_id},
        )
        return payload

    async def get_order_tracking(self, order_id: str) -> TrackingSnapshot:
        payload = await self._request("GET", f"/api/orders/{quote(str(order_id), safe='')}/tracking")
        return TrackingSnapshot.from_dict(payload.get("data") or {})

    async def list_locations(self) -> List[Location]:
        """Получить список районов доставки."""

        payload = await self._request("GET", "/api/locations")
        rows = payload.get("data") or []
        return [Location.from_dict(row) for row in rows]

    async def list_pickup_points(self, location_key: str) -> List[PickupPoint]:
        payload = await self._request("GET", f"/api/locations/{quote(location_key, safe='')}/pickup-points")
        rows = payload.get("data") or []
        return [PickupPoint.from_dict(row) for row in rows]

    async def search_suggestions(self, query: str) -> List[SearchSuggestion]:
        """Подсказки поиска. Этот метод API отвечает без поля success."""

        payload = await self._request(
            "GET",
            "/api/products/search-suggestions",
            require_success=False,
            params={"q": query},
        )
        rows = payload.get("suggestions") or []
        return [SearchSuggestion.from_dict(row) for row in rows]

    async def create_order(self, order_data: dict) -> dict:
        """
        Создать заказ на бэкенде.

        Args:
            order_data: Позиции, контакты, доставка, подписка, купон и итоговая сумма

        Returns:
            Поле data ответа, в нём id созданного заказа
        """
        payload = await self._request("POST", "/api/orders", json=order_data)
        data = payload.get("data") or {}
        if not data.get("id"):
            raise QuickMarketAPIError("API не вернул id созданного заказа")
        return data
