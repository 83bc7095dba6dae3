"""Пакет интеграции с бэкендом Quick Market."""

from .api_client import (
    DeliveryPartner,
    Location,
    PaymentInit,
    PickupPoint,
    QuickMarketAPIClient,
    QuickMarketAPIError,
    SearchSuggestion,
    TrackingSnapshot,
    TrackingUpdate,
)

__all__ = [
    "DeliveryPartner",
    "Location",
    "PaymentInit",
    "PickupPoint",
    "QuickMarketAPIClient",
    "QuickMarketAPIError",
    "SearchSuggestion",
    "TrackingSnapshot",
    "TrackingUpdate",
]
