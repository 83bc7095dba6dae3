"""Выбранный район доставки, тариф и список локаций."""

from __future__ import annotations

import logging
from typing import List, Optional

from quickmarket import Location, QuickMarketAPIClient, QuickMarketAPIError
from storage import LocalStorage, StorageDecodeError
from storage.models import SELECTED_AREA_KEY, SELECTED_PLAN_KEY

logger = logging.getLogger(__name__)

DEFAULT_AREA = "Yaba"


async def select_area(storage: LocalStorage, area: str) -> None:
    await storage.set_item(SELECTED_AREA_KEY, area)


async def selected_area(storage: LocalStorage, default: str = DEFAULT_AREA) -> str:
    return await storage.get_item(SELECTED_AREA_KEY) or default


def location_key(area: str) -> str:
    """Ключ района для адресов API: Victoria Island -> victoria-island."""
    return "-".join(area.lower().split())


async def select_plan(storage: LocalStorage, plan: dict) -> None:
    await storage.set_json(SELECTED_PLAN_KEY, plan)


async def selected_plan(storage: LocalStorage) -> Optional[dict]:
    try:
        plan = await storage.get_json(SELECTED_PLAN_KEY)
    except StorageDecodeError as exc:
        logger.error("Сохранённый тариф повреждён: %s", exc)
        return None
    return plan if isinstance(plan, dict) else None


async def active_locations(client: QuickMarketAPIClient) -> List[Location]:
    try:
        locations = await client.list_locations()
    except QuickMarketAPIError as exc:
        logger.error("Не удалось получить список локаций: %s", exc)
        return []
    return [location for location in locations if location.is_active]
