#!/usr/bin/env python3
"""Проверить, что возвращает API Quick Market, и сохранить ответы в файл."""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"
OUTPUT_FILE = ROOT_DIR / "api_response_data.json"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from quickmarket import QuickMarketAPIClient, QuickMarketAPIError  # noqa: E402


async def collect(client: QuickMarketAPIClient, query: str, order_id: Optional[str]) -> dict:
    result = {
        "locations": [],
        "search_suggestions": [],
        "tracking": None,
        "errors": [],
    }

    # 1. Районы доставки
    try:
        locations = await client.list_locations()
        result["locations"] = [asdict(loc) for loc in locations]
        print(f"✅ Районов: {len(locations)}")
    except QuickMarketAPIError as e:
        result["errors"].append(f"locations: {e}")
        print(f"❌ Районы: {e}")

    # 2. Подсказки поиска
    try:
        suggestions = await client.search_suggestions(query)
        result["search_suggestions"] = [asdict(s) for s in suggestions]
        print(f"✅ Подсказок для {query!r}: {len(suggestions)}")
    except QuickMarketAPIError as e:
        result["errors"].append(f"search_suggestions: {e}")
        print(f"❌ Подсказки: {e}")

    # 3. Трекинг заказа (если передан id)
    if order_id:
        try:
            snapshot = await client.get_order_tracking(order_id)
            result["tracking"] = asdict(snapshot)
            print(f"✅ Заказ {order_id}: {snapshot.status}, событий {len(snapshot.tracking_updates)}")
        except QuickMarketAPIError as e:
            result["errors"].append(f"tracking: {e}")
            print(f"❌ Трекинг: {e}")

    return result


async def run(args: argparse.Namespace) -> int:
    try:
        client = QuickMarketAPIClient.from_env()
    except QuickMarketAPIError as exc:
        print(f"❌ Ошибка Quick Market API: {exc}", file=sys.stderr)
        return 1

    async with client:
        result = await collect(client, args.query, args.order_id)

    with open(OUTPUT_FILE, "w", encoding="utf-8") as f:
        json.dump(result, f, ensure_ascii=False, indent=2)

    print(f"\n📄 Результат сохранён в: {OUTPUT_FILE}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Снять ответы Quick Market API в JSON")
    parser.add_argument("-q", "--query", default="rice", help="Запрос для подсказок поиска")
    parser.add_argument("-o", "--order-id", help="id заказа для проверки трекинга")
    args = parser.parse_args()

    load_dotenv(os.path.join(ROOT_DIR, ".env"))
    raise SystemExit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
