#!/usr/bin/env python3
"""Скрипт для получения списка районов доставки Quick Market."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from quickmarket import QuickMarketAPIClient, QuickMarketAPIError  # noqa: E402
from storefront.preferences import location_key  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Получить районы доставки и пункты самовывоза Quick Market.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "-n",
        "--name",
        dest="area",
        help="Название района. Если передано, выводим его пункты самовывоза.",
    )
    parser.add_argument(
        "--all",
        action="store_true",
        help="Показывать и неактивные районы.",
    )
    return parser.parse_args()


async def run(args: argparse.Namespace) -> int:
    try:
        client = QuickMarketAPIClient.from_env()
    except QuickMarketAPIError as exc:
        print(f"Ошибка: {exc}", file=sys.stderr)
        return 1

    async with client:
        try:
            locations = await client.list_locations()
        except QuickMarketAPIError as exc:
            print(f"Не удалось получить список районов: {exc}", file=sys.stderr)
            return 1

        if not args.all:
            locations = [loc for loc in locations if loc.is_active]
        if not locations:
            print("Районы не найдены.")
            return 0

        if not args.area:
            for loc in locations:
                status = "active" if loc.is_active else "inactive"
                print(f"{loc.id} | {loc.name} | {status} | {loc.description}")
            return 0

        if not any(loc.name == args.area for loc in locations):
            print(f"Район с названием '{args.area}' не найден.", file=sys.stderr)
            return 1

        try:
            points = await client.list_pickup_points(location_key(args.area))
        except QuickMarketAPIError as exc:
            print(f"Не удалось получить пункты самовывоза: {exc}", file=sys.stderr)
            return 1
        for point in points:
            print(f"{point.id} | {point.name} | {point.address} | ₦{point.fee}")
    return 0


def main() -> None:
    load_dotenv()
    raise SystemExit(asyncio.run(run(parse_args())))


if __name__ == "__main__":
    main()
