#!/usr/bin/env python3
"""Следить за доставкой заказа из терминала (опрос раз в 30 секунд)."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from quickmarket import QuickMarketAPIClient, QuickMarketAPIError, TrackingSnapshot  # noqa: E402
from storefront import TrackingPoller  # noqa: E402
from storefront.tracking import TRACKING_INTERVAL  # noqa: E402


def print_snapshot(snapshot: TrackingSnapshot) -> None:
    print(f"\nЗаказ {snapshot.order_id}: {snapshot.status}")
    partner = snapshot.delivery_partner
    if partner:
        print(f"  Курьер: {partner.name} ({partner.vehicle_info}), тел. {partner.phone}")
    for update in snapshot.tracking_updates:
        place = f" [{update.location}]" if update.location else ""
        print(f"  - {update.timestamp} {update.status}: {update.description}{place}")


async def follow(order_id: str, interval: float, once: bool) -> int:
    try:
        client = QuickMarketAPIClient.from_env()
    except QuickMarketAPIError as exc:
        print(f"Ошибка Quick Market API: {exc}", file=sys.stderr)
        return 1

    async def on_update(snapshot: TrackingSnapshot) -> None:
        print_snapshot(snapshot)

    async with client:
        poller = TrackingPoller(client, order_id, interval=interval, on_update=on_update)
        if once:
            await poller.poll_once()
            return 0 if poller.snapshot else 1

        poller.mount()
        try:
            while True:
                await asyncio.sleep(3600)
        finally:
            await poller.unmount()


def main() -> None:
    parser = argparse.ArgumentParser(description="Отслеживание заказа Quick Market")
    parser.add_argument("order_id", help="id заказа")
    parser.add_argument("-i", "--interval", type=float, default=TRACKING_INTERVAL, help="Период опроса, секунды")
    parser.add_argument("--once", action="store_true", help="Один запрос и выход")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    load_dotenv(os.path.join(ROOT_DIR, ".env"))
    try:
        raise SystemExit(asyncio.run(follow(args.order_id, args.interval, args.once)))
    except KeyboardInterrupt:
        print("\nОстановлено.")


if __name__ == "__main__":
    main()
