"""Обработчики команд Telegram-бота: отслеживание заказов."""

from __future__ import annotations

import logging
from html import escape
from typing import Dict, Optional, Tuple

from aiogram import Router
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.types import KeyboardButton, Message, ReplyKeyboardMarkup, WebAppInfo

from quickmarket import QuickMarketAPIClient, TrackingSnapshot
from storefront import TrackingPoller
from storefront.config import settings

logger = logging.getLogger(__name__)

router = Router()

# Клиент API задаётся при запуске бота
api_client: Optional[QuickMarketAPIClient] = None

# Активные опросы: chat_id -> poller
pollers: Dict[int, TrackingPoller] = {}

STATUS_LABELS = {
    "pending": "⏳ Pending",
    "confirmed": "✅ Confirmed",
    "processing": "📦 Processing",
    "out_for_delivery": "🚚 Out for delivery",
    "delivered": "🏠 Delivered",
    "cancelled": "❌ Cancelled",
}

FINAL_STATUSES = {"delivered", "cancelled"}


def format_tracking(snapshot: TrackingSnapshot) -> str:
    """Текст сообщения со снимком отслеживания."""
    lines = [
        f"📋 Order <b>{escape(snapshot.order_id)}</b>",
        f"Status: {STATUS_LABELS.get(snapshot.status, snapshot.status)}",
    ]
    partner = snapshot.delivery_partner
    if partner:
        lines.append(escape(f"🛵 {partner.name}, {partner.vehicle_info} · ★ {partner.rating:.1f} · {partner.phone}"))
    eta = snapshot.delivery_info.get("estimatedTime")
    if eta:
        lines.append(f"ETA: {eta}")
    if snapshot.tracking_updates:
        lines.append("")
        for update in snapshot.tracking_updates:
            place = f" ({update.location})" if update.location else ""
            lines.append(escape(f"• {update.timestamp} — {update.description or update.status}{place}"))
    return "\n".join(lines)


def _fingerprint(snapshot: TrackingSnapshot) -> Tuple[str, int]:
    return snapshot.status, len(snapshot.tracking_updates)


def _storefront_keyboard() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(
                text="🛒 Open Quick Market",
                web_app=WebAppInfo(url=settings.webapp_url)
            )]
        ],
        resize_keyboard=True,
    )


async def stop_tracking(chat_id: int) -> bool:
    poller = pollers.pop(chat_id, None)
    if poller is None:
        return False
    await poller.unmount()
    return True


@router.message(CommandStart())
async def cmd_start(message: Message) -> None:
    """Обработчик команды /start."""
    name = message.from_user.first_name if message.from_user else "there"
    await message.answer(
        f"Hi, {name}! 👋\n\n"
        "Order fresh groceries in the storefront, then send "
        "/track &lt;order id&gt; to follow your delivery here.",
        reply_markup=_storefront_keyboard(),
    )


@router.message(Command("track"))
async def cmd_track(message: Message, command: CommandObject) -> None:
    """Следить за заказом: присылать снимок при каждом изменении."""
    order_id = (command.args or "").strip()
    if not order_id:
        await message.answer("Usage: /track &lt;order id&gt;")
        return
    if api_client is None:
        await message.answer("❌ Tracking is temporarily unavailable.")
        return

    chat_id = message.chat.id
    await stop_tracking(chat_id)
    last_seen: Dict[str, Tuple[str, int]] = {}

    async def on_update(snapshot: TrackingSnapshot) -> None:
        fingerprint = _fingerprint(snapshot)
        if last_seen.get("value") == fingerprint:
            return
        last_seen["value"] = fingerprint
        await message.answer(format_tracking(snapshot))
        if snapshot.status in FINAL_STATUSES:
            logger.info("Заказ %s завершён, опрос остановлен", snapshot.order_id)
            pollers.pop(chat_id, None)
            poller.cancel()

    poller = TrackingPoller(api_client, order_id, interval=settings.tracking_interval, on_update=on_update)
    pollers[chat_id] = poller
    poller.mount()
    await message.answer(f"🔎 Tracking order {escape(order_id)}. Send /untrack to stop.")


@router.message(Command("untrack"))
async def cmd_untrack(message: Message) -> None:
    if await stop_tracking(message.chat.id):
        await message.answer("Tracking stopped.")
    else:
        await message.answer("No order is being tracked.")
