"""Инициализация и запуск Telegram-бота отслеживания заказов."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode

# Добавляем src в путь для импортов
ROOT_DIR = Path(__file__).resolve().parents[2]
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# Загружаем переменные окружения
load_dotenv(ROOT_DIR / ".env")

from bot import handlers
from quickmarket import QuickMarketAPIClient
from storefront.config import settings

logger = logging.getLogger(__name__)


async def main() -> None:
    """Запуск бота."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    if not settings.bot_token:
        raise ValueError("TELEGRAM_BOT_TOKEN не задан в переменных окружения")

    handlers.api_client = QuickMarketAPIClient.from_env()

    # Создание бота и диспетчера
    bot = Bot(
        token=settings.bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML)
    )
    dp = Dispatcher()
    dp.include_router(handlers.router)

    # Запуск polling
    logger.info("Бот запущен...")
    try:
        await dp.start_polling(bot)
    finally:
        for chat_id in list(handlers.pollers):
            await handlers.stop_tracking(chat_id)
        await handlers.api_client.aclose()


if __name__ == "__main__":
    asyncio.run(main())
