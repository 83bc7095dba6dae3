"""Постоянное key-value хранилище сессии на SQLite."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Union

import aiosqlite


DB_PATH = Path(__file__).resolve().parents[2] / "data" / "storefront.db"


class StorageDecodeError(ValueError):
    """Значение в хранилище не удалось разобрать как JSON."""

    def __init__(self, key: str, raw: str) -> None:
        super().__init__(f"Не удалось разобрать значение по ключу {key!r}")
        self.key = key
        self.raw = raw


async def init_db(db_path: Union[str, Path] = DB_PATH) -> None:
    """Инициализировать базу данных."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async with aiosqlite.connect(db_path) as db:
        # Одна строка на пару (сессия, ключ), как в localStorage браузера
        await db.execute("""
            CREATE TABLE IF NOT EXISTS storage (
                session_id TEXT NOT NULL,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (session_id, key)
            )
        """)
        await db.commit()


class LocalStorage:
    """Хранилище строк по ключу в пределах одной сессии покупателя.

    Блокировок между вкладками/процессами нет: побеждает последняя запись.
    """

    def __init__(self, session_id: str, db_path: Union[str, Path] = DB_PATH) -> None:
        self.session_id = session_id
        self.db_path = db_path

    async def get_item(self, key: str) -> Optional[str]:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT value FROM storage WHERE session_id = ? AND key = ?",
                (self.session_id, key),
            ) as cursor:
                row = await cursor.fetchone()
                return row[0] if row else None

    async def set_item(self, key: str, value: str) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """INSERT OR REPLACE INTO storage (session_id, key, value, updated_at)
                   VALUES (?, ?, ?, ?)""",
                (self.session_id, key, value, datetime.utcnow().isoformat()),
            )
            await db.commit()

    async def remove_item(self, key: str) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "DELETE FROM storage WHERE session_id = ? AND key = ?",
                (self.session_id, key),
            )
            await db.commit()

    async def keys(self) -> List[str]:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT key FROM storage WHERE session_id = ? ORDER BY key",
                (self.session_id,),
            ) as cursor:
                return [row[0] for row in await cursor.fetchall()]

    async def clear(self) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("DELETE FROM storage WHERE session_id = ?", (self.session_id,))
            await db.commit()

    async def get_json(self, key: str, default: Any = None) -> Any:
        """Прочитать JSON-значение; отсутствующий ключ или "null" дают default."""
        raw = await self.get_item(key)
        if raw is None or raw == "null":
            return default
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise StorageDecodeError(key, raw) from exc

    async def set_json(self, key: str, value: Any) -> None:
        await self.set_item(key, json.dumps(value, ensure_ascii=False))
