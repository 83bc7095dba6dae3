"""Подсказки поиска и история запросов."""

from __future__ import annotations

import logging
import time
from typing import List

from quickmarket import QuickMarketAPIClient, QuickMarketAPIError, SearchSuggestion
from storage import LocalStorage, StorageDecodeError
from storage.models import SEARCH_HISTORY_KEY, SearchHistoryEntry

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 5
MIN_QUERY_LENGTH = 2


async def fetch_suggestions(client: QuickMarketAPIClient, query: str) -> List[SearchSuggestion]:
    if len(query) < MIN_QUERY_LENGTH:
        return []
    try:
        return await client.search_suggestions(query)
    except QuickMarketAPIError as exc:
        logger.error("Ошибка получения подсказок для %r: %s", query, exc)
        return []


class SearchHistory:
    """Последние поисковые запросы, новые сверху."""

    def __init__(self, storage: LocalStorage) -> None:
        self._storage = storage
        self.entries: List[SearchHistoryEntry] = []

    async def load(self) -> List[SearchHistoryEntry]:
        try:
            rows = await self._storage.get_json(SEARCH_HISTORY_KEY, default=[])
            self.entries = [SearchHistoryEntry.from_dict(row) for row in rows]
        except (StorageDecodeError, KeyError, TypeError, ValueError) as exc:
            logger.error("История поиска повреждена: %s", exc)
            self.entries = []
        return list(self.entries)

    async def _save(self) -> None:
        await self._storage.set_json(SEARCH_HISTORY_KEY, [entry.to_dict() for entry in self.entries])

    async def record(self, query: str, result_count: int = 0) -> List[SearchHistoryEntry]:
        if not query.strip():
            return list(self.entries)
        entry = SearchHistoryEntry(query=query, timestamp=int(time.time() * 1000), result_count=result_count)
        self.entries = [entry, *(e for e in self.entries if e.query != query)][:HISTORY_LIMIT]
        await self._save()
        return list(self.entries)

    async def remove(self, index: int) -> List[SearchHistoryEntry]:
        self.entries = [e for i, e in enumerate(self.entries) if i != index]
        await self._save()
        return list(self.entries)

    async def clear(self) -> None:
        self.entries = []
        await self._storage.remove_item(SEARCH_HISTORY_KEY)
