"""Уведомления для покупателя (аналог toast на витрине)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notice:
    title: str
    description: str = ""
    variant: str = "default"  # default, destructive

    @property
    def is_error(self) -> bool:
        return self.variant == "destructive"


class Notifier:
    """Копит уведомления, пока страница или бот их не заберёт."""

    def __init__(self) -> None:
        self._notices: List[Notice] = []

    def notify(self, title: str, description: str = "") -> Notice:
        notice = Notice(title, description)
        logger.info("Уведомление: %s: %s", title, description)
        self._notices.append(notice)
        return notice

    def error(self, title: str, description: str = "") -> Notice:
        notice = Notice(title, description, variant="destructive")
        logger.warning("Ошибка для покупателя: %s: %s", title, description)
        self._notices.append(notice)
        return notice

    @property
    def notices(self) -> List[Notice]:
        return list(self._notices)

    def drain(self) -> List[Notice]:
        notices, self._notices = self._notices, []
        return notices
