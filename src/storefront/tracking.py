"""Отслеживание заказа периодическим опросом API."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from quickmarket import QuickMarketAPIClient, QuickMarketAPIError, TrackingSnapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRACKING_INTERVAL = 30.0


class IntervalFetcher(Generic[T]):
    """Вызывает fetch сразу и затем каждые interval секунд, пока не остановлен.

    Ошибки fetch передаются в on_error, ошибки on_result логируются; опрос
    в обоих случаях продолжается. Чтобы перейти
    на push-подписку, достаточно заменить этот класс: контроллер видит только
    колбэки on_result/on_error.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[T]],
        interval: float,
        on_result: Callable[[T], Awaitable[None]],
        on_error: Callable[[Exception], Awaitable[None]],
    ) -> None:
        self._fetch = fetch
        self._interval = interval
        self._on_result = on_result
        self._on_error = on_error
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    def cancel(self) -> None:
        """Отменить опрос без ожидания; можно вызывать из on_result."""
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        if task is asyncio.current_task():
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def tick(self) -> None:
        """Один опрос вне расписания."""
        try:
            result = await self._fetch()
        except Exception as exc:  # noqa: BLE001
            await self._on_error(exc)
            return
        try:
            await self._on_result(result)
        except Exception:  # noqa: BLE001
            # Сбой обработчика не должен останавливать опрос
            logger.exception("Ошибка обработки результата опроса")

    async def _run(self) -> None:
        while True:
            await self.tick()
            await asyncio.sleep(self._interval)


class TrackingPoller:
    """Контроллер страницы отслеживания заказа: loading, loaded или error."""

    def __init__(
        self,
        client: QuickMarketAPIClient,
        order_id: str,
        *,
        interval: float = TRACKING_INTERVAL,
        on_update: Optional[Callable[[TrackingSnapshot], Awaitable[None]]] = None,
    ) -> None:
        self._client = client
        self.order_id = order_id
        self._on_update = on_update
        self._fetcher: IntervalFetcher[TrackingSnapshot] = IntervalFetcher(
            self._fetch, interval, self._handle_snapshot, self._handle_error
        )

        self.state = "loading"
        self.snapshot: Optional[TrackingSnapshot] = None
        self.last_error: Optional[str] = None

    @property
    def running(self) -> bool:
        return self._fetcher.running

    async def _fetch(self) -> TrackingSnapshot:
        return await self._client.get_order_tracking(self.order_id)

    async def _handle_snapshot(self, snapshot: TrackingSnapshot) -> None:
        self.snapshot = snapshot
        self.state = "loaded"
        self.last_error = None
        if self._on_update is not None:
            await self._on_update(snapshot)

    async def _handle_error(self, exc: Exception) -> None:
        # Предыдущий снимок остаётся на экране
        logger.error(
            "Ошибка получения трекинга заказа %s: %s",
            self.order_id,
            exc,
            exc_info=None if isinstance(exc, QuickMarketAPIError) else exc,
        )
        self.last_error = str(exc)
        if self.snapshot is None:
            self.state = "error"

    def mount(self) -> None:
        self._fetcher.start()

    async def unmount(self) -> None:
        await self._fetcher.stop()

    def cancel(self) -> None:
        self._fetcher.cancel()

    async def poll_once(self) -> Optional[TrackingSnapshot]:
        await self._fetcher.tick()
        return self.snapshot

    async def refresh(self) -> Optional[TrackingSnapshot]:
        """Полная перезагрузка страницы: снимок сбрасывается и запрашивается заново."""
        self.snapshot = None
        self.state = "loading"
        self.last_error = None
        return await self.poll_once()
