from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Tuple, Union

import httpx
import pytest

from quickmarket import QuickMarketAPIClient
from storage import LocalStorage, init_db
from storage.models import CartItem, ProductSnapshot

BASE_URL = "https://api.quickmarket.test"

Route = Union[dict, Exception, Callable[[httpx.Request], httpx.Response]]


class FakeBackend:
    """Маршруты фейкового бэкенда для httpx.MockTransport."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Route] = {}
        self.calls: List[httpx.Request] = []

    def add(self, method: str, path: str, response: Route) -> None:
        self.routes[(method, path)] = response

    def add_sequence(self, method: str, path: str, responses: List[Route]) -> None:
        queue = list(responses)

        def respond(request: httpx.Request) -> httpx.Response:
            current = queue.pop(0) if len(queue) > 1 else queue[0]
            return self._build(current, request)

        self.routes[(method, path)] = respond

    def _build(self, route: Route, request: httpx.Request) -> httpx.Response:
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(request)
        return httpx.Response(200, json=route)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"success": False, "error": "Not found"})
        return self._build(route, request)

    def paths(self) -> List[Tuple[str, str]]:
        return [(r.method, r.url.path) for r in self.calls]

    def body(self, index: int) -> Any:
        return json.loads(self.calls[index].content)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
async def client(backend):
    api = QuickMarketAPIClient(BASE_URL, transport=httpx.MockTransport(backend.handler))
    yield api
    await api.aclose()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "storefront.db"


@pytest.fixture
async def storage(db_path) -> LocalStorage:
    await init_db(db_path)
    return LocalStorage("session-1", db_path)


def make_product(
    product_id: str = "rice-50",
    name: str = "Ofada Rice",
    price: float = 1200,
    stock: int = 50,
) -> ProductSnapshot:
    return ProductSnapshot(
        id=product_id,
        name=name,
        price_per_kg=price,
        images=[f"https://cdn.quickmarket.test/{product_id}.jpg"],
        category="Grains",
        stock_qty=stock,
    )


def make_item(quantity: int = 1, **kwargs) -> CartItem:
    product = make_product(**kwargs)
    return CartItem(product_id=product.id, quantity=quantity, product=product)
