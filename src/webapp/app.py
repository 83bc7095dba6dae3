"""FastAPI приложение витрины Quick Market."""

from __future__ import annotations

import logging
import sys
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, List, Optional

from fastapi import FastAPI, Form, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

# Добавляем src в путь
ROOT_DIR = Path(__file__).resolve().parents[2]
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from quickmarket import PickupPoint, QuickMarketAPIClient, QuickMarketAPIError
from storage import LocalStorage, init_db
from storage.models import (
    ContactInfo,
    DeliveryInfo,
    DeliverySchedule,
    ProductSnapshot,
    SubscriptionInfo,
)
from storefront import (
    CartStore,
    CheckoutError,
    CheckoutForm,
    CheckoutHandoff,
    InvalidQuantityError,
    Notifier,
    PaymentController,
    TrackingPoller,
)
from storefront.checkout import TIME_SLOTS, apply_coupon, calculate_totals, delivery_dates
from storefront.config import settings
from storefront.logistics import PACKAGING_FEES
from storefront.payment import load_failure, load_success
from storefront.preferences import active_locations, location_key, select_area, selected_area
from storefront.search import SearchHistory, fetch_suggestions

logger = logging.getLogger(__name__)

SESSION_COOKIE = "qm_session"

# Клиент Quick Market API и путь к хранилищу сессий
api_client: Optional[QuickMarketAPIClient] = None
db_path: str = settings.db_path


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Инициализация при запуске: хранилище и клиент API."""
    global api_client
    await init_db(db_path)
    if api_client is None:
        try:
            api_client = QuickMarketAPIClient.from_env()
        except QuickMarketAPIError as e:
            logger.error("Ошибка инициализации клиента Quick Market: %s", e)
    yield
    if api_client is not None:
        await api_client.aclose()


app = FastAPI(title="Quick Market - Storefront", lifespan=lifespan)

# Статические файлы и шаблоны
STATIC_DIR = ROOT_DIR / "static"
TEMPLATES_DIR = ROOT_DIR / "templates"

if STATIC_DIR.exists():
    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


@app.middleware("http")
async def session_cookie(request: Request, call_next):
    """Каждому браузеру своя сессия хранилища (аналог localStorage)."""
    session_id = request.cookies.get(SESSION_COOKIE)
    is_new = not session_id
    request.state.session_id = session_id or uuid.uuid4().hex
    response = await call_next(request)
    if is_new:
        response.set_cookie(SESSION_COOKIE, request.state.session_id, httponly=True, samesite="lax")
    return response


def _storage(request: Request) -> LocalStorage:
    return LocalStorage(request.state.session_id, db_path)


def _client() -> QuickMarketAPIClient:
    if api_client is None:
        raise QuickMarketAPIError("Клиент Quick Market не инициализирован")
    return api_client


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=303)


def _render(
    request: Request,
    name: str,
    ctx: dict[str, Any],
    notifier: Optional[Notifier] = None,
    status_code: int = 200,
) -> HTMLResponse:
    base = {
        "notices": notifier.drain() if notifier else [],
        "area": settings.default_area,
    }
    base.update(ctx)
    return templates.TemplateResponse(request, name, base, status_code=status_code)


@app.exception_handler(QuickMarketAPIError)
async def api_error_handler(request: Request, exc: QuickMarketAPIError):
    logger.error("Ошибка Quick Market API при обработке %s: %s", request.url.path, exc)
    return JSONResponse({"error": str(exc)}, status_code=502)


@app.get("/health")
async def health():
    return {"status": "ok", "api": api_client is not None}


@app.get("/")
async def index():
    return _redirect("/dashboard")


@app.get("/dashboard", response_class=HTMLResponse)
async def dashboard(request: Request, q: str = ""):
    storage = _storage(request)
    history = SearchHistory(storage)
    await history.load()
    if q:
        await history.record(q)

    locations = await active_locations(api_client) if api_client else []
    cart = CartStore(storage)
    await cart.load()
    return _render(request, "dashboard.html", {
        "area": await selected_area(storage, settings.default_area),
        "locations": locations,
        "history": history.entries,
        "query": q,
        "cart_weight": cart.total_weight,
    })


@app.post("/area")
async def choose_area(request: Request, area: str = Form(...)):
    await select_area(_storage(request), area)
    return _redirect("/dashboard")


# ---------------- cart ----------------

async def _render_cart(request: Request, cart: CartStore, notifier: Notifier, status_code: int = 200):
    return _render(request, "cart.html", {
        "items": cart.items,
        "subtotal": cart.subtotal,
        "total_weight": cart.total_weight,
        "item_count": cart.item_count,
    }, notifier, status_code)


@app.get("/cart", response_class=HTMLResponse)
async def cart_page(request: Request):
    notifier = Notifier()
    cart = CartStore(_storage(request), notifier)
    await cart.load()
    return await _render_cart(request, cart, notifier)


@app.post("/cart/update", response_class=HTMLResponse)
async def cart_update(request: Request, productId: str = Form(...), quantity: int = Form(...)):
    notifier = Notifier()
    cart = CartStore(_storage(request), notifier)
    await cart.load()
    await cart.set_quantity(productId, quantity)
    return await _render_cart(request, cart, notifier)


@app.post("/cart/remove", response_class=HTMLResponse)
async def cart_remove(request: Request, productId: str = Form(...)):
    notifier = Notifier()
    cart = CartStore(_storage(request), notifier)
    await cart.load()
    await cart.remove(productId)
    return await _render_cart(request, cart, notifier)


@app.post("/api/cart/items")
async def cart_add(request: Request):
    """Добавить товар со страницы товара: {"product": {...}, "quantity": N}."""
    data = await request.json()
    notifier = Notifier()
    cart = CartStore(_storage(request), notifier)
    await cart.load()
    try:
        product = ProductSnapshot.from_dict(data["product"])
        quantity = int(data.get("quantity", 1))
    except (KeyError, TypeError, ValueError) as e:
        return JSONResponse({"success": False, "error": f"Некорректный товар: {e}"}, status_code=400)

    try:
        await cart.add(product, quantity)
    except InvalidQuantityError as e:
        return JSONResponse({"success": False, "error": str(e)}, status_code=400)

    return JSONResponse({
        "success": True,
        "itemCount": cart.item_count,
        "totalWeight": cart.total_weight,
        "subtotal": cart.subtotal,
    })


# ---------------- checkout ----------------

async def _pickup_points(area: str, notifier: Notifier) -> List[PickupPoint]:
    try:
        return await _client().list_pickup_points(location_key(area))
    except QuickMarketAPIError as e:
        logger.error("Ошибка загрузки пунктов самовывоза: %s", e)
        notifier.error("Error", "Failed to load pickup points. Please try again.")
        return []


def _checkout_form(form: dict, subtotal: float) -> CheckoutForm:
    coupon = apply_coupon(form.get("coupon") or "", subtotal) if form.get("coupon") else None
    frequency = form.get("subscription") or ""
    return CheckoutForm(
        delivery_info=DeliveryInfo(
            type=form.get("deliveryType") or "home",
            pickup_point_id=form.get("pickupPointId") or None,
            home_address=form.get("homeAddress") or None,
            special_instructions=form.get("specialInstructions") or None,
        ),
        schedule=DeliverySchedule(
            date=form.get("date") or "",
            time_slot=form.get("timeSlot") or "",
            special_instructions=form.get("specialInstructions") or "",
        ),
        contact_info=ContactInfo(
            name=form.get("name") or "",
            phone=form.get("phone") or "",
            email=form.get("email") or "",
        ),
        subscription=SubscriptionInfo(enabled=True, frequency=frequency) if frequency else None,
        coupon=coupon,
        packaging_type=form.get("packagingType") or None,
        grinding_product_ids=set(form.get("grinding") or []),
    )


async def _render_checkout(request, cart, form, pickup_points, notifier, status_code=200):
    return _render(request, "checkout.html", {
        "items": cart.items,
        "form": form,
        "totals": calculate_totals(cart.items, form, pickup_points),
        "pickup_points": pickup_points,
        "delivery_dates": delivery_dates(),
        "time_slots": TIME_SLOTS,
    }, notifier, status_code)


@app.get("/checkout", response_class=HTMLResponse)
async def checkout_page(request: Request):
    storage = _storage(request)
    notifier = Notifier()
    cart = CartStore(storage, notifier)
    await cart.load()
    if cart.is_empty:
        return _redirect("/cart")

    area = await selected_area(storage, settings.default_area)
    pickup_points = await _pickup_points(area, notifier)
    form = CheckoutForm(delivery_info=DeliveryInfo(), schedule=DeliverySchedule())
    return await _render_checkout(request, cart, form, pickup_points, notifier)


@app.post("/checkout", response_class=HTMLResponse)
async def checkout_submit(request: Request):
    storage = _storage(request)
    notifier = Notifier()
    cart = CartStore(storage, notifier)
    await cart.load()
    if cart.is_empty:
        return _redirect("/cart")

    raw = await request.form()
    form_data = {key: raw.get(key) for key in raw.keys()}
    form_data["grinding"] = raw.getlist("grinding")
    form = _checkout_form(form_data, cart.subtotal)
    if form_data.get("coupon") and form.coupon is None:
        notifier.error("Invalid Coupon", "The coupon code you entered is not valid.")

    area = await selected_area(storage, settings.default_area)
    pickup_points = await _pickup_points(area, notifier) if form.delivery_info.type == "pickup" else []

    if form.packaging_type and form.packaging_type not in PACKAGING_FEES:
        logger.warning("Неизвестный тип упаковки в форме: %s", form.packaging_type)
        notifier.error("Invalid Packaging", "Please choose nylon or carton packaging.")
        form.packaging_type = None
        return await _render_checkout(request, cart, form, pickup_points, notifier, status_code=400)

    handoff = CheckoutHandoff(storage, api_client, notifier)
    try:
        payment = await handoff.start(cart.items, form, pickup_points=pickup_points)
    except CheckoutError as e:
        logger.info("Оформление не выполнено: %s", e)
        return await _render_checkout(request, cart, form, pickup_points, notifier, status_code=400)
    return _redirect(payment.payment_url())


# ---------------- payment ----------------

async def _payment_controller(request: Request, notifier: Notifier) -> PaymentController:
    storage = _storage(request)
    area = await selected_area(storage, settings.default_area)
    return PaymentController(
        storage,
        _client(),
        notifier,
        email=settings.customer_email,
        package_id=settings.package_id,
        location_id=area.lower(),
        settle_delay=settings.payment_settle_delay,
        display_delay=settings.payment_display_delay,
    )


def _render_payment(request: Request, controller: PaymentController, notifier: Notifier):
    return _render(request, "payment.html", {
        "session": controller.session,
        "status": controller.status.value,
        "query": request.url.query,
    }, notifier)


@app.get("/payment", response_class=HTMLResponse)
async def payment_page(request: Request):
    notifier = Notifier()
    controller = await _payment_controller(request, notifier)
    if not await controller.mount(request.query_params):
        return _redirect(controller.redirect_to or "/cart")
    return _render_payment(request, controller, notifier)


@app.post("/payment/pay", response_class=HTMLResponse)
async def payment_pay(request: Request):
    notifier = Notifier()
    controller = await _payment_controller(request, notifier)
    if not await controller.mount(request.query_params):
        return _redirect(controller.redirect_to or "/cart")

    await controller.pay()
    if controller.redirect_to:
        return _redirect(controller.redirect_to)
    return _render_payment(request, controller, notifier)


@app.post("/payment/retry")
async def payment_retry(request: Request):
    # Состояние оплаты не сохраняется между запросами: новая страница уже pending
    return _redirect(f"/payment?{request.url.query}")


@app.get("/payment/success", response_class=HTMLResponse)
async def payment_success(request: Request):
    notifier = Notifier()
    outcome = await load_success(request.query_params, _storage(request), notifier)
    if outcome is None:
        return _redirect("/dashboard")
    return _render(request, "payment_success.html", {"outcome": outcome}, notifier)


@app.get("/payment/failed", response_class=HTMLResponse)
async def payment_failed(request: Request):
    notifier = Notifier()
    outcome = await load_failure(request.query_params, _storage(request), notifier)
    if outcome is None:
        return _redirect("/cart")
    return _render(request, "payment_failed.html", {"outcome": outcome}, notifier)


# ---------------- tracking ----------------

@app.get("/orders/{order_id}/track", response_class=HTMLResponse)
async def order_tracking(request: Request, order_id: str):
    poller = TrackingPoller(_client(), order_id, interval=settings.tracking_interval)
    await poller.poll_once()
    return _render(request, "track.html", {
        "order_id": order_id,
        "state": poller.state,
        "tracking": poller.snapshot,
        "refresh_seconds": int(settings.tracking_interval),
    })


# ---------------- api ----------------

@app.get("/api/search-suggestions")
async def search_suggestions(q: str = ""):
    suggestions = await fetch_suggestions(_client(), q)
    return {"suggestions": [{"text": s.text, "type": s.type, "count": s.count} for s in suggestions]}


@app.get("/api/locations")
async def locations():
    rows = await active_locations(_client())
    return {
        "success": True,
        "data": [
            {"id": loc.id, "name": loc.name, "description": loc.description, "isActive": loc.is_active}
            for loc in rows
        ],
    }
