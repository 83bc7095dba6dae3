import asyncio

import httpx
import pytest

from storage.models import CART_KEY, COMPLETED_ORDER_KEY, PENDING_ORDER_KEY
from storefront import Notifier, PaymentController, PaymentStatus
from storefront.errors import InvalidTransitionError
from storefront.payment import load_failure, load_success, transition

from conftest import make_item

INIT = "/api/payments/paystack/init"
VERIFY = "/api/payments/paystack/verify"

QUERY = {"orderId": "O", "amount": "5000", "reference": "R"}

PENDING = {
    "items": [make_item(quantity=2).to_dict()],
    "deliveryInfo": {"type": "home", "homeAddress": "12 Herbert Macaulay Way"},
    "totalAmount": 5000,
    "orderId": "O",
    "reference": "R",
}

INIT_OK = {
    "success": True,
    "data": {"authorization_url": "https://checkout.paystack.test/x", "access_code": "x", "reference": "R"},
}
VERIFY_OK = {"success": True, "data": {"status": "success"}}


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
async def checkout_state(storage):
    await storage.set_json(CART_KEY, PENDING["items"])
    await storage.set_json(PENDING_ORDER_KEY, PENDING)
    return storage


@pytest.fixture
def controller(checkout_state, client, notifier):
    return PaymentController(
        checkout_state, client, notifier, email="ada@example.com", settle_delay=0, display_delay=0
    )


@pytest.mark.parametrize(
    "current, target",
    [
        (PaymentStatus.PENDING, PaymentStatus.PROCESSING),
        (PaymentStatus.PENDING, PaymentStatus.FAILED),
        (PaymentStatus.PROCESSING, PaymentStatus.SUCCESS),
        (PaymentStatus.PROCESSING, PaymentStatus.FAILED),
        (PaymentStatus.FAILED, PaymentStatus.PENDING),
    ],
)
def test_allowed_transitions(current, target):
    assert transition(current, target) is target


@pytest.mark.parametrize(
    "current, target",
    [
        (PaymentStatus.SUCCESS, PaymentStatus.PENDING),
        (PaymentStatus.SUCCESS, PaymentStatus.FAILED),
        (PaymentStatus.FAILED, PaymentStatus.PROCESSING),
        (PaymentStatus.PENDING, PaymentStatus.SUCCESS),
    ],
)
def test_forbidden_transitions(current, target):
    with pytest.raises(InvalidTransitionError):
        transition(current, target)


def test_same_state_is_noop():
    assert transition(PaymentStatus.SUCCESS, PaymentStatus.SUCCESS) is PaymentStatus.SUCCESS


@pytest.mark.parametrize(
    "query",
    [
        {"orderId": "O", "reference": "R"},
        {"orderId": "O", "amount": "", "reference": "R"},
        {"orderId": "O", "amount": "abc", "reference": "R"},
        {"amount": "5000", "reference": "R"},
        {"orderId": "O", "amount": "5000"},
    ],
)
async def test_mount_without_params_redirects_to_cart(controller, notifier, backend, query):
    assert await controller.mount(query) is False

    assert controller.redirect_to == "/cart"
    assert controller.session is None
    assert notifier.notices[-1].title == "Invalid Payment Session"
    assert await controller.pay() is PaymentStatus.PENDING
    assert backend.calls == []


async def test_mount_reads_pending_order(controller):
    assert await controller.mount(QUERY)
    session = controller.session
    assert (session.order_id, session.amount, session.reference) == ("O", 5000, "R")
    assert session.items == PENDING["items"]
    assert session.delivery_info == PENDING["deliveryInfo"]
    assert controller.status is PaymentStatus.PENDING


async def test_successful_payment(controller, checkout_state, backend, notifier):
    backend.add("POST", INIT, INIT_OK)
    backend.add("POST", VERIFY, VERIFY_OK)
    await controller.mount(QUERY)

    assert await controller.pay() is PaymentStatus.SUCCESS

    assert backend.paths() == [("POST", INIT), ("POST", VERIFY)]
    assert backend.body(0) == {
        "email": "ada@example.com",
        "amount": 500000,
        "packageId": "weekly-package",
        "locationId": "yaba",
        "reference": "R",
    }
    assert backend.body(1) == {"reference": "R", "orderId": "O"}
    assert controller.redirect_to == "/payment/success?orderId=O&reference=R&amount=5000"
    assert notifier.notices[-1].title == "Payment Successful!"

    assert await checkout_state.get_item(CART_KEY) is None
    assert await checkout_state.get_item(PENDING_ORDER_KEY) is None
    assert await checkout_state.get_json(COMPLETED_ORDER_KEY) == PENDING


async def test_verification_declined_keeps_cart(controller, checkout_state, backend):
    backend.add("POST", INIT, INIT_OK)
    backend.add("POST", VERIFY, {"success": False, "data": {"status": "failed", "message": "Declined by bank"}})
    await controller.mount(QUERY)

    assert await controller.pay() is PaymentStatus.FAILED

    assert controller.redirect_to == (
        "/payment/failed?orderId=O&reference=R&amount=5000&reason=network_error&message=Declined+by+bank"
    )
    assert len(await checkout_state.get_json(CART_KEY)) == 1
    assert await checkout_state.get_json(PENDING_ORDER_KEY) == PENDING
    assert await checkout_state.get_item(COMPLETED_ORDER_KEY) is None


async def test_verification_without_message(controller, backend):
    backend.add("POST", INIT, INIT_OK)
    backend.add("POST", VERIFY, {"success": True, "data": {"status": "abandoned"}})
    await controller.mount(QUERY)

    await controller.pay()
    assert controller.redirect_to.endswith("message=Payment+verification+failed")


async def test_verification_network_error(controller, checkout_state, backend):
    backend.add("POST", INIT, INIT_OK)
    backend.add("POST", VERIFY, httpx.ReadTimeout("timed out"))
    await controller.mount(QUERY)

    assert await controller.pay() is PaymentStatus.FAILED
    assert controller.redirect_to.endswith("reason=network_error&message=Failed+to+verify+payment+status")
    assert await checkout_state.get_item(CART_KEY) is not None


async def test_init_failure_stays_on_page(controller, backend, notifier):
    backend.add("POST", INIT, {"success": False, "error": "Invalid amount"})
    await controller.mount(QUERY)

    assert await controller.pay() is PaymentStatus.FAILED

    assert controller.redirect_to is None
    assert backend.paths() == [("POST", INIT)]
    assert notifier.notices[-1].title == "Payment Failed"


async def test_retry_after_failure(controller, backend):
    backend.add_sequence("POST", INIT, [{"success": False, "error": "Gateway down"}, INIT_OK])
    backend.add("POST", VERIFY, VERIFY_OK)
    await controller.mount(QUERY)

    assert await controller.pay() is PaymentStatus.FAILED
    with pytest.raises(InvalidTransitionError):
        await controller.pay()

    assert controller.retry() is PaymentStatus.PENDING
    assert await controller.pay() is PaymentStatus.SUCCESS


async def test_pay_while_processing_is_ignored(checkout_state, client, backend):
    backend.add("POST", INIT, INIT_OK)
    backend.add("POST", VERIFY, VERIFY_OK)
    controller = PaymentController(checkout_state, client, settle_delay=0.05, display_delay=0)
    await controller.mount(QUERY)

    first = asyncio.create_task(controller.pay())
    await asyncio.sleep(0.01)
    assert controller.status is PaymentStatus.PROCESSING
    assert await controller.pay() is PaymentStatus.PROCESSING

    assert await first is PaymentStatus.SUCCESS
    assert backend.paths().count(("POST", INIT)) == 1


async def test_success_is_terminal(controller, backend):
    backend.add("POST", INIT, INIT_OK)
    backend.add("POST", VERIFY, VERIFY_OK)
    await controller.mount(QUERY)
    await controller.pay()

    with pytest.raises(InvalidTransitionError):
        await controller.pay()
    with pytest.raises(InvalidTransitionError):
        controller.retry()
    assert controller.status is PaymentStatus.SUCCESS


async def test_unmount_during_settle_skips_verification(checkout_state, client, backend, notifier):
    backend.add("POST", INIT, INIT_OK)
    backend.add("POST", VERIFY, VERIFY_OK)
    controller = PaymentController(checkout_state, client, notifier, settle_delay=10, display_delay=0)
    await controller.mount(QUERY)

    task = asyncio.create_task(controller.pay())
    await asyncio.sleep(0.01)
    controller.unmount()

    assert await asyncio.wait_for(task, timeout=1) is PaymentStatus.PROCESSING
    assert backend.paths() == [("POST", INIT)]
    assert controller.redirect_to is None
    assert await checkout_state.get_item(CART_KEY) is not None


async def test_unmount_during_verification_still_clears_cart(controller, checkout_state, backend, notifier):
    def verify(request):
        controller.unmount()
        return httpx.Response(200, json=VERIFY_OK)

    backend.add("POST", INIT, INIT_OK)
    backend.add("POST", VERIFY, verify)
    await controller.mount(QUERY)

    assert await controller.pay() is PaymentStatus.PROCESSING

    assert controller.redirect_to is None
    assert "Payment Successful!" not in [n.title for n in notifier.notices]
    assert await checkout_state.get_item(CART_KEY) is None
    assert await checkout_state.get_item(PENDING_ORDER_KEY) is None


async def test_unmount_during_display_delay(checkout_state, client, backend):
    backend.add("POST", INIT, INIT_OK)
    backend.add("POST", VERIFY, VERIFY_OK)
    controller = PaymentController(checkout_state, client, settle_delay=0, display_delay=10)
    await controller.mount(QUERY)

    task = asyncio.create_task(controller.pay())
    while controller.status is not PaymentStatus.SUCCESS:
        await asyncio.sleep(0.01)
    controller.unmount()

    assert await asyncio.wait_for(task, timeout=1) is PaymentStatus.SUCCESS
    assert controller.redirect_to is None


@pytest.mark.known_limitation
async def test_reload_while_processing_starts_over(checkout_state, client, backend):
    backend.add("POST", INIT, INIT_OK)
    first = PaymentController(checkout_state, client, settle_delay=10)
    await first.mount(QUERY)
    task = asyncio.create_task(first.pay())
    await asyncio.sleep(0.01)
    first.unmount()
    await task

    # Новая страница не знает о начатой оплате: снова pending, повторный init возможен
    reloaded = PaymentController(checkout_state, client)
    await reloaded.mount(QUERY)
    assert reloaded.status is PaymentStatus.PENDING


async def test_load_success_reads_completed_order(checkout_state):
    await checkout_state.set_json(COMPLETED_ORDER_KEY, PENDING)

    outcome = await load_success(QUERY, checkout_state)

    assert (outcome.order_id, outcome.reference, outcome.amount) == ("O", "R", 5000)
    assert outcome.items == PENDING["items"]
    assert await checkout_state.get_item(CART_KEY) is None
    assert await checkout_state.get_item(PENDING_ORDER_KEY) is None


async def test_load_success_without_params(checkout_state, notifier):
    assert await load_success({"orderId": "O"}, checkout_state, notifier) is None
    assert notifier.notices[-1].description.endswith("Redirecting to dashboard.")
    assert await checkout_state.get_item(CART_KEY) is not None


async def test_load_failure_defaults(checkout_state):
    outcome = await load_failure(QUERY, checkout_state)

    assert outcome.reason == "network_error"
    assert outcome.message == "Payment processing failed"
    assert outcome.failure["title"] == "Network Error"
    assert outcome.items == PENDING["items"]
    assert outcome.retry_url(now_ms=42) == "/payment?orderId=O&amount=5000&reference=retry_42_O"
    assert await checkout_state.get_item(CART_KEY) is not None


async def test_load_failure_known_reason(checkout_state):
    query = dict(QUERY, reason="card_declined", message="Do not honor")
    outcome = await load_failure(query, checkout_state)
    assert outcome.failure["title"] == "Card Declined"
    assert outcome.message == "Do not honor"


async def test_load_failure_unknown_reason_falls_back(checkout_state):
    outcome = await load_failure(dict(QUERY, reason="cosmic_rays"), checkout_state)
    assert outcome.failure["title"] == "Network Error"


async def test_load_failure_without_params(checkout_state, notifier):
    assert await load_failure({}, checkout_state, notifier) is None
    assert notifier.notices[-1].description.endswith("Redirecting to cart.")
