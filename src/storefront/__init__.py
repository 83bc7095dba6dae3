"""Витрина Quick Market: корзина, оформление, оплата и отслеживание заказа."""

from .cart import CartStore
from .checkout import CheckoutForm, CheckoutHandoff, PaymentRequest
from .errors import CheckoutError, InvalidQuantityError, InvalidTransitionError, StorefrontError
from .notifications import Notice, Notifier
from .payment import PaymentController, PaymentSession, PaymentStatus
from .tracking import IntervalFetcher, TrackingPoller

__all__ = [
    "CartStore",
    "CheckoutError",
    "CheckoutForm",
    "CheckoutHandoff",
    "IntervalFetcher",
    "InvalidQuantityError",
    "InvalidTransitionError",
    "Notice",
    "Notifier",
    "PaymentController",
    "PaymentRequest",
    "PaymentSession",
    "PaymentStatus",
    "StorefrontError",
    "TrackingPoller",
]
