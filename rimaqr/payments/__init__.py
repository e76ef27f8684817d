"""
Module 'payments' (feature-first): point d'entrée public.
Réunit panier passerelle, passerelles hébergées, client Stripe et webhook de confirmation.
"""

from .basket import build_basket, basket_total_cents, basket_to_line_items, cents_to_str, str_to_cents
from .stripe_client import create_session, get_session, parse_event
from .gateway import (
    NAV_FAILURE,
    NAV_SUCCESS,
    HostedTokenGateway,
    PaymentGateway,
    StripeGateway,
    TokenRequest,
    TokenResponse,
    get_gateway,
)
from .webhook import handle_stripe_event, confirm_stripe_session

__all__ = [
    # basket
    "build_basket",
    "basket_total_cents",
    "basket_to_line_items",
    "cents_to_str",
    "str_to_cents",
    # stripe
    "create_session",
    "get_session",
    "parse_event",
    # gateways
    "NAV_SUCCESS",
    "NAV_FAILURE",
    "PaymentGateway",
    "HostedTokenGateway",
    "StripeGateway",
    "TokenRequest",
    "TokenResponse",
    "get_gateway",
    # webhook
    "handle_stripe_event",
    "confirm_stripe_session",
]
