"""
Client Stripe Checkout (passerelle alternative au service de jeton).
La clé est appliquée au moment de l'appel: sans STRIPE_SECRET_KEY le SDK lève une erreur,
convertie en GatewayError par la passerelle.
"""
import json
from typing import Any, Dict, List, Optional

import stripe
from fastapi import Request

from rimaqr.config import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET


def _stripe():
    if STRIPE_SECRET_KEY:
        stripe.api_key = STRIPE_SECRET_KEY
    return stripe


def create_session(
    *,
    purchase_id: str,
    line_items: List[Dict[str, Any]],
    success_url: str,
    cancel_url: str,
    customer_email: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Session Checkout en mode paiement unique pour une commande.
    purchase_id est repris en client_reference_id et en metadata pour le rapprochement.
    Retour: {"id": "cs_...", "url": "https://checkout.stripe.com/...", ...}
    """
    params: Dict[str, Any] = {
        "mode": "payment",
        "payment_method_types": ["card"],
        "line_items": line_items,
        "success_url": success_url,
        "cancel_url": cancel_url,
        "client_reference_id": purchase_id,
        "metadata": {"purchase_id": purchase_id},
    }
    if customer_email:
        params["customer_email"] = customer_email
    return dict(_stripe().checkout.Session.create(**params))


def get_session(session_id: str) -> Dict[str, Any]:
    return dict(_stripe().checkout.Session.retrieve(session_id))


async def parse_event(request: Request) -> Dict[str, Any]:
    """
    Vérifie la signature (en-tête Stripe-Signature, STRIPE_WEBHOOK_SECRET) et retourne l'événement en dict.
    Lève ValueError / SignatureVerificationError si le payload n'est pas authentique.
    """
    if not STRIPE_WEBHOOK_SECRET:
        raise ValueError("STRIPE_WEBHOOK_SECRET non configuré")
    payload = await request.body()
    signature = request.headers.get("stripe-signature", "")
    _stripe().Webhook.construct_event(payload, signature, STRIPE_WEBHOOK_SECRET)
    return json.loads(payload)
