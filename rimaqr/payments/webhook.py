"""Gestionnaire de confirmation de paiement (serveur de confiance, service-role).
- Seul ce module passe une commande à l'état payé; le tunnel ne le fait jamais.
- La commande est retrouvée par gateway_correlation_id (persisté avant la redirection),
  même si l'application a été fermée pendant le paiement.
- Un nouveau jeton remplace la corrélation: le paiement d'une session plus ancienne
  retrouve la commande par metadata.purchase_id / client_reference_id.
"""
from typing import Any, Dict, Optional
import logging

from rimaqr.orders import repository as orders_repo
from . import stripe_client

logger = logging.getLogger(__name__)

PAID_UPDATE = {"status": "completed", "payment_status": "paid"}
FAILED_UPDATE = {"payment_status": "failed"}

COMPLETED_EVENTS = ("checkout.session.completed", "checkout.session.async_payment_succeeded")
FAILED_EVENTS = ("checkout.session.expired", "checkout.session.async_payment_failed")


def session_purchase_id(session: Dict[str, Any]) -> Optional[str]:
    """Identifiant de commande porté par la session (métadonnées puis client_reference_id)."""
    metadata = session.get("metadata") or {}
    return metadata.get("purchase_id") or session.get("client_reference_id") or None


def mark_paid(correlation_id: str, purchase_id: Optional[str] = None) -> int:
    rows = orders_repo.update_purchase_by_correlation(correlation_id, PAID_UPDATE)
    if not rows and purchase_id:
        # session remplacée par un jeton plus récent: la commande est quand même payée
        data = dict(PAID_UPDATE, gateway_correlation_id=correlation_id)
        rows = orders_repo.update_purchase_as_service(purchase_id, data)
        logger.warning(
            "payments.webhook mark_paid superseded session correlation_id=%s purchase_id=%s updated=%s",
            correlation_id, purchase_id, len(rows),
        )
        return len(rows)
    logger.info("payments.webhook mark_paid correlation_id=%s updated=%s", correlation_id, len(rows))
    return len(rows)


def mark_failed(correlation_id: str) -> int:
    """Pas de repli par purchase_id: l'expiration d'une ancienne session ne touche pas la tentative en cours."""
    rows = orders_repo.update_purchase_by_correlation(correlation_id, FAILED_UPDATE)
    logger.info("payments.webhook mark_failed correlation_id=%s updated=%s", correlation_id, len(rows))
    return len(rows)


def handle_stripe_event(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Traite un événement Stripe déjà vérifié.
    - checkout.session.completed: payé seulement si payment_status == 'paid'
      (les paiements asynchrones arrivent par async_payment_succeeded).
    - expired / async_payment_failed: payment_status = failed.
    - Autres types: {"status": "ignored"}.
    """
    event_type = (event or {}).get("type")
    session = ((event or {}).get("data") or {}).get("object") or {}
    session_id = session.get("id")
    if not session_id:
        return {"status": "ignored"}

    if event_type in COMPLETED_EVENTS:
        if event_type == "checkout.session.completed" and session.get("payment_status") != "paid":
            return {"status": "pending"}
        return {"status": "ok", "updated": mark_paid(session_id, session_purchase_id(session))}
    if event_type in FAILED_EVENTS:
        return {"status": "ok", "updated": mark_failed(session_id)}
    return {"status": "ignored"}


def confirm_stripe_session(session_id: str) -> Dict[str, Any]:
    """Alternative sans webhook: relit la session chez Stripe et confirme si payée."""
    session = stripe_client.get_session(session_id) or {}
    if session.get("payment_status") != "paid":
        return {"status": "pending"}
    return {"status": "ok", "updated": mark_paid(session_id, session_purchase_id(session))}
