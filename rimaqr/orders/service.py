"""Couche service de l'user story Commandes (tunnel sans état côté HTTP).
Chaque appel reconstruit un CheckoutPipeline, le resynchronise depuis la base (resume)
puis applique une seule transition.
"""
from typing import Any, Dict, List, Optional
import logging

from rimaqr.events import repository as events_repo
from rimaqr.orders import repository as orders_repo
from rimaqr.orders.pipeline import CheckoutPipeline
from rimaqr.payments.gateway import PaymentGateway

logger = logging.getLogger(__name__)


def new_pipeline(user_id: str, user_token: Optional[str] = None, gateway: Optional[PaymentGateway] = None) -> CheckoutPipeline:
    return CheckoutPipeline(user_id, user_token=user_token, gateway=gateway)


def list_orders(user_id: str, user_token: Optional[str] = None) -> List[dict]:
    """Historique des commandes de l'événement courant ([] sans événement)."""
    event = events_repo.fetch_latest_event(user_id, user_token=user_token)
    if not event:
        return []
    return orders_repo.list_purchases(event["id"], user_token=user_token)


def current_checkout(user_id: str, user_token: Optional[str] = None) -> Dict[str, Any]:
    """Reprise du tunnel: étape, commande la plus récente et ses lignes."""
    return new_pipeline(user_id, user_token).resume().to_dict()


def place_order(
    user_id: str,
    package_id: Optional[str],
    items: List[Dict[str, Any]],
    user_token: Optional[str] = None,
) -> Dict[str, Any]:
    pipeline = new_pipeline(user_id, user_token).start()
    pipeline.choose_package(package_id)
    pipeline.choose_products(items)
    pipeline.create_order()
    return pipeline.to_dict()


def capture_address(user_id: str, fields: Dict[str, Any], user_token: Optional[str] = None) -> Dict[str, Any]:
    pipeline = new_pipeline(user_id, user_token).resume()
    pipeline.capture_address(fields)
    return pipeline.to_dict()


def issue_payment_token(
    user_id: str,
    buyer_email: str,
    buyer_ip: str,
    user_token: Optional[str] = None,
) -> Dict[str, Any]:
    """Nouveau jeton à chaque appel, puis passage à la page hébergée."""
    pipeline = new_pipeline(user_id, user_token).resume()
    issued = pipeline.issue_payment_token(buyer_email, buyer_ip)
    pipeline.hand_off()
    return {**pipeline.to_dict(), "token": issued["token"], "correlation_id": issued["correlation_id"]}


def observe_navigation(user_id: str, url: str, user_token: Optional[str] = None) -> Dict[str, Any]:
    """
    Transmet une URL observée dans la page de paiement.
    Retour: {"branch": "success"|"failure"|None, "step", "provisional", "entitlement"}
    """
    pipeline = new_pipeline(user_id, user_token).resume()
    result = pipeline.observe_navigation(url)
    if result is None:
        return {"branch": None, "step": pipeline.step.value, "provisional": False, "entitlement": None}
    entitlement = result.get("entitlement")
    return {
        "branch": pipeline.gateway.classify_navigation(url),
        "step": result["step"],
        "provisional": result["provisional"],
        "entitlement": entitlement.to_dict() if entitlement is not None else None,
    }


def cancel_current(user_id: str, user_token: Optional[str] = None) -> Dict[str, Any]:
    pipeline = new_pipeline(user_id, user_token).resume()
    entitlement = pipeline.cancel()
    return {"step": pipeline.step.value, "entitlement": entitlement.to_dict()}
