"""
Résolution des droits d'un utilisateur (accès premium + quota de stockage).

Algorithme en deux niveaux:
1. Événement le plus récent de l'utilisateur (aucun -> état « pas d'événement », tout est bloqué).
2. Commande la plus récente de l'événement:
   - payée et liée à un package -> accès actif, quota = quota du package;
   - sinon, recherche de N'IMPORTE QUELLE commande payée de l'historique (plus récente d'abord):
     un client avec un package payé garde l'accès pendant qu'une commande additionnelle est en attente.
3. La commande la plus récente (même impayée) et ses lignes sont toujours exposées:
   l'écran « paiement en attente » doit montrer ce qui reste dû.

Sans effet de bord hormis les lectures: appelable à chaque retour au premier plan,
pull-to-refresh ou retour de paiement.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from rimaqr.errors import DataAccessError
from rimaqr.events import repository as events_repo
from rimaqr.orders import repository as orders_repo

logger = logging.getLogger(__name__)

PAID_STATUSES = ("completed",)
PAID_PAYMENT_STATUSES = ("completed", "paid")


def is_paid(purchase: Optional[Dict[str, Any]]) -> bool:
    if not purchase:
        return False
    return (
        purchase.get("status") in PAID_STATUSES
        or purchase.get("payment_status") in PAID_PAYMENT_STATUSES
    )


def package_limit(purchase: Dict[str, Any]) -> Optional[int]:
    """Quota du package lié à la commande, None si la commande ne référence aucun package."""
    if not purchase.get("package_id"):
        return None
    value = (purchase.get("packages") or {}).get("storage_limit_bytes")
    return int(value) if value is not None else None


@dataclass
class Entitlement:
    event: Optional[Dict[str, Any]] = None
    purchase: Optional[Dict[str, Any]] = None
    purchase_items: List[Dict[str, Any]] = field(default_factory=list)
    has_active_package: bool = False
    effective_storage_limit: Optional[int] = None
    error: Optional[str] = None

    @property
    def has_event(self) -> bool:
        return self.event is not None

    @property
    def event_id(self) -> Optional[str]:
        return (self.event or {}).get("id")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_event": self.has_event,
            "event": self.event,
            "purchase": self.purchase,
            "purchase_items": self.purchase_items,
            "has_active_package": self.has_active_package,
            "effective_storage_limit": self.effective_storage_limit,
            "error": self.error,
        }


def _evaluate_access(latest: Dict[str, Any], event_id: str, default_limit: Optional[int], user_token: Optional[str]) -> Tuple[bool, Optional[int]]:
    latest_limit = package_limit(latest)
    if is_paid(latest) and latest_limit is not None:
        return True, latest_limit

    # Commande la plus récente non payée (ou sans package): balayage de tout l'historique payé
    paid = [p for p in orders_repo.fetch_paid_purchases(event_id, user_token=user_token) if is_paid(p)]
    if not paid:
        return False, default_limit
    limit = next((package_limit(p) for p in paid if package_limit(p) is not None), default_limit)
    return True, limit


def resolve(
    user_id: str,
    user_token: Optional[str] = None,
    media_loader: Optional[Callable[[str], Any]] = None,
) -> Entitlement:
    """
    Retourne l'état des droits de l'utilisateur.
    - DataAccessError si l'événement ne peut pas être lu (fatal pour l'écran, pas de retry auto).
    - Échec de lecture des commandes: has_active_package=False + error renseigné (pas d'exception).
    - media_loader(event_id) n'est appelé que si l'accès est actif.
    """
    event = events_repo.fetch_latest_event(user_id, user_token=user_token)
    if not event:
        return Entitlement()

    event = dict(event)
    event_id = event["id"]
    default_limit = event.get("storage_limit_bytes")
    entitlement = Entitlement(event=event, effective_storage_limit=default_limit)

    try:
        latest = orders_repo.fetch_latest_purchase(event_id, user_token=user_token)
        if latest:
            has_access, limit = _evaluate_access(latest, event_id, default_limit, user_token)
            entitlement.purchase = latest
            entitlement.purchase_items = orders_repo.fetch_purchase_items(latest["id"], user_token=user_token)
            entitlement.has_active_package = has_access
            entitlement.effective_storage_limit = limit
    except DataAccessError as e:
        logger.warning("entitlements.resolve degraded event_id=%s operation=%s", event_id, e.operation)
        entitlement.has_active_package = False
        entitlement.effective_storage_limit = default_limit
        entitlement.error = e.message
        return entitlement

    # Le quota effectif reflète le package actif (copie locale, aucune écriture)
    event["storage_limit_bytes"] = entitlement.effective_storage_limit

    if entitlement.has_active_package and media_loader is not None:
        try:
            media_loader(event_id)
        except DataAccessError as e:
            logger.warning("entitlements.resolve media load failed event_id=%s: %s", event_id, e.message)

    return entitlement
