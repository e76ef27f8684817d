# module rimaqr.entitlements.views
from typing import Any, Dict
import logging

from fastapi import APIRouter, Depends

from rimaqr.entitlements import resolver
from rimaqr.entitlements.resolver import Entitlement
from rimaqr.entitlements.storage import storage_summary
from rimaqr.media.registry import registry as media_registry
from rimaqr.utils.security import require_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/entitlement", tags=["Entitlement API"])


def resolve_with_media(user: Dict[str, Any]) -> Entitlement:
    """
    Résout les droits; la galerie n'est chargée (et abonnée) que si l'accès est actif.
    Sans accès actif, ou si la galerie ouverte appartient à un autre événement,
    la souscription de l'utilisateur est fermée.
    """
    user_id = user["id"]
    token = user.get("token")

    def load_media(event_id: str) -> None:
        media_registry.activate(user_id, event_id, user_token=token)

    entitlement = resolver.resolve(user_id, user_token=token, media_loader=load_media)
    sync = media_registry.get(user_id)
    if sync is not None and (not entitlement.has_active_package or sync.event_id != str(entitlement.event_id)):
        media_registry.release(user_id)
        logger.info("entitlements.views media released user_id=%s event_id=%s", user_id, sync.event_id)
    return entitlement


@router.get("")
def get_entitlement(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    """
    Droits de l'utilisateur: événement, commande la plus récente et ses lignes,
    accès actif, quota effectif et résumé de stockage.
    Appelable à chaque retour au premier plan / pull-to-refresh / retour de paiement.
    """
    entitlement = resolve_with_media(user)
    body = entitlement.to_dict()
    if entitlement.has_event:
        body["storage"] = storage_summary(
            entitlement.event.get("storage_used_bytes"),
            entitlement.effective_storage_limit,
        )
    else:
        body["storage"] = None
    return body
