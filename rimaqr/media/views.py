# module rimaqr.media.views

"""Endpoints de la galerie d'un événement.
- GET /api/v1/media?type=&refresh=: collection synchronisée (accès actif requis).
- DELETE /api/v1/media/{id}: suppression fichier + enregistrement (accès actif revérifié).
- DELETE /api/v1/media/subscription: ferme la souscription temps réel de l'utilisateur.
- POST /api/v1/media/webhook: webhook de base de données Supabase (secret partagé X-Webhook-Secret).
"""
import logging
import secrets
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from rimaqr.config import MEDIA_WEBHOOK_SECRET
from rimaqr.entitlements.views import resolve_with_media
from rimaqr.media.feed import feed, parse_webhook_payload
from rimaqr.media.registry import registry as media_registry
from rimaqr.media.synchronizer import MediaSynchronizer, normalize_type_filter
from rimaqr.utils.security import require_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/media", tags=["Media API"])


def _active_sync(user: Dict[str, Any]) -> MediaSynchronizer:
    """Synchroniseur de l'événement courant; 404 sans événement, 403 sans package actif."""
    entitlement = resolve_with_media(user)
    if not entitlement.has_event:
        raise HTTPException(status_code=404, detail="Aucun événement")
    if not entitlement.has_active_package:
        raise HTTPException(status_code=403, detail="Package requis pour accéder à la galerie")
    sync = media_registry.get(user["id"])
    if sync is None or sync.event_id != str(entitlement.event_id):
        raise HTTPException(status_code=503, detail="Galerie indisponible")
    return sync


@router.get("")
def list_media(
    type: Optional[str] = None,
    refresh: bool = False,
    user: Dict[str, Any] = Depends(require_user),
) -> Dict[str, Any]:
    sync = _active_sync(user)
    wanted = normalize_type_filter(type) if type is not None else sync.type_filter
    if wanted != sync.type_filter:
        items = sync.set_type_filter(wanted)
    elif refresh:
        items = sync.refresh()
    else:
        items = sync.items()
    return {"event_id": sync.event_id, "type": sync.type_filter or "all", "media": items}


@router.delete("/subscription")
def delete_subscription(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    return {"released": media_registry.release(user["id"])}


@router.delete("/{media_id}")
def delete_media(media_id: str, user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    sync = _active_sync(user)
    sync.delete(media_id)
    return {"status": "ok", "id": media_id}


@router.post("/webhook", include_in_schema=False)
async def media_webhook(request: Request, x_webhook_secret: Optional[str] = Header(default=None)):
    """
    Reçoit les INSERT/DELETE de la table media et les publie sur le flux en mémoire.
    - 401 si le secret partagé est absent ou invalide (ou non configuré).
    - Réponse: {"status": "ok", "delivered": <int>} ou {"status": "ignored"}.
    """
    if not MEDIA_WEBHOOK_SECRET or not x_webhook_secret or not secrets.compare_digest(x_webhook_secret, MEDIA_WEBHOOK_SECRET):
        raise HTTPException(status_code=401, detail="Invalid webhook secret")
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid webhook payload")
    change = parse_webhook_payload(payload)
    if change is None:
        return {"status": "ignored"}
    delivered = feed.publish(change)
    logger.info("media.webhook type=%s media_id=%s delivered=%s", change.type.value, change.media_id, delivered)
    return {"status": "ok", "delivered": delivered}
