"""
Accès aux données 'events' (table events + jointure qr_codes).
- Lectures/écritures via le client utilisateur (RLS): un utilisateur n'accède qu'à ses événements.
- Aucune suppression d'événement n'est exposée.
"""
from typing import Any, Dict, Optional
import logging

import rimaqr.infra.supabase_client as supabase_client
from rimaqr.errors import DataAccessError

logger = logging.getLogger(__name__)

# module rimaqr.events.repository
def fetch_latest_event(user_id: str, user_token: Optional[str] = None) -> Optional[dict]:
    """
    Événement le plus récent de l'utilisateur, avec ses codes de partage.
    - Tri: created_at décroissant, limite 1
    - Retour: None si l'utilisateur n'a aucun événement
    - DataAccessError si la lecture échoue
    """
    try:
        res = (
            supabase_client.client_for(user_token)
            .table("events")
            .select("*, qr_codes(*)")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("events.repository.fetch_latest_event failed user_id=%s", user_id)
        raise DataAccessError("fetch_latest_event", "Événement introuvable ou inaccessible")

def create_event(data: Dict[str, Any], user_token: Optional[str] = None) -> dict:
    try:
        res = supabase_client.client_for(user_token).table("events").insert(data).execute()
        rows = res.data or []
    except Exception:
        logger.exception("events.repository.create_event failed user_id=%s", data.get("user_id"))
        raise DataAccessError("create_event")
    if not rows:
        raise DataAccessError("create_event", "Événement non créé")
    return rows[0]

def update_event(event_id: str, data: Dict[str, Any], user_token: Optional[str] = None) -> dict:
    try:
        res = (
            supabase_client.client_for(user_token)
            .table("events")
            .update(data)
            .eq("id", event_id)
            .execute()
        )
        rows = res.data or []
    except Exception:
        logger.exception("events.repository.update_event failed id=%s", event_id)
        raise DataAccessError("update_event")
    if not rows:
        # Aucune ligne: RLS ou identifiant inconnu
        raise DataAccessError("update_event", "Événement non mis à jour (permission ou identifiant)")
    return rows[0]

def insert_share_code(event_id: str, code: str, user_token: Optional[str] = None) -> dict:
    try:
        res = (
            supabase_client.client_for(user_token)
            .table("qr_codes")
            .insert({"event_id": event_id, "code": code, "is_active": True})
            .execute()
        )
        rows = res.data or []
    except Exception:
        logger.exception("events.repository.insert_share_code failed event_id=%s", event_id)
        raise DataAccessError("insert_share_code")
    if not rows:
        raise DataAccessError("insert_share_code", "Code de partage non créé")
    return rows[0]
