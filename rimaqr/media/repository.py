"""
Accès aux données 'media' (table media + stockage Supabase Storage).
- Lectures/suppressions via client RLS de l'utilisateur propriétaire de l'événement.
- URL publique dérivée du chemin de stockage (bucket MEDIA_BUCKET, un dossier par événement).
"""
from typing import Any, Dict, List, Optional
import logging

import rimaqr.infra.supabase_client as supabase_client
from rimaqr.config import MEDIA_BUCKET
from rimaqr.errors import DataAccessError

logger = logging.getLogger(__name__)

MEDIA_TYPES = ("photo", "video", "audio", "note")

# module rimaqr.media.repository
def fetch_media(event_id: str, media_type: Optional[str] = None, user_token: Optional[str] = None) -> List[dict]:
    """Médias de l'événement, les plus récents d'abord (filtre de type optionnel, appliqué côté serveur)."""
    try:
        query = (
            supabase_client.client_for(user_token)
            .table("media")
            .select("*")
            .eq("event_id", event_id)
        )
        if media_type:
            query = query.eq("type", media_type)
        res = query.order("created_at", desc=True).execute()
        return res.data or []
    except Exception:
        logger.exception("media.repository.fetch_media failed event_id=%s type=%s", event_id, media_type)
        raise DataAccessError("fetch_media", "Médias indisponibles")

def get_media(media_id: str, user_token: Optional[str] = None) -> Optional[dict]:
    try:
        res = (
            supabase_client.client_for(user_token)
            .table("media")
            .select("*")
            .eq("id", media_id)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("media.repository.get_media failed id=%s", media_id)
        raise DataAccessError("get_media")

def public_url(storage_path: Optional[str]) -> Optional[str]:
    """URL publique d'un objet stocké (None pour les notes sans fichier)."""
    if not storage_path:
        return None
    url = supabase_client.get_supabase().storage.from_(MEDIA_BUCKET).get_public_url(storage_path)
    return url.rstrip("?") if isinstance(url, str) else url

def remove_file(storage_path: str, user_token: Optional[str] = None) -> None:
    try:
        supabase_client.client_for(user_token).storage.from_(MEDIA_BUCKET).remove([storage_path])
    except Exception:
        logger.exception("media.repository.remove_file failed path=%s", storage_path)
        raise DataAccessError("remove_file", "Fichier non supprimé")

def delete_media_record(media_id: str, user_token: Optional[str] = None) -> None:
    try:
        supabase_client.client_for(user_token).table("media").delete().eq("id", media_id).execute()
    except Exception:
        logger.exception("media.repository.delete_media_record failed id=%s", media_id)
        raise DataAccessError("delete_media_record", "Média non supprimé")
