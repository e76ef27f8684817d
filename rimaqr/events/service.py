"""Couche service des événements (mariage / fiançailles).
Rôles:
- Créer l'événement à l'onboarding (inactif jusqu'au paiement) et l'éditer ensuite.
- Garantir un code de partage unique par événement et produire le lien invité + QR code.
Les champs de stockage ne sont jamais modifiables par ces opérations.
"""
from typing import Any, Dict, Optional
import logging
import secrets

from rimaqr.config import WEB_GUEST_URL
from rimaqr.errors import ValidationError
from rimaqr.events import repository
from rimaqr.utils.qrcode_utils import generate_qr_code

logger = logging.getLogger(__name__)

EVENT_TYPES = ("wedding", "engagement")
EDITABLE_FIELDS = ("event_type", "partner1_name", "partner2_name", "event_date", "venue", "city", "description")
OPTIONAL_TEXT_FIELDS = ("venue", "city", "description")


def _clean_event_data(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Valide et normalise les champs éditables.
    - event_type dans {wedding, engagement}
    - noms des partenaires: au moins 2 caractères
    - champs texte optionnels vides -> None
    """
    cleaned: Dict[str, Any] = {}
    for field in EDITABLE_FIELDS:
        if field not in data:
            if not partial and field in ("event_type", "partner1_name", "partner2_name"):
                raise ValidationError(field, "Champ obligatoire")
            continue
        cleaned[field] = data[field]

    if "event_type" in cleaned and cleaned["event_type"] not in EVENT_TYPES:
        raise ValidationError("event_type", "Type d'événement invalide (wedding ou engagement)")
    for field in ("partner1_name", "partner2_name"):
        if field in cleaned:
            name = (cleaned[field] or "").strip()
            if len(name) < 2:
                raise ValidationError(field, "Le nom doit contenir au moins 2 caractères")
            cleaned[field] = name
    for field in OPTIONAL_TEXT_FIELDS:
        if field in cleaned:
            cleaned[field] = (cleaned[field] or "").strip() or None
    if "event_date" in cleaned and cleaned["event_date"] is not None:
        cleaned["event_date"] = str(cleaned["event_date"])
    return cleaned


def create_event(user_id: str, data: Dict[str, Any], user_token: Optional[str] = None) -> dict:
    payload = _clean_event_data(data)
    payload["user_id"] = user_id
    payload["is_active"] = False
    event = repository.create_event(payload, user_token=user_token)
    logger.info("events.create_event id=%s user_id=%s", event.get("id"), user_id)
    return event


def update_current_event(user_id: str, data: Dict[str, Any], user_token: Optional[str] = None) -> dict:
    event = repository.fetch_latest_event(user_id, user_token=user_token)
    if not event:
        raise ValidationError("event_id", "Aucun événement à modifier")
    payload = _clean_event_data(data, partial=True)
    if not payload:
        return event
    return repository.update_event(event["id"], payload, user_token=user_token)


def guest_url(code: str) -> str:
    return f"{WEB_GUEST_URL}/{code}"


def ensure_share_code(event: Dict[str, Any], user_token: Optional[str] = None) -> dict:
    """Retourne le code de partage de l'événement, le crée s'il n'existe pas encore."""
    codes = event.get("qr_codes") or []
    if codes:
        return codes[0]
    code = secrets.token_urlsafe(8)
    return repository.insert_share_code(event["id"], code, user_token=user_token)


def get_share_info(user_id: str, user_token: Optional[str] = None) -> Dict[str, Any]:
    """
    Informations de partage pour l'événement courant:
    code, lien invité et QR code (data URI PNG).
    """
    event = repository.fetch_latest_event(user_id, user_token=user_token)
    if not event:
        raise ValidationError("event_id", "Aucun événement")
    share = ensure_share_code(event, user_token=user_token)
    url = guest_url(share["code"])
    return {
        "event_id": event["id"],
        "code": share["code"],
        "is_active": share.get("is_active", True),
        "guest_url": url,
        "qr_code": generate_qr_code(url),
    }
