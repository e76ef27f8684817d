# module rimaqr.events.views
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from rimaqr.events import service as events_service
from rimaqr.utils.security import require_user

router = APIRouter(prefix="/api/v1/events", tags=["Events API"])


class EventIn(BaseModel):
    event_type: Optional[str] = None
    partner1_name: Optional[str] = None
    partner2_name: Optional[str] = None
    event_date: Optional[str] = None
    venue: Optional[str] = None
    city: Optional[str] = None
    description: Optional[str] = None


@router.post("", status_code=201)
def create_event(req: EventIn, user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    """Onboarding: crée l'événement (inactif jusqu'au paiement)."""
    return {"event": events_service.create_event(user["id"], req.model_dump(), user.get("token"))}


@router.patch("/current")
def update_event(req: EventIn, user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    """Modification partielle; les champs de stockage ne sont jamais modifiables ici."""
    data = req.model_dump(exclude_unset=True)
    return {"event": events_service.update_current_event(user["id"], data, user.get("token"))}


@router.get("/current/share")
def get_share(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    return events_service.get_share_info(user["id"], user.get("token"))
