"""
Authentification des requêtes API.
Le jeton d'accès Supabase (en-tête Bearer de l'application mobile, ou cookie sb_access pour un client web)
est validé via auth.get_user puis conservé dans l'utilisateur courant: les repositories le réutilisent
pour que chaque lecture/écriture passe par la RLS de l'utilisateur.
"""
from typing import Any, Dict, Optional
import logging

from fastapi import Depends, HTTPException, Request

import rimaqr.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

COOKIE_NAME = "sb_access"
SESSION_EXPIRED = "Session expirée, veuillez vous reconnecter"


def request_token(request: Request) -> Optional[str]:
    """Jeton d'accès de la requête: Bearer en priorité, sinon cookie."""
    scheme, _, value = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return request.cookies.get(COOKIE_NAME) or None


def get_user_from_token(access_token: str) -> Dict[str, Any]:
    """Utilisateur Supabase normalisé {id, email, token}."""
    res = supabase_client.get_supabase().auth.get_user(access_token)
    user = getattr(res, "user", None)
    if isinstance(user, dict):
        user_id, email = user.get("id"), user.get("email")
    else:
        user_id, email = getattr(user, "id", None), getattr(user, "email", None)
    return {"id": user_id, "email": email, "token": access_token}


def get_current_user(request: Request) -> Dict[str, Any]:
    token = request_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Non authentifié")
    try:
        user = get_user_from_token(token)
    except Exception as e:
        logger.warning("security.get_current_user token rejected: %s", e)
        raise HTTPException(status_code=401, detail=SESSION_EXPIRED)
    if not user.get("id"):
        raise HTTPException(status_code=401, detail=SESSION_EXPIRED)
    return user


def require_user(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return user
