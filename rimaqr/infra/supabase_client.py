"""
Clients Supabase.
- anon partagé: validation des jetons (auth.get_user) et lectures publiques du catalogue.
- service-role partagé (bypass RLS): réservé au webhook de paiement de confiance.
- client utilisateur, un par requête: le JWT de l'utilisateur est appliqué à PostgREST
  pour que la RLS limite chaque accès à son propre événement (les appels Functions reçoivent l'en-tête explicitement).
"""
from typing import Dict, Optional

from supabase import Client, create_client

from rimaqr.config import SUPABASE_ANON, SUPABASE_SERVICE_KEY, SUPABASE_URL

_shared: Dict[str, Client] = {}


def _shared_client(role: str, key: str) -> Client:
    client = _shared.get(role)
    if client is None:
        if not SUPABASE_URL or not key:
            raise RuntimeError(f"Configuration Supabase incomplète (client {role})")
        client = _shared[role] = create_client(SUPABASE_URL, key)
    return client


def get_supabase() -> Client:
    return _shared_client("anon", SUPABASE_ANON)


def get_service_supabase() -> Client:
    return _shared_client("service", SUPABASE_SERVICE_KEY)


def get_user_supabase(user_token: str) -> Client:
    if not user_token:
        raise ValueError("user_token is required")
    client = create_client(SUPABASE_URL, SUPABASE_ANON)
    client.postgrest.auth(user_token)
    return client


def client_for(user_token: Optional[str] = None) -> Client:
    """Client utilisateur si un jeton est fourni, sinon le client anon partagé."""
    return get_user_supabase(user_token) if user_token else get_supabase()
