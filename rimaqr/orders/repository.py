"""
Accès aux données 'orders' (tables purchases + purchase_items).
- Lectures et écritures utilisateur via client RLS (user_token).
- Mise à jour « payé » réservée au service-role (webhook de confiance), jamais au tunnel.
- Toute erreur est journalisée puis convertie en DataAccessError: l'appelant n'avance
  jamais d'étape sans confirmation de l'écriture.
"""
from typing import Any, Dict, List, Optional
import logging

import rimaqr.infra.supabase_client as supabase_client
from rimaqr.errors import DataAccessError

logger = logging.getLogger(__name__)

PURCHASE_SELECT = "*, packages(name, price_cents, storage_limit_bytes)"
ITEMS_SELECT = "*, products(name)"
PAID_FILTER = "status.eq.completed,payment_status.eq.completed,payment_status.eq.paid"

# module rimaqr.orders.repository
def fetch_latest_purchase(event_id: str, user_token: Optional[str] = None) -> Optional[dict]:
    """Commande la plus récente de l'événement (jointure packages), None si aucune."""
    try:
        res = (
            supabase_client.client_for(user_token)
            .table("purchases")
            .select(PURCHASE_SELECT)
            .eq("event_id", event_id)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("orders.repository.fetch_latest_purchase failed event_id=%s", event_id)
        raise DataAccessError("fetch_latest_purchase")

def fetch_paid_purchases(event_id: str, user_token: Optional[str] = None) -> List[dict]:
    """
    Toutes les commandes « payées » de l'événement, les plus récentes d'abord.
    Payé = status completed OU payment_status dans {completed, paid}.
    """
    try:
        res = (
            supabase_client.client_for(user_token)
            .table("purchases")
            .select(PURCHASE_SELECT)
            .eq("event_id", event_id)
            .or_(PAID_FILTER)
            .order("created_at", desc=True)
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("orders.repository.fetch_paid_purchases failed event_id=%s", event_id)
        raise DataAccessError("fetch_paid_purchases")

def list_purchases(event_id: str, user_token: Optional[str] = None) -> List[dict]:
    """Historique des commandes de l'événement (plus récentes d'abord)."""
    try:
        res = (
            supabase_client.client_for(user_token)
            .table("purchases")
            .select(PURCHASE_SELECT)
            .eq("event_id", event_id)
            .order("created_at", desc=True)
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("orders.repository.list_purchases failed event_id=%s", event_id)
        raise DataAccessError("list_purchases")

def fetch_purchase(purchase_id: str, user_token: Optional[str] = None) -> Optional[dict]:
    try:
        res = (
            supabase_client.client_for(user_token)
            .table("purchases")
            .select(PURCHASE_SELECT)
            .eq("id", purchase_id)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("orders.repository.fetch_purchase failed id=%s", purchase_id)
        raise DataAccessError("fetch_purchase")

def fetch_purchase_items(purchase_id: str, user_token: Optional[str] = None) -> List[dict]:
    """Lignes de la commande avec le nom du produit (jointure products)."""
    try:
        res = (
            supabase_client.client_for(user_token)
            .table("purchase_items")
            .select(ITEMS_SELECT)
            .eq("purchase_id", purchase_id)
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("orders.repository.fetch_purchase_items failed purchase_id=%s", purchase_id)
        raise DataAccessError("fetch_purchase_items")

def insert_purchase(data: Dict[str, Any], user_token: Optional[str] = None) -> dict:
    try:
        res = supabase_client.client_for(user_token).table("purchases").insert(data).execute()
        rows = res.data or []
    except Exception:
        logger.exception("orders.repository.insert_purchase failed event_id=%s", data.get("event_id"))
        raise DataAccessError("insert_purchase", "Commande non créée")
    if not rows:
        raise DataAccessError("insert_purchase", "Commande non créée")
    return rows[0]

def insert_purchase_items(rows: List[Dict[str, Any]], user_token: Optional[str] = None) -> List[dict]:
    if not rows:
        return []
    try:
        res = supabase_client.client_for(user_token).table("purchase_items").insert(rows).execute()
        inserted = res.data or []
    except Exception:
        logger.exception("orders.repository.insert_purchase_items failed purchase_id=%s", rows[0].get("purchase_id"))
        raise DataAccessError("insert_purchase_items", "Articles de la commande non enregistrés")
    if len(inserted) != len(rows):
        raise DataAccessError("insert_purchase_items", "Articles de la commande non enregistrés")
    return inserted

def update_purchase(purchase_id: str, data: Dict[str, Any], user_token: Optional[str] = None) -> dict:
    """
    Met à jour la commande et retourne la ligne modifiée.
    - DataAccessError si aucune ligne n'est modifiée (RLS ou identifiant inconnu).
    """
    try:
        res = (
            supabase_client.client_for(user_token)
            .table("purchases")
            .update(data)
            .eq("id", purchase_id)
            .execute()
        )
        rows = res.data or []
    except Exception:
        logger.exception("orders.repository.update_purchase failed id=%s", purchase_id)
        raise DataAccessError("update_purchase", "Commande non mise à jour")
    if not rows:
        logger.error("orders.repository.update_purchase no rows updated id=%s", purchase_id)
        raise DataAccessError("update_purchase", "Commande non mise à jour (permission ou identifiant)")
    return rows[0]

def mark_attempt_failed(purchase_id: str, user_token: Optional[str] = None) -> List[dict]:
    """
    Marque la tentative de paiement échouée, uniquement si la commande est encore pending/pending.
    Une commande déjà confirmée par le webhook n'est jamais rétrogradée (0 ligne retournée).
    """
    try:
        res = (
            supabase_client.client_for(user_token)
            .table("purchases")
            .update({"payment_status": "failed"})
            .eq("id", purchase_id)
            .eq("status", "pending")
            .eq("payment_status", "pending")
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("orders.repository.mark_attempt_failed failed id=%s", purchase_id)
        raise DataAccessError("mark_attempt_failed", "Échec de paiement non enregistré")


def delete_purchase(purchase_id: str, user_token: Optional[str] = None) -> None:
    """Supprime les lignes puis la commande (la cascade DB couvre aussi les lignes)."""
    client = supabase_client.client_for(user_token)
    try:
        client.table("purchase_items").delete().eq("purchase_id", purchase_id).execute()
        client.table("purchases").delete().eq("id", purchase_id).execute()
    except Exception:
        logger.exception("orders.repository.delete_purchase failed id=%s", purchase_id)
        raise DataAccessError("delete_purchase", "Commande non supprimée")

def update_purchase_by_correlation(correlation_id: str, data: Dict[str, Any]) -> List[dict]:
    """
    Mise à jour service-role (bypass RLS) par identifiant de corrélation passerelle.
    Réservé au webhook de paiement de confiance.
    """
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("purchases")
            .update(data)
            .eq("gateway_correlation_id", correlation_id)
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("orders.repository.update_purchase_by_correlation failed correlation_id=%s", correlation_id)
        raise DataAccessError("update_purchase_by_correlation")


def update_purchase_as_service(purchase_id: str, data: Dict[str, Any]) -> List[dict]:
    """
    Mise à jour service-role par identifiant de commande (métadonnées de la session Stripe).
    Sert de repli au webhook quand la corrélation a été remplacée par un jeton plus récent.
    """
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("purchases")
            .update(data)
            .eq("id", purchase_id)
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("orders.repository.update_purchase_as_service failed id=%s", purchase_id)
        raise DataAccessError("update_purchase_as_service")
