"""
Accès en lecture au catalogue (tables packages, product_categories, products).
- Données immuables côté moteur: aucune écriture ici.
- Les échecs de lecture sont journalisés puis convertis en DataAccessError.
"""
from typing import Any, Dict, Iterable, List, Optional
import logging

import rimaqr.infra.supabase_client as supabase_client
from rimaqr.errors import DataAccessError

logger = logging.getLogger(__name__)

# module rimaqr.catalog.repository
def list_packages() -> List[dict]:
    """Packages triés par prix croissant."""
    try:
        res = (
            supabase_client.get_supabase()
            .table("packages")
            .select("*")
            .order("price_cents", desc=False)
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("catalog.repository.list_packages failed")
        raise DataAccessError("list_packages")

def get_package(package_id: str) -> Optional[dict]:
    if not package_id:
        return None
    try:
        res = (
            supabase_client.get_supabase()
            .table("packages")
            .select("id, name, price_cents, storage_limit_bytes, features")
            .eq("id", package_id)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("catalog.repository.get_package failed id=%s", package_id)
        raise DataAccessError("get_package")

def list_categories() -> List[dict]:
    """Catégories actives, triées par sort_order."""
    try:
        res = (
            supabase_client.get_supabase()
            .table("product_categories")
            .select("*")
            .eq("is_active", True)
            .order("sort_order", desc=False)
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("catalog.repository.list_categories failed")
        raise DataAccessError("list_categories")

def list_products(category_id: Optional[str] = None) -> List[dict]:
    """Produits actifs triés par prix croissant, éventuellement filtrés par catégorie."""
    try:
        query = (
            supabase_client.get_supabase()
            .table("products")
            .select("*")
            .eq("is_active", True)
        )
        if category_id:
            query = query.eq("category_id", category_id)
        res = query.order("price_cents", desc=False).execute()
        return res.data or []
    except Exception:
        logger.exception("catalog.repository.list_products failed category_id=%s", category_id)
        raise DataAccessError("list_products")

def fetch_products_by_ids(ids: List[str]) -> List[dict]:
    if not ids:
        return []
    try:
        res = (
            supabase_client.get_supabase()
            .table("products")
            .select("*")
            .in_("id", [str(i) for i in ids])
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("catalog.repository.fetch_products_by_ids failed ids=%s", ids)
        raise DataAccessError("fetch_products_by_ids")

def get_products_map(ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """
    Retourne un dict {id: produit} à partir d'une liste d'IDs.
    """
    products = fetch_products_by_ids(list(ids))
    return {str(p.get("id")): p for p in products}
