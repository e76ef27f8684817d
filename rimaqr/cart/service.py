"""
Cas d'usage 'cart': construit un panier à partir d'une requête brute.
Les prix viennent toujours du catalogue (jamais du client).
"""
from typing import Any, Dict, List, Optional

from rimaqr.catalog import repository as catalog_repo
from rimaqr.errors import ValidationError
from .aggregator import Cart


def build_cart(items: List[Dict[str, Any]]) -> Cart:
    """
    items: [{"product_id": "...", "quantity": <int optionnel>, "customization_text": "..."}]
    - Charge les produits référencés en une seule lecture.
    - ValidationError si un produit est inconnu ou inactif.
    """
    cart = Cart()
    ids = [str(it.get("product_id") or "").strip() for it in items or []]
    ids = [i for i in ids if i]
    products = catalog_repo.get_products_map(ids) if ids else {}

    for it in items or []:
        product_id = str(it.get("product_id") or "").strip()
        if not product_id:
            raise ValidationError("product_id", "Produit manquant")
        product = products.get(product_id)
        if not product or product.get("is_active") is False:
            raise ValidationError("product_id", "Produit introuvable ou indisponible")
        cart.add(product, it.get("quantity"), it.get("customization_text"))
    return cart


def quote(items: List[Dict[str, Any]], package_id: Optional[str] = None) -> Dict[str, Any]:
    """Devis: lignes, total articles, prix du package et total général (centimes)."""
    cart = build_cart(items)
    package = None
    if package_id:
        package = catalog_repo.get_package(package_id)
        if not package:
            raise ValidationError("package_id", "Package introuvable")
    package_price = int((package or {}).get("price_cents") or 0)
    items_total = cart.total()
    return {
        "lines": [line.to_dict() for line in cart.lines()],
        "items_total_cents": items_total,
        "package_price_cents": package_price,
        "total_cents": items_total + package_price,
    }
