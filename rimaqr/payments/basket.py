"""
Construction du panier transmis à la passerelle (pas d'appel réseau, pas de DB).

Format passerelle: [[nom, prix_unitaire_str, quantité], ...], prix en unités ("10.00").
Les prix viennent des lignes persistées (instantané à la création de la commande);
le package est replié en une ligne dont le prix = total persisté - somme des lignes.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List

DEFAULT_ITEM_NAME = "Article"
DEFAULT_PACKAGE_NAME = "Package RimaQR"

# module rimaqr.payments.basket
def cents_to_str(cents: int) -> str:
    cents = int(cents)
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{cents // 100}.{cents % 100:02d}"

def str_to_cents(value: Any) -> int:
    return int((Decimal(str(value)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

def _item_name(item: Dict[str, Any]) -> str:
    name = (item.get("products") or {}).get("name") or DEFAULT_ITEM_NAME
    text = item.get("customization_text")
    return f"{name} ({text})" if text else name

def items_total_cents(items: List[Dict[str, Any]]) -> int:
    return sum(int(it.get("unit_price_cents") or 0) * int(it.get("quantity") or 0) for it in items or [])

def build_basket(purchase: Dict[str, Any], items: List[Dict[str, Any]]) -> List[List[Any]]:
    """
    Panier passerelle à partir de la commande persistée et de ses lignes.
    - Une ligne par PurchaseItem (prix instantané unit_price_cents).
    - Le package (si présent) devient une ligne de quantité 1.
    - Sans aucune ligne: une ligne unique au montant total de la commande.
    """
    basket: List[List[Any]] = []
    for item in items or []:
        qty = int(item.get("quantity") or 0)
        if qty <= 0:
            continue
        basket.append([_item_name(item), cents_to_str(item.get("unit_price_cents") or 0), qty])

    total = int(purchase.get("total_amount_cents") or 0)
    package_cents = total - items_total_cents(items)
    if purchase.get("package_id") and package_cents > 0:
        package_name = (purchase.get("packages") or {}).get("name") or DEFAULT_PACKAGE_NAME
        basket.append([package_name, cents_to_str(package_cents), 1])

    if not basket:
        basket.append([DEFAULT_PACKAGE_NAME, cents_to_str(total), 1])
    return basket

def basket_total_cents(basket: List[List[Any]]) -> int:
    return sum(str_to_cents(price) * int(qty) for _, price, qty in basket)

def basket_to_line_items(basket: List[List[Any]], currency: str) -> List[Dict[str, Any]]:
    """
    Convertit le panier en line_items Stripe (price_data, unit_amount en centimes).
    - Ignore les lignes à prix ou quantité non valides.
    """
    line_items: List[Dict[str, Any]] = []
    for name, price, qty in basket:
        unit_amount = str_to_cents(price)
        if unit_amount <= 0 or int(qty) <= 0:
            continue
        line_items.append({
            "quantity": int(qty),
            "price_data": {
                "currency": currency.lower(),
                "unit_amount": unit_amount,
                "product_data": {"name": name},
            },
        })
    return line_items
