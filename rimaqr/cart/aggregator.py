"""
Logique panier pure (pas de passerelle, pas de DB).

Le panier est un mapping (product_id, texte de personnalisation) -> ligne:
- deux ajouts du même produit avec le même texte fusionnent (quantités cumulées);
- un texte différent produit une seconde ligne indépendante pour le même produit.
Les quantités avancent par pas de increment_amount et ne descendent jamais sous min_quantity.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from rimaqr.errors import ValidationError

# module rimaqr.cart.aggregator
LineKey = Tuple[str, str]

DEFAULT_CUSTOMIZATION_MESSAGE = "Une personnalisation est obligatoire pour ce produit."


def _positive_int(value: Any, default: int = 1) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        return default
    return n if n > 0 else default


def min_quantity(product: Dict[str, Any]) -> int:
    return _positive_int(product.get("min_quantity"))


def increment_amount(product: Dict[str, Any]) -> int:
    return _positive_int(product.get("increment_amount"))


def price_cents(product: Dict[str, Any]) -> int:
    try:
        return int(product.get("price_cents") or 0)
    except (TypeError, ValueError):
        return 0


def line_key(product_id: Any, customization_text: Optional[str] = None) -> LineKey:
    return (str(product_id), (customization_text or "").strip())


@dataclass
class CartLine:
    product: Dict[str, Any]
    quantity: int
    customization_text: Optional[str] = None

    @property
    def product_id(self) -> str:
        return str(self.product.get("id"))

    @property
    def key(self) -> LineKey:
        return line_key(self.product_id, self.customization_text)

    @property
    def unit_price_cents(self) -> int:
        return price_cents(self.product)

    @property
    def subtotal_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": "::".join(self.key),
            "product_id": self.product_id,
            "name": self.product.get("name"),
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
            "customization_text": self.customization_text,
        }


class Cart:
    """Panier en mémoire, clé = (product_id, personnalisation)."""

    def __init__(self) -> None:
        self._lines: Dict[LineKey, CartLine] = {}

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, key: LineKey) -> bool:
        return key in self._lines

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def lines(self) -> List[CartLine]:
        return list(self._lines.values())

    def get(self, key: LineKey) -> Optional[CartLine]:
        return self._lines.get(key)

    def add(
        self,
        product: Dict[str, Any],
        quantity: Optional[int] = None,
        customization_text: Optional[str] = None,
    ) -> LineKey:
        """
        Ajoute un produit au panier et retourne la clé de ligne.
        - Quantité par défaut = min_quantity du produit.
        - ValidationError si la personnalisation est requise mais vide
          (message = customization_prompt du produit si présent).
        - ValidationError si la quantité explicite est sous le minimum.
        """
        text = (customization_text or "").strip()
        if product.get("customization_required") and not text:
            raise ValidationError(
                "customization_text",
                product.get("customization_prompt") or DEFAULT_CUSTOMIZATION_MESSAGE,
            )

        minimum = min_quantity(product)
        qty = minimum if quantity is None else int(quantity)
        if qty < minimum:
            raise ValidationError("quantity", f"Quantité minimale pour ce produit: {minimum}")

        key = line_key(product.get("id"), text)
        existing = self._lines.get(key)
        if existing:
            existing.quantity += qty
        else:
            self._lines[key] = CartLine(product=product, quantity=qty, customization_text=text or None)
        return key

    def update_quantity(self, key: LineKey, delta: int) -> CartLine:
        """
        Déplace la quantité de delta pas (un pas = increment_amount).
        Un décrément qui passerait sous le minimum est ignoré (pas de suppression).
        """
        line = self._lines.get(key)
        if line is None:
            raise ValidationError("line_key", "Ligne de panier introuvable")
        next_qty = line.quantity + delta * increment_amount(line.product)
        if next_qty < min_quantity(line.product):
            return line
        line.quantity = next_qty
        return line

    def remove(self, key: LineKey) -> None:
        self._lines.pop(key, None)

    def clear(self) -> None:
        self._lines.clear()

    def total(self) -> int:
        """Somme quantity x price_cents, recalculée à chaque appel."""
        return sum(line.subtotal_cents for line in self._lines.values())
