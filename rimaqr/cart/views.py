# module rimaqr.cart.views
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from rimaqr.utils.security import require_user
from rimaqr.cart import service as cart_service

router = APIRouter(prefix="/api/v1/cart", tags=["Cart API"])


class CartItemIn(BaseModel):
    product_id: str
    quantity: Optional[int] = Field(default=None, ge=1)
    customization_text: Optional[str] = None


class QuoteRequest(BaseModel):
    package_id: Optional[str] = None
    items: List[CartItemIn] = []


@router.post("/quote")
def quote_cart(req: QuoteRequest, user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    """
    Calcule le total d'un panier à partir des prix du catalogue.
    - Entrée JSON: { "package_id": "...", "items": [ { "product_id", "quantity", "customization_text" } ] }
    - Erreurs: 422 si produit inconnu, personnalisation manquante ou quantité sous le minimum.
    """
    items = [it.model_dump() for it in req.items]
    return cart_service.quote(items, req.package_id)
