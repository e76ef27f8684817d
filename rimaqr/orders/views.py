# module rimaqr.orders.views

"""Endpoints du tunnel de commande.
- GET  /api/v1/orders: historique des commandes de l'événement courant.
- GET  /api/v1/orders/current: reprise du tunnel (étape dérivée de la commande la plus récente).
- POST /api/v1/orders: crée la commande pending/pending (package optionnel + panier).
- PUT  /api/v1/orders/current/address: adresse de livraison (champs obligatoires).
- POST /api/v1/orders/current/payment-token: jeton passerelle + URL de la page hébergée (rate-limité).
- POST /api/v1/orders/current/navigation: URL observée dans la page de paiement.
- DELETE /api/v1/orders/current: annulation (commande encore pending/pending uniquement).
Sécurité:
- require_user sur toutes les routes; les écritures passent par le client RLS de l'utilisateur.
"""
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from typing import Any, Dict, List, Optional

from rimaqr.cart.views import CartItemIn
from rimaqr.orders import service as orders_service
from rimaqr.utils.rate_limit import optional_rate_limit
from rimaqr.utils.security import require_user

router = APIRouter(prefix="/api/v1/orders", tags=["Orders API"])


class CreateOrderRequest(BaseModel):
    package_id: Optional[str] = None
    items: List[CartItemIn] = []


class AddressRequest(BaseModel):
    recipient_name: Optional[str] = None
    recipient_phone: Optional[str] = None
    shipping_address: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None


class NavigationRequest(BaseModel):
    url: str


@router.get("")
def list_orders(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    return {"orders": orders_service.list_orders(user["id"], user.get("token"))}


@router.get("/current")
def get_current(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    return orders_service.current_checkout(user["id"], user.get("token"))


@router.post("", status_code=201)
def create_order(req: CreateOrderRequest, user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    """
    Crée la commande et ses lignes en une unité logique.
    - Prix: toujours ceux du catalogue, total figé à la création.
    - Erreurs: 422 (produit/package inconnu, personnalisation, quantité), 503 si l'écriture échoue.
    """
    items = [it.model_dump() for it in req.items]
    return orders_service.place_order(user["id"], req.package_id, items, user.get("token"))


@router.put("/current/address")
def put_address(req: AddressRequest, user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    return orders_service.capture_address(user["id"], req.model_dump(), user.get("token"))


@router.post("/current/payment-token", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def post_payment_token(request: Request, user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    """
    Émet un nouveau jeton de paiement (jamais réutilisé) et persiste l'identifiant de corrélation.
    - Erreurs: 502 retryable si la passerelle échoue, 409 si la commande n'est plus en attente.
    """
    buyer_ip = request.client.host if request.client else "127.0.0.1"
    return orders_service.issue_payment_token(user["id"], user.get("email") or "", buyer_ip, user.get("token"))


@router.post("/current/navigation")
def post_navigation(req: NavigationRequest, user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    return orders_service.observe_navigation(user["id"], req.url, user.get("token"))


@router.delete("/current")
def delete_current(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    return orders_service.cancel_current(user["id"], user.get("token"))
