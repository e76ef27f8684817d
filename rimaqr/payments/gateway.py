"""
Passerelles de paiement hébergées.

Le tunnel ne voit qu'un contrat:
- request_token(TokenRequest) -> TokenResponse (jeton + identifiant de corrélation + URL de la page hébergée)
- classify_navigation(url) -> "success" | "failure" | None, par comparaison de préfixes d'URL.
La passerelle calcule et signe le montant côté serveur; la détection de navigation n'est qu'un
indice d'interface, jamais une preuve de paiement.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import json
import logging

import rimaqr.infra.supabase_client as supabase_client
from rimaqr.config import (
    DEFAULT_CURRENCY,
    PAYMENT_FAILURE_URL,
    PAYMENT_GATEWAY,
    PAYMENT_GATEWAY_URL,
    PAYMENT_SUCCESS_URL,
    PAYMENT_TOKEN_FUNCTION,
)
from rimaqr.errors import GatewayError
from . import stripe_client
from .basket import basket_to_line_items

logger = logging.getLogger(__name__)

NAV_SUCCESS = "success"
NAV_FAILURE = "failure"


@dataclass
class TokenRequest:
    order_id: str
    basket: List[List[Any]]
    buyer_email: str
    buyer_ip: str
    buyer_name: str
    buyer_address: str
    buyer_phone: str
    mode: str = "1"
    currency: str = DEFAULT_CURRENCY

    def to_payload(self) -> Dict[str, Any]:
        return {
            "basket": self.basket,
            "buyerEmail": self.buyer_email,
            "orderId": self.order_id,
            "buyerIp": self.buyer_ip,
            "buyerName": self.buyer_name,
            "buyerAddress": self.buyer_address,
            "buyerPhone": self.buyer_phone,
            "mode": self.mode,
        }


@dataclass
class TokenResponse:
    status: str
    token: Optional[str] = None
    correlation_id: Optional[str] = None
    payment_url: Optional[str] = None
    reason: Optional[str] = None


class PaymentGateway(ABC):
    name = "abstract"

    def __init__(self, success_prefix: str = PAYMENT_SUCCESS_URL, failure_prefix: str = PAYMENT_FAILURE_URL) -> None:
        self.success_prefix = success_prefix
        self.failure_prefix = failure_prefix

    @abstractmethod
    def request_token(self, request: TokenRequest, user_token: Optional[str] = None) -> TokenResponse:
        ...

    @abstractmethod
    def hosted_page_url(self, token: str) -> str:
        ...

    def classify_navigation(self, url: str) -> Optional[str]:
        """Branche déduite d'une URL de navigation de la page embarquée (None = inconnue)."""
        url = (url or "").strip()
        if self.success_prefix and url.startswith(self.success_prefix):
            return NAV_SUCCESS
        if self.failure_prefix and url.startswith(self.failure_prefix):
            return NAV_FAILURE
        return None


def _decode(raw: Any) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        return json.loads(raw)
    return raw


class HostedTokenGateway(PaymentGateway):
    """
    Service de jeton exposé en edge function Supabase.
    Requête: {basket, buyerEmail, orderId, buyerIp, buyerName, buyerAddress, buyerPhone, mode}
    Réponse: {status: success|failure, token, correlationId, reason?}
    Page hébergée: <PAYMENT_GATEWAY_URL>/pay/<token>
    """

    name = "hosted_token"

    def __init__(self, function_name: str = PAYMENT_TOKEN_FUNCTION, base_url: str = PAYMENT_GATEWAY_URL, **kwargs) -> None:
        super().__init__(**kwargs)
        self.function_name = function_name
        self.base_url = base_url.rstrip("/")

    def hosted_page_url(self, token: str) -> str:
        return f"{self.base_url}/pay/{token}"

    def request_token(self, request: TokenRequest, user_token: Optional[str] = None) -> TokenResponse:
        headers = {"Authorization": f"Bearer {user_token}"} if user_token else {}
        try:
            raw = supabase_client.client_for(user_token).functions.invoke(
                self.function_name,
                invoke_options={"body": request.to_payload(), "headers": headers, "responseType": "json"},
            )
        except Exception:
            # Inclut le timeout du transport: erreur réessayable
            logger.exception("payments.gateway.request_token failed order_id=%s", request.order_id)
            raise GatewayError("Paiement impossible à initialiser (erreur serveur)")

        try:
            data = _decode(raw)
        except ValueError:
            logger.error("payments.gateway.request_token malformed response order_id=%s", request.order_id)
            raise GatewayError("Réponse de la passerelle invalide")
        if not isinstance(data, dict):
            raise GatewayError("Réponse de la passerelle invalide")

        token = data.get("token")
        if data.get("status") != "success" or not token:
            reason = data.get("reason")
            logger.warning("payments.gateway.request_token refused order_id=%s reason=%s", request.order_id, reason)
            raise GatewayError(reason or "Jeton de paiement non obtenu", reason=reason)

        correlation_id = data.get("correlationId") or data.get("merchant_oid")
        if not correlation_id:
            raise GatewayError("Identifiant de corrélation manquant dans la réponse de la passerelle")
        return TokenResponse(
            status="success",
            token=token,
            correlation_id=str(correlation_id),
            payment_url=self.hosted_page_url(token),
        )


class StripeGateway(PaymentGateway):
    """
    Stripe Checkout: le jeton et l'identifiant de corrélation sont l'id de session,
    la page hébergée est l'URL de session. success/cancel_url = préfixes observés par le tunnel.
    """

    name = "stripe"

    def hosted_page_url(self, token: str) -> str:
        return f"https://checkout.stripe.com/c/pay/{token}"

    def request_token(self, request: TokenRequest, user_token: Optional[str] = None) -> TokenResponse:
        line_items = basket_to_line_items(request.basket, request.currency)
        if not line_items:
            raise GatewayError("Aucun article valide pour le paiement")
        sep = "&" if "?" in self.success_prefix else "?"
        try:
            session = stripe_client.create_session(
                purchase_id=request.order_id,
                line_items=line_items,
                success_url=f"{self.success_prefix}{sep}session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=self.failure_prefix,
                customer_email=request.buyer_email or None,
            )
        except Exception:
            logger.exception("payments.gateway.stripe create_session failed order_id=%s", request.order_id)
            raise GatewayError("Paiement impossible à initialiser (Stripe)")

        session_id = session.get("id")
        url = session.get("url")
        if not session_id or not url:
            raise GatewayError("Session Stripe invalide")
        return TokenResponse(status="success", token=session_id, correlation_id=session_id, payment_url=url)


_GATEWAYS = {
    HostedTokenGateway.name: HostedTokenGateway,
    StripeGateway.name: StripeGateway,
}


def get_gateway(name: Optional[str] = None) -> PaymentGateway:
    key = (name or PAYMENT_GATEWAY or HostedTokenGateway.name).lower()
    cls = _GATEWAYS.get(key)
    if cls is None:
        raise RuntimeError(f"Passerelle de paiement inconnue: {key}")
    return cls()
