"""
Tunnel de commande (machine à états).

NO_ORDER -> PACKAGE_CHOSEN -> PRODUCTS_CHOSEN -> ORDER_CREATED (pending/pending)
  -> ADDRESS_CAPTURED -> PAYMENT_TOKEN_ISSUED -> GATEWAY_HANDOFF -> PAYMENT_CONFIRMED | PAYMENT_FAILED

- Annulation possible à partir de ORDER_CREATED tant que la commande est pending/pending.
- Chaque étape n'avance qu'après confirmation de l'écriture en base.
- Le tunnel ne marque jamais une commande payée: seul le webhook de confiance le fait.
- Sans état entre deux requêtes HTTP: resume() redérive l'étape depuis la commande la plus récente.
"""
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import logging

from rimaqr.cart import service as cart_service
from rimaqr.cart.aggregator import Cart
from rimaqr.catalog import repository as catalog_repo
from rimaqr.config import DEFAULT_CURRENCY, PAYMENT_TEST_MODE
from rimaqr.entitlements import resolver as entitlements_resolver
from rimaqr.entitlements.resolver import Entitlement, is_paid
from rimaqr.errors import DataAccessError, GatewayError, InvalidTransitionError, ValidationError
from rimaqr.events import repository as events_repo
from rimaqr.orders import repository as orders_repo
from rimaqr.payments.basket import build_basket
from rimaqr.payments.gateway import NAV_FAILURE, NAV_SUCCESS, PaymentGateway, TokenRequest, get_gateway

logger = logging.getLogger(__name__)


class CheckoutStep(str, Enum):
    NO_ORDER = "no_order"
    PACKAGE_CHOSEN = "package_chosen"
    PRODUCTS_CHOSEN = "products_chosen"
    ORDER_CREATED = "order_created"
    ADDRESS_CAPTURED = "address_captured"
    PAYMENT_TOKEN_ISSUED = "payment_token_issued"
    GATEWAY_HANDOFF = "gateway_handoff"
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_FAILED = "payment_failed"


REQUIRED_ADDRESS_FIELDS = ("recipient_name", "recipient_phone", "shipping_address", "city", "district")
ADDRESS_LABELS = {
    "recipient_name": "Nom du destinataire",
    "recipient_phone": "Téléphone",
    "shipping_address": "Adresse",
    "city": "Ville",
    "district": "Quartier",
}

# Étapes à partir desquelles une nouvelle commande peut être composée
SELECTION_STEPS = (
    CheckoutStep.NO_ORDER,
    CheckoutStep.PACKAGE_CHOSEN,
    CheckoutStep.PRODUCTS_CHOSEN,
    CheckoutStep.PAYMENT_CONFIRMED,
    CheckoutStep.PAYMENT_FAILED,
)
TERMINAL_STEPS = (CheckoutStep.PAYMENT_CONFIRMED, CheckoutStep.PAYMENT_FAILED)
ORDER_STEPS = (
    CheckoutStep.ORDER_CREATED,
    CheckoutStep.ADDRESS_CAPTURED,
    CheckoutStep.PAYMENT_TOKEN_ISSUED,
    CheckoutStep.GATEWAY_HANDOFF,
    CheckoutStep.PAYMENT_FAILED,
)
TOKEN_STEPS = (
    CheckoutStep.ADDRESS_CAPTURED,
    CheckoutStep.PAYMENT_TOKEN_ISSUED,
    CheckoutStep.GATEWAY_HANDOFF,
    CheckoutStep.PAYMENT_FAILED,
)
NAVIGATION_STEPS = (CheckoutStep.PAYMENT_TOKEN_ISSUED, CheckoutStep.GATEWAY_HANDOFF)


def is_pending(purchase: Optional[Dict[str, Any]]) -> bool:
    return bool(purchase) and purchase.get("status") == "pending" and purchase.get("payment_status") == "pending"


def is_payable(purchase: Optional[Dict[str, Any]]) -> bool:
    """En attente de paiement, y compris après un échec signalé par la passerelle."""
    return bool(purchase) and purchase.get("status") == "pending" and purchase.get("payment_status") in ("pending", "failed")


def address_complete(purchase: Dict[str, Any]) -> bool:
    return all(str(purchase.get(f) or "").strip() for f in REQUIRED_ADDRESS_FIELDS)


def derive_step(purchase: Optional[Dict[str, Any]]) -> CheckoutStep:
    """Étape du tunnel déduite des champs persistés de la commande la plus récente."""
    if not purchase:
        return CheckoutStep.NO_ORDER
    if is_paid(purchase):
        return CheckoutStep.PAYMENT_CONFIRMED
    if purchase.get("payment_status") == "failed" or purchase.get("status") in ("cancelled", "refunded"):
        return CheckoutStep.PAYMENT_FAILED
    if not address_complete(purchase):
        return CheckoutStep.ORDER_CREATED
    if purchase.get("gateway_correlation_id"):
        return CheckoutStep.PAYMENT_TOKEN_ISSUED
    return CheckoutStep.ADDRESS_CAPTURED


class CheckoutPipeline:
    """
    Tunnel de commande d'un utilisateur sur son événement courant.
    - gateway: passerelle de paiement (get_gateway() par défaut)
    - resolver: callable resolve(user_id, user_token=...) réévalué après succès et annulation
    """

    def __init__(
        self,
        user_id: str,
        *,
        user_token: Optional[str] = None,
        gateway: Optional[PaymentGateway] = None,
        resolver: Optional[Callable[..., Entitlement]] = None,
    ) -> None:
        self.user_id = user_id
        self.user_token = user_token
        self.gateway = gateway or get_gateway()
        self.resolver = resolver or entitlements_resolver.resolve
        self.step = CheckoutStep.NO_ORDER
        self.event: Optional[Dict[str, Any]] = None
        self.package: Optional[Dict[str, Any]] = None
        self.cart = Cart()
        self.purchase: Optional[Dict[str, Any]] = None
        self.items: List[Dict[str, Any]] = []
        self.token: Optional[str] = None
        self.payment_url: Optional[str] = None

    # --- état ---

    def _require(self, action: str, allowed) -> None:
        if self.step not in allowed:
            raise InvalidTransitionError(action, self.step.value)

    def _require_event(self) -> Dict[str, Any]:
        if self.event is None:
            self.event = events_repo.fetch_latest_event(self.user_id, user_token=self.user_token)
        if not self.event:
            raise ValidationError("event", "Créez d'abord votre événement")
        return self.event

    def _reset_selection(self) -> None:
        self.package = None
        self.cart = Cart()
        self.purchase = None
        self.items = []
        self.token = None
        self.payment_url = None

    def start(self) -> "CheckoutPipeline":
        """Nouveau tunnel vierge sur l'événement courant."""
        self._require_event()
        self._reset_selection()
        self.step = CheckoutStep.NO_ORDER
        return self

    def resume(self) -> "CheckoutPipeline":
        """Recharge la commande la plus récente de l'événement et redérive l'étape."""
        event = self._require_event()
        self._reset_selection()
        self.purchase = orders_repo.fetch_latest_purchase(event["id"], user_token=self.user_token)
        if self.purchase:
            self.items = orders_repo.fetch_purchase_items(self.purchase["id"], user_token=self.user_token)
        self.step = derive_step(self.purchase)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step.value,
            "event_id": (self.event or {}).get("id"),
            "package": self.package,
            "cart": [line.to_dict() for line in self.cart.lines()],
            "purchase": self.purchase,
            "items": self.items,
            "payment_url": self.payment_url,
        }

    # --- sélection ---

    def choose_package(self, package_id: Optional[str]) -> Optional[Dict[str, Any]]:
        """Choix du package (None = commande de produits seuls)."""
        self._require("choose_package", SELECTION_STEPS)
        if self.step in TERMINAL_STEPS:
            self._reset_selection()
        package = None
        if package_id:
            package = catalog_repo.get_package(package_id)
            if not package:
                raise ValidationError("package_id", "Package introuvable")
        self.package = package
        self.step = CheckoutStep.PACKAGE_CHOSEN
        return package

    def choose_products(self, items: List[Dict[str, Any]]) -> Cart:
        """Construit le panier aux prix du catalogue; remplace la sélection précédente."""
        self._require("choose_products", SELECTION_STEPS)
        if self.step in TERMINAL_STEPS:
            self._reset_selection()
        self.cart = cart_service.build_cart(items)
        self.step = CheckoutStep.PRODUCTS_CHOSEN
        return self.cart

    def total_cents(self) -> int:
        return self.cart.total() + int((self.package or {}).get("price_cents") or 0)

    # --- commande ---

    def create_order(self) -> Dict[str, Any]:
        """
        Persiste la commande (pending/pending) et ses lignes comme une seule unité logique.
        - total_amount_cents = total panier + prix du package, figé à la création.
        - Si l'insertion des lignes échoue, la commande créée est supprimée puis l'erreur remonte:
          un nouvel essai recrée tout, jamais de lignes rattachées à une commande orpheline.
        """
        self._require("create_order", (CheckoutStep.PACKAGE_CHOSEN, CheckoutStep.PRODUCTS_CHOSEN))
        event = self._require_event()
        if self.package is None and self.cart.is_empty:
            raise ValidationError("items", "Choisissez un package ou au moins un produit")

        total = self.total_cents()
        purchase = orders_repo.insert_purchase(
            {
                "event_id": event["id"],
                "package_id": (self.package or {}).get("id"),
                "status": "pending",
                "payment_status": "pending",
                "total_amount_cents": total,
                "currency": DEFAULT_CURRENCY,
            },
            user_token=self.user_token,
        )
        rows = [
            {
                "purchase_id": purchase["id"],
                "product_id": line.product_id,
                "quantity": line.quantity,
                "unit_price_cents": line.unit_price_cents,
                "customization_text": line.customization_text,
            }
            for line in self.cart.lines()
        ]
        try:
            inserted = orders_repo.insert_purchase_items(rows, user_token=self.user_token)
        except DataAccessError:
            try:
                orders_repo.delete_purchase(purchase["id"], user_token=self.user_token)
            except DataAccessError:
                logger.warning("orders.pipeline.create_order compensation failed purchase_id=%s", purchase["id"])
            raise

        names = {line.product_id: line.product.get("name") for line in self.cart.lines()}
        self.items = [dict(it, products={"name": names.get(str(it.get("product_id")))}) for it in inserted]
        if self.package:
            purchase = dict(purchase, packages={
                "name": self.package.get("name"),
                "price_cents": self.package.get("price_cents"),
                "storage_limit_bytes": self.package.get("storage_limit_bytes"),
            })
        self.purchase = purchase
        self.step = CheckoutStep.ORDER_CREATED
        logger.info(
            "orders.pipeline.create_order purchase_id=%s event_id=%s total=%s items=%s",
            purchase["id"], event["id"], total, len(inserted),
        )
        return purchase

    def _require_pending(self, action: str, allow_failed: bool = False) -> Dict[str, Any]:
        ok = is_payable(self.purchase) if allow_failed else is_pending(self.purchase)
        if not ok:
            raise InvalidTransitionError(action, self.step.value)
        return self.purchase

    def capture_address(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Enregistre les champs de livraison; tous obligatoires et non vides."""
        self._require("capture_address", ORDER_STEPS)
        purchase = self._require_pending("capture_address", allow_failed=True)
        data: Dict[str, Any] = {}
        for name in REQUIRED_ADDRESS_FIELDS:
            value = str((fields or {}).get(name) or "").strip()
            if not value:
                raise ValidationError(name, f"{ADDRESS_LABELS[name]} obligatoire")
            data[name] = value

        updated = orders_repo.update_purchase(purchase["id"], data, user_token=self.user_token)
        self.purchase = dict(purchase, **updated)
        self.step = CheckoutStep.ADDRESS_CAPTURED
        return self.purchase

    # --- paiement ---

    def issue_payment_token(self, buyer_email: str, buyer_ip: str = "127.0.0.1") -> Dict[str, Any]:
        """
        Demande un jeton à la passerelle puis persiste l'identifiant de corrélation
        AVANT de rendre l'URL de la page hébergée.
        - Un ancien jeton n'est jamais réutilisé: chaque appel repart de zéro.
        - GatewayError / DataAccessError: l'étape ne change pas, l'appelant peut réessayer.
        """
        self._require("issue_payment_token", TOKEN_STEPS)
        purchase = self._require_pending("issue_payment_token", allow_failed=True)
        self.token = None
        self.payment_url = None

        request = TokenRequest(
            order_id=str(purchase["id"]),
            basket=build_basket(purchase, self.items),
            buyer_email=buyer_email or "",
            buyer_ip=buyer_ip or "127.0.0.1",
            buyer_name=purchase.get("recipient_name") or "",
            buyer_address=", ".join(
                str(purchase.get(f)) for f in ("shipping_address", "district", "city") if purchase.get(f)
            ),
            buyer_phone=purchase.get("recipient_phone") or "",
            mode="1" if PAYMENT_TEST_MODE else "0",
        )
        response = self.gateway.request_token(request, user_token=self.user_token)
        if not response.token or not response.correlation_id:
            raise GatewayError("Réponse de la passerelle incomplète")

        updated = orders_repo.update_purchase(
            purchase["id"],
            {"gateway_correlation_id": response.correlation_id, "payment_status": "pending"},
            user_token=self.user_token,
        )
        self.purchase = dict(purchase, **updated)
        self.token = response.token
        self.payment_url = response.payment_url or self.gateway.hosted_page_url(response.token)
        self.step = CheckoutStep.PAYMENT_TOKEN_ISSUED
        logger.info(
            "orders.pipeline.issue_payment_token purchase_id=%s correlation_id=%s gateway=%s",
            purchase["id"], response.correlation_id, self.gateway.name,
        )
        return {
            "token": self.token,
            "payment_url": self.payment_url,
            "correlation_id": response.correlation_id,
        }

    def hand_off(self) -> str:
        """Passage à la page hébergée; retourne son URL."""
        self._require("hand_off", (CheckoutStep.PAYMENT_TOKEN_ISSUED,))
        if not self.payment_url:
            raise InvalidTransitionError("hand_off", self.step.value)
        self.step = CheckoutStep.GATEWAY_HANDOFF
        return self.payment_url

    def observe_navigation(self, url: str) -> Optional[Dict[str, Any]]:
        """
        Observe une navigation de la page embarquée.
        - URL inconnue: None, l'étape ne change pas.
        - Préfixe d'échec: PAYMENT_FAILED, persisté en payment_status=failed (status reste pending,
          nouveau jeton possible, une reprise retrouve l'échec). Une commande déjà payée n'est pas touchée.
        - Préfixe de succès: complete().
        """
        self._require("observe_navigation", NAVIGATION_STEPS)
        branch = self.gateway.classify_navigation(url)
        if branch is None:
            return None
        if branch == NAV_FAILURE:
            self._record_failed_attempt()
            self.step = CheckoutStep.PAYMENT_FAILED
            self.token = None
            return {"step": self.step.value, "provisional": False, "entitlement": None}
        if branch == NAV_SUCCESS:
            return self.complete()
        return None

    def _record_failed_attempt(self) -> None:
        purchase_id = (self.purchase or {}).get("id")
        logger.info("orders.pipeline navigation failure purchase_id=%s", purchase_id)
        if not purchase_id:
            return
        try:
            rows = orders_repo.mark_attempt_failed(purchase_id, user_token=self.user_token)
        except DataAccessError:
            logger.warning("orders.pipeline failure not persisted purchase_id=%s", purchase_id)
            return
        if rows:
            self.purchase = {**self.purchase, **rows[0]}

    def complete(self) -> Dict[str, Any]:
        """
        Branche succès: réévalue les droits sans attendre le webhook.
        provisional=True tant que la commande n'apparaît pas encore payée.
        """
        self._require("complete", NAVIGATION_STEPS)
        purchase_id = (self.purchase or {}).get("id")
        entitlement = self.resolver(self.user_id, user_token=self.user_token)
        refreshed = entitlement.purchase if (entitlement.purchase or {}).get("id") == purchase_id else None
        confirmed = is_paid(refreshed)
        if refreshed:
            self.purchase = refreshed
        self.step = CheckoutStep.PAYMENT_CONFIRMED
        self.token = None
        logger.info("orders.pipeline.complete purchase_id=%s confirmed=%s", purchase_id, confirmed)
        return {"step": self.step.value, "provisional": not confirmed, "entitlement": entitlement}

    # --- annulation ---

    def cancel(self) -> Entitlement:
        """
        Supprime la commande pending/pending et ses lignes puis réévalue les droits.
        InvalidTransitionError si la commande n'est plus en attente.
        """
        self._require("cancel", ORDER_STEPS)
        purchase = self._require_pending("cancel")
        orders_repo.delete_purchase(purchase["id"], user_token=self.user_token)
        logger.info("orders.pipeline.cancel purchase_id=%s", purchase["id"])
        self._reset_selection()
        self.step = CheckoutStep.NO_ORDER
        return self.resolver(self.user_id, user_token=self.user_token)
