import os

os.environ.setdefault("RATE_LIMIT_BACKEND", "off")

import itertools
import pytest
from typing import Any, Dict, Generator, List, Optional
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from rimaqr.app import app as fastapi_app
from rimaqr.errors import DataAccessError, GatewayError
from rimaqr.entitlements.resolver import is_paid
from rimaqr.media.registry import registry as media_registry
from rimaqr.payments.gateway import PaymentGateway, TokenResponse
from rimaqr.utils.security import require_user

MB = 1024 * 1024

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

FAKE_USER: Dict[str, Any] = {"id": "test-user", "email": "test@example.com", "token": "fake-token"}

# Simuler un utilisateur authentifié pour les endpoints protégés
@pytest.fixture(autouse=True)
def _override_require_user(app):
    app.dependency_overrides[require_user] = lambda: dict(FAKE_USER)
    try:
        yield
    finally:
        app.dependency_overrides.pop(require_user, None)

# Aucun accès réseau à Supabase pendant les tests
@pytest.fixture(autouse=True)
def mock_supabase(monkeypatch):
    monkeypatch.setattr("rimaqr.infra.supabase_client.get_supabase", lambda: MagicMock())
    monkeypatch.setattr("rimaqr.infra.supabase_client.get_service_supabase", lambda: MagicMock())
    monkeypatch.setattr("rimaqr.infra.supabase_client.get_user_supabase", lambda token: MagicMock())

@pytest.fixture(autouse=True)
def _release_media_subscriptions():
    yield
    media_registry.release_all()


class FakeDB:
    """
    Base en mémoire qui remplace les fonctions des repositories (events, orders, catalog, media).
    fail(op) fait lever DataAccessError à la prochaine opération op (ou à toutes si always=True).
    """

    def __init__(self) -> None:
        self._seq = itertools.count(1)
        self.events: List[dict] = []
        self.packages: Dict[str, dict] = {}
        self.products: Dict[str, dict] = {}
        self.purchases: List[dict] = []
        self.purchase_items: List[dict] = []
        self.media: List[dict] = []
        self.storage: Dict[str, bytes] = {}
        self.removed_files: List[str] = []
        self.failures: Dict[str, bool] = {}

    # --- injection d'erreurs ---

    def fail(self, operation: str, always: bool = False) -> None:
        self.failures[operation] = always

    def _check(self, operation: str) -> None:
        if operation in self.failures:
            always = self.failures[operation]
            if not always:
                del self.failures[operation]
            raise DataAccessError(operation)

    def _next(self) -> int:
        return next(self._seq)

    # --- fixtures de données ---

    def add_event(self, user_id: str = "test-user", storage_limit_bytes: int = 100 * MB, **extra) -> dict:
        event = {
            "id": extra.pop("id", f"event-{self._next()}"),
            "user_id": user_id,
            "event_type": "wedding",
            "partner1_name": "Ayse",
            "partner2_name": "Mehmet",
            "storage_used_bytes": 0,
            "storage_limit_bytes": storage_limit_bytes,
            "is_active": False,
            "qr_codes": [],
            "created_at": self._next(),
        }
        event.update(extra)
        self.events.append(event)
        return event

    def add_package(self, package_id: str, name: str, price_cents: int, storage_limit_bytes: int) -> dict:
        package = {"id": package_id, "name": name, "price_cents": price_cents, "storage_limit_bytes": storage_limit_bytes}
        self.packages[package_id] = package
        return package

    def add_product(self, product_id: str, name: str, price_cents: int, **extra) -> dict:
        product = {"id": product_id, "name": name, "price_cents": price_cents, "is_active": True}
        product.update(extra)
        self.products[product_id] = product
        return product

    def add_purchase(self, event_id: str, package_id: Optional[str] = None, status: str = "pending",
                     payment_status: str = "pending", total_amount_cents: int = 0, **extra) -> dict:
        purchase = {
            "id": extra.pop("id", f"purchase-{self._next()}"),
            "event_id": event_id,
            "package_id": package_id,
            "status": status,
            "payment_status": payment_status,
            "total_amount_cents": total_amount_cents,
            "currency": "TRY",
            "gateway_correlation_id": None,
            "created_at": self._next(),
        }
        purchase.update(extra)
        self.purchases.append(purchase)
        return purchase

    def add_media(self, event_id: str, media_type: str = "photo", storage_path: Optional[str] = None, **extra) -> dict:
        media = {
            "id": extra.pop("id", f"media-{self._next()}"),
            "event_id": event_id,
            "type": media_type,
            "storage_path": storage_path,
            "uploader_name": "Guest",
            "is_approved": True,
            "created_at": self._next(),
        }
        media.update(extra)
        self.media.append(media)
        if storage_path:
            self.storage[storage_path] = b"data"
        return media

    # --- vues jointes ---

    def _with_package(self, purchase: dict) -> dict:
        row = dict(purchase)
        package = self.packages.get(purchase.get("package_id") or "")
        row["packages"] = (
            {k: package[k] for k in ("name", "price_cents", "storage_limit_bytes")} if package else None
        )
        return row

    def purchases_for(self, event_id: str) -> List[dict]:
        rows = [p for p in self.purchases if p["event_id"] == event_id]
        return sorted(rows, key=lambda p: p["created_at"], reverse=True)

    def items_for(self, purchase_id: str) -> List[dict]:
        return [i for i in self.purchase_items if i["purchase_id"] == purchase_id]

    # --- events repository ---

    def fetch_latest_event(self, user_id, user_token=None):
        self._check("fetch_latest_event")
        rows = sorted((e for e in self.events if e["user_id"] == user_id), key=lambda e: e["created_at"], reverse=True)
        return dict(rows[0]) if rows else None

    def create_event(self, data, user_token=None):
        self._check("create_event")
        return self.add_event(**data)

    def update_event(self, event_id, data, user_token=None):
        self._check("update_event")
        for event in self.events:
            if event["id"] == event_id:
                event.update(data)
                return dict(event)
        raise DataAccessError("update_event")

    def insert_share_code(self, event_id, code, user_token=None):
        self._check("insert_share_code")
        row = {"id": f"qr-{self._next()}", "event_id": event_id, "code": code, "is_active": True}
        for event in self.events:
            if event["id"] == event_id:
                event["qr_codes"] = [row]
        return row

    # --- catalog repository ---

    def get_package(self, package_id):
        self._check("get_package")
        package = self.packages.get(package_id)
        return dict(package) if package else None

    def list_packages(self):
        self._check("list_packages")
        return sorted(self.packages.values(), key=lambda p: p["price_cents"])

    def get_products_map(self, ids):
        self._check("get_products_map")
        return {i: dict(self.products[i]) for i in ids if i in self.products}

    # --- orders repository ---

    def fetch_latest_purchase(self, event_id, user_token=None):
        self._check("fetch_latest_purchase")
        rows = self.purchases_for(event_id)
        return self._with_package(rows[0]) if rows else None

    def fetch_paid_purchases(self, event_id, user_token=None):
        self._check("fetch_paid_purchases")
        return [self._with_package(p) for p in self.purchases_for(event_id) if is_paid(p)]

    def list_purchases(self, event_id, user_token=None):
        self._check("list_purchases")
        return [self._with_package(p) for p in self.purchases_for(event_id)]

    def fetch_purchase(self, purchase_id, user_token=None):
        self._check("fetch_purchase")
        rows = [p for p in self.purchases if p["id"] == purchase_id]
        return self._with_package(rows[0]) if rows else None

    def fetch_purchase_items(self, purchase_id, user_token=None):
        self._check("fetch_purchase_items")
        rows = []
        for item in self.items_for(purchase_id):
            product = self.products.get(item["product_id"]) or {}
            rows.append(dict(item, products={"name": product.get("name")}))
        return rows

    def insert_purchase(self, data, user_token=None):
        self._check("insert_purchase")
        return dict(self.add_purchase(**data))

    def insert_purchase_items(self, rows, user_token=None):
        self._check("insert_purchase_items")
        inserted = []
        for row in rows:
            item = dict(row, id=f"item-{self._next()}")
            self.purchase_items.append(item)
            inserted.append(dict(item))
        return inserted

    def update_purchase(self, purchase_id, data, user_token=None):
        self._check("update_purchase")
        for purchase in self.purchases:
            if purchase["id"] == purchase_id:
                purchase.update(data)
                return dict(purchase)
        raise DataAccessError("update_purchase")

    def mark_attempt_failed(self, purchase_id, user_token=None):
        self._check("mark_attempt_failed")
        for purchase in self.purchases:
            if purchase["id"] == purchase_id and purchase["status"] == "pending" and purchase["payment_status"] == "pending":
                purchase["payment_status"] = "failed"
                return [dict(purchase)]
        return []

    def delete_purchase(self, purchase_id, user_token=None):
        self._check("delete_purchase")
        self.purchase_items = [i for i in self.purchase_items if i["purchase_id"] != purchase_id]
        self.purchases = [p for p in self.purchases if p["id"] != purchase_id]

    def update_purchase_by_correlation(self, correlation_id, data):
        self._check("update_purchase_by_correlation")
        updated = []
        for purchase in self.purchases:
            if purchase.get("gateway_correlation_id") == correlation_id:
                purchase.update(data)
                updated.append(dict(purchase))
        return updated

    def update_purchase_as_service(self, purchase_id, data):
        self._check("update_purchase_as_service")
        for purchase in self.purchases:
            if purchase["id"] == purchase_id:
                purchase.update(data)
                return [dict(purchase)]
        return []

    # --- media repository ---

    def fetch_media(self, event_id, media_type=None, user_token=None):
        self._check("fetch_media")
        rows = [m for m in self.media if m["event_id"] == event_id and (not media_type or m["type"] == media_type)]
        return [dict(m) for m in sorted(rows, key=lambda m: m["created_at"], reverse=True)]

    def get_media(self, media_id, user_token=None):
        self._check("get_media")
        rows = [m for m in self.media if m["id"] == media_id]
        return dict(rows[0]) if rows else None

    @staticmethod
    def public_url(storage_path):
        return f"https://cdn.test/event-media/{storage_path}" if storage_path else None

    def remove_file(self, storage_path, user_token=None):
        self._check("remove_file")
        if storage_path not in self.storage:
            raise DataAccessError("remove_file", "Object not found")
        del self.storage[storage_path]
        self.removed_files.append(storage_path)

    def delete_media_record(self, media_id, user_token=None):
        self._check("delete_media_record")
        self.media = [m for m in self.media if m["id"] != media_id]


PATCHED = {
    "rimaqr.events.repository": ("fetch_latest_event", "create_event", "update_event", "insert_share_code"),
    "rimaqr.catalog.repository": ("get_package", "list_packages", "get_products_map"),
    "rimaqr.orders.repository": (
        "fetch_latest_purchase", "fetch_paid_purchases", "list_purchases", "fetch_purchase",
        "fetch_purchase_items", "insert_purchase", "insert_purchase_items", "update_purchase",
        "mark_attempt_failed", "delete_purchase", "update_purchase_by_correlation", "update_purchase_as_service",
    ),
    "rimaqr.media.repository": ("fetch_media", "get_media", "public_url", "remove_file", "delete_media_record"),
}

@pytest.fixture
def fake_db(monkeypatch) -> FakeDB:
    db = FakeDB()
    for module, names in PATCHED.items():
        for name in names:
            monkeypatch.setattr(f"{module}.{name}", getattr(db, name))
    return db


class FakeGateway(PaymentGateway):
    """Passerelle de test: jetons déterministes, échecs programmables."""

    name = "fake"

    def __init__(self) -> None:
        super().__init__(success_prefix="https://rimaqr.test/payment/success", failure_prefix="https://rimaqr.test/payment/fail")
        self.requests = []
        self.errors: List[Exception] = []
        self._n = itertools.count(1)

    def hosted_page_url(self, token: str) -> str:
        return f"https://gateway.test/pay/{token}"

    def request_token(self, request, user_token=None):
        self.requests.append(request)
        if self.errors:
            raise self.errors.pop(0)
        n = next(self._n)
        return TokenResponse(
            status="success",
            token=f"tok-{n}",
            correlation_id=f"corr-{request.order_id}-{n}",
            payment_url=self.hosted_page_url(f"tok-{n}"),
        )

    def fail_next(self, reason: str = "Gateway unavailable") -> None:
        self.errors.append(GatewayError(reason, reason=reason))

@pytest.fixture
def fake_gateway(monkeypatch) -> FakeGateway:
    gateway = FakeGateway()
    monkeypatch.setattr("rimaqr.orders.pipeline.get_gateway", lambda name=None: gateway)
    return gateway
