import pytest

from rimaqr.cart import service as cart_service
from rimaqr.errors import ValidationError


def test_build_cart_uses_catalog_prices(fake_db):
    fake_db.add_product("p1", "Magnet", 500, min_quantity=10, increment_amount=10)
    cart = cart_service.build_cart([{"product_id": "p1", "price_cents": 1}])
    assert cart.total() == 10 * 500


def test_build_cart_unknown_product(fake_db):
    with pytest.raises(ValidationError) as exc:
        cart_service.build_cart([{"product_id": "ghost"}])
    assert exc.value.field == "product_id"


def test_build_cart_inactive_product(fake_db):
    fake_db.add_product("p1", "Ancien", 500, is_active=False)
    with pytest.raises(ValidationError):
        cart_service.build_cart([{"product_id": "p1"}])


def test_quote_with_package(fake_db):
    fake_db.add_package("basic", "Basic", 49900, 500 * 1024 * 1024)
    fake_db.add_product("p1", "Cadre", 12000)
    result = cart_service.quote([{"product_id": "p1", "quantity": 2}], "basic")
    assert result["items_total_cents"] == 24000
    assert result["package_price_cents"] == 49900
    assert result["total_cents"] == 73900
    assert result["lines"][0]["product_id"] == "p1"


def test_quote_unknown_package(fake_db):
    with pytest.raises(ValidationError) as exc:
        cart_service.quote([], "nope")
    assert exc.value.field == "package_id"
