from rimaqr.payments.basket import (
    basket_to_line_items,
    basket_total_cents,
    build_basket,
    cents_to_str,
    str_to_cents,
)


def test_cents_conversions():
    assert cents_to_str(49900) == "499.00"
    assert cents_to_str(5) == "0.05"
    assert str_to_cents("10.10") == 1010
    assert str_to_cents(12.5) == 1250


def test_build_basket_items_and_package_line():
    purchase = {"package_id": "basic", "packages": {"name": "Basic"}, "total_amount_cents": 49900 + 2 * 1200}
    items = [{"products": {"name": "Magnet"}, "unit_price_cents": 1200, "quantity": 2, "customization_text": "A&M"}]
    basket = build_basket(purchase, items)
    assert basket == [["Magnet (A&M)", "12.00", 2], ["Basic", "499.00", 1]]
    assert basket_total_cents(basket) == purchase["total_amount_cents"]


def test_build_basket_uses_snapshot_price_not_catalog():
    purchase = {"package_id": None, "total_amount_cents": 1000}
    items = [{"products": {"name": "Cadre", "price_cents": 9999}, "unit_price_cents": 500, "quantity": 2}]
    assert build_basket(purchase, items) == [["Cadre", "5.00", 2]]


def test_build_basket_fallback_single_line():
    basket = build_basket({"total_amount_cents": 7500}, [])
    assert basket == [["Package RimaQR", "75.00", 1]]


def test_line_items_for_stripe():
    line_items = basket_to_line_items([["Basic", "499.00", 1], ["Gratuit", "0.00", 1]], "TRY")
    assert line_items == [{
        "quantity": 1,
        "price_data": {"currency": "try", "unit_amount": 49900, "product_data": {"name": "Basic"}},
    }]
