import pytest
from unittest.mock import MagicMock, patch

import rimaqr.orders.repository as repo
from rimaqr.errors import DataAccessError


class _Resp:
    def __init__(self, data=None):
        self.data = data


def _mk_client(data=None):
    client = MagicMock()
    query = MagicMock()
    client.table.return_value = query
    for name in ("select", "insert", "update", "delete", "eq", "or_", "order", "limit"):
        getattr(query, name).return_value = query
    query.execute.return_value = _Resp(data)
    return client, query


def _user_client(monkeypatch, client):
    client_for = MagicMock(return_value=client)
    monkeypatch.setattr("rimaqr.infra.supabase_client.client_for", client_for)
    return client_for


def test_fetch_latest_purchase(monkeypatch):
    client, query = _mk_client([{"id": "p2"}])
    client_for = _user_client(monkeypatch, client)

    assert repo.fetch_latest_purchase("e1", user_token="jwt") == {"id": "p2"}

    client_for.assert_called_once_with("jwt")
    client.table.assert_called_once_with("purchases")
    query.select.assert_called_once_with(repo.PURCHASE_SELECT)
    query.eq.assert_called_once_with("event_id", "e1")
    query.order.assert_called_once_with("created_at", desc=True)
    query.limit.assert_called_once_with(1)


def test_fetch_latest_purchase_none(monkeypatch):
    client, _ = _mk_client([])
    _user_client(monkeypatch, client)
    assert repo.fetch_latest_purchase("e1") is None


def test_fetch_paid_purchases_filters_on_paid_fields(monkeypatch):
    client, query = _mk_client([{"id": "p1"}])
    _user_client(monkeypatch, client)

    assert repo.fetch_paid_purchases("e1") == [{"id": "p1"}]

    query.eq.assert_called_once_with("event_id", "e1")
    query.or_.assert_called_once_with("status.eq.completed,payment_status.eq.completed,payment_status.eq.paid")
    query.order.assert_called_once_with("created_at", desc=True)
    query.limit.assert_not_called()


def test_fetch_paid_purchases_exception(monkeypatch):
    client, query = _mk_client()
    query.execute.side_effect = Exception("boom")
    _user_client(monkeypatch, client)
    with pytest.raises(DataAccessError) as exc:
        repo.fetch_paid_purchases("e1")
    assert exc.value.operation == "fetch_paid_purchases"


def test_fetch_purchase_items(monkeypatch):
    client, query = _mk_client(None)
    _user_client(monkeypatch, client)
    assert repo.fetch_purchase_items("p1") == []
    client.table.assert_called_once_with("purchase_items")
    query.select.assert_called_once_with(repo.ITEMS_SELECT)
    query.eq.assert_called_once_with("purchase_id", "p1")


def test_insert_purchase_without_rows(monkeypatch):
    client, query = _mk_client([])
    _user_client(monkeypatch, client)
    with pytest.raises(DataAccessError) as exc:
        repo.insert_purchase({"event_id": "e1"})
    assert exc.value.operation == "insert_purchase"
    query.insert.assert_called_once_with({"event_id": "e1"})


def test_insert_purchase_client_error():
    with patch("rimaqr.infra.supabase_client.client_for", side_effect=Exception("Test exception")):
        with pytest.raises(DataAccessError):
            repo.insert_purchase({"event_id": "e1"}, user_token="jwt")


def test_insert_purchase_items_count_mismatch(monkeypatch):
    client, query = _mk_client([{"id": "i1"}])
    _user_client(monkeypatch, client)
    rows = [{"purchase_id": "p1", "product_id": "a"}, {"purchase_id": "p1", "product_id": "b"}]
    with pytest.raises(DataAccessError) as exc:
        repo.insert_purchase_items(rows)
    assert exc.value.operation == "insert_purchase_items"
    query.insert.assert_called_once_with(rows)


def test_insert_purchase_items_empty_skips_backend(monkeypatch):
    client_for = _user_client(monkeypatch, MagicMock())
    assert repo.insert_purchase_items([]) == []
    client_for.assert_not_called()


def test_update_purchase(monkeypatch):
    client, query = _mk_client([{"id": "p1", "city": "Izmir"}])
    _user_client(monkeypatch, client)
    assert repo.update_purchase("p1", {"city": "Izmir"}, user_token="jwt") == {"id": "p1", "city": "Izmir"}
    query.update.assert_called_once_with({"city": "Izmir"})
    query.eq.assert_called_once_with("id", "p1")


def test_update_purchase_no_rows(monkeypatch):
    client, _ = _mk_client([])
    _user_client(monkeypatch, client)
    with pytest.raises(DataAccessError) as exc:
        repo.update_purchase("p1", {"city": "Izmir"})
    assert exc.value.operation == "update_purchase"


def test_mark_attempt_failed_only_touches_pending(monkeypatch):
    client, query = _mk_client([])
    _user_client(monkeypatch, client)
    assert repo.mark_attempt_failed("p1", user_token="jwt") == []
    query.update.assert_called_once_with({"payment_status": "failed"})
    assert [c.args for c in query.eq.call_args_list] == [
        ("id", "p1"), ("status", "pending"), ("payment_status", "pending"),
    ]


def test_delete_purchase_removes_items_first(monkeypatch):
    client, query = _mk_client([])
    _user_client(monkeypatch, client)
    repo.delete_purchase("p1")
    assert [c.args[0] for c in client.table.call_args_list] == ["purchase_items", "purchases"]
    assert query.delete.call_count == 2


def test_update_purchase_by_correlation_uses_service_client(monkeypatch):
    client, query = _mk_client([{"id": "p1"}])
    client_for = _user_client(monkeypatch, MagicMock())
    monkeypatch.setattr("rimaqr.infra.supabase_client.get_service_supabase", lambda: client)

    assert repo.update_purchase_by_correlation("cs_1", {"payment_status": "paid"}) == [{"id": "p1"}]

    client_for.assert_not_called()
    query.eq.assert_called_once_with("gateway_correlation_id", "cs_1")


def test_update_purchase_as_service(monkeypatch):
    client, query = _mk_client(None)
    monkeypatch.setattr("rimaqr.infra.supabase_client.get_service_supabase", lambda: client)
    assert repo.update_purchase_as_service("p1", {"payment_status": "paid"}) == []
    query.update.assert_called_once_with({"payment_status": "paid"})
    query.eq.assert_called_once_with("id", "p1")


def test_update_purchase_by_correlation_exception(monkeypatch):
    monkeypatch.setattr(
        "rimaqr.infra.supabase_client.get_service_supabase",
        lambda: (_ for _ in ()).throw(Exception("boom")),
    )
    with pytest.raises(DataAccessError):
        repo.update_purchase_by_correlation("cs_1", {"payment_status": "paid"})
