"""
HTTP surface, served against an in-memory database.
"""
import pytest
from fastapi.testclient import TestClient

from kakeibo.database import Database
from kakeibo.main import VERSION, create_app
from kakeibo.services.seeder import DEFAULT_CATEGORY_NAMES, DELETED_CATEGORY_NAME


@pytest.fixture
def client():
    database = Database("sqlite://")
    with TestClient(create_app(database)) as c:
        yield c
    database.dispose()


def _tx(amount=1500, category_id=None, day=1, note=""):
    return {
        "amount": amount,
        "type": "expense",
        "date": f"2025-08-{day:02d}T12:00:00",
        "note": note,
        "category_id": category_id,
    }


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "version": VERSION}


class TestCategoriesApi:
    def test_defaults_listed(self, client):
        r = client.get("/categories/")
        assert r.status_code == 200
        assert [c["name"] for c in r.json()] == DEFAULT_CATEGORY_NAMES

    def test_create_and_duplicate(self, client):
        r = client.post("/categories/", json={"name": "カフェ", "icon": "cup", "color": "brown"})
        assert r.status_code == 201
        assert r.json()["name"] == "カフェ"
        assert r.json()["is_default"] is False

        dup = client.post("/categories/", json={"name": "カフェ"})
        assert dup.status_code == 409

    def test_blank_name_rejected(self, client):
        assert client.post("/categories/", json={"name": "   "}).status_code == 422

    def test_default_cannot_be_deleted(self, client):
        default_id = client.get("/categories/").json()[0]["id"]
        r = client.delete(f"/categories/{default_id}")
        assert r.status_code == 409
        assert client.get("/sync/status").json()["error_message"]

    def test_hidden_filtered_by_visible_flag(self, client):
        cat_id = client.post("/categories/", json={"name": "隠し"}).json()["id"]
        r = client.put(f"/categories/{cat_id}", json={"name": "隠し", "icon": "x", "color": "red", "is_visible": False})
        assert r.status_code == 200
        visible = [c["id"] for c in client.get("/categories/", params={"visible": True}).json()]
        assert cat_id not in visible

    def test_update_missing(self, client):
        r = client.put("/categories/9999", json={"name": "無い", "icon": "x", "color": "red"})
        assert r.status_code == 404

    def test_deleted_category_resolves_to_placeholder(self, client):
        cat_id = client.post("/categories/", json={"name": "カフェ"}).json()["id"]
        client.post("/transactions/", json=_tx(category_id=cat_id))

        assert client.delete(f"/categories/{cat_id}").status_code == 204

        info = client.get(f"/categories/{cat_id}/info").json()
        assert info["name"] == DELETED_CATEGORY_NAME
        assert info["is_deleted"] is True
        assert cat_id in [c["id"] for c in client.get("/categories/all").json()]
        usage = client.get("/categories/deleted-usage").json()
        assert usage == [{"category_id": cat_id, "category_name": DELETED_CATEGORY_NAME, "usage_count": 1}]

    def test_reorder(self, client):
        cats = client.get("/categories/").json()
        order = [{"id": c["id"], "sort_order": n} for n, c in enumerate(reversed(cats))]
        r = client.put("/categories/order", json=order)
        assert r.status_code == 200
        assert [c["name"] for c in r.json()] == list(reversed(DEFAULT_CATEGORY_NAMES))

    def test_reset(self, client):
        old_ids = {c["id"] for c in client.get("/categories/").json()}
        r = client.post("/categories/reset")
        assert r.status_code == 200
        assert [c["name"] for c in r.json()] == DEFAULT_CATEGORY_NAMES
        assert old_ids.isdisjoint(c["id"] for c in r.json())


class TestTransactionsApi:
    def test_create_list_filter(self, client):
        food = client.get("/categories/").json()[0]["id"]
        r = client.post("/transactions/", json=_tx(amount=800, category_id=food, day=2))
        assert r.status_code == 201
        client.post("/transactions/", json=_tx(day=3))

        listed = client.get("/transactions/").json()
        assert [t["date"][:10] for t in listed] == ["2025-08-03", "2025-08-02"]
        only_food = client.get("/transactions/", params={"category_id": food}).json()
        assert [t["amount"] for t in only_food] == [800]

    def test_negative_amount_rejected(self, client):
        assert client.post("/transactions/", json=_tx(amount=-1)).status_code == 422

    def test_update_and_delete_missing(self, client):
        assert client.put("/transactions/9999", json=_tx()).status_code == 404
        assert client.delete("/transactions/9999").status_code == 404

    def test_update(self, client):
        tx_id = client.post("/transactions/", json=_tx()).json()["id"]
        r = client.put(f"/transactions/{tx_id}", json=_tx(amount=2000, note="修正"))
        assert r.status_code == 200
        assert r.json()["amount"] == 2000
        assert r.json()["note"] == "修正"

    def test_bulk_delete(self, client):
        ids = [client.post("/transactions/", json=_tx(day=d)).json()["id"] for d in (1, 2)]
        r = client.post("/transactions/bulk-delete", json={"ids": ids})
        assert r.status_code == 200
        assert r.json() == {"deleted": 2}
        assert client.get("/transactions/").json() == []

    def test_import(self, client):
        rows = [
            {"amount": 450, "date": "2025-08-01T09:00:00", "category_name": "カフェ"},
            {"amount": 1200, "date": "2025-08-02T09:00:00", "category_name": "食費"},
        ]
        r = client.post("/transactions/import", json=rows)
        assert r.status_code == 201
        assert r.json() == {"imported": 2, "created_categories": 1}
        assert "カフェ" in [c["name"] for c in client.get("/categories/").json()]


class TestSyncApi:
    def test_status_and_refresh(self, client):
        client.post("/transactions/", json=_tx())
        status = client.get("/sync/status").json()
        assert status["transaction_count"] == 1
        assert status["category_count"] == 4
        assert status["is_operating"] is False

        r = client.post("/sync/refresh")
        assert r.status_code == 200
        assert r.json()["transaction_count"] == 1

    def test_clear_error(self, client):
        client.post("/categories/", json={"name": "食費"})
        assert client.get("/sync/status").json()["error_message"]
        assert client.delete("/sync/error").status_code == 204
        assert client.get("/sync/status").json()["error_message"] is None
