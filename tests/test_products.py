from datetime import datetime, timedelta
from unittest.mock import MagicMock

from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import PyMongoError

from conftest import bearer
from database import get_db
from main import app


def insert_products(db, count):
    start = datetime(2024, 1, 1)
    db.products.insert_many(
        [
            {"name": f"item-{i}", "price": i, "email": "seller@example.com", "created_at": start + timedelta(days=i)}
            for i in range(count)
        ]
    )


def test_list_products_filters_by_owner(client, db):
    db.products.insert_many(
        [
            {"name": "Lamp", "price": 20, "email": "seller@example.com"},
            {"name": "Desk", "price": 90, "email": "other@example.com"},
        ]
    )

    everything = client.get("/products").json()
    assert {p["name"] for p in everything} == {"Lamp", "Desk"}
    assert all(isinstance(p["_id"], str) for p in everything)

    mine = client.get("/products", params={"email": "seller@example.com"}).json()
    assert [p["name"] for p in mine] == ["Lamp"]


def test_latest_products_newest_six(client, db):
    insert_products(db, 8)

    response = client.get("/latest-products")
    assert response.status_code == 200
    names = [p["name"] for p in response.json()]
    assert names == ["item-7", "item-6", "item-5", "item-4", "item-3", "item-2"]


def test_latest_products_with_few_products(client, db):
    insert_products(db, 2)
    assert len(client.get("/latest-products").json()) == 2


def test_create_product_requires_token(client, db):
    response = client.post("/products", json={"name": "Lamp", "price": 20})
    assert response.status_code == 401
    assert response.json()["detail"] == "unauthorized access"
    assert db.products.count_documents({}) == 0


def test_create_product_rejects_unknown_token(client, db):
    response = client.post("/products", json={"name": "Lamp"}, headers=bearer("forged"))
    assert response.status_code == 401
    assert db.products.count_documents({}) == 0


def test_create_then_fetch_product(client):
    response = client.post(
        "/products", json={"name": "Lamp", "price": 20}, headers=bearer("seller-token")
    )
    assert response.status_code == 200
    inserted_id = response.json()["insertedId"]
    assert ObjectId.is_valid(inserted_id)

    product = client.get(f"/products/{inserted_id}").json()
    assert product["_id"] == inserted_id
    assert product["name"] == "Lamp"
    assert product["price"] == 20
    assert "created_at" in product


def test_get_unknown_product(client):
    response = client.get(f"/products/{ObjectId()}")
    assert response.status_code == 200
    assert response.json() == {"message": "Product not found"}


def test_invalid_id_never_reaches_store():
    store = MagicMock()
    app.dependency_overrides[get_db] = lambda: store
    try:
        client = TestClient(app)
        for method in ("get", "patch", "delete"):
            response = client.request(method.upper(), "/products/not-an-id")
            assert response.status_code == 400
            assert response.json()["detail"] == "Invalid product ID"
        assert client.delete("/bids/123").json()["detail"] == "Invalid bid ID"
    finally:
        app.dependency_overrides.clear()

    store.__getitem__.assert_not_called()


def test_patch_sets_only_name_and_price(client, db):
    product_id = db.products.insert_one({"name": "Lamp", "price": 20, "email": "seller@example.com"}).inserted_id

    response = client.patch(
        f"/products/{product_id}", json={"name": "Big Lamp", "price": 35, "email": "thief@example.com"}
    )
    assert response.status_code == 200
    assert response.json() == {"acknowledged": True, "matchedCount": 1, "modifiedCount": 1, "upsertedId": None}

    stored = db.products.find_one({"_id": product_id})
    assert stored["name"] == "Big Lamp"
    assert stored["price"] == 35
    assert stored["email"] == "seller@example.com"


def test_patch_missing_fields_are_written_as_null(client, db):
    product_id = db.products.insert_one({"name": "Lamp", "price": 20}).inserted_id

    client.patch(f"/products/{product_id}", json={"price": 25})

    stored = db.products.find_one({"_id": product_id})
    assert stored["price"] == 25
    assert stored["name"] is None


def test_delete_product(client, db):
    product_id = db.products.insert_one({"name": "Lamp"}).inserted_id

    response = client.delete(f"/products/{product_id}")
    assert response.json() == {"acknowledged": True, "deletedCount": 1}
    assert db.products.count_documents({}) == 0

    again = client.delete(f"/products/{product_id}")
    assert again.json()["deletedCount"] == 0


def test_store_failure_is_internal_error():
    store = MagicMock()
    store.__getitem__.return_value.find.side_effect = PyMongoError("connection reset")
    app.dependency_overrides[get_db] = lambda: store
    try:
        response = TestClient(app).get("/products")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}


def test_create_product_without_body(client, db):
    response = client.post("/products", headers=bearer("seller-token"))
    assert response.status_code == 200
    assert db.products.count_documents({}) == 1


def test_create_product_keeps_explicit_nulls(client, db):
    response = client.post(
        "/products",
        json={"name": "Lamp", "price": None, "meta": {"note": None}},
        headers=bearer("seller-token"),
    )
    assert response.status_code == 200

    stored = db.products.find_one({"_id": ObjectId(response.json()["insertedId"])})
    assert "price" in stored and stored["price"] is None
    assert stored["meta"] == {"note": None}
    assert stored["name"] == "Lamp"


def test_nested_object_ids_are_rendered_as_strings(client, db):
    seller_id = ObjectId()
    tag_id = ObjectId()
    product_id = db.products.insert_one({"name": "Lamp", "seller": {"ref": seller_id}, "tags": [tag_id]}).inserted_id

    product = client.get(f"/products/{product_id}").json()
    assert product["seller"] == {"ref": str(seller_id)}
    assert product["tags"] == [str(tag_id)]
