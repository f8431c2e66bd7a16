def test_root_and_database_check(client, profile):
    assert client.get("/").json() == {"message": "Nikkei Store API running"}
    body = client.get("/test").json()
    assert body["backend"] == "✅ Running"
    assert "profile" in body["collections"]


def test_profile_crud(client):
    created = client.post("/api/profiles", json={"name": "Admin"}).json()
    assert created["name"] == "Admin"
    assert created["description"] is None

    updated = client.put(f"/api/profiles/{created['id']}", json={"description": "Back office"}).json()
    assert updated == {"id": created["id"], "name": "Admin", "description": "Back office"}
    assert client.get("/api/profiles").json() == [updated]

    ack = client.delete(f"/api/profiles/{created['id']}").json()
    assert ack == {"status": "200", "message": "Profile deleted"}
    assert client.get("/api/profiles").json() == []


def test_duplicate_profile_name_is_rejected(client, profile):
    res = client.post("/api/profiles", json={"name": profile["name"]})
    assert res.status_code == 422
    assert res.json()["code"] == "VALIDATION_ERROR"


def test_duplicate_category_name_is_rejected(client, category):
    res = client.post("/api/categories", json={"name": "Sushi"})
    assert res.status_code == 422
    assert res.json()["code"] == "VALIDATION_ERROR"


def test_renaming_category_to_taken_name_is_rejected(client, category):
    other = client.post("/api/categories", json={"name": "Ramen"}).json()
    res = client.put(f"/api/categories/{other['id']}", json={"name": "Sushi"})
    assert res.status_code == 422
    assert client.get("/api/categories").json()[1]["name"] == "Ramen"


def test_update_missing_category_is_not_found(client):
    res = client.put("/api/categories/64b7f0c2a1b2c3d4e5f60718", json={"name": "Tempura"})
    assert res.status_code == 404
    assert res.json() == {"code": "NOT_FOUND", "message": "Category not found"}


def test_product_inlines_category(client, product, category):
    assert product["category"] == {"id": category["id"], "name": "Sushi", "description": None}
    assert product["available"] is True
    assert "category_id" not in product

    fetched = client.get(f"/api/products/{product['id']}").json()
    assert fetched == product


def test_product_requires_existing_category(client):
    res = client.post("/api/products", json={"name": "Roll", "price": 10, "category_id": "64b7f0c2a1b2c3d4e5f60718"})
    assert res.status_code == 400
    assert res.json()["code"] == "BAD_USER_INPUT"

    res = client.post("/api/products", json={"name": "Roll", "price": 10, "category_id": "not-an-id"})
    assert res.status_code == 400


def test_negative_price_is_rejected(client, category, product):
    res = client.post("/api/products", json={"name": "Bad", "price": -1, "category_id": category["id"]})
    assert res.status_code == 422
    assert res.json()["code"] == "VALIDATION_ERROR"

    res = client.put(f"/api/products/{product['id']}", json={"price": -5})
    assert res.status_code == 422
    assert client.get(f"/api/products/{product['id']}").json()["price"] == 5000


def test_partial_product_update_keeps_other_fields(client, product):
    updated = client.put(f"/api/products/{product['id']}", json={"price": 5500}).json()
    assert updated["price"] == 5500
    assert updated["name"] == "Roll"
    assert updated["category"]["name"] == "Sushi"


def test_products_by_category(client, product, category):
    ramen = client.post("/api/categories", json={"name": "Ramen"}).json()
    client.post("/api/products", json={"name": "Shoyu", "price": 7000, "category_id": ramen["id"]})

    assert len(client.get("/api/products").json()) == 2
    sushi = client.get("/api/products", params={"category_id": category["id"]}).json()
    assert [p["name"] for p in sushi] == ["Roll"]


def test_change_availability(client, product):
    res = client.patch(f"/api/products/{product['id']}/availability", json={"available": False})
    assert res.status_code == 200
    assert res.json()["available"] is False


def test_deleted_category_resolves_to_null(client, product, category):
    client.delete(f"/api/categories/{category['id']}")
    fetched = client.get(f"/api/products/{product['id']}").json()
    assert fetched["category"] is None


def test_get_missing_product(client):
    res = client.get("/api/products/unknown")
    assert res.status_code == 404
    assert res.json()["message"] == "Product not found"
