import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from main import create_app


@pytest.fixture
def db():
    return AsyncMongoMockClient()["nikkeidb_test"]


@pytest.fixture
def client(db):
    with TestClient(create_app(database=db)) as c:
        yield c


@pytest.fixture
def profile(client):
    res = client.post("/api/profiles", json={"name": "Cliente", "description": "Store customer"})
    assert res.status_code == 200
    return res.json()


@pytest.fixture
def category(client):
    res = client.post("/api/categories", json={"name": "Sushi"})
    assert res.status_code == 200
    return res.json()


@pytest.fixture
def product(client, category):
    res = client.post("/api/products", json={"name": "Roll", "price": 5000, "category_id": category["id"]})
    assert res.status_code == 200
    return res.json()


def _user_payload(profile_id, email="ana@example.com", national_id="11111111-1"):
    return {
        "email": email,
        "password": "secret",
        "profile_id": profile_id,
        "client": {
            "full_name": "Ana Rojas",
            "national_id": national_id,
            "birth_date": "1990-05-01",
            "phone": "+56911111111",
            "addresses": [{"street": "Av. Siempre Viva 742", "district": "Providencia", "region": "RM"}],
        },
    }


@pytest.fixture
def user_payload():
    return _user_payload


@pytest.fixture
def user(client, profile):
    res = client.post("/api/users", json=_user_payload(profile["id"]))
    assert res.status_code == 200
    return res.json()


@pytest.fixture
def cart(client, user):
    res = client.post(f"/api/clients/{user['client']['id']}/cart")
    assert res.status_code == 200
    return res.json()
