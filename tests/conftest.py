import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "whsec_test"
os.environ["ADMIN_EMAIL"] = "admin@example.com"
os.environ["ADMIN_PASSWORD"] = "admin-pass-123"
os.environ.pop("RABBIT_URL", None)

import pytest
from fastapi.testclient import TestClient

from mentorconnect.database import SessionLocal, engine
from mentorconnect.main import app
from mentorconnect.models import Base


@pytest.fixture
def client():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(client):
    session = SessionLocal()
    yield session
    session.close()


def with_headers(data):
    data["headers"] = {"Authorization": f"Bearer {data['token']}"}
    return data


@pytest.fixture
def signup(client):
    def _signup(email, user_type="aspirant", name="Test User", password="secret123", **extra):
        payload = {"name": name, "email": email, "password": password, "user_type": user_type, **extra}
        r = client.post("/api/auth/signup", json=payload)
        assert r.status_code == 201, r.text
        return with_headers(r.json())
    return _signup


@pytest.fixture
def admin(client):
    r = client.post("/api/auth/admin-login", json={"email": "admin@example.com", "password": "admin-pass-123"})
    assert r.status_code == 200, r.text
    return with_headers(r.json())


@pytest.fixture
def aspirant(signup):
    return signup("asha@example.com", name="Asha Verma", exam_type="UPSC CSE")


@pytest.fixture
def mentor(client, signup, admin):
    m = signup("ravi@example.com", user_type="achiever", name="Ravi Kumar",
               exam_cleared="UPSC CSE", rank="42", year="2023")
    r = client.put(f"/api/admin/users/{m['user']['id']}/approve", headers=admin["headers"])
    assert r.status_code == 200, r.text
    return m


@pytest.fixture
def fund_wallet(client, admin):
    def _fund(user_id, amount):
        r = client.post("/api/wallets/topup", json={"user_id": user_id, "amount": amount}, headers=admin["headers"])
        assert r.status_code == 200, r.text
        return r.json()
    return _fund
