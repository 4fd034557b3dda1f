import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import main
import notifications
from database import get_db, init_db
from models import Discount, Product, User
from security import get_password_hash, token_for


@pytest.fixture()
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def no_outgoing_email(monkeypatch):
    monkeypatch.setattr(notifications, "RESEND_API_KEY", None)


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    main.app.dependency_overrides[get_db] = override_get_db
    main.order_limiter.reset()
    main.login_limiter.reset()
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture()
def reload(db):
    """Fetch a fresh copy of a row after the API has changed it."""
    def _reload(model, pk):
        db.expire_all()
        return db.get(model, pk)
    return _reload


@pytest.fixture()
def make_product(db):
    def _make(**kwargs):
        fields = dict(name="Linen Shirt", category="shirts", price=250.0, stock_quantity=5, sold=False, images=[], sizes=["M", "L"])
        fields.update(kwargs)
        product = Product(**fields)
        db.add(product)
        db.commit()
        return product
    return _make


@pytest.fixture()
def make_discount(db):
    def _make(**kwargs):
        fields = dict(code="SAVE10", type="percentage", value=10, min_quantity=0, usage_limit=None, used_count=0, is_active=True)
        fields.update(kwargs)
        discount = Discount(**fields)
        db.add(discount)
        db.commit()
        return discount
    return _make


@pytest.fixture()
def make_user(db):
    def _make(email="ama@example.com", role="customer", password="secret123", full_name="Ama Mensah"):
        user = User(email=email, password_hash=get_password_hash(password), full_name=full_name, role=role)
        db.add(user)
        db.commit()
        return user
    return _make


@pytest.fixture()
def customer(make_user):
    return make_user()


@pytest.fixture()
def admin(make_user):
    return make_user(email="admin@example.com", role="admin", full_name="Store Admin")


def auth_headers(user):
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture()
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture()
def customer_headers(customer):
    return auth_headers(customer)


def order_payload(items, total=None, **extra):
    """Checkout body in the shape the web client sends."""
    if total is None:
        total = sum(i["price"] * i["quantity"] for i in items)
    body = {
        "customerName": "Kofi Boateng",
        "customerEmail": "kofi@example.com",
        "customerPhone": "+233201234567",
        "shippingAddress": "12 Oxford Street",
        "shippingCity": "Accra",
        "shippingRegion": "Greater Accra",
        "items": items,
        "total": total,
    }
    body.update(extra)
    return body


def line(product, quantity=1, size="M"):
    return {
        "productId": product.id,
        "name": product.name,
        "quantity": quantity,
        "price": product.price,
        "size": size,
        "image": "",
    }
