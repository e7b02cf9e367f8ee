import os

# Окружение выставляем до импорта модулей приложения: database/redis_client читают его при импорте
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_HOST"] = ""
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ.pop("ADMIN_EMAIL", None)
os.environ.pop("ADMIN_PASSWORD", None)
os.environ.pop("RESERVATION_CONFLICT_MODE", None)
os.environ.pop("ALLOW_SAME_DAY_TURNOVER", None)
os.environ.pop("RESERVATION_FEE", None)

from typing import Dict, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import auth
import models
from database import get_db
from errors import GatewayError
from main import app
from payment_gateway import PaymentIntent, get_payment_gateway


class FakeGateway:
    """Платежный процессор в памяти. Статус intent задается тестом через set_status."""

    def __init__(self):
        self.intents: Dict[str, PaymentIntent] = {}
        self.cancelled = []
        self.unavailable = False
        self.retrieve_calls = 0

    def _check(self):
        if self.unavailable:
            raise GatewayError("Payment processor is unavailable")

    def create_intent(self, amount, currency, metadata=None):
        self._check()
        intent_id = f"pi_test_{len(self.intents) + 1}"
        intent = PaymentIntent(
            id=intent_id,
            status="requires_payment_method",
            amount=amount,
            currency=currency,
            client_secret=f"{intent_id}_secret",
            metadata=dict(metadata or {}),
        )
        self.intents[intent_id] = intent
        return intent

    def retrieve_intent(self, intent_id):
        self._check()
        self.retrieve_calls += 1
        if intent_id not in self.intents:
            raise GatewayError(f"No such payment_intent: {intent_id}")
        return self.intents[intent_id]

    def cancel_intent(self, intent_id):
        self._check()
        self.cancelled.append(intent_id)
        intent = self.intents[intent_id]
        intent.status = "canceled"
        return intent

    def set_status(self, intent_id, status):
        self.intents[intent_id].status = status


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(bind=engine)
    yield engine
    models.Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(db_session, gateway):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create_user(db, email: str, role: str, name: Optional[str] = None, password: str = "secret123"):
    user = models.User(
        email=email,
        name=name or email.split("@")[0],
        password=auth.get_password_hash(password),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user) -> Dict[str, str]:
    token = auth.create_access_token({"sub": user.id, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_user(db_session):
    return _create_user(db_session, "admin@hotel.test", "admin", "Admin")


@pytest.fixture
def staff_user(db_session):
    return _create_user(db_session, "staff@hotel.test", "staff", "Staff")


@pytest.fixture
def customer(db_session):
    return _create_user(db_session, "guest@hotel.test", "user", "Guest")


@pytest.fixture
def other_customer(db_session):
    return _create_user(db_session, "other@hotel.test", "user", "Other")


@pytest.fixture
def admin_headers(admin_user):
    return auth_headers(admin_user)


@pytest.fixture
def staff_headers(staff_user):
    return auth_headers(staff_user)


@pytest.fixture
def customer_headers(customer):
    return auth_headers(customer)


@pytest.fixture
def other_headers(other_customer):
    return auth_headers(other_customer)


@pytest.fixture
def room(db_session):
    room = models.Room(
        name="Deluxe Sea View",
        type="deluxe",
        price=100.0,
        capacity=2,
        status="available",
        floor=3,
        room_number="301",
    )
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture
def table(db_session):
    table = models.Table(table_number=5, capacity=4, status="available", location="Terrace")
    db_session.add(table)
    db_session.commit()
    db_session.refresh(table)
    return table


@pytest.fixture
def food_items(db_session):
    items = [
        models.FoodItem(name="Caesar Salad", price=8.5, category="appetizer", available=True),
        models.FoodItem(name="Ribeye Steak", price=32.0, category="main", available=True),
        models.FoodItem(name="Seasonal Special", price=20.0, category="main", available=False),
    ]
    db_session.add_all(items)
    db_session.commit()
    for item in items:
        db_session.refresh(item)
    return items


def booking_payload(room_id: int, check_in: str = "2024-06-01", check_out: str = "2024-06-04", guests: int = 2):
    return {"roomId": room_id, "checkIn": check_in, "checkOut": check_out, "guests": guests}


def reservation_payload(table_id: int, reservation_date: str = "2024-06-10", reservation_time: str = "19:00",
                        guests: int = 2, **extra):
    payload = {
        "tableId": table_id,
        "reservationDate": reservation_date,
        "reservationTime": reservation_time,
        "guests": guests,
    }
    payload.update(extra)
    return payload
