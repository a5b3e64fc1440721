"""
Pytest configuration and shared fixtures
"""
import os

# Settings are read at import time; keep the app off the on-disk database and
# the background scheduler while testing.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("RECONCILE_INTERVAL_SECONDS", "0")

import pytest
from datetime import date
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from hotel_core.database import Base, get_db
from hotel_core.models import ontology  # noqa: F401
from hotel_core.models.ontology import Property, RoomType, Room, RoomStatus
from hotel_core.security.auth import create_access_token
from hotel_core.services.booking_service import BookingService
from hotel_core.services.reservation_service import LineRequest
from hotel_core.main import app


@pytest.fixture(scope="function")
def db_engine():
    """In-memory database engine"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine):
    """Database session"""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db_session):
    """Test client sharing the test session"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def events():
    """Collects published events; pass events.append as event_publisher"""
    return []


# ============== Inventory Fixtures ==============

@pytest.fixture
def sample_property(db_session):
    prop = Property(code="HTL", name="Harbour Hotel", tax_rate=Decimal("0"),
                    service_charge_rate=Decimal("0"), currency="USD")
    db_session.add(prop)
    db_session.commit()
    db_session.refresh(prop)
    return prop


@pytest.fixture
def other_property(db_session):
    prop = Property(code="OTH", name="Other Hotel", tax_rate=Decimal("0.1"),
                    service_charge_rate=Decimal("0"))
    db_session.add(prop)
    db_session.commit()
    db_session.refresh(prop)
    return prop


@pytest.fixture
def std_type(db_session, sample_property):
    room_type = RoomType(property_id=sample_property.id, name="Standard", code="STD",
                         base_rate=Decimal("100.00"), max_occupancy=2)
    db_session.add(room_type)
    db_session.commit()
    db_session.refresh(room_type)
    return room_type


@pytest.fixture
def dlx_type(db_session, sample_property):
    room_type = RoomType(property_id=sample_property.id, name="Deluxe", code="DLX",
                         base_rate=Decimal("200.00"), max_occupancy=3)
    db_session.add(room_type)
    db_session.commit()
    db_session.refresh(room_type)
    return room_type


def _room(db, prop, room_type, number, status=RoomStatus.VACANT):
    room = Room(property_id=prop.id, room_type_id=room_type.id, room_number=number,
                floor=int(number[0]), status=status)
    db.add(room)
    db.commit()
    db.refresh(room)
    return room


@pytest.fixture
def room_101(db_session, sample_property, std_type):
    return _room(db_session, sample_property, std_type, "101")


@pytest.fixture
def room_102(db_session, sample_property, std_type):
    return _room(db_session, sample_property, std_type, "102")


@pytest.fixture
def room_201(db_session, sample_property, dlx_type):
    return _room(db_session, sample_property, dlx_type, "201")


# ============== Booking Fixtures ==============

@pytest.fixture
def booking_service(db_session, events):
    return BookingService(db_session, event_publisher=events.append)


@pytest.fixture
def booked(booking_service, sample_property, std_type, room_101):
    """Room 101, STD at 100/night, 2024-05-01 -> 2024-05-04"""
    return booking_service.create_reservation(
        sample_property.id, "guest-1", date(2024, 5, 1), date(2024, 5, 4),
        [LineRequest(room_type_id=std_type.id, room_id=room_101.id)],
    )


# ============== Auth Fixtures ==============

@pytest.fixture
def operator_token(sample_property):
    return create_access_token("front-desk-1", sample_property.id)


@pytest.fixture
def auth_headers(operator_token):
    return {"Authorization": f"Bearer {operator_token}"}


@pytest.fixture
def other_auth_headers(other_property):
    return {"Authorization": f"Bearer {create_access_token('other-1', other_property.id)}"}
