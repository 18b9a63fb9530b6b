import os
import sys
from datetime import time
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Settings are read at import time, so the environment goes first
os.environ["TESTING"] = "1"
os.environ["TEST_DATABASE_URL"] = "sqlite:///./test.db"

import pytest
from fastapi.testclient import TestClient

from booksmile.main import app
from booksmile.core.database import Base, SessionLocal, engine, redis_client
from booksmile.core.security import Actor, UserRole, create_token_pair, get_password_hash
from booksmile.models import AvailabilityRule, Dentist, User

TEST_PASSWORD = "TestPassword123"
_password_hash = None

def password_hash() -> str:
    # bcrypt is slow; every fixture user shares one hash
    global _password_hash
    if _password_hash is None:
        _password_hash = get_password_hash(TEST_PASSWORD)
    return _password_hash

def create_user(db, email: str, role: UserRole = UserRole.PATIENT, name: str = "Test User") -> User:
    user = User(
        email=email,
        name=name,
        password_hash=password_hash(),
        role=role,
        is_active=True,
        is_verified=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user

def auth_headers(user: User) -> dict:
    tokens = create_token_pair(user.id, user.email, user.role)
    return {"Authorization": f"Bearer {tokens.access_token}"}

def actor(user: User) -> Actor:
    return Actor.from_user(user)

@pytest.fixture(scope="function")
def test_db():
    Base.metadata.create_all(bind=engine)
    redis_client.flushall()
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def db(test_db):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture
def client(test_db):
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client

@pytest.fixture
def patient(db):
    return create_user(db, "patient@example.com", UserRole.PATIENT, "Pat Patient")

@pytest.fixture
def other_patient(db):
    return create_user(db, "other.patient@example.com", UserRole.PATIENT, "Olive Other")

@pytest.fixture
def secretary(db):
    return create_user(db, "secretary@example.com", UserRole.SECRETARY, "Sam Secretary")

@pytest.fixture
def admin(db):
    return create_user(db, "admin@example.com", UserRole.ADMIN, "Ada Admin")

@pytest.fixture
def dentist_user(db):
    return create_user(db, "dentist@example.com", UserRole.DENTIST, "Dana Dentist")

@pytest.fixture
def dentist(db, dentist_user):
    profile = Dentist(user_id=dentist_user.id, specialization=["general-dentistry"])
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile

@pytest.fixture
def other_dentist(db):
    user = create_user(db, "other.dentist@example.com", UserRole.DENTIST, "Otto Orthodontist")
    profile = Dentist(user_id=user.id, specialization=["orthodontics"])
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile

@pytest.fixture
def monday_hours(db, dentist):
    """Weekly Monday 09:00-17:00 for the default dentist."""
    rule = AvailabilityRule(
        dentist_id=dentist.id,
        day_of_week=0,
        start_time=time(9, 0),
        end_time=time(17, 0),
    )
    db.add(rule)
    db.commit()
    db.refresh(rule)
    return rule
