import os
from datetime import datetime, timezone
from typing import Generator

os.environ.setdefault("STORAGE_BACKEND", "memory")

import pytest
from sqlalchemy import create_engine, StaticPool
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient
from faker import Faker

from core.storage.memory_store import InMemoryKeyValueStore
from models_local.base import LocalBase
from models_local.state import State  # noqa: F401
from repositories.form_repository import FormRepository
from schemas.form import DerivedConfig, FieldType, FormField, FormSchema, ValidationRules
from services.form_controller import FormController

fake = Faker()

FIXED_NOW = datetime(2026, 10, 19, 9, 30, 0)

# Test database setup
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={
        "check_same_thread": False,
    },
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def session_factory() -> Generator[sessionmaker, None, None]:
    """Session factory bound to a fresh in-memory state table."""
    LocalBase.metadata.create_all(bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        LocalBase.metadata.drop_all(bind=engine)


@pytest.fixture
def memory_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def form_repository(memory_store: InMemoryKeyValueStore) -> FormRepository:
    return FormRepository(memory_store)


@pytest.fixture
def controller(form_repository: FormRepository) -> FormController:
    """Controller with a fixed clock so derived values are reproducible."""
    return FormController(form_repository, clock=lambda: FIXED_NOW)


@pytest.fixture
def client(controller: FormController) -> Generator[TestClient, None, None]:
    """Test client whose session controller is the `controller` fixture."""
    from main import app
    from services.form_controller import get_form_controller

    app.dependency_overrides[get_form_controller] = lambda: controller
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def sample_form() -> FormSchema:
    """Form with a plain number input, a required email and a derived field."""
    return FormSchema(
        id="form_1760000000000",
        name=fake.catch_phrase(),
        created_at=datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        fields=[
            FormField(
                id="birthYear",
                type=FieldType.NUMBER,
                label="Birth year",
                default_value=1990,
            ),
            FormField(
                id="email",
                type=FieldType.TEXT,
                label="Email",
                validations=ValidationRules(required=True, email=True),
            ),
            FormField(
                id="age",
                type=FieldType.NUMBER,
                label="Age",
                derived=DerivedConfig(parent_field_ids=["birthYear"], formula="currentYear - birthYear"),
            ),
        ],
    )
