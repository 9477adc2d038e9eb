"""
Test configuration and fixtures for Triage Desk backend tests.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from typing import Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from main import app
from app.db.base import Base
from app.db.session import get_db
from app.services.decision_tables import activate_decision_table, create_decision_table
from app.services.triage.demo_tables import LOAN_TEST_VALUES, loan_decision_table


# Use in-memory SQLite for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def loan_table():
    """A fresh, unsaved copy of the policy loan demo table."""
    return loan_decision_table()


@pytest.fixture
def stored_loan_table(db: Session):
    """The policy loan demo table, stored and active."""
    table = create_decision_table(db, loan_decision_table(), updated_by="test-operator")
    return activate_decision_table(db, table.id)


@pytest.fixture
def loan_case(db: Session):
    """A policy loan case whose facts match the loan demo values."""
    from app.db.models import TransactionCase, CaseStatus

    case = TransactionCase(
        case_id="TXN-TEST0001",
        policy_number="UL-204-118-553",
        owner_name="Test Owner",
        transaction_type_key="policy_loan",
        channel_source="Portal",
        status=CaseStatus.INTAKE,
        idp_fields=[],
        policy_fields=dict(LOAN_TEST_VALUES),
        workflow_fields={},
    )
    db.add(case)
    db.commit()
    db.refresh(case)
    return case


@pytest.fixture
def operator_headers() -> dict:
    """Headers identifying the operator making changes."""
    return {"X-Operator-Id": "ops-jlee"}
