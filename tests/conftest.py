"""Shared test fixtures and helpers."""

import os

# Settings are read once at import time; keep the module-level engine off PostgreSQL
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config.database import build_engine, create_tables
from app.config.settings import Settings
from app.models import (
    Base,
    Company,
    CorporateMember,
    CorporateRate,
    DepartmentBudget,
    TripAppointment,
)
from app.services.appointment.appointment_service import AppointmentService
from app.services.availability.availability_service import SLOT_CATALOG

TEST_DATE = date(2024, 6, 1)


@pytest.fixture
def settings():
    return Settings(DATABASE_URL="sqlite://", OVERPAYMENT_POLICY="reject", _env_file=None)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def file_session_factory(tmp_path):
    """File-backed database shared by worker threads, one session each."""
    engine = build_engine(f"sqlite:///{tmp_path / 'booking.db'}")
    create_tables(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def appointment_service(db, settings):
    return AppointmentService(db, settings=settings)


# ============================================================================
# Helpers
# ============================================================================

def make_company(db, require_approval: bool = True, budget_controls_enabled: bool = True, **overrides) -> Company:
    company = Company(
        id=uuid4(),
        name=overrides.pop("name", "Acme Travel Corp"),
        currency=overrides.pop("currency", "USD"),
        require_approval=require_approval,
        budget_controls_enabled=budget_controls_enabled,
        **overrides,
    )
    db.add(company)
    db.commit()
    return company


def make_member(
    db,
    company: Company,
    approval_limit: Decimal = Decimal("0"),
    can_approve: bool = False,
    department: str = "Sales",
    **overrides,
) -> CorporateMember:
    member = CorporateMember(
        id=uuid4(),
        company_id=company.id,
        email=overrides.pop("email", f"{uuid4().hex[:8]}@acme.example"),
        full_name=overrides.pop("full_name", "Jordan Lee"),
        department=department,
        can_approve=can_approve,
        approval_limit=approval_limit,
        **overrides,
    )
    db.add(member)
    db.commit()
    return member


def make_budget(
    db,
    company: Company,
    department: str = "Sales",
    annual_budget: Decimal = Decimal("10000"),
    spent_amount: Decimal = Decimal("0"),
) -> DepartmentBudget:
    budget = DepartmentBudget(
        id=uuid4(),
        company_id=company.id,
        department=department,
        annual_budget=annual_budget,
        spent_amount=spent_amount,
    )
    db.add(budget)
    db.commit()
    return budget


def make_rate(
    db,
    company: Company,
    category: str = "flight",
    discount_type: str = "percentage",
    discount_value: Decimal = Decimal("10"),
    valid_from: Optional[datetime] = None,
    valid_to: Optional[datetime] = None,
) -> CorporateRate:
    now = datetime.now(timezone.utc)
    rate = CorporateRate(
        id=uuid4(),
        company_id=company.id,
        category=category,
        discount_type=discount_type,
        discount_value=discount_value,
        valid_from=valid_from or now - timedelta(days=30),
        valid_to=valid_to or now + timedelta(days=30),
    )
    db.add(rate)
    db.commit()
    return rate


def book_appointment(
    service: AppointmentService,
    time_slot: str = SLOT_CATALOG[0],
    preferred_date: date = TEST_DATE,
    customer_id: Optional[UUID] = None,
    **overrides,
) -> TripAppointment:
    """Create an appointment and fail the test if the slot was taken."""
    result = service.create_appointment(
        customer_id=customer_id or uuid4(),
        first_name=overrides.pop("first_name", "Sam"),
        last_name=overrides.pop("last_name", "Rivera"),
        email=overrides.pop("email", "sam@example.com"),
        phone=overrides.pop("phone", "+15550100"),
        trip_id=overrides.pop("trip_id", uuid4()),
        preferred_date=preferred_date,
        time_slot=time_slot,
        trip_title=overrides.pop("trip_title", "Kyoto in Autumn"),
        destination=overrides.pop("destination", "Kyoto"),
        **overrides,
    )
    assert result.ok, result.message
    return result.value


def completed_appointment(
    service: AppointmentService,
    quoted_price: Optional[Decimal] = Decimal("1200"),
    **overrides,
) -> TripAppointment:
    """Appointment that went through confirm and a finished consultation."""
    appointment = book_appointment(service, **overrides)
    agent_id = uuid4()
    service.confirm(appointment.id, agent_id=agent_id)
    return service.complete_consultation(
        appointment.id,
        agent_id=agent_id,
        notes="Wants the ryokan upgrade",
        quoted_price=quoted_price,
    )
