"""Pytest configuration: in-memory database and common ledger fixtures."""

from datetime import date
from decimal import Decimal

import pytest

from estate_ledger.config import LedgerSettings, reset_settings
from estate_ledger.models import Base
from estate_ledger.models.bill import FeeType
from estate_ledger.models.household import Household, OccupancyStatus, Resident
from estate_ledger.models.period import Period
from estate_ledger.models.tariff import FlatFeeTariff, WaterTariff
from estate_ledger.services.db import create_engine_for_url, create_session_factory


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Keep the cached settings instance from leaking between tests."""
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def ledger_settings():
    """Settings with defaults only (no .env file)."""
    return LedgerSettings(_env_file=None)


@pytest.fixture
async def async_db_session():
    """Create async test database session."""
    engine = create_engine_for_url("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = create_session_factory(engine)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
async def periods(async_db_session):
    """Three consecutive monthly periods, January to March 2025."""
    created = [
        Period(
            name=name,
            start_date=date(2025, month, 1),
            end_date=date(2025, month, 28),
            sequence_number=month,
        )
        for month, name in ((1, "Januari 2025"), (2, "Februari 2025"), (3, "Maret 2025"))
    ]
    async_db_session.add_all(created)
    await async_db_session.commit()
    return created


@pytest.fixture
async def residents(async_db_session):
    created = [
        Resident(name="Budi Santoso"),
        Resident(name="Siti Aminah"),
        Resident(name="Pak Harjo", has_special_condition=True),
    ]
    async_db_session.add_all(created)
    await async_db_session.commit()
    return created


@pytest.fixture
async def households(async_db_session, residents):
    """Occupied, vacant and special-condition units."""
    created = [
        Household(unit_label="A1/01", current_resident_id=residents[0].id),
        Household(unit_label="A1/02", current_resident_id=residents[1].id),
        Household(unit_label="A1/03", occupancy_status=OccupancyStatus.VACANT),
        Household(unit_label="A1/04", current_resident_id=residents[2].id),
    ]
    async_db_session.add_all(created)
    await async_db_session.commit()
    return created


@pytest.fixture
async def water_tariff(async_db_session):
    tariff = WaterTariff(
        rate_per_unit=Decimal("5000"),
        effective_from=date(2024, 1, 1),
        is_active=True,
    )
    async_db_session.add(tariff)
    await async_db_session.commit()
    return tariff


@pytest.fixture
async def flat_fee_tariffs(async_db_session):
    """One active IPL tariff per tier."""
    amounts = {
        FeeType.NORMAL: Decimal("150000"),
        FeeType.VACANT: Decimal("75000"),
        FeeType.REDUCED: Decimal("50000"),
    }
    created = {
        fee_type: FlatFeeTariff(
            fee_type=fee_type,
            amount=amount,
            effective_from=date(2024, 1, 1),
            is_active=True,
        )
        for fee_type, amount in amounts.items()
    }
    async_db_session.add_all(created.values())
    await async_db_session.commit()
    return created
