"""Unit tests for TariffResolver."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from estate_ledger.models.bill import FeeType
from estate_ledger.models.tariff import FlatFeeTariff, WaterTariff
from estate_ledger.services.errors import NotFoundError
from estate_ledger.services.tariff_service import ResolutionSource, TariffResolver


@pytest.fixture
def resolver(async_db_session):
    return TariffResolver(async_db_session)


class TestResolveWater:
    async def test_picks_latest_effective_on_or_before_date(self, async_db_session, resolver):
        async_db_session.add_all(
            [
                WaterTariff(rate_per_unit=Decimal("4000"), effective_from=date(2024, 1, 1)),
                WaterTariff(rate_per_unit=Decimal("5000"), effective_from=date(2025, 1, 1)),
                WaterTariff(rate_per_unit=Decimal("6000"), effective_from=date(2025, 6, 1)),
            ]
        )
        await async_db_session.commit()

        resolution = await resolver.resolve_water(date(2025, 3, 1))

        assert resolution.tariff.rate_per_unit == Decimal("5000")
        assert resolution.source == ResolutionSource.EFFECTIVE

    async def test_falls_back_to_latest_active(self, async_db_session, resolver):
        async_db_session.add(
            WaterTariff(rate_per_unit=Decimal("6000"), effective_from=date(2025, 6, 1))
        )
        await async_db_session.commit()

        resolution = await resolver.resolve_water(date(2025, 1, 1))

        assert resolution.tariff.rate_per_unit == Decimal("6000")
        assert resolution.source == ResolutionSource.LATEST_ACTIVE

    async def test_inactive_tariffs_are_ignored(self, async_db_session, resolver):
        async_db_session.add(
            WaterTariff(
                rate_per_unit=Decimal("5000"), effective_from=date(2024, 1, 1), is_active=False
            )
        )
        await async_db_session.commit()

        with pytest.raises(NotFoundError):
            await resolver.resolve_water(date(2025, 1, 1))

    async def test_resolution_is_deterministic(self, async_db_session, resolver):
        """Same effective date twice: the newest row wins every time."""
        async_db_session.add_all(
            [
                WaterTariff(rate_per_unit=Decimal("5000"), effective_from=date(2025, 1, 1)),
                WaterTariff(rate_per_unit=Decimal("5500"), effective_from=date(2025, 1, 1)),
            ]
        )
        await async_db_session.commit()

        first = await resolver.resolve_water(date(2025, 2, 1))
        second = await resolver.resolve_water(date(2025, 2, 1))

        assert first.tariff.id == second.tariff.id
        assert first.tariff.rate_per_unit == Decimal("5500")


class TestResolveFlatFee:
    async def test_resolves_requested_tier(self, resolver, flat_fee_tariffs):
        resolution = await resolver.resolve_flat_fee(FeeType.VACANT, date(2025, 1, 1))

        assert resolution.tariff.id == flat_fee_tariffs[FeeType.VACANT].id
        assert resolution.is_configuration_error is False

    async def test_other_tier_is_configuration_error(self, async_db_session, resolver):
        async_db_session.add(
            FlatFeeTariff(
                fee_type=FeeType.NORMAL,
                amount=Decimal("150000"),
                effective_from=date(2024, 1, 1),
            )
        )
        await async_db_session.commit()

        resolution = await resolver.resolve_flat_fee(FeeType.REDUCED, date(2025, 1, 1))

        assert resolution.source == ResolutionSource.ANY_ACTIVE
        assert resolution.is_configuration_error is True
        assert resolution.tariff.fee_type == FeeType.NORMAL

    async def test_no_tariffs_raises(self, resolver):
        with pytest.raises(NotFoundError, match="No active IPL tariff"):
            await resolver.resolve_flat_fee(FeeType.NORMAL, date(2025, 1, 1))


class TestTariffAdministration:
    async def test_new_active_water_tariff_deactivates_others(self, resolver, water_tariff):
        new = await resolver.create_water_tariff(Decimal("5500"), date(2025, 7, 1), actor_id=1)

        tariffs = await resolver.list_water_tariffs()
        active = [t for t in tariffs if t.is_active]
        assert [t.id for t in active] == [new.id]
        assert tariffs[0].id == new.id

    async def test_flat_fee_activation_only_touches_same_tier(
        self, async_db_session, resolver, flat_fee_tariffs
    ):
        new = await resolver.create_flat_fee_tariff(
            FeeType.NORMAL, Decimal("175000"), date(2025, 7, 1)
        )

        result = await async_db_session.execute(
            select(FlatFeeTariff).where(FlatFeeTariff.is_active == True)  # noqa: E712
        )
        active = {t.fee_type: t.id for t in result.scalars().all()}
        assert active == {
            FeeType.NORMAL: new.id,
            FeeType.VACANT: flat_fee_tariffs[FeeType.VACANT].id,
            FeeType.REDUCED: flat_fee_tariffs[FeeType.REDUCED].id,
        }

    async def test_activate_existing_tariff(self, async_db_session, resolver, water_tariff):
        old = await resolver.create_water_tariff(
            Decimal("4500"), date(2023, 1, 1), is_active=False
        )

        await resolver.activate_water_tariff(old.id)

        await async_db_session.refresh(water_tariff)
        assert water_tariff.is_active is False
        assert old.is_active is True

    async def test_activate_missing_tariff(self, resolver):
        with pytest.raises(NotFoundError):
            await resolver.activate_flat_fee_tariff(404)

    async def test_negative_amounts_rejected(self, resolver):
        with pytest.raises(ValueError):
            await resolver.create_water_tariff(Decimal("-1"), date(2025, 1, 1))
        with pytest.raises(ValueError):
            await resolver.create_flat_fee_tariff(FeeType.NORMAL, Decimal("-1"), date(2025, 1, 1))

    async def test_list_flat_fee_tariffs_by_tier(self, resolver, flat_fee_tariffs):
        reduced = await resolver.list_flat_fee_tariffs(FeeType.REDUCED)

        assert [t.id for t in reduced] == [flat_fee_tariffs[FeeType.REDUCED].id]
        assert len(await resolver.list_flat_fee_tariffs()) == 3
