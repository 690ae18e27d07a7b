"""Tariff resolution and administration for water and IPL tariffs."""

import logging
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import NamedTuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from estate_ledger.models.bill import FeeType
from estate_ledger.models.tariff import FlatFeeTariff, WaterTariff
from estate_ledger.services.audit_service import AuditService
from estate_ledger.services.errors import NotFoundError

logger = logging.getLogger(__name__)


class ResolutionSource(str, Enum):
    """Which step of the fallback chain produced a tariff."""

    EFFECTIVE = "effective"
    """Active and effective on or before the requested date"""

    LATEST_ACTIVE = "latest_active"
    """Most recent active tariff of the type, ignoring the date"""

    ANY_ACTIVE = "any_active"
    """Active tariff of a different type; a configuration error"""


class TariffResolution(NamedTuple):
    """Resolved tariff plus how it was found."""

    tariff: WaterTariff | FlatFeeTariff
    source: ResolutionSource

    @property
    def is_configuration_error(self) -> bool:
        return self.source == ResolutionSource.ANY_ACTIVE


class TariffResolver:
    """Resolve the tariff in force on a date and manage the one-active-per-type rule.

    Resolution order:
    1. Active tariff of the type with effective_from <= as_of, latest first
    2. Latest active tariff of the type regardless of date
    3. (IPL only) any active IPL tariff, reported as a configuration error

    Ties on effective_from are broken by id (newest row wins), so resolving the
    same type and date twice always gives the same tariff.
    """

    def __init__(self, session: AsyncSession):
        """Initialize with async database session."""
        self.session = session

    async def resolve_water(self, as_of: date) -> TariffResolution:
        """Resolve the water rate for a date.

        Raises:
            NotFoundError: If no active water tariff exists
        """
        stmt = (
            select(WaterTariff)
            .where(WaterTariff.is_active == True, WaterTariff.effective_from <= as_of)  # noqa: E712
            .order_by(WaterTariff.effective_from.desc(), WaterTariff.id.desc())
            .limit(1)
        )
        tariff = (await self.session.execute(stmt)).scalar_one_or_none()
        if tariff is not None:
            return TariffResolution(tariff, ResolutionSource.EFFECTIVE)

        stmt = (
            select(WaterTariff)
            .where(WaterTariff.is_active == True)  # noqa: E712
            .order_by(WaterTariff.effective_from.desc(), WaterTariff.id.desc())
            .limit(1)
        )
        tariff = (await self.session.execute(stmt)).scalar_one_or_none()
        if tariff is not None:
            logger.warning(
                "No water tariff effective on %s; using latest active tariff %d (from %s)",
                as_of,
                tariff.id,
                tariff.effective_from,
            )
            return TariffResolution(tariff, ResolutionSource.LATEST_ACTIVE)

        raise NotFoundError(f"No active water tariff for {as_of.isoformat()}")

    async def resolve_flat_fee(self, fee_type: FeeType, as_of: date) -> TariffResolution:
        """Resolve the IPL amount for a fee tier and date.

        Raises:
            NotFoundError: If no active IPL tariff of any tier exists
        """
        stmt = (
            select(FlatFeeTariff)
            .where(
                FlatFeeTariff.fee_type == fee_type,
                FlatFeeTariff.is_active == True,  # noqa: E712
                FlatFeeTariff.effective_from <= as_of,
            )
            .order_by(FlatFeeTariff.effective_from.desc(), FlatFeeTariff.id.desc())
            .limit(1)
        )
        tariff = (await self.session.execute(stmt)).scalar_one_or_none()
        if tariff is not None:
            return TariffResolution(tariff, ResolutionSource.EFFECTIVE)

        stmt = (
            select(FlatFeeTariff)
            .where(
                FlatFeeTariff.fee_type == fee_type,
                FlatFeeTariff.is_active == True,  # noqa: E712
            )
            .order_by(FlatFeeTariff.effective_from.desc(), FlatFeeTariff.id.desc())
            .limit(1)
        )
        tariff = (await self.session.execute(stmt)).scalar_one_or_none()
        if tariff is not None:
            logger.warning(
                "No %s IPL tariff effective on %s; using latest active tariff %d (from %s)",
                fee_type.value,
                as_of,
                tariff.id,
                tariff.effective_from,
            )
            return TariffResolution(tariff, ResolutionSource.LATEST_ACTIVE)

        stmt = (
            select(FlatFeeTariff)
            .where(FlatFeeTariff.is_active == True)  # noqa: E712
            .order_by(FlatFeeTariff.effective_from.desc(), FlatFeeTariff.id.desc())
            .limit(1)
        )
        tariff = (await self.session.execute(stmt)).scalar_one_or_none()
        if tariff is not None:
            logger.error(
                "No active %s IPL tariff at all; only tariff %d (%s) matched. "
                "Check IPL tariff configuration",
                fee_type.value,
                tariff.id,
                tariff.fee_type.value,
            )
            return TariffResolution(tariff, ResolutionSource.ANY_ACTIVE)

        raise NotFoundError(f"No active IPL tariff for {fee_type.value} on {as_of.isoformat()}")

    async def list_water_tariffs(self) -> list[WaterTariff]:
        """All water tariffs, newest effective date first."""
        result = await self.session.execute(
            select(WaterTariff).order_by(WaterTariff.effective_from.desc(), WaterTariff.id.desc())
        )
        return list(result.scalars().all())

    async def list_flat_fee_tariffs(self, fee_type: FeeType | None = None) -> list[FlatFeeTariff]:
        """IPL tariffs (optionally of one tier), newest effective date first."""
        stmt = select(FlatFeeTariff)
        if fee_type is not None:
            stmt = stmt.where(FlatFeeTariff.fee_type == fee_type)
        stmt = stmt.order_by(FlatFeeTariff.effective_from.desc(), FlatFeeTariff.id.desc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create_water_tariff(
        self,
        rate_per_unit: Decimal,
        effective_from: date,
        is_active: bool = True,
        actor_id: int | None = None,
    ) -> WaterTariff:
        """Create a water tariff; an active one deactivates all others.

        Raises:
            ValueError: If rate is negative
        """
        if rate_per_unit < 0:
            raise ValueError("Water rate cannot be negative")

        tariff = WaterTariff(
            rate_per_unit=rate_per_unit,
            effective_from=effective_from,
            is_active=False,
        )
        self.session.add(tariff)
        await self.session.flush()

        if is_active:
            await self._activate_water(tariff, actor_id)
        await self.session.commit()
        return tariff

    async def create_flat_fee_tariff(
        self,
        fee_type: FeeType,
        amount: Decimal,
        effective_from: date,
        is_active: bool = True,
        actor_id: int | None = None,
    ) -> FlatFeeTariff:
        """Create an IPL tariff; an active one deactivates the others of its tier.

        Raises:
            ValueError: If amount is negative
        """
        if amount < 0:
            raise ValueError("IPL amount cannot be negative")

        tariff = FlatFeeTariff(
            fee_type=fee_type,
            amount=amount,
            effective_from=effective_from,
            is_active=False,
        )
        self.session.add(tariff)
        await self.session.flush()

        if is_active:
            await self._activate_flat_fee(tariff, actor_id)
        await self.session.commit()
        return tariff

    async def activate_water_tariff(self, tariff_id: int, actor_id: int | None = None) -> WaterTariff:
        """Make a water tariff the only active one.

        Raises:
            NotFoundError: If tariff does not exist
        """
        tariff = await self.session.get(WaterTariff, tariff_id)
        if tariff is None:
            raise NotFoundError(f"Water tariff {tariff_id} not found")

        await self._activate_water(tariff, actor_id)
        await self.session.commit()
        return tariff

    async def activate_flat_fee_tariff(
        self, tariff_id: int, actor_id: int | None = None
    ) -> FlatFeeTariff:
        """Make an IPL tariff the only active one of its tier.

        Raises:
            NotFoundError: If tariff does not exist
        """
        tariff = await self.session.get(FlatFeeTariff, tariff_id)
        if tariff is None:
            raise NotFoundError(f"IPL tariff {tariff_id} not found")

        await self._activate_flat_fee(tariff, actor_id)
        await self.session.commit()
        return tariff

    async def _activate_water(self, tariff: WaterTariff, actor_id: int | None) -> None:
        await self.session.execute(
            update(WaterTariff)
            .where(WaterTariff.id != tariff.id, WaterTariff.is_active == True)  # noqa: E712
            .values(is_active=False)
            .execution_options(synchronize_session="fetch")
        )
        tariff.is_active = True
        await self.session.flush()

        AuditService.log(
            self.session,
            "water_tariff",
            tariff.id,
            "activate",
            actor_id,
            {"rate_per_unit": float(tariff.rate_per_unit)},
        )
        logger.info("Activated water tariff %d (rate=%s)", tariff.id, tariff.rate_per_unit)

    async def _activate_flat_fee(self, tariff: FlatFeeTariff, actor_id: int | None) -> None:
        await self.session.execute(
            update(FlatFeeTariff)
            .where(
                FlatFeeTariff.id != tariff.id,
                FlatFeeTariff.fee_type == tariff.fee_type,
                FlatFeeTariff.is_active == True,  # noqa: E712
            )
            .values(is_active=False)
            .execution_options(synchronize_session="fetch")
        )
        tariff.is_active = True
        await self.session.flush()

        AuditService.log(
            self.session,
            "flat_fee_tariff",
            tariff.id,
            "activate",
            actor_id,
            {"fee_type": tariff.fee_type.value, "amount": float(tariff.amount)},
        )
        logger.info(
            "Activated %s IPL tariff %d (amount=%s)",
            tariff.fee_type.value,
            tariff.id,
            tariff.amount,
        )


__all__ = ["ResolutionSource", "TariffResolution", "TariffResolver"]
