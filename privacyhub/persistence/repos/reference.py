from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from privacyhub.domain.models import Country, TransferMechanism
from privacyhub.persistence.db import atomic


# Countries and transfer mechanisms are global reference data shared by all tenants.


async def create_country(
    session: AsyncSession,
    *,
    name: str,
    iso_code: str,
    gdpr_status: list[str],
    is_active: bool = True,
) -> Country:
    async with atomic(session):
        country = Country(
            name=name,
            iso_code=iso_code.upper(),
            gdpr_status=list(gdpr_status),
            is_active=is_active,
        )
        session.add(country)
    return country


async def get_country(session: AsyncSession, country_id: str) -> Country | None:
    return await session.get(Country, country_id)


async def get_country_by_iso_code(session: AsyncSession, iso_code: str) -> Country | None:
    result = await session.execute(select(Country).where(Country.iso_code == iso_code.upper()))
    return result.scalar_one_or_none()


async def list_countries(session: AsyncSession, *, active_only: bool = True) -> list[Country]:
    stmt = select(Country)
    if active_only:
        stmt = stmt.where(Country.is_active.is_(True))
    result = await session.execute(stmt.order_by(Country.name, Country.id))
    return list(result.scalars().all())


async def create_transfer_mechanism(
    session: AsyncSession,
    *,
    code: str,
    name: str,
    category: str,
    gdpr_article: str | None = None,
    is_derogation: bool = False,
) -> TransferMechanism:
    async with atomic(session):
        mechanism = TransferMechanism(
            code=code,
            name=name,
            category=category,
            gdpr_article=gdpr_article,
            is_derogation=is_derogation,
        )
        session.add(mechanism)
    return mechanism


async def get_transfer_mechanism(session: AsyncSession, mechanism_id: str) -> TransferMechanism | None:
    return await session.get(TransferMechanism, mechanism_id)


async def get_transfer_mechanism_by_code(session: AsyncSession, code: str) -> TransferMechanism | None:
    result = await session.execute(select(TransferMechanism).where(TransferMechanism.code == code))
    return result.scalar_one_or_none()


async def list_transfer_mechanisms(
    session: AsyncSession, *, category: str | None = None, active_only: bool = True
) -> list[TransferMechanism]:
    stmt = select(TransferMechanism)
    if category is not None:
        stmt = stmt.where(TransferMechanism.category == category)
    if active_only:
        stmt = stmt.where(TransferMechanism.is_active.is_(True))
    result = await session.execute(stmt.order_by(TransferMechanism.code))
    return list(result.scalars().all())
