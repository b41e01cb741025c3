from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass

from privacyhub.core.logging import configure_logging
from privacyhub.persistence.db import SessionLocal
from privacyhub.persistence.repos import reference


@dataclass(frozen=True)
class CountrySeed:
    name: str
    iso_code: str
    gdpr_status: tuple[str, ...]


@dataclass(frozen=True)
class MechanismSeed:
    code: str
    name: str
    category: str
    gdpr_article: str
    is_derogation: bool = False


_EU = ("EU", "EEA")

COUNTRIES: tuple[CountrySeed, ...] = (
    CountrySeed("Austria", "AT", _EU),
    CountrySeed("Belgium", "BE", _EU),
    CountrySeed("Denmark", "DK", _EU),
    CountrySeed("Finland", "FI", _EU),
    CountrySeed("France", "FR", _EU),
    CountrySeed("Germany", "DE", _EU),
    CountrySeed("Ireland", "IE", _EU),
    CountrySeed("Italy", "IT", _EU),
    CountrySeed("Netherlands", "NL", _EU),
    CountrySeed("Poland", "PL", _EU),
    CountrySeed("Spain", "ES", _EU),
    CountrySeed("Sweden", "SE", _EU),
    CountrySeed("Iceland", "IS", ("EEA",)),
    CountrySeed("Liechtenstein", "LI", ("EEA",)),
    CountrySeed("Norway", "NO", ("EEA",)),
    CountrySeed("Canada", "CA", ("Adequate",)),
    CountrySeed("Israel", "IL", ("Adequate",)),
    CountrySeed("Japan", "JP", ("Adequate",)),
    CountrySeed("New Zealand", "NZ", ("Adequate",)),
    CountrySeed("South Korea", "KR", ("Adequate",)),
    CountrySeed("Switzerland", "CH", ("Adequate",)),
    CountrySeed("United Kingdom", "GB", ("Adequate",)),
    CountrySeed("United States", "US", ("Adequate",)),
    CountrySeed("Australia", "AU", ("Third Country",)),
    CountrySeed("Brazil", "BR", ("Third Country",)),
    CountrySeed("China", "CN", ("Third Country",)),
    CountrySeed("India", "IN", ("Third Country",)),
    CountrySeed("Singapore", "SG", ("Third Country",)),
)

MECHANISMS: tuple[MechanismSeed, ...] = (
    MechanismSeed("ADEQUACY", "Adequacy Decision", "ADEQUACY", "Art. 45"),
    MechanismSeed("SCC", "Standard Contractual Clauses (SCCs)", "SAFEGUARD", "Art. 46(2)(c)"),
    MechanismSeed("BCR", "Binding Corporate Rules (BCRs)", "SAFEGUARD", "Art. 46(2)(b)"),
    MechanismSeed("CODE_OF_CONDUCT", "Approved Code of Conduct", "SAFEGUARD", "Art. 46(2)(e)"),
    MechanismSeed("CERTIFICATION", "Approved Certification Mechanism", "SAFEGUARD", "Art. 46(2)(f)"),
    MechanismSeed("EXPLICIT_CONSENT", "Explicit Consent", "DEROGATION", "Art. 49(1)(a)", True),
    MechanismSeed("CONTRACT_PERFORMANCE", "Contract Performance", "DEROGATION", "Art. 49(1)(b)", True),
    MechanismSeed("PUBLIC_INTEREST", "Public Interest", "DEROGATION", "Art. 49(1)(d)", True),
    MechanismSeed("LEGAL_CLAIMS", "Legal Claims", "DEROGATION", "Art. 49(1)(e)", True),
    MechanismSeed("VITAL_INTERESTS", "Vital Interests", "DEROGATION", "Art. 49(1)(f)", True),
    MechanismSeed("PUBLIC_REGISTER", "Public Register", "DEROGATION", "Art. 49(1)(g)", True),
)


async def _seed(dry_run: bool) -> None:
    # Insert missing reference rows; existing codes are left as they are.
    created_countries = 0
    created_mechanisms = 0
    async with SessionLocal() as session:
        for seed in COUNTRIES:
            if await reference.get_country_by_iso_code(session, seed.iso_code) is not None:
                continue
            created_countries += 1
            if not dry_run:
                await reference.create_country(
                    session, name=seed.name, iso_code=seed.iso_code, gdpr_status=list(seed.gdpr_status)
                )
        for seed in MECHANISMS:
            if await reference.get_transfer_mechanism_by_code(session, seed.code) is not None:
                continue
            created_mechanisms += 1
            if not dry_run:
                await reference.create_transfer_mechanism(
                    session,
                    code=seed.code,
                    name=seed.name,
                    category=seed.category,
                    gdpr_article=seed.gdpr_article,
                    is_derogation=seed.is_derogation,
                )
    print(f"countries_created={created_countries}")
    print(f"transfer_mechanisms_created={created_mechanisms}")
    if dry_run:
        print("dry_run=true")


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed countries and transfer mechanisms")
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()
    configure_logging()
    asyncio.run(_seed(args.dry_run))


if __name__ == "__main__":
    main()
