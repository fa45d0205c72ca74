"""Seed script for demo banks, platforms and users of every role."""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from baryabazaar.core.config import get_settings
from baryabazaar.db.session import SessionLocal, engine
from baryabazaar.models import Bank, Base, Platform, User, UserBankBalance, UserRole
from baryabazaar.services.system_settings import SystemSettingsService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_BANKS = ("BDO", "BPI", "GCash", "Maya")
DEMO_PLATFORMS = {"Binance": Decimal("5000"), "OKX": Decimal("2500"), "Bybit": Decimal("1000")}
DEMO_USERS = (
    ("Super Admin", "superadmin@demo.local", UserRole.SUPER_ADMIN, ("BDO", "BPI")),
    ("Admin", "admin@demo.local", UserRole.ADMIN, ("BDO", "GCash")),
    ("Supervisor", "supervisor@demo.local", UserRole.SUPERVISOR, ("BPI", "Maya")),
    ("Analyst", "analyst@demo.local", UserRole.ANALYST, ("GCash",)),
)
OPENING_BALANCE = Decimal("100000.00")


def seed(session: Session) -> None:
    """Seed registry data and demo users with opening balances."""

    settings = get_settings()
    SystemSettingsService(session, settings=settings).seed()

    existing_banks = set(session.scalars(select(Bank.name)))
    for name in DEMO_BANKS:
        if name in existing_banks:
            logger.info("Bank %s already exists", name)
            continue
        session.add(Bank(name=name))
        logger.info("Added bank %s", name)

    existing_platforms = set(session.scalars(select(Platform.name)))
    for name, balance in DEMO_PLATFORMS.items():
        if name in existing_platforms:
            logger.info("Platform %s already exists", name)
            continue
        session.add(Platform(name=name, balance=balance))
        logger.info("Added platform %s", name)

    existing_users = set(session.scalars(select(User.email)))
    for name, email, role, banks in DEMO_USERS:
        if email in existing_users:
            logger.info("User %s already exists", email)
            continue
        user = User(
            name=name,
            email=email,
            role=role,
            assigned_banks=list(banks),
            hashed_password=settings.default_user_hashed_password,
        )
        user.balances.extend(UserBankBalance(bank=bank, amount=OPENING_BALANCE) for bank in banks)
        session.add(user)
        logger.info("Added user %s", email)


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        seed(session)
        session.commit()


if __name__ == "__main__":
    main()
