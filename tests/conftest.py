# tests/conftest.py
"""
Pytest configuration and shared fixtures for commission engine tests.

Every test gets its own SQLite database file, so tests are isolated and
two sessions can be opened against the same data (race simulations).

Run:
    pytest tests/ -v
"""
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, func
from sqlalchemy.orm import sessionmaker

from config import Config
from core.db import reset_engine
from models import Base, User, Deposit, Asset, BalanceJournal
from models.listeners import register_all_listeners
from commission_system.config.rates import RateTable, set_rate_table
from commission_system.schemas import DepositEvent

# =============================================================================
# INITIALIZE CONFIG
# =============================================================================

Config.initialize_from_env()

# =============================================================================
# CONSTANTS
# =============================================================================

# 1: 20%, 2: 10%, 3..9: 5%
STANDARD_RATES = {1: "20", 2: "10", **{level: "5" for level in range(3, 10)}}


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="session", autouse=True)
def setup_listeners():
    """Register listeners once at test session start."""
    register_all_listeners()


@pytest.fixture
def engine(tmp_path):
    """Fresh database per test; also installed as the application engine."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'commissions.db'}",
        connect_args={"timeout": 30, "check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    reset_engine(engine)
    yield engine
    reset_engine(None)


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture
def session(session_factory):
    """Create database session for each test."""
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# CONFIGURATION FIXTURES
# =============================================================================

@pytest.fixture
def rate_table():
    return RateTable(STANDARD_RATES)


@pytest.fixture(autouse=True)
def installed_rate_table(rate_table):
    """Make the standard table the process-wide snapshot for each test."""
    set_rate_table(rate_table)
    yield rate_table
    set_rate_table(None)


# =============================================================================
# DATA FIXTURES
# =============================================================================

@pytest.fixture
def make_chain(session):
    """
    Factory for a linear referral chain.

    make_chain(levels=9, inactive=(4,)) creates `levels` ancestors and a
    depositor below them. Returns (depositor, ancestors) with ancestors
    ordered level 1 (direct referrer) first.
    """

    def _make(levels=9, inactive=(), depositor_active=True):
        referrer_id = None
        created = []

        for level in range(levels, 0, -1):
            user = User(
                firstname=f"L{level}",
                referrerID=referrer_id,
                isActive=level not in inactive
            )
            session.add(user)
            session.flush()
            created.append(user)
            referrer_id = user.userID

        depositor = User(firstname="Depositor", referrerID=referrer_id, isActive=depositor_active)
        session.add(depositor)
        session.commit()

        return depositor, list(reversed(created))

    return _make


@pytest.fixture
def primary_user(session):
    """Single activated user with no referrer."""
    user = User(firstname="Primary", isActive=True)
    session.add(user)
    session.commit()
    return user


@pytest.fixture
def make_deposit(session):
    """Factory: make_deposit(user, "300.00") -> DepositEvent of a stored deposit."""

    def _make(user, amount, status=Deposit.STATUS_CONFIRMED):
        deposit = Deposit(
            userID=user.userID,
            amount=Decimal(amount),
            status=status,
            txHash=f"tx_{uuid.uuid4().hex[:12]}"
        )
        session.add(deposit)
        session.commit()
        return DepositEvent.fromDeposit(deposit)

    return _make


# =============================================================================
# HELPER FIXTURES
# =============================================================================

@pytest.fixture
def unique_reason():
    """Generate unique reason string for test records."""

    def _generate(prefix="test"):
        return f"{prefix}_{uuid.uuid4().hex[:8]}"

    return _generate


@pytest.fixture
def calc_journal_sum(session):
    """
    Calculator for real journal sums.

    Returns dict with 'available' and 'commission' functions, each taking
    userID and returning SUM(amount) of the matching 'done' journal lines.
    """

    def _calc_available(user_id: int) -> Decimal:
        result = session.query(
            func.coalesce(func.sum(BalanceJournal.amount), 0)
        ).filter(
            BalanceJournal.userID == user_id,
            BalanceJournal.status == 'done'
        ).scalar()
        return Decimal(str(result))

    def _calc_commission(user_id: int) -> Decimal:
        result = session.query(
            func.coalesce(func.sum(BalanceJournal.amount), 0)
        ).filter(
            BalanceJournal.userID == user_id,
            BalanceJournal.status == 'done',
            BalanceJournal.kind == BalanceJournal.KIND_COMMISSION
        ).scalar()
        return Decimal(str(result))

    return {'available': _calc_available, 'commission': _calc_commission}


@pytest.fixture
def asset_of(session):
    """Fresh read of a user's Asset row (None if never credited)."""

    def _get(user_id: int):
        session.expire_all()
        return session.query(Asset).filter_by(userID=user_id).first()

    return _get
