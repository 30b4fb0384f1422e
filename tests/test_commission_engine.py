# tests/test_commission_engine.py
"""
Tests for CommissionEngine.distribute().

Scenarios use the standard rate table (1: 20%, 2: 10%, 3..9: 5%) unless a
test installs its own.

Run:
    pytest tests/test_commission_engine.py -v
"""
import threading
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from config import ConfigurationError
from models import (
    Asset,
    BalanceJournal,
    Distribution,
    DistributionBatch,
    FundFlow,
    User,
)
from commission_system.config.rates import RateTable
from commission_system.errors import (
    ConcurrentDistributionError,
    DataIntegrityError,
    InvalidDepositError,
    PersistenceError,
)
from commission_system.schemas import DepositEvent, DistributionResult, parse_amount
from commission_system.services.commission_engine import CommissionEngine, calculate_credit


def count_rows(session, model):
    session.expire_all()
    return session.query(model).count()


# =============================================================================
# TEST CLASS: Reference scenarios
# =============================================================================

class TestScenarios:

    def test_nine_active_ancestors(self, session, make_chain, make_deposit, asset_of):
        """
        TEST: 300.00 deposit, 9 activated ancestors.

        Expected: 60.00, 30.00, then 15.00 x 7 = 195.00 over 9 rows.
        """
        depositor, ancestors = make_chain(levels=9)
        event = make_deposit(depositor, "300.00")

        result = CommissionEngine(session).distribute(event)

        assert result.totalCredited == Decimal("195.00")
        assert result.ancestorsConsidered == 9
        assert [e.level for e in result.entries] == list(range(1, 10))
        assert [e.amount for e in result.entries] == (
            [Decimal("60.00"), Decimal("30.00")] + [Decimal("15.00")] * 7
        )
        assert [e.beneficiaryId for e in result.entries] == [u.userID for u in ancestors]
        assert count_rows(session, Distribution) == 9

        assert asset_of(ancestors[0].userID).availableBalance == Decimal("60.00")
        assert asset_of(ancestors[1].userID).totalCommission == Decimal("30.00")
        assert asset_of(ancestors[8].userID).availableBalance == Decimal("15.00")

    def test_inactive_level_four(self, session, make_chain, make_deposit, asset_of):
        """
        TEST: same setup, level-4 ancestor not activated.

        Expected: 8 rows, 180.00, nothing for level 4.
        """
        depositor, ancestors = make_chain(levels=9, inactive=(4,))
        event = make_deposit(depositor, "300.00")

        result = CommissionEngine(session).distribute(event)

        assert result.totalCredited == Decimal("180.00")
        assert len(result.entries) == 8
        assert 4 not in [e.level for e in result.entries]
        assert count_rows(session, Distribution) == 8

        level_four = ancestors[3]
        assert asset_of(level_four.userID) is None
        assert session.query(Distribution).filter_by(beneficiaryID=level_four.userID).count() == 0

    def test_tiny_deposit_rounds_to_zero(self, session, make_chain, make_deposit):
        """
        TEST: 0.03 deposit. 5% = 0.0015 -> 0.00, no row for 5% levels.

        Level 1 (20% = 0.006 -> 0.01) still pays.
        """
        depositor, _ = make_chain(levels=9)
        event = make_deposit(depositor, "0.03")

        result = CommissionEngine(session).distribute(event)

        assert [(e.level, e.amount) for e in result.entries] == [(1, Decimal("0.01"))]
        assert count_rows(session, Distribution) == 1

    def test_all_levels_round_to_zero(self, session, make_chain, make_deposit):
        depositor, _ = make_chain(levels=3)
        event = make_deposit(depositor, "0.03")
        engine = CommissionEngine(session, rate_table=RateTable({level: "5" for level in range(1, 10)}))

        result = engine.distribute(event)

        assert result.entries == []
        assert result.totalCredited == Decimal("0.00")
        assert count_rows(session, Distribution) == 0
        assert count_rows(session, FundFlow) == 0
        # Batch still recorded: re-invocation returns the same empty result
        assert count_rows(session, DistributionBatch) == 1
        assert engine.distribute(event) == result

    def test_short_chain_pays_existing_levels_only(self, session, make_chain, make_deposit):
        depositor, ancestors = make_chain(levels=3)
        event = make_deposit(depositor, "300.00")

        result = CommissionEngine(session).distribute(event)

        assert result.ancestorsConsidered == 3
        assert [e.amount for e in result.entries] == [Decimal("60.00"), Decimal("30.00"), Decimal("15.00")]
        assert result.totalCredited == Decimal("105.00")

    def test_depositor_at_root_gets_nothing(self, session, make_chain, make_deposit):
        _, ancestors = make_chain(levels=2)
        root = ancestors[-1]
        event = make_deposit(root, "300.00")

        result = CommissionEngine(session).distribute(event)

        assert result.ancestorsConsidered == 0
        assert result.entries == []

    def test_fund_flow_records_commission_pool(self, session, make_chain, make_deposit):
        depositor, _ = make_chain(levels=9)
        event = make_deposit(depositor, "300.00")

        CommissionEngine(session).distribute(event)

        flow = session.query(FundFlow).filter_by(relatedID=event.depositId).one()
        assert flow.type == "commission"
        assert flow.amount == Decimal("195.00")


# =============================================================================
# TEST CLASS: Money conservation and rounding
# =============================================================================

class TestAmounts:

    @pytest.mark.parametrize("amount, percentage, expected", [
        ("300.00", "20", "60.00"),
        ("0.03", "5", "0.00"),
        ("0.10", "5", "0.01"),      # 0.005 rounds half-up
        ("0.30", "5", "0.02"),      # 0.015 rounds half-up
        ("123.45", "7.33", "9.05"),
        ("0.00", "20", "0.00"),
    ])
    def test_calculate_credit_half_up(self, amount, percentage, expected):
        assert calculate_credit(Decimal(amount), Decimal(percentage)) == Decimal(expected)

    @pytest.mark.parametrize("amount", ["0.03", "1.99", "123.45", "300.00", "9999.99"])
    def test_total_equals_sum_of_rounded_levels(self, session, make_chain, make_deposit, amount):
        rates = RateTable({1: "12.5", 2: "7.33", 3: "3.1", 4: "2.5", 5: "1.75",
                           6: "1.5", 7: "0.99", 8: "0.5", 9: "0.25"})
        depositor, _ = make_chain(levels=9, inactive=(6,))
        event = make_deposit(depositor, amount)

        result = CommissionEngine(session, rate_table=rates).distribute(event)

        expected = sum(
            (calculate_credit(Decimal(amount), rates.rateForLevel(level))
             for level in range(1, 10) if level != 6),
            Decimal("0")
        )
        stored = sum((d.amount for d in session.query(Distribution).all()), Decimal("0"))

        assert result.totalCredited == expected
        assert stored == expected

    def test_balances_equal_journal(self, session, make_chain, make_deposit, calc_journal_sum, asset_of):
        depositor, ancestors = make_chain(levels=9)
        engine = CommissionEngine(session)

        engine.distribute(make_deposit(depositor, "300.00"))
        engine.distribute(make_deposit(depositor, "150.00"))

        for user in ancestors:
            asset = asset_of(user.userID)
            assert asset.availableBalance == calc_journal_sum['available'](user.userID)
            assert asset.totalCommission == calc_journal_sum['commission'](user.userID)

        assert asset_of(ancestors[0].userID).availableBalance == Decimal("90.00")


# =============================================================================
# TEST CLASS: Idempotency
# =============================================================================

class TestIdempotency:

    def test_second_call_returns_same_result(self, session, make_chain, make_deposit, asset_of):
        depositor, ancestors = make_chain(levels=9)
        event = make_deposit(depositor, "300.00")
        engine = CommissionEngine(session)

        first = engine.distribute(event)
        second = engine.distribute(event)

        assert second == first
        assert count_rows(session, Distribution) == 9
        assert count_rows(session, BalanceJournal) == 9
        assert asset_of(ancestors[0].userID).availableBalance == Decimal("60.00")

    def test_new_engine_instance_is_idempotent(self, session, make_chain, make_deposit):
        depositor, _ = make_chain(levels=9)
        event = make_deposit(depositor, "300.00")

        first = CommissionEngine(session).distribute(event)
        second = CommissionEngine(session).distribute(event)

        assert second == first
        assert count_rows(session, Distribution) == 9

    def test_rate_change_does_not_alter_stored_result(self, session, make_chain, make_deposit):
        depositor, _ = make_chain(levels=9)
        event = make_deposit(depositor, "300.00")

        first = CommissionEngine(session).distribute(event)
        again = CommissionEngine(
            session, rate_table=RateTable({level: "50" for level in range(1, 10)})
        ).distribute(event)

        assert again == first


# =============================================================================
# TEST CLASS: Eligibility inside the engine
# =============================================================================

class TestEligibility:

    def test_inactive_users_never_beneficiaries(self, session, make_chain, make_deposit):
        inactive = (1, 3, 9)
        depositor, ancestors = make_chain(levels=9, inactive=inactive)
        engine = CommissionEngine(session)

        for amount in ("300.00", "99.99", "12.00"):
            engine.distribute(make_deposit(depositor, amount))

        inactive_ids = {ancestors[level - 1].userID for level in inactive}
        beneficiaries = {d.beneficiaryID for d in session.query(Distribution).all()}
        assert beneficiaries
        assert not beneficiaries & inactive_ids

    def test_depositor_activation_irrelevant(self, session, make_chain, make_deposit):
        depositor, _ = make_chain(levels=2, depositor_active=False)

        result = CommissionEngine(session).distribute(make_deposit(depositor, "100.00"))

        assert result.totalCredited == Decimal("30.00")


# =============================================================================
# TEST CLASS: Failure handling
# =============================================================================

class TestFailures:

    def test_cycle_is_data_integrity_error(self, session, make_chain, make_deposit):
        depositor, ancestors = make_chain(levels=5)
        ancestors[4].referrerID = ancestors[1].userID
        session.commit()
        event = make_deposit(depositor, "300.00")

        with pytest.raises(DataIntegrityError):
            CommissionEngine(session).distribute(event)

        assert count_rows(session, Distribution) == 0
        assert count_rows(session, DistributionBatch) == 0
        assert count_rows(session, BalanceJournal) == 0
        assert count_rows(session, Asset) == 0

    def test_missing_rate_is_configuration_error(self, session, make_chain, make_deposit):
        depositor, _ = make_chain(levels=3)
        event = make_deposit(depositor, "300.00")
        engine = CommissionEngine(session, rate_table=RateTable({1: "20", 2: "10"}))

        with pytest.raises(ConfigurationError):
            engine.distribute(event)

        assert count_rows(session, Distribution) == 0
        assert count_rows(session, DistributionBatch) == 0

    def test_missing_rate_for_inactive_level_not_needed(self, session, make_chain, make_deposit):
        depositor, _ = make_chain(levels=3, inactive=(3,))
        engine = CommissionEngine(session, rate_table=RateTable({1: "20", 2: "10"}))

        result = engine.distribute(make_deposit(depositor, "300.00"))

        assert result.totalCredited == Decimal("90.00")

    def test_write_failure_rolls_back_everything(self, session, make_chain, make_deposit, monkeypatch, asset_of):
        """
        TEST: failure on the 3rd credit leaves zero rows, zero balance changes,
        and a retry succeeds.
        """
        depositor, ancestors = make_chain(levels=9)
        event = make_deposit(depositor, "300.00")

        original = CommissionEngine._writeEntry
        calls = {"count": 0}

        def failing_write(self, batch, depositEvent, credit):
            calls["count"] += 1
            if calls["count"] == 3:
                raise OperationalError("INSERT INTO distributions", {}, Exception("disk I/O error"))
            return original(self, batch, depositEvent, credit)

        monkeypatch.setattr(CommissionEngine, "_writeEntry", failing_write)

        with pytest.raises(PersistenceError):
            CommissionEngine(session).distribute(event)

        assert count_rows(session, Distribution) == 0
        assert count_rows(session, DistributionBatch) == 0
        assert count_rows(session, BalanceJournal) == 0
        assert count_rows(session, FundFlow) == 0
        assert asset_of(ancestors[0].userID) is None

        monkeypatch.undo()
        result = CommissionEngine(session).distribute(event)

        assert result.totalCredited == Decimal("195.00")
        assert count_rows(session, Distribution) == 9
        assert asset_of(ancestors[0].userID).availableBalance == Decimal("60.00")

    def test_concurrent_distribution_detected(self, session, session_factory, make_chain, make_deposit, monkeypatch):
        """
        TEST: another worker commits a batch between our idempotency check
        and our write -> ConcurrentDistributionError, nothing written by us.
        """
        depositor, _ = make_chain(levels=9)
        event = make_deposit(depositor, "300.00")

        other = session_factory()
        other.add(DistributionBatch(depositID=event.depositId, ancestorsConsidered=9, totalCredited=Decimal("0")))
        other.commit()
        other.close()

        engine = CommissionEngine(session)
        monkeypatch.setattr(engine.ledger, "resultForDeposit", lambda depositId: None)

        with pytest.raises(ConcurrentDistributionError):
            engine.distribute(event)

        assert count_rows(session, Distribution) == 0
        assert count_rows(session, BalanceJournal) == 0
        assert count_rows(session, DistributionBatch) == 1

    def test_upline_lookup_failure(self, session, make_chain, make_deposit, monkeypatch):
        from commission_system.errors import ResolutionTimeoutError

        depositor, _ = make_chain(levels=3)
        event = make_deposit(depositor, "300.00")
        engine = CommissionEngine(session)

        def timeout(userId):
            raise OperationalError("SELECT users", {}, Exception("statement timeout"))

        monkeypatch.setattr(engine.resolver, "resolveChain", timeout)

        with pytest.raises(ResolutionTimeoutError):
            engine.distribute(event)

        assert count_rows(session, DistributionBatch) == 0


# =============================================================================
# TEST CLASS: Preconditions
# =============================================================================

class TestPreconditions:

    def test_unconfirmed_deposit_rejected(self, session, make_chain, make_deposit):
        depositor, _ = make_chain(levels=2)
        event = make_deposit(depositor, "300.00", status="pending")

        with pytest.raises(InvalidDepositError):
            CommissionEngine(session).distribute(event)

    @pytest.mark.parametrize("amount", [Decimal("-1.00"), Decimal("10.001")])
    def test_invalid_amount_rejected(self, session, amount):
        event = DepositEvent(depositId=1, depositorId=1, amount=amount)

        with pytest.raises(InvalidDepositError):
            CommissionEngine(session).distribute(event)

    def test_unknown_depositor(self, session):
        event = DepositEvent(depositId=1, depositorId=12345, amount=Decimal("300.00"))

        with pytest.raises(DataIntegrityError):
            CommissionEngine(session).distribute(event)

    @pytest.mark.parametrize("raw", ["1e30", "10000000000000000", "1E+28", "1e-30", "NaN", "Infinity"])
    def test_out_of_range_amount_is_invalid_deposit(self, raw):
        with pytest.raises(InvalidDepositError):
            parse_amount(raw)

    def test_largest_storable_amount_accepted(self):
        assert parse_amount("9999999999999999.99") == Decimal("9999999999999999.99")

    @pytest.mark.parametrize("amount", [Decimal("1e30"), Decimal("10000000000000000.00")])
    def test_engine_rejects_oversized_amount(self, session, amount):
        event = DepositEvent(depositId=1, depositorId=1, amount=amount)

        with pytest.raises(InvalidDepositError):
            CommissionEngine(session).distribute(event)


# =============================================================================
# TEST CLASS: Concurrent workers
# =============================================================================

def run_in_threads(session_factory, events):
    """Distribute each event on its own thread and session, started together."""
    barrier = threading.Barrier(len(events))
    outcomes = [None] * len(events)

    def worker(index, event):
        worker_session = session_factory()
        try:
            barrier.wait()
            outcomes[index] = CommissionEngine(worker_session).distribute(event)
        except Exception as e:
            outcomes[index] = e
        finally:
            worker_session.close()

    threads = [threading.Thread(target=worker, args=(i, event)) for i, event in enumerate(events)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    return outcomes


class TestConcurrency:

    def test_different_deposits_sharing_an_ancestor(
            self, session, session_factory, make_chain, make_deposit, calc_journal_sum, asset_of
    ):
        """
        TEST: Two deposits below a common ancestor distributed in parallel.

        Both credits land, asset equals the journal sum.
        """
        first_depositor, ancestors = make_chain(levels=3)
        second_depositor = User(firstname="Sibling", referrerID=ancestors[0].userID, isActive=True)
        session.add(second_depositor)
        session.commit()

        events = [
            make_deposit(first_depositor, "300.00"),
            make_deposit(second_depositor, "100.00"),
        ]

        outcomes = run_in_threads(session_factory, events)

        assert all(isinstance(outcome, DistributionResult) for outcome in outcomes), outcomes
        assert count_rows(session, DistributionBatch) == 2

        common = ancestors[0].userID
        asset = asset_of(common)
        assert asset.availableBalance == calc_journal_sum['available'](common)
        assert asset.totalCommission == calc_journal_sum['commission'](common)
        assert asset.availableBalance == Decimal("80.00")

        # Level 2 above both depositors: 30.00 + 10.00
        assert asset_of(ancestors[1].userID).availableBalance == Decimal("40.00")

    def test_same_deposit_paid_once(self, session, session_factory, make_chain, make_deposit, asset_of):
        depositor, ancestors = make_chain(levels=9)
        event = make_deposit(depositor, "300.00")

        outcomes = run_in_threads(session_factory, [event, event])

        for outcome in outcomes:
            assert isinstance(outcome, (DistributionResult, ConcurrentDistributionError)), outcome
        assert any(isinstance(outcome, DistributionResult) for outcome in outcomes)

        assert count_rows(session, DistributionBatch) == 1
        assert count_rows(session, Distribution) == 9
        assert count_rows(session, BalanceJournal) == 9
        assert asset_of(ancestors[0].userID).availableBalance == Decimal("60.00")
