# commission_system/services/commission_engine.py
"""
Commission engine - distributes multi-level commission for a confirmed deposit.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
import logging

from config import Config
from models.asset import Asset
from models.balance_journal import BalanceJournal
from models.distribution import Distribution, DistributionBatch
from models.fund_flow import FundFlow
from models.listeners import register_all_listeners
from models.user import User
from commission_system.config.rates import RateTable, get_rate_table
from commission_system.errors import (
    ConcurrentDistributionError,
    CycleDetectedError,
    DataIntegrityError,
    InvalidDepositError,
    PersistenceError,
    ResolutionTimeoutError,
)
from commission_system.schemas import (
    CENT,
    DepositEvent,
    DistributionEntry,
    DistributionResult,
    parse_amount,
)
from commission_system.services.distribution_ledger import DistributionLedger
from commission_system.services.eligibility_service import EligibilityEvaluator
from commission_system.utils.upline_resolver import UplineResolver

logger = logging.getLogger(__name__)


def calculate_credit(amount: Decimal, percentage: Decimal) -> Decimal:
    """amount * percentage / 100, rounded half-up to cents."""
    return (Decimal(amount) * Decimal(percentage) / Decimal("100")).quantize(
        CENT, rounding=ROUND_HALF_UP
    )


class CommissionEngine:
    """
    Service for distributing deposit commissions up the referral chain.

    The engine owns the transaction of the session it is given: a
    successful distribute() commits, any failure rolls back.
    """

    def __init__(
            self,
            session: Session,
            rate_table: Optional[RateTable] = None,
            resolver: Optional[UplineResolver] = None,
            evaluator: Optional[EligibilityEvaluator] = None
    ):
        self.session = session
        self.rate_table = rate_table
        self.resolver = resolver or UplineResolver(session)
        self.evaluator = evaluator or EligibilityEvaluator(
            minimum_deposit=Config.get(Config.MIN_COMMISSION_DEPOSIT, Decimal("0"))
        )
        self.ledger = DistributionLedger(session)

        # Asset balances follow the journal only while listeners are active
        register_all_listeners()

    def distribute(self, depositEvent: DepositEvent) -> DistributionResult:
        """
        Process all commissions for a confirmed deposit.

        Safe to call again for the same deposit: the stored result is
        returned and nothing is written.

        Raises:
            InvalidDepositError: event not confirmed / bad amount
            ConfigurationError: a needed level has no rate
            DataIntegrityError: referral cycle or unknown depositor
            ResolutionTimeoutError: upline lookup failed
            ConcurrentDistributionError: another worker won the race
            PersistenceError: write failed, nothing persisted
        """
        self._validateEvent(depositEvent)

        # One rate snapshot for the whole run
        rates = self.rate_table or get_rate_table()

        # 1. Already distributed -> same result, no writes
        try:
            existing = self.ledger.resultForDeposit(depositEvent.depositId)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Idempotency check failed for deposit {depositEvent.depositId}: {e}")
            raise PersistenceError(
                f"Could not read distributions of deposit {depositEvent.depositId}",
                depositId=depositEvent.depositId
            ) from e

        if existing is not None:
            logger.info(
                f"Deposit {depositEvent.depositId} already distributed "
                f"({len(existing.entries)} entries, total {existing.totalCredited}), skipping"
            )
            return existing

        # 2. Upline chain
        chain = self._resolveUpline(depositEvent)

        # 3. Per-level credits
        credits = self._calculateCredits(depositEvent, chain, rates)
        totalCredited = sum((credit["amount"] for credit in credits), Decimal("0.00"))

        # 4. Single atomic write
        self._persist(depositEvent, len(chain), credits, totalCredited)

        result = DistributionResult(
            depositId=depositEvent.depositId,
            ancestorsConsidered=len(chain),
            totalCredited=totalCredited.quantize(CENT),
            entries=[
                DistributionEntry(
                    beneficiaryId=credit["userId"],
                    level=credit["level"],
                    amount=credit["amount"]
                )
                for credit in credits
            ]
        )

        logger.info(
            f"Distributed deposit {depositEvent.depositId}: "
            f"{len(result.entries)}/{len(chain)} ancestors credited, "
            f"total {result.totalCredited}"
        )

        return result

    def _validateEvent(self, depositEvent: DepositEvent) -> None:
        if depositEvent.status != "confirmed":
            raise InvalidDepositError(
                f"Deposit {depositEvent.depositId} is '{depositEvent.status}', not confirmed",
                depositId=depositEvent.depositId
            )

        amount = depositEvent.amount
        if not isinstance(amount, Decimal):
            raise InvalidDepositError(
                f"Deposit {depositEvent.depositId} has invalid amount {amount!r}",
                depositId=depositEvent.depositId
            )

        try:
            parse_amount(amount)
        except InvalidDepositError as e:
            raise InvalidDepositError(
                f"Deposit {depositEvent.depositId}: {e}",
                depositId=depositEvent.depositId
            ) from e

    def _resolveUpline(self, depositEvent: DepositEvent) -> List[User]:
        try:
            return self.resolver.resolveChain(depositEvent.depositorId)

        except CycleDetectedError as e:
            self.session.rollback()
            logger.error(
                f"Referral cycle for depositor {depositEvent.depositorId} "
                f"(deposit {depositEvent.depositId}): chain={e.chain}. "
                f"Manual investigation required"
            )
            raise DataIntegrityError(
                f"Referral cycle above user {depositEvent.depositorId}",
                depositId=depositEvent.depositId
            ) from e

        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Upline lookup failed for deposit {depositEvent.depositId}: {e}")
            raise ResolutionTimeoutError(
                f"Upline lookup failed for user {depositEvent.depositorId}",
                depositId=depositEvent.depositId
            ) from e

    def _calculateCredits(
            self,
            depositEvent: DepositEvent,
            chain: List[User],
            rates: RateTable
    ) -> List[Dict]:
        """Stage one credit per qualifying (ancestor, level). Nothing is written here."""
        credits = []

        for level, ancestor in enumerate(chain, start=1):
            reason = self.evaluator.ineligibilityReason(depositEvent, ancestor, level)
            if reason:
                logger.debug(
                    f"Deposit {depositEvent.depositId}: level {level} "
                    f"user {ancestor.userID} skipped ({reason})"
                )
                continue

            percentage = rates.rateForLevel(level)
            amount = calculate_credit(depositEvent.amount, percentage)

            if amount == 0:
                logger.debug(
                    f"Deposit {depositEvent.depositId}: level {level} "
                    f"user {ancestor.userID} rounds to 0.00, skipped"
                )
                continue

            credits.append({
                "userId": ancestor.userID,
                "level": level,
                "percentage": percentage,
                "amount": amount,
            })

        return credits

    def _persist(
            self,
            depositEvent: DepositEvent,
            ancestorsConsidered: int,
            credits: List[Dict],
            totalCredited: Decimal
    ) -> None:
        """
        Write batch, distributions, journal credits and fund flow, then commit.
        All or nothing.
        """
        depositId = depositEvent.depositId

        try:
            self._lockAssets([credit["userId"] for credit in credits])

            batch = DistributionBatch(
                depositID=depositId,
                ancestorsConsidered=ancestorsConsidered,
                totalCredited=totalCredited
            )
            self.session.add(batch)
            self.session.flush()

            for credit in credits:
                self._writeEntry(batch, depositEvent, credit)

            if totalCredited > 0:
                self.session.add(FundFlow(
                    type="commission",
                    direction="income",
                    amount=totalCredited,
                    source="deposit_split",
                    relatedID=depositId,
                    remark=f"Commission distribution from deposit {depositId}"
                ))

            self.session.commit()

        except IntegrityError as e:
            self.session.rollback()

            if self._batchExists(depositId):
                logger.warning(f"Deposit {depositId} was distributed concurrently by another worker")
                raise ConcurrentDistributionError(
                    f"Deposit {depositId} already being distributed",
                    depositId=depositId
                ) from e

            logger.error(f"Integrity error distributing deposit {depositId}: {e}")
            raise PersistenceError(
                f"Could not persist distribution of deposit {depositId}",
                depositId=depositId
            ) from e

        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database error distributing deposit {depositId}, rolled back: {e}")
            raise PersistenceError(
                f"Could not persist distribution of deposit {depositId}",
                depositId=depositId
            ) from e

    def _lockAssets(self, userIds: List[int]) -> None:
        """Row-lock beneficiaries' assets for the rest of the transaction."""
        if not userIds:
            return
        (
            self.session.query(Asset)
            .filter(Asset.userID.in_(sorted(set(userIds))))
            .with_for_update()
            .all()
        )

    def _writeEntry(self, batch: DistributionBatch, depositEvent: DepositEvent, credit: Dict) -> None:
        distribution = Distribution(
            batchID=batch.batchID,
            depositID=depositEvent.depositId,
            beneficiaryID=credit["userId"],
            level=credit["level"],
            rate=credit["percentage"],
            amount=credit["amount"]
        )
        self.session.add(distribution)
        self.session.flush()

        # Journal line -> listener recalculates Asset
        self.session.add(BalanceJournal(
            userID=credit["userId"],
            amount=credit["amount"],
            kind=BalanceJournal.KIND_COMMISSION,
            status="done",
            reason=f"distribution={distribution.distributionID}",
            notes=f"Level {credit['level']} commission from deposit {depositEvent.depositId}"
        ))
        self.session.flush()

        logger.debug(
            f"Staged +{credit['amount']} for user {credit['userId']} "
            f"(level {credit['level']}, {credit['percentage']}%)"
        )

    def _batchExists(self, depositId: int) -> bool:
        try:
            return self.ledger.batchForDeposit(depositId) is not None
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Could not re-check batch of deposit {depositId}: {e}")
            return False
