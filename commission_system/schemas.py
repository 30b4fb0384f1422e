# commission_system/schemas.py
"""
Value objects passed in and out of the commission engine.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from commission_system.errors import InvalidDepositError

CENT = Decimal("0.01")
MAX_AMOUNT = Decimal(10) ** 16


def parse_amount(raw: Any) -> Decimal:
    """
    Parse a deposit amount (decimal string or number).

    Raises:
        InvalidDepositError: not a number, negative, too large, or more than 2 decimals
    """
    try:
        amount = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise InvalidDepositError(f"Invalid deposit amount: {raw!r}")

    if not amount.is_finite() or amount < 0:
        raise InvalidDepositError(f"Deposit amount must be a non-negative number, got {raw!r}")

    # DECIMAL(18, 2) holds at most 16 integer digits
    if amount >= MAX_AMOUNT:
        raise InvalidDepositError(f"Deposit amount exceeds {MAX_AMOUNT - CENT}: {raw!r}")

    try:
        quantized = amount.quantize(CENT)
    except InvalidOperation:
        raise InvalidDepositError(f"Deposit amount out of range: {raw!r}")

    if amount != quantized:
        raise InvalidDepositError(f"Deposit amount has more than 2 decimals: {raw!r}")

    return quantized


def _parse_timestamp(raw: Any) -> Optional[datetime]:
    if raw is None or isinstance(raw, datetime):
        value = raw
    else:
        try:
            value = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
        except ValueError:
            raise InvalidDepositError(f"Invalid confirmedAt timestamp: {raw!r}")

    if value is not None and value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class DepositEvent:
    """Confirmed-deposit notification."""
    depositId: int
    depositorId: int
    amount: Decimal
    confirmedAt: Optional[datetime] = None
    status: str = "confirmed"

    @classmethod
    def fromDict(cls, data: Dict[str, Any]) -> "DepositEvent":
        """
        Build from {depositId, depositorId, amount, confirmedAt}.

        Raises:
            InvalidDepositError: missing or malformed fields
        """
        try:
            depositId = int(data["depositId"])
            depositorId = int(data["depositorId"])
            raw_amount = data["amount"]
        except KeyError as e:
            raise InvalidDepositError(f"Deposit event missing field {e}")
        except (TypeError, ValueError) as e:
            raise InvalidDepositError(f"Malformed deposit event identifiers: {e}")

        return cls(
            depositId=depositId,
            depositorId=depositorId,
            amount=parse_amount(raw_amount),
            confirmedAt=_parse_timestamp(data.get("confirmedAt")),
            status=data.get("status", "confirmed"),
        )

    @classmethod
    def fromDeposit(cls, deposit) -> "DepositEvent":
        """Build from a models.Deposit row."""
        return cls(
            depositId=deposit.depositID,
            depositorId=deposit.userID,
            amount=parse_amount(deposit.amount),
            confirmedAt=_parse_timestamp(deposit.confirmedAt),
            status=deposit.status,
        )


@dataclass(frozen=True)
class DistributionEntry:
    beneficiaryId: int
    level: int
    amount: Decimal


@dataclass(frozen=True)
class DistributionResult:
    """Outcome of one distribute() call (or the stored outcome on re-invocation)."""
    depositId: int
    ancestorsConsidered: int
    totalCredited: Decimal
    entries: List[DistributionEntry] = field(default_factory=list)

    def toDict(self) -> Dict[str, Any]:
        return {
            "depositId": self.depositId,
            "ancestorsConsidered": self.ancestorsConsidered,
            "totalCredited": str(self.totalCredited),
            "entries": [
                {
                    "beneficiaryId": entry.beneficiaryId,
                    "level": entry.level,
                    "amount": str(entry.amount),
                }
                for entry in self.entries
            ],
        }
