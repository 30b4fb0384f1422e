# commission_system/services/eligibility_service.py
"""
Commission eligibility rules. Pure: reads its inputs, never touches the session.
"""
from decimal import Decimal
from typing import Optional
import logging

from commission_system.config.rates import MIN_LEVEL, MAX_LEVEL

logger = logging.getLogger(__name__)


class EligibilityEvaluator:
    """Decides whether an ancestor at a level receives commission for a deposit."""

    def __init__(
            self,
            min_level: int = MIN_LEVEL,
            max_level: int = MAX_LEVEL,
            minimum_deposit: Decimal = Decimal("0")
    ):
        self.min_level = min_level
        self.max_level = max_level
        self.minimum_deposit = Decimal(str(minimum_deposit))

    def ineligibilityReason(self, depositEvent, ancestor, level: int) -> Optional[str]:
        """
        Return first failing rule, or None when the ancestor qualifies.

        Rules (in order):
        1. ancestor is activated
        2. ancestor is not the depositor
        3. level within configured range
        4. deposit reaches minimum amount
        """
        if not ancestor.isActive:
            return "inactive"

        if ancestor.userID == depositEvent.depositorId:
            return "self_referral"

        if not self.min_level <= level <= self.max_level:
            return "level_out_of_range"

        if depositEvent.amount < self.minimum_deposit:
            return "below_minimum_deposit"

        return None

    def isEligible(self, depositEvent, ancestor, level: int) -> bool:
        return self.ineligibilityReason(depositEvent, ancestor, level) is None
