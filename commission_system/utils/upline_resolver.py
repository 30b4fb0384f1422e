# commission_system/utils/upline_resolver.py
"""
Safe upline chain resolution.
Bounded traversal with explicit cycle detection.
"""
from typing import Callable, List, Optional
from sqlalchemy.orm import Session
import logging

from models.user import User
from commission_system.config.rates import MAX_LEVEL
from commission_system.errors import CycleDetectedError, DataIntegrityError

logger = logging.getLogger(__name__)


class UplineResolver:
    """
    Walks referrer pointers from a user towards the root of its tree.

    Level 1 is the direct referrer. Traversal never goes deeper than
    max_depth and raises CycleDetectedError when a user is seen twice.
    """

    def __init__(self, session: Session, max_depth: int = MAX_LEVEL):
        self.session = session
        self.max_depth = max_depth

    def _lookup(self, userId: int) -> Optional[User]:
        return self.session.query(User).filter_by(userID=userId).first()

    def walk_upline(
            self,
            start_user: User,
            callback: Callable[[User, int], bool],
            max_depth: Optional[int] = None
    ) -> int:
        """
        Walk up the upline chain, calling callback for each ancestor.

        Args:
            start_user: Starting user (not passed to callback)
            callback: Function(user, level) -> continue_walking (bool)
            max_depth: Maximum number of ancestors to visit

        Returns:
            Number of ancestors processed

        Raises:
            CycleDetectedError: If an ancestor repeats (including start_user)
        """
        if max_depth is None:
            max_depth = self.max_depth

        current_user = start_user
        level = 1
        processed = 0
        visited = [start_user.userID]

        while current_user.referrerID is not None and level <= max_depth:
            referrer_id = current_user.referrerID

            if referrer_id in visited:
                logger.error(
                    f"Cycle detected: user {current_user.userID} refers to "
                    f"{referrer_id}, chain={visited}"
                )
                raise CycleDetectedError(
                    f"Referral cycle at user {referrer_id} starting from user {start_user.userID}",
                    userId=referrer_id,
                    chain=visited
                )

            upline_user = self._lookup(referrer_id)

            if not upline_user:
                logger.warning(
                    f"Upline not found: userID={referrer_id} "
                    f"for user {current_user.userID}"
                )
                break

            visited.append(upline_user.userID)

            should_continue = callback(upline_user, level)
            processed += 1

            if not should_continue:
                break

            current_user = upline_user
            level += 1

        return processed

    def resolveChain(self, userId: int) -> List[User]:
        """
        Get ordered ancestors of a user, level 1 first, at most max_depth.

        Args:
            userId: Starting user ID

        Returns:
            List of ancestors (shorter than max_depth near the root)

        Raises:
            DataIntegrityError: If the user does not exist
            CycleDetectedError: If the chain loops
        """
        user = self._lookup(userId)
        if not user:
            logger.error(f"User {userId} not found for upline resolution")
            raise DataIntegrityError(f"User {userId} not found")

        chain = []

        def collect(upline_user, level):
            chain.append(upline_user)
            return True

        self.walk_upline(user, collect)

        logger.debug(
            f"Resolved upline for user {userId}: "
            f"{[ancestor.userID for ancestor in chain]}"
        )
        return chain
