"""
Ledger persistence primitives.

Every balance change is a single SQL statement (points = points + delta)
and every idempotent append is guarded by a unique constraint, so two
workers racing on the same user cannot double-credit or overdraw it.
Callers own the transaction: nothing here commits.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    User,
    OutstandingRedemption,
    MilestoneRedemption,
    UserAction,
    PURCHASE_ACTION_TYPES,
)
from ..utils.exceptions import InsufficientPointsError

logger = logging.getLogger(__name__)


class DuplicateRecordError(Exception):
    """A unique constraint rejected the write."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(message)


class DuplicateActionError(DuplicateRecordError):
    """An action with the same idempotency key already exists for the user."""

    def __init__(self, idempotency_key: str, original_error: Exception = None):
        self.idempotency_key = idempotency_key
        super().__init__(f'Action {idempotency_key} already recorded', original_error)


class LedgerStore:
    """
    Users, their outstanding redemption, milestone ledger and action log.

    Usage:
        store = LedgerStore()
        user = store.find_user_by_email('a@example.com')
        store.append_action(user, 'share', 5, idempotency_key='action_share')
        store.update_balance(user, 5)
        store.commit()
    """

    def __init__(self, session=None):
        self.session = session or db.session

    # ==================== Lookups ====================

    def find_user_by_email(self, email: str) -> Optional[User]:
        if not email:
            return None
        return User.query.filter_by(email=email).first()

    def find_user_by_referral_code(self, referral_code: str) -> Optional[User]:
        if not referral_code:
            return None
        return User.query.filter_by(referral_code=referral_code).first()

    def find_user_by_outstanding_code(self, code: str, email: str = None) -> Optional[User]:
        """User currently holding the code, optionally restricted to an email."""
        if not code:
            return None
        query = User.query.join(OutstandingRedemption).filter(
            OutstandingRedemption.discount_code == code
        )
        if email:
            query = query.filter(User.email == email)
        return query.first()

    # ==================== Users ====================

    def create_user(
        self,
        email: str,
        referral_code: str,
        first_name: str = None,
        referred_by: str = None,
        points: int = 0
    ) -> User:
        """
        Insert a user.

        Raises:
            DuplicateRecordError: email or referral code already taken
        """
        user = User(
            email=email,
            first_name=first_name,
            referral_code=referral_code,
            referred_by=referred_by,
            points=points,
            referral_count=0
        )
        try:
            with self.session.begin_nested():
                self.session.add(user)
        except IntegrityError as e:
            raise DuplicateRecordError(f'User {email} or code {referral_code} already exists', e)
        return user

    def update_balance(self, user: User, delta: int, require_sufficient: bool = False) -> int:
        """
        Atomically add delta to the user's balance.

        With require_sufficient the update only applies when the balance
        covers the debit.

        Returns:
            The new balance

        Raises:
            InsufficientPointsError: debit exceeds the balance
        """
        self.session.flush()

        stmt = update(User).where(User.id == user.id)
        if require_sufficient and delta < 0:
            stmt = stmt.where(User.points >= -delta)
        stmt = stmt.values(points=User.points + delta).execution_options(synchronize_session=False)

        result = self.session.execute(stmt)
        if result.rowcount == 0:
            self.session.refresh(user)
            raise InsufficientPointsError(user.points or 0, -delta)

        self.session.refresh(user)
        return user.points

    def increment_referral_counter(self, user: User) -> int:
        self.session.flush()
        self.session.execute(
            update(User)
            .where(User.id == user.id)
            .values(referral_count=User.referral_count + 1)
            .execution_options(synchronize_session=False)
        )
        self.session.refresh(user)
        return user.referral_count

    def update_tier_snapshot(self, user: User, tier_name: str, total_spent) -> None:
        user.tier = tier_name
        user.total_spent = total_spent

    # ==================== Outstanding redemption ====================

    def update_outstanding_code(
        self,
        user: User,
        code: str,
        discount_id: str = None,
        points_spent: int = 0
    ) -> OutstandingRedemption:
        """
        Put a code in the user's outstanding slot, replacing any previous one.

        A concurrent request may fill an empty slot first; its row is then
        overwritten like any other outstanding code.
        """
        outstanding = user.outstanding_redemption
        if outstanding is None:
            outstanding = OutstandingRedemption(
                user_id=user.id,
                discount_code=code,
                discount_id=discount_id,
                points_spent=points_spent,
                issued_at=datetime.utcnow()
            )
            try:
                with self.session.begin_nested():
                    user.outstanding_redemption = outstanding
                return outstanding
            except IntegrityError:
                self.session.expire(user, ['outstanding_redemption'])
                outstanding = OutstandingRedemption.query.filter_by(user_id=user.id).one()
                logger.warning(
                    f'[Ledger] Slot for user {user.id} filled concurrently by '
                    f'{outstanding.discount_code}; replacing it'
                )

        outstanding.discount_code = code
        outstanding.discount_id = discount_id
        outstanding.points_spent = points_spent
        outstanding.issued_at = datetime.utcnow()
        self.session.flush()
        return outstanding

    def clear_outstanding_code(self, user: User) -> Optional[Dict[str, Any]]:
        """Empty the slot. Returns a snapshot of the removed redemption, if any."""
        outstanding = user.outstanding_redemption
        if outstanding is None:
            return None
        snapshot = outstanding.to_dict()
        user.outstanding_redemption = None
        self.session.flush()
        return snapshot

    # ==================== Milestones ====================

    def update_milestone_ledger(self, user: User, threshold: int, code: str) -> MilestoneRedemption:
        """
        Record a milestone reward.

        Raises:
            DuplicateRecordError: threshold already redeemed by the user
        """
        redemption = MilestoneRedemption(user_id=user.id, threshold=threshold, discount_code=code)
        try:
            with self.session.begin_nested():
                self.session.add(redemption)
        except IntegrityError as e:
            raise DuplicateRecordError(f'Milestone {threshold} already redeemed', e)
        return redemption

    def find_milestone_redemption(self, user: User, threshold: int) -> Optional[MilestoneRedemption]:
        return MilestoneRedemption.query.filter_by(user_id=user.id, threshold=threshold).first()

    # ==================== Action log ====================

    def append_action(
        self,
        user: User,
        action_type: str,
        points_awarded: int = 0,
        action_ref: str = None,
        idempotency_key: str = None
    ) -> UserAction:
        """
        Append an action inside a savepoint.

        Raises:
            DuplicateActionError: idempotency_key already used for this user
        """
        action = UserAction(
            user_id=user.id,
            action_type=action_type,
            points_awarded=points_awarded,
            action_ref=action_ref,
            idempotency_key=idempotency_key
        )
        try:
            with self.session.begin_nested():
                self.session.add(action)
        except IntegrityError as e:
            raise DuplicateActionError(idempotency_key or action_type, e)
        return action

    def find_action_by_type_for_user(self, user: User, action_type: str) -> Optional[UserAction]:
        return UserAction.query.filter_by(user_id=user.id, action_type=action_type).first()

    def find_action_by_reference_for_user(self, user: User, action_ref: str) -> Optional[UserAction]:
        return UserAction.query.filter_by(user_id=user.id, action_ref=action_ref).first()

    def list_purchase_actions_for_user(self, user: User) -> List[UserAction]:
        return UserAction.query.filter(
            UserAction.user_id == user.id,
            UserAction.action_type.in_(PURCHASE_ACTION_TYPES)
        ).order_by(UserAction.created_at.asc()).all()

    def list_actions_for_user(self, user: User, limit: int = None) -> List[UserAction]:
        query = UserAction.query.filter_by(user_id=user.id).order_by(
            UserAction.created_at.desc(), UserAction.id.desc()
        )
        if limit:
            query = query.limit(limit)
        return query.all()

    # ==================== Audit ====================

    def replay_balance(self, user: User) -> int:
        """Sum of every action delta recorded for the user."""
        total = self.session.query(
            func.coalesce(func.sum(UserAction.points_awarded), 0)
        ).filter(UserAction.user_id == user.id).scalar()
        return int(total or 0)

    def find_balance_mismatches(self, email: str = None) -> List[Dict[str, Any]]:
        """Users whose cached balance differs from their replayed action log."""
        replayed = self.session.query(
            UserAction.user_id.label('user_id'),
            func.sum(UserAction.points_awarded).label('total')
        ).group_by(UserAction.user_id).subquery()

        query = self.session.query(
            User,
            func.coalesce(replayed.c.total, 0)
        ).outerjoin(replayed, replayed.c.user_id == User.id)
        if email:
            query = query.filter(User.email == email)

        mismatches = []
        for user, replayed_balance in query.order_by(User.id).all():
            if int(user.points or 0) != int(replayed_balance or 0):
                mismatches.append({
                    'user_id': user.id,
                    'email': user.email,
                    'cached_balance': int(user.points or 0),
                    'replayed_balance': int(replayed_balance or 0)
                })
        return mismatches

    # ==================== Transactions ====================

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
