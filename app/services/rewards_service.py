"""
Rewards engine for the referral program.

Turns signups, social actions, redemptions and paid orders into balance
changes, appending one UserAction per change so every balance can be
rebuilt from its action log.

Guarantees:
- A whitelisted action is credited at most once per user
- An order is credited at most once per user
- A referrer earns the first-purchase bonus at most once per referred user
- A milestone reward is issued at most once per user
- A redemption can never drive a balance negative

Uniqueness is enforced by the database (see LedgerStore), so these hold
under concurrent requests and webhook redelivery.
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, Optional

from flask import current_app

from ..config import RewardsSettings
from ..models import ActionType
from ..models.action import ACTION_TYPE_PATTERN
from ..utils.exceptions import (
    AlreadyClaimedError,
    AlreadyRedeemedError,
    CollaboratorError,
    ConflictError,
    DuplicateError,
    InsufficientPointsError,
    InsufficientReferralsError,
    InvalidActionError,
    InvalidMilestoneError,
    NoActiveDiscountError,
    ShopifyError,
    UserNotFoundError,
    ValidationError,
)
from .best_effort import attempt
from .discount_codes import (
    build_referral_url,
    generate_referral_code,
    is_reward_code,
    tier_points_from_code,
)
from .ledger_store import DuplicateActionError, DuplicateRecordError, LedgerStore
from .shopify_client import RewardKind
from .tier_service import calculate_points_for_purchase, load_tiers, tier_for

MAX_REFERRAL_CODE_ATTEMPTS = 3
MILESTONE_DISCOUNT_VALUE = '100'


class RewardsService:
    """
    Orchestrates every ledger operation.

    Collaborators are injected so tests can swap them for mocks.

    Usage:
        service = build_rewards_service()
        result = service.award_points('a@example.com', 'share')
    """

    def __init__(
        self,
        settings: RewardsSettings,
        store: LedgerStore = None,
        shopify=None,
        klaviyo=None,
        enqueue: Callable = None
    ):
        self.settings = settings
        self.store = store or LedgerStore()
        self.shopify = shopify
        self.klaviyo = klaviyo
        if enqueue is None:
            from ..utils.scheduler import enqueue_task
            enqueue = enqueue_task
        self.enqueue = enqueue
        self.tiers = load_tiers(settings.tiers)

    @property
    def logger(self):
        return current_app.logger

    # ==================== Signup ====================

    def signup(self, email: str, first_name: str = None, referred_by: str = None) -> Dict[str, Any]:
        """
        Enroll a new user.

        Credits the signup bonus, credits a resolvable referrer, queues the
        email list subscription and, for referred users, mints a welcome
        discount.

        Raises:
            DuplicateError: email already enrolled
            ConflictError: no unique referral code could be allocated
        """
        if self.store.find_user_by_email(email):
            raise DuplicateError('User', email)

        user = None
        for _ in range(MAX_REFERRAL_CODE_ATTEMPTS):
            referral_code = generate_referral_code()
            try:
                user = self.store.create_user(
                    email=email,
                    referral_code=referral_code,
                    first_name=first_name,
                    referred_by=referred_by or None,
                    points=self.settings.signup_points
                )
                break
            except DuplicateRecordError:
                if self.store.find_user_by_email(email):
                    self.store.rollback()
                    raise DuplicateError('User', email)
                self.logger.warning(f'[Rewards] Referral code collision on {referral_code}, retrying')

        if user is None:
            self.store.rollback()
            raise ConflictError('Could not allocate a unique referral code', 'REFERRAL_CODE_EXHAUSTED')

        self.store.append_action(
            user,
            ActionType.SIGNUP,
            self.settings.signup_points,
            idempotency_key=ActionType.SIGNUP
        )

        if referred_by:
            referrer = self.store.find_user_by_referral_code(referred_by)
            if referrer and referrer.id != user.id:
                key = f'referral_signup_{user.id}'
                self.store.append_action(
                    referrer,
                    ActionType.REFERRAL_SIGNUP_BONUS,
                    self.settings.referrer_signup_bonus,
                    action_ref=key,
                    idempotency_key=key
                )
                self.store.update_balance(referrer, self.settings.referrer_signup_bonus)
                self.logger.info(
                    f'[Rewards] Awarded {self.settings.referrer_signup_bonus} signup referral '
                    f'points to {referrer.email}'
                )

        self.store.commit()
        self.logger.info(f'[Rewards] Signed up {email} with code {user.referral_code}')

        if self.klaviyo is not None:
            self.enqueue(self.klaviyo.subscribe_to_list, email, first_name, name='klaviyo_subscribe')

        welcome_code = None
        if referred_by and self.shopify is not None:
            result = attempt(
                self.shopify.create_discount,
                self.settings.welcome_discount_value,
                0,
                description=f'welcome discount for {email}'
            )
            if result.ok:
                welcome_code = result.value['code']

        return {
            'user_id': user.id,
            'points': user.points,
            'referral_code': user.referral_code,
            'referral_url': build_referral_url(self.settings.store_url, user.referral_code),
            'welcome_discount_code': welcome_code
        }

    # ==================== Social actions ====================

    def award_points(self, email: str, action_type: str) -> Dict[str, Any]:
        """
        Credit a whitelisted one-time action.

        Raises:
            InvalidActionError: action is not whitelisted
            UserNotFoundError: no such user
            AlreadyClaimedError: action already credited to the user
        """
        points = self.settings.allowed_actions.get(action_type)
        if points is None:
            raise InvalidActionError(action_type)

        user = self.store.find_user_by_email(email)
        if not user:
            raise UserNotFoundError(email)

        try:
            self.store.append_action(user, action_type, points, idempotency_key=f'action_{action_type}')
        except DuplicateActionError:
            self.store.rollback()
            raise AlreadyClaimedError(action_type)

        new_points = self.store.update_balance(user, points)
        self.store.commit()

        self.logger.info(f'[Rewards] Awarded {points} points to {email} for {action_type}')
        return {'points_awarded': points, 'new_points': new_points}

    # ==================== Redemption ====================

    def redeem(
        self,
        email: str,
        points_to_redeem,
        redeem_type: str = 'discount',
        redeem_value=None
    ) -> Dict[str, Any]:
        """
        Exchange points for a single-use discount code.

        The debit is committed before the code is minted; if Shopify then
        fails the points stay spent and the failure is raised.

        Raises:
            ValidationError: points_to_redeem is not a positive integer
            UserNotFoundError: no such user
            InsufficientPointsError: balance below points_to_redeem
            CollaboratorError: discount creation failed
        """
        points = _positive_int(points_to_redeem, 'points_to_redeem')
        action_type = ActionType.redeem(redeem_type)
        if not ACTION_TYPE_PATTERN.match(action_type):
            raise ValidationError('Invalid redeem type', 'redeem_type')

        user = self.store.find_user_by_email(email)
        if not user:
            raise UserNotFoundError(email)

        try:
            new_points = self.store.update_balance(user, -points, require_sufficient=True)
        except InsufficientPointsError:
            self.store.rollback()
            raise

        self.store.append_action(user, action_type, -points)
        self.store.commit()

        try:
            discount = self.shopify.create_discount(redeem_value, points)
        except Exception as e:
            self.logger.error(
                f'[Rewards] Discount creation failed after debiting {points} points from {email}: {e}'
            )
            if isinstance(e, CollaboratorError):
                raise
            raise ShopifyError(f'Failed to create discount code: {e}', e)

        previous = user.outstanding_redemption
        if previous is not None:
            self.logger.warning(
                f'[Rewards] {email} redeemed while {previous.discount_code} was outstanding; replacing it'
            )

        self.store.update_outstanding_code(user, discount['code'], discount.get('discount_id'), points)
        self.store.commit()

        self.logger.info(f'[Rewards] {email} redeemed {points} points for {discount["code"]}')
        return {'discount_code': discount['code'], 'new_points': new_points}

    def cancel_redeem(self, email: str, points_to_refund=None) -> Dict[str, Any]:
        """
        Cancel the outstanding discount and refund its points.

        Omitting points_to_refund refunds the full recorded cost; a smaller
        amount is a partial refund.

        Raises:
            UserNotFoundError: no such user
            NoActiveDiscountError: nothing outstanding
            ValidationError: refund is negative or above the recorded cost
        """
        user = self.store.find_user_by_email(email)
        if not user:
            raise UserNotFoundError(email)

        outstanding = user.outstanding_redemption
        if outstanding is None:
            raise NoActiveDiscountError()

        points_spent = outstanding.points_spent or 0
        if points_to_refund is None:
            refund = points_spent
        else:
            refund = _non_negative_int(points_to_refund, 'points_to_refund')
            if refund > points_spent:
                raise ValidationError(
                    f'Cannot refund more than the {points_spent} points spent on this discount',
                    'points_to_refund'
                )

        if outstanding.discount_id and self.shopify is not None:
            attempt(
                self.shopify.deactivate_discount,
                outstanding.discount_id,
                description=f'deactivate {outstanding.discount_code}'
            )

        snapshot = self.store.clear_outstanding_code(user)
        try:
            self.store.append_action(
                user,
                ActionType.REDEEM_CANCELLED,
                refund,
                action_ref=snapshot['discount_code'],
                idempotency_key=f"cancel_{snapshot['discount_code']}"
            )
        except DuplicateActionError:
            self.store.rollback()
            raise NoActiveDiscountError()

        new_points = self.store.update_balance(user, refund)
        self.store.commit()

        self.logger.info(f"[Rewards] Cancelled {snapshot['discount_code']} for {email}, refunded {refund}")
        return {'new_points': new_points, 'points_refunded': refund}

    def mark_discount_used(self, email: str, used_code: str) -> Dict[str, Any]:
        """
        Clear a code the customer has spent. The balance is unchanged.

        Raises:
            UserNotFoundError: no user with that email holds the code
        """
        user = self.store.find_user_by_outstanding_code(used_code, email=email)
        if not user:
            raise UserNotFoundError(message='User with that code not found')

        snapshot = self.store.clear_outstanding_code(user)
        self.store.commit()

        if snapshot.get('discount_id') and self.shopify is not None:
            attempt(
                self.shopify.deactivate_discount,
                snapshot['discount_id'],
                description=f'deactivate {used_code}'
            )

        self.logger.info(f'[Rewards] Marked {used_code} used for {email}')
        return {'success': True}

    # ==================== Purchases ====================

    def process_purchase(
        self,
        email: str,
        order_total,
        order_id,
        used_discount_codes: Iterable = ()
    ) -> Dict[str, Any]:
        """
        Credit a paid order.

        Args:
            email: Customer email from the order
            order_total: Order total in store currency
            order_id: Shopify order id
            used_discount_codes: Codes applied to the order (strings or
                Shopify discount_codes entries)

        Returns:
            Purchase summary, or {'skipped': True, 'reason': ...}

        Raises:
            CollaboratorError: lifetime spend lookup failed
        """
        user = self.store.find_user_by_email(email)
        if not user:
            return {'skipped': True, 'reason': 'User not in referral program'}

        order_ref = f'order_{order_id}'
        if self.store.find_action_by_reference_for_user(user, order_ref):
            return {'skipped': True, 'reason': 'Order already processed'}

        is_first_purchase = not self.store.list_purchase_actions_for_user(user)

        total_spent = self.shopify.get_customer_total_spent(email)
        tier = tier_for(total_spent, self.tiers)
        points = calculate_points_for_purchase(order_total, tier)

        try:
            self.store.append_action(
                user,
                ActionType.PURCHASE,
                points,
                action_ref=order_ref,
                idempotency_key=order_ref
            )
        except DuplicateActionError:
            self.store.rollback()
            return {'skipped': True, 'reason': 'Order already processed'}

        new_points = self.store.update_balance(user, points)
        self.store.update_tier_snapshot(user, tier.name, total_spent)

        self.logger.info(
            f'[Rewards] Purchase: {email} | Tier: {tier.name} | Spent: ${total_spent} | '
            f'Order: ${order_total} | Points: {points}'
        )

        for code in _discount_code_strings(used_discount_codes):
            if is_reward_code(code):
                self._consume_reward_code(code)

        referrer_bonus = None
        if is_first_purchase:
            referrer_bonus = self._grant_first_purchase_bonus(user, order_id)

        self.store.commit()

        return {
            'points_awarded': points,
            'new_points': new_points,
            'is_first_purchase': is_first_purchase,
            'referrer_bonus': referrer_bonus,
            'tier': tier.name,
            'total_spent': float(total_spent),
            'points_per_dollar': tier.points_per_dollar
        }

    def process_test_purchase(self, email: str, order_total) -> Dict[str, Any]:
        """
        Credit a simulated purchase at the base tier rate.

        Test purchases carry no order id, so each call is credited.

        Raises:
            ValidationError: order_total is not a positive number
            UserNotFoundError: no such user
        """
        amount = _positive_decimal(order_total, 'order_total')

        user = self.store.find_user_by_email(email)
        if not user:
            raise UserNotFoundError(message='User not found. Please sign up first.')

        is_first_purchase = not self.store.list_purchase_actions_for_user(user)

        tier = tier_for(0, self.tiers)
        points = calculate_points_for_purchase(amount, tier)

        self.store.append_action(user, ActionType.TEST_PURCHASE, points)
        new_points = self.store.update_balance(user, points)

        referrer_bonus = None
        if is_first_purchase:
            referrer_bonus = self._grant_first_purchase_bonus(user, 'test')

        self.store.commit()

        return {
            'order_total': float(amount),
            'points_awarded': points,
            'new_points': new_points,
            'is_first_purchase': is_first_purchase,
            'referrer_bonus': referrer_bonus
        }

    def _consume_reward_code(self, code: str) -> None:
        """Clear a used reward code from whoever holds it and log its tier."""
        holder = self.store.find_user_by_outstanding_code(code)
        if not holder:
            return

        self.store.clear_outstanding_code(holder)
        self.logger.info(f'[Rewards] Marked discount code {code} as used for {holder.email}')

        tier_points = tier_points_from_code(code)
        if tier_points:
            self.store.append_action(
                holder,
                ActionType.DISCOUNT_TIER_USED,
                0,
                action_ref=f'tier_{tier_points}'
            )

    def _grant_first_purchase_bonus(self, user, order_id) -> Optional[Dict[str, Any]]:
        """Credit the user's referrer for their first purchase."""
        if not user.referred_by:
            return None

        referrer = self.store.find_user_by_referral_code(user.referred_by)
        if not referrer or referrer.id == user.id:
            return None

        bonus = self.settings.referral_bonus_points
        try:
            self.store.append_action(
                referrer,
                ActionType.REFERRAL_FIRST_PURCHASE_BONUS,
                bonus,
                action_ref=f'referral_{user.id}_order_{order_id}',
                idempotency_key=f'referral_first_purchase_{user.id}'
            )
        except DuplicateActionError:
            self.logger.info(f'[Rewards] Referral bonus for {user.email} already granted')
            return None

        referrer_new_points = self.store.update_balance(referrer, bonus)
        referral_count = self.store.increment_referral_counter(referrer)

        self.logger.info(f'[Rewards] Referral bonus: {referrer.email} awarded {bonus} points')
        return {
            'referrer_email': referrer.email,
            'bonus_points': bonus,
            'referrer_new_points': referrer_new_points,
            'referral_count': referral_count
        }

    # ==================== Milestones ====================

    def milestone_redeem(self, email: str, milestone_threshold) -> Dict[str, Any]:
        """
        Issue the free-product reward for a referral-count milestone.

        Raises:
            InvalidMilestoneError: no reward configured for the threshold
            UserNotFoundError: no such user
            InsufficientReferralsError: referral count below the threshold
            AlreadyRedeemedError: milestone already issued
            CollaboratorError: discount creation failed
        """
        try:
            threshold = int(milestone_threshold)
        except (TypeError, ValueError):
            raise InvalidMilestoneError(milestone_threshold)

        reward = self.settings.milestone_rewards.get(threshold)
        if not reward:
            raise InvalidMilestoneError(threshold)

        user = self.store.find_user_by_email(email)
        if not user:
            raise UserNotFoundError(email)

        referral_count = user.referral_count or 0
        if referral_count < threshold:
            raise InsufficientReferralsError(referral_count, threshold)

        if self.store.find_milestone_redemption(user, threshold):
            raise AlreadyRedeemedError(threshold)

        try:
            discount = self.shopify.create_discount(
                MILESTONE_DISCOUNT_VALUE,
                0,
                reward_kind=RewardKind.FREE_PRODUCT,
                collection_id=reward.get('collection_id')
            )
        except Exception as e:
            self.logger.error(f'[Rewards] Milestone {threshold} discount failed for {email}: {e}')
            if isinstance(e, CollaboratorError):
                raise
            raise ShopifyError(f'Failed to create discount code: {e}', e)

        try:
            self.store.update_milestone_ledger(user, threshold, discount['code'])
            self.store.append_action(
                user,
                ActionType.MILESTONE_REDEMPTION,
                0,
                action_ref=f'milestone_{threshold}',
                idempotency_key=f'milestone_{threshold}'
            )
        except DuplicateRecordError:
            self.store.rollback()
            if discount.get('discount_id'):
                attempt(
                    self.shopify.deactivate_discount,
                    discount['discount_id'],
                    description=f"deactivate duplicate milestone code {discount['code']}"
                )
            raise AlreadyRedeemedError(threshold)

        self.store.commit()

        self.logger.info(f"[Rewards] {email} redeemed milestone {threshold}: {reward['name']}")
        return {'reward_name': reward['name'], 'discount_code': discount['code']}

    # ==================== Welcome discount ====================

    def create_welcome_discount(self, email: str) -> Dict[str, Any]:
        """
        Mint the referred-customer welcome discount.

        Logs a zero-point action when the email belongs to a program member.

        Raises:
            CollaboratorError: discount creation failed
        """
        value = self.settings.welcome_discount_value
        try:
            discount = self.shopify.create_discount(value, 0)
        except Exception as e:
            self.logger.error(f'[Rewards] Welcome discount failed for {email}: {e}')
            if isinstance(e, CollaboratorError):
                raise
            raise ShopifyError(f'Failed to create discount code: {e}', e)

        user = self.store.find_user_by_email(email)
        if user:
            self.store.append_action(
                user,
                ActionType.REFERRAL_WELCOME_DISCOUNT,
                0,
                action_ref=discount['code']
            )
            self.store.commit()

        return {'discount_code': discount['code'], 'discount_value': f'${value} off'}

    # ==================== Lookups ====================

    def get_user(self, email: str, history_limit: int = 20) -> Dict[str, Any]:
        """
        User profile with referral link and recent actions.

        Raises:
            UserNotFoundError: no such user
        """
        user = self.store.find_user_by_email(email)
        if not user:
            raise UserNotFoundError(email)

        data = user.to_dict()
        data['referral_url'] = build_referral_url(self.settings.store_url, user.referral_code)
        data['actions'] = [a.to_dict() for a in self.store.list_actions_for_user(user, limit=history_limit)]
        return data


def _discount_code_strings(entries: Iterable) -> Iterable[str]:
    for entry in entries or ():
        code = entry.get('code') if isinstance(entry, dict) else entry
        if code:
            yield str(code)


def _positive_int(value, field: str) -> int:
    number = _non_negative_int(value, field)
    if number <= 0:
        raise ValidationError(f'{field} must be a positive integer', field)
    return number


def _non_negative_int(value, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be an integer', field)
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field} must be an integer', field)
    if not number.is_finite() or number != number.to_integral_value():
        raise ValidationError(f'{field} must be an integer', field)
    if number < 0:
        raise ValidationError(f'{field} must not be negative', field)
    return int(number)


def _positive_decimal(value, field: str) -> Decimal:
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field} must be a positive number', field)
    if not number.is_finite() or number <= 0:
        raise ValidationError(f'{field} must be a positive number', field)
    return number


def build_rewards_service(config=None, **overrides) -> RewardsService:
    """
    Wire a RewardsService from the Flask config.

    Keyword overrides replace individual collaborators (store, shopify,
    klaviyo, enqueue).
    """
    from .klaviyo_service import KlaviyoService
    from .shopify_client import ShopifyClient

    settings = RewardsSettings.from_config(config if config is not None else current_app.config)
    if 'shopify' not in overrides:
        overrides['shopify'] = ShopifyClient.from_settings(settings)
    if 'klaviyo' not in overrides:
        overrides['klaviyo'] = KlaviyoService.from_settings(settings)
    return RewardsService(settings, **overrides)
