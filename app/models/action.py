"""
Append-only action log for the referral program.
"""
import re
from datetime import datetime
from sqlalchemy.orm import validates
from ..extensions import db


ACTION_TYPE_PATTERN = re.compile(r'^[a-z0-9_\-]{1,50}$')

# Action types counted as purchases for first-purchase detection
PURCHASE_ACTION_TYPES = ('purchase', 'test_purchase', 'shopify_purchase')


class ActionType:
    """Action types written by the rewards engine."""
    SIGNUP = 'signup'
    PURCHASE = 'shopify_purchase'
    TEST_PURCHASE = 'test_purchase'
    REDEEM_PREFIX = 'redeem-'
    REDEEM_CANCELLED = 'redeem_cancelled'
    REFERRAL_SIGNUP_BONUS = 'referral_signup_bonus'
    REFERRAL_FIRST_PURCHASE_BONUS = 'referral_first_purchase_bonus'
    REFERRAL_WELCOME_DISCOUNT = 'referral_welcome_discount'
    MILESTONE_REDEMPTION = 'milestone_redemption'
    DISCOUNT_TIER_USED = 'discount_tier_used'

    @staticmethod
    def redeem(redeem_type: str = None) -> str:
        return f"{ActionType.REDEEM_PREFIX}{redeem_type or 'discount'}"


class UserAction(db.Model):
    """
    One row per side-effecting event.

    Rows are never updated or deleted. The (user_id, idempotency_key)
    unique constraint makes the insert itself the duplicate check; rows
    without a key (redemptions, markers) are never de-duplicated.
    """
    __tablename__ = 'user_actions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    action_type = db.Column(db.String(50), nullable=False)
    points_awarded = db.Column(db.Integer, nullable=False, default=0)  # Negative for redemptions

    action_ref = db.Column(db.String(255))  # order_123, tier_1250, referral_4_order_123
    idempotency_key = db.Column(db.String(255))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('user_id', 'idempotency_key', name='uq_user_action_idempotency'),
        db.Index('ix_user_actions_user_ref', 'user_id', 'action_ref'),
    )

    @validates('action_type')
    def validate_action_type(self, key, value):
        if not value or not ACTION_TYPE_PATTERN.match(value):
            raise ValueError(f'Invalid action type: {value!r}')
        return value

    def __repr__(self):
        return f'<UserAction {self.id}: {self.action_type} {self.points_awarded} pts for user {self.user_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'action_type': self.action_type,
            'points_awarded': self.points_awarded,
            'action_ref': self.action_ref,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }
