"""
User, OutstandingRedemption and MilestoneRedemption models.
"""
from datetime import datetime
from decimal import Decimal
from ..extensions import db


class User(db.Model):
    """
    Member of the referral program.

    The points column is a materialized view of the user's action log;
    every change to it is paired with a UserAction row.
    """
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    first_name = db.Column(db.String(255))

    points = db.Column(db.Integer, nullable=False, default=0)

    # Referral linkage
    referral_code = db.Column(db.String(50), nullable=False, unique=True, index=True)
    referred_by = db.Column(db.String(50))  # Referrer's code; may not resolve
    referral_count = db.Column(db.Integer, nullable=False, default=0)

    # Tier snapshot, recomputed on each purchase
    tier = db.Column(db.String(50))
    total_spent = db.Column(db.Numeric(12, 2), default=Decimal('0'))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint('points >= 0', name='ck_users_points_non_negative'),
    )

    # Relationships
    outstanding_redemption = db.relationship(
        'OutstandingRedemption',
        backref='user',
        uselist=False,
        cascade='all, delete-orphan'
    )
    milestone_redemptions = db.relationship(
        'MilestoneRedemption',
        backref='user',
        lazy='dynamic',
        cascade='all, delete-orphan'
    )
    actions = db.relationship('UserAction', backref='user', lazy='dynamic')

    def __repr__(self):
        return f'<User {self.email}>'

    @property
    def redeemed_milestones(self) -> dict:
        """Milestone threshold -> discount code already issued."""
        return {m.threshold: m.discount_code for m in self.milestone_redemptions}

    def to_dict(self):
        outstanding = self.outstanding_redemption
        return {
            'id': self.id,
            'email': self.email,
            'first_name': self.first_name,
            'points': self.points,
            'referral_code': self.referral_code,
            'referred_by': self.referred_by,
            'referral_count': self.referral_count or 0,
            'tier': self.tier,
            'total_spent': float(self.total_spent or 0),
            'outstanding_redemption': outstanding.to_dict() if outstanding else None,
            'redeemed_milestones': {
                str(threshold): code for threshold, code in self.redeemed_milestones.items()
            },
            'created_at': self.created_at.isoformat() if self.created_at else None
        }


class OutstandingRedemption(db.Model):
    """
    The single discount code a user currently holds.

    A row exists only while the slot is ISSUED; deleting it returns the
    slot to EMPTY.
    """
    __tablename__ = 'outstanding_redemptions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, unique=True)

    discount_code = db.Column(db.String(50), nullable=False, index=True)
    discount_id = db.Column(db.String(100))  # Shopify DiscountCodeBasic GID
    points_spent = db.Column(db.Integer, nullable=False, default=0)

    issued_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<OutstandingRedemption {self.discount_code} for user {self.user_id}>'

    def to_dict(self):
        return {
            'discount_code': self.discount_code,
            'discount_id': self.discount_id,
            'points_spent': self.points_spent,
            'issued_at': self.issued_at.isoformat() if self.issued_at else None
        }


class MilestoneRedemption(db.Model):
    """Discount code issued for a referral-count milestone."""
    __tablename__ = 'milestone_redemptions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    threshold = db.Column(db.Integer, nullable=False)
    discount_code = db.Column(db.String(50), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('user_id', 'threshold', name='uq_milestone_user_threshold'),
    )

    def __repr__(self):
        return f'<MilestoneRedemption {self.threshold} for user {self.user_id}>'
