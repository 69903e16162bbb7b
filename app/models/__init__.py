"""
Database models for the referral rewards ledger.
"""
from .user import User, OutstandingRedemption, MilestoneRedemption
from .action import UserAction, ActionType, PURCHASE_ACTION_TYPES

__all__ = [
    'User',
    'OutstandingRedemption',
    'MilestoneRedemption',
    'UserAction',
    'ActionType',
    'PURCHASE_ACTION_TYPES',
]
