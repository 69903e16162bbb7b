"""
Business logic services for the referral rewards ledger.
"""
from .ledger_store import LedgerStore, DuplicateActionError, DuplicateRecordError
from .rewards_service import RewardsService, build_rewards_service
from .tier_service import Tier, DEFAULT_TIERS, tier_for
from .discount_codes import tier_points_from_code

__all__ = [
    'LedgerStore',
    'DuplicateActionError',
    'DuplicateRecordError',
    'RewardsService',
    'build_rewards_service',
    'Tier',
    'DEFAULT_TIERS',
    'tier_for',
    'tier_points_from_code',
]
