"""
Reward discount code naming.

Points redemptions mint codes shaped POINTS<dollars>CAD_<suffix>; milestone
rewards mint MILESTONEFREE_<suffix>. The dollar value embedded in a points
code is how a used code is traced back to the points that paid for it.
"""
import re
import secrets
import string
from decimal import Decimal, InvalidOperation
from typing import Optional

POINTS_CODE_PREFIX = 'POINTS'
MILESTONE_CODE_PREFIX = 'MILESTONEFREE_'
REWARD_CODE_PREFIXES = (POINTS_CODE_PREFIX, MILESTONE_CODE_PREFIX)

POINTS_PER_DOLLAR = 100
FALLBACK_DISCOUNT_AMOUNT = Decimal('5')

SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
SUFFIX_LENGTH = 5

_POINTS_CODE_RE = re.compile(r'^POINTS(\d+(?:\.\d+)?)CAD_')
_AMOUNT_RE = re.compile(r'\d+(?:\.\d+)?')


def tier_points_from_code(code: str) -> Optional[int]:
    """
    Points value encoded in a points discount code.

    >>> tier_points_from_code('POINTS12.5CAD_AB3F9')
    1250
    >>> tier_points_from_code('MILESTONEFREE_X9Z12') is None
    True
    """
    if not code:
        return None
    match = _POINTS_CODE_RE.match(code)
    if not match:
        return None
    try:
        dollars = Decimal(match.group(1))
    except InvalidOperation:
        return None
    return int(dollars * POINTS_PER_DOLLAR)


def is_reward_code(code: str) -> bool:
    """True for codes minted by this program. Matching is case-sensitive."""
    return bool(code) and code.startswith(REWARD_CODE_PREFIXES)


def random_suffix(length: int = SUFFIX_LENGTH) -> str:
    return ''.join(secrets.choice(SUFFIX_ALPHABET) for _ in range(length))


def discount_amount_for(value_spec, points: int) -> Decimal:
    """
    Dollar amount of a points discount.

    'dynamic' (or no value) converts the redeemed points at 100 points per
    dollar. Anything else is read as a dollar value, falling back to $5 when
    it holds no number.
    """
    if value_spec is None or str(value_spec).strip().lower() == 'dynamic':
        return (Decimal(points or 0) / POINTS_PER_DOLLAR).quantize(Decimal('0.01'))

    match = _AMOUNT_RE.search(str(value_spec))
    if not match:
        return FALLBACK_DISCOUNT_AMOUNT
    amount = Decimal(match.group(0))
    return amount if amount > 0 else FALLBACK_DISCOUNT_AMOUNT


def build_points_code(amount: Decimal) -> str:
    return f'{POINTS_CODE_PREFIX}{amount}CAD_{random_suffix()}'


def build_milestone_code() -> str:
    return f'{MILESTONE_CODE_PREFIX}{random_suffix()}'


def generate_referral_code() -> str:
    """Six upper-case hex characters from three random bytes."""
    return secrets.token_hex(3).upper()


def build_referral_url(store_url: str, referral_code: str) -> str:
    return f"{store_url.rstrip('/')}/pages/email-signup/?ref={referral_code}"
