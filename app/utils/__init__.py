"""
Utility modules for the referral rewards service.
"""
from .logging_config import setup_logging
from .errors import (
    ErrorCode,
    error_response,
    rewards_error_response,
    bad_request,
    unauthorized,
    not_found,
    internal_error
)
from .exceptions import (
    RewardsError,
    NotFoundError,
    UserNotFoundError,
    ValidationError,
    InvalidActionError,
    InvalidMilestoneError,
    ConflictError,
    DuplicateError,
    AlreadyClaimedError,
    AlreadyRedeemedError,
    NoActiveDiscountError,
    InsufficientBalanceError,
    InsufficientPointsError,
    InsufficientReferralsError,
    CollaboratorError,
    ShopifyError,
    KlaviyoError,
    JudgeMeError,
    ConfigurationError
)
