"""
Custom exceptions for the referral rewards ledger.

Every failure the rewards engine reports is one of these, so the routing
layer can map it to a status code without inspecting messages.
"""


class RewardsError(Exception):
    """Base exception for all rewards business logic errors."""

    status_code = 500

    def __init__(self, message: str, code: str = "REWARDS_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


# ==================== Not Found ====================

class NotFoundError(RewardsError):
    """Resource not found."""

    status_code = 404

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} {identifier} not found"
        super().__init__(message, f"{resource.upper().replace(' ', '_')}_NOT_FOUND")


class UserNotFoundError(NotFoundError):
    """No user matches the lookup."""

    def __init__(self, identifier=None, message: str = None):
        super().__init__("User", identifier)
        if message:
            self.message = message
            self.args = (message,)


# ==================== Invalid Input ====================

class ValidationError(RewardsError):
    """Invalid input data."""

    status_code = 400

    def __init__(self, message: str, field: str = None):
        self.field = field
        code = f"INVALID_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(message, code)


class InvalidActionError(ValidationError):
    """Action type is not on the award whitelist."""

    def __init__(self, action_type: str = None):
        self.action_type = action_type
        super().__init__("Invalid action type", "action")


class InvalidMilestoneError(ValidationError):
    """No reward is configured for the milestone threshold."""

    def __init__(self, threshold=None):
        self.threshold = threshold
        super().__init__("Invalid milestone", "milestone")


# ==================== Conflict ====================

class ConflictError(RewardsError):
    """Operation conflicts with the current ledger state."""

    status_code = 409

    def __init__(self, message: str, code: str = "STATE_CONFLICT"):
        super().__init__(message, code)


class DuplicateError(ConflictError):
    """Resource already exists."""

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} already exists"
        if identifier:
            message = f"{resource} with {identifier} already exists"
        super().__init__(message, "DUPLICATE_ENTRY")


class AlreadyClaimedError(ConflictError):
    """Whitelisted action was already claimed by this user."""

    def __init__(self, action_type: str = None):
        self.action_type = action_type
        super().__init__("Points already claimed for this action", "ALREADY_CLAIMED")


class AlreadyRedeemedError(ConflictError):
    """Milestone reward was already issued."""

    def __init__(self, threshold=None):
        self.threshold = threshold
        super().__init__("Milestone already redeemed", "ALREADY_REDEEMED")


class NoActiveDiscountError(ConflictError):
    """User holds no outstanding discount code."""

    def __init__(self):
        super().__init__("No active discount to cancel", "NO_ACTIVE_DISCOUNT")


# ==================== Insufficient Balance ====================

class InsufficientBalanceError(RewardsError):
    """Not enough balance for the operation."""

    status_code = 400

    def __init__(self, current, required, currency: str = "points", message: str = None):
        self.current = current
        self.required = required
        message = message or f"Insufficient {currency}. Current: {current}, Required: {required}"
        super().__init__(message, "INSUFFICIENT_BALANCE")


class InsufficientPointsError(InsufficientBalanceError):
    """Not enough points to redeem."""

    def __init__(self, current: int, required: int):
        super().__init__(current, required, "points", message="Not enough points to redeem")
        self.code = "INSUFFICIENT_POINTS"


class InsufficientReferralsError(InsufficientBalanceError):
    """Referral count is below the milestone threshold."""

    def __init__(self, current: int, required: int):
        super().__init__(
            current, required, "referrals",
            message=f"You need {required} referrals to unlock this reward"
        )
        self.code = "INSUFFICIENT_REFERRALS"


# ==================== Collaborators ====================

class CollaboratorError(RewardsError):
    """An external service call failed."""

    status_code = 502

    def __init__(self, message: str, original_error: Exception = None, code: str = "EXTERNAL_SERVICE_ERROR"):
        self.original_error = original_error
        super().__init__(message, code)


class ShopifyError(CollaboratorError):
    """Error communicating with Shopify API."""

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message, original_error, "SHOPIFY_ERROR")


class KlaviyoError(CollaboratorError):
    """Error communicating with Klaviyo API."""

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message, original_error, "KLAVIYO_ERROR")


class JudgeMeError(CollaboratorError):
    """Error communicating with Judge.me API."""

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message, original_error, "JUDGEME_ERROR")


class ConfigurationError(RewardsError):
    """Application configuration error."""

    def __init__(self, message: str):
        super().__init__(message, "CONFIGURATION_ERROR")
