"""
Best-effort calls to external services.

Some collaborator calls must never fail the operation around them
(deactivating a spent code, minting a welcome discount). attempt() runs
such a call, logs a failure and hands back an explicit result instead of
raising.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class AttemptResult:
    ok: bool
    value: Any = None
    error: Optional[Exception] = None


def attempt(func: Callable, *args, description: str = None, **kwargs) -> AttemptResult:
    """
    Call func, capturing any exception.

    Args:
        func: The collaborator call
        description: Label for the log line (defaults to the function name)

    Returns:
        AttemptResult with the return value, or the captured error
    """
    label = description or getattr(func, '__name__', 'call')
    try:
        return AttemptResult(ok=True, value=func(*args, **kwargs))
    except Exception as e:
        logger.warning(f'[BestEffort] {label} failed: {e}')
        return AttemptResult(ok=False, error=e)
