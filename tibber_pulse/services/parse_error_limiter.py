from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional


MAX_LOGGED_PARSE_ERRORS = 5
SUPPRESSION_WINDOW = timedelta(hours=24)


@dataclass(frozen=True)
class ErrorRateState:
    logged_count: int = 0
    last_logged_at: Optional[datetime] = None


def log_parse_error(
    log,
    error: BaseException,
    state: ErrorRateState,
    now: datetime,
) -> ErrorRateState:
    """
    Log a frame decode failure unless the error budget is used up.

    The first five failures are logged at error level. After that, failures
    only go to debug until 24 hours have passed since the last error-level
    line; the next failure after that logs again and restarts the count.
    Returns the updated state; the caller keeps it for the next failure.
    """
    if state.logged_count >= MAX_LOGGED_PARSE_ERRORS:
        last = state.last_logged_at
        if last is None or now > last + SUPPRESSION_WINDOW:
            state = replace(state, logged_count=0)
        else:
            log.debug("failed to parse status response: %s", error)
            return state

    log.error("failed to parse status response: %s", error)
    state = ErrorRateState(logged_count=state.logged_count + 1, last_logged_at=now)
    if state.logged_count == MAX_LOGGED_PARSE_ERRORS:
        log.info("omitting further parse errors for the next 24 hours")
    return state
