"""Optimistic local update with rollback on remote failure."""

import logging
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def optimistic_update(apply: Callable[[], object],
                      remote_call: Callable[[], T],
                      rollback: Callable[[], object]) -> T:
    """Apply a change locally, then run its remote effect.

    If the remote effect raises, ``rollback`` restores the previous local
    value and the error is re-raised to the caller.
    """
    apply()
    try:
        return remote_call()
    except Exception as e:
        logger.warning(f"Remote update failed, rolling back: {e}")
        rollback()
        raise
