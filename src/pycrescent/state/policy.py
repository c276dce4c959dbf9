"""Acceptance rules for results that race a client swap.

Kept free of any I/O so the decisions are easy to test on their own.
"""

from __future__ import annotations

from typing import Any

from pycrescent.state.events import StaleFetchPolicy


def is_superseded(bound_at_issue: Any, bound_now: Any) -> bool:
    """Whether the client binding changed while a request was in flight."""
    return bound_at_issue is not bound_now


def should_apply_fetch(*, policy: StaleFetchPolicy, bound_at_issue: Any, bound_now: Any) -> bool:
    """Decide whether a completed full-table fetch may replace the cached rows.

    Policy:
    - ``APPLY``: always apply, even if the client changed mid-flight.
    - ``DISCARD``: apply only while the same client is still bound.
    """
    if policy == StaleFetchPolicy.APPLY:
        return True
    return not is_superseded(bound_at_issue, bound_now)
