"""Result codes reported by the dispatch and reassignment entry points."""

from __future__ import annotations

import enum


class DispatchStatus(str, enum.Enum):
    assigned = "assigned"
    already_assigned = "already_assigned"
    no_eligible_runners = "no_eligible_runners"
    no_runners_within_distance = "no_runners_within_distance"
    no_runner_to_assign = "no_runner_to_assign"
    assignment_failed = "assignment_failed"


class Advance(str, enum.Enum):
    """What one scheduler pass did to one timed-out task."""

    reassigned = "reassigned"
    cleared = "cleared"  # queue exhausted, task cancelled
    skipped = "skipped"  # someone else got there first


NO_RUNNERS_AVAILABLE = "no_runners_available"
