"""
Remediation Workflow
====================

Fixed, ordered sequence of stages a finding moves through:

    Open -> In Progress -> Evidence Gathering -> Under Review -> Closed

All stage lookups go through this module so call sites never compare
status strings directly.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from .errors import InvalidTransitionError
from .schemas import FindingStatus, StageInfo


@dataclass(frozen=True)
class Stage:
    """One position in the workflow"""
    status: FindingStatus
    label: str
    description: str

    def to_info(self) -> StageInfo:
        return StageInfo(status=self.status, label=self.label, description=self.description)


STAGES: Tuple[Stage, ...] = (
    Stage(FindingStatus.OPEN, "Open", "Finding received, needs attention"),
    Stage(FindingStatus.IN_PROGRESS, "In Progress", "Remediation underway"),
    Stage(FindingStatus.EVIDENCE, "Evidence Gathering", "Collecting supporting documents"),
    Stage(FindingStatus.REVIEW, "Under Review", "Response being finalized"),
    Stage(FindingStatus.CLOSED, "Closed", "Remediation complete"),
)

INITIAL_STATUS = STAGES[0].status
TERMINAL_STATUS = STAGES[-1].status


def index_of(status: FindingStatus) -> int:
    """0-based position of a status in the workflow"""
    status = FindingStatus(status)
    for i, stage in enumerate(STAGES):
        if stage.status == status:
            return i
    raise ValueError(f"Unknown status: {status}")


def get_stage(status: FindingStatus) -> Stage:
    return STAGES[index_of(status)]


def next_stage(status: FindingStatus) -> Optional[Stage]:
    """Stage immediately after `status`, or None at the terminal stage"""
    i = index_of(status)
    if i + 1 >= len(STAGES):
        return None
    return STAGES[i + 1]


def is_terminal(status: FindingStatus) -> bool:
    return next_stage(status) is None


def progress_percent(status: FindingStatus) -> float:
    """
    Completion percentage for a status.

    Reaching the first stage already counts as one step, so Open is 20%
    and Closed is 100% with five stages.
    """
    return (index_of(status) + 1) / len(STAGES) * 100


def validate_transition(current: FindingStatus, requested: FindingStatus) -> Stage:
    """
    Check that `requested` is the single next stage after `current`.

    Returns the target stage; raises InvalidTransitionError for skips,
    backward moves, repeats and moves out of the terminal stage.
    """
    upcoming = next_stage(current)
    if upcoming is None:
        raise InvalidTransitionError(
            f"Finding is already in terminal stage '{get_stage(current).label}'"
        )
    requested = FindingStatus(requested)
    if requested != upcoming.status:
        raise InvalidTransitionError(
            f"Cannot move from '{get_stage(current).label}' to "
            f"'{get_stage(requested).label}'; next stage is '{upcoming.label}'"
        )
    return upcoming
