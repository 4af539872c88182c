"""
Workflow Tests
==============

Stage order, progress and transition rules.
"""

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from compsync import workflow
from compsync.errors import InvalidTransitionError
from compsync.schemas import FindingStatus


class TestStageOrder:

    def test_five_stages_in_order(self):
        assert [s.status for s in workflow.STAGES] == [
            FindingStatus.OPEN,
            FindingStatus.IN_PROGRESS,
            FindingStatus.EVIDENCE,
            FindingStatus.REVIEW,
            FindingStatus.CLOSED,
        ]

    def test_labels(self):
        assert workflow.get_stage(FindingStatus.EVIDENCE).label == "Evidence Gathering"
        assert workflow.get_stage(FindingStatus.REVIEW).label == "Under Review"

    def test_next_stage(self):
        assert workflow.next_stage(FindingStatus.OPEN).status == FindingStatus.IN_PROGRESS
        assert workflow.next_stage(FindingStatus.REVIEW).status == FindingStatus.CLOSED
        assert workflow.next_stage(FindingStatus.CLOSED) is None

    def test_terminal(self):
        assert workflow.is_terminal(FindingStatus.CLOSED)
        assert not workflow.is_terminal(FindingStatus.OPEN)
        assert workflow.INITIAL_STATUS == FindingStatus.OPEN
        assert workflow.TERMINAL_STATUS == FindingStatus.CLOSED

    def test_accepts_raw_strings(self):
        assert workflow.index_of("review") == 3


class TestProgress:

    @pytest.mark.parametrize("status,expected", [
        (FindingStatus.OPEN, 20.0),
        (FindingStatus.IN_PROGRESS, 40.0),
        (FindingStatus.EVIDENCE, 60.0),
        (FindingStatus.REVIEW, 80.0),
        (FindingStatus.CLOSED, 100.0),
    ])
    def test_progress_percent(self, status, expected):
        assert workflow.progress_percent(status) == pytest.approx(expected)


class TestTransitions:

    def test_single_step_forward_allowed(self):
        stage = workflow.validate_transition(FindingStatus.OPEN, FindingStatus.IN_PROGRESS)
        assert stage.status == FindingStatus.IN_PROGRESS

    def test_skip_rejected(self):
        with pytest.raises(InvalidTransitionError):
            workflow.validate_transition(FindingStatus.OPEN, FindingStatus.REVIEW)

    def test_backward_rejected(self):
        with pytest.raises(InvalidTransitionError):
            workflow.validate_transition(FindingStatus.REVIEW, FindingStatus.OPEN)

    def test_repeat_rejected(self):
        with pytest.raises(InvalidTransitionError):
            workflow.validate_transition(FindingStatus.EVIDENCE, FindingStatus.EVIDENCE)

    def test_out_of_terminal_rejected(self):
        with pytest.raises(InvalidTransitionError, match="terminal"):
            workflow.validate_transition(FindingStatus.CLOSED, FindingStatus.OPEN)
