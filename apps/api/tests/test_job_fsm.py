"""Forward-only lifecycle rules for replica and video jobs."""

from __future__ import annotations

import unittest

from synthjobs.domain.job_fsm import (
    StaleTransitionError,
    allowed_next_statuses,
    can_transition,
    coerce_status,
    ensure_transition,
    is_terminal,
    terminal_statuses,
)
from synthjobs.schemas.job import JobKind, ReplicaStatus, VideoStatus


class JobFsmUnitTests(unittest.TestCase):
    def test_allowed_forward_transitions(self) -> None:
        allowed = [
            (JobKind.REPLICA, ReplicaStatus.PENDING, ReplicaStatus.TRAINING),
            (JobKind.REPLICA, ReplicaStatus.PENDING, ReplicaStatus.READY),
            (JobKind.REPLICA, ReplicaStatus.TRAINING, ReplicaStatus.READY),
            (JobKind.REPLICA, ReplicaStatus.TRAINING, ReplicaStatus.ERROR),
            (JobKind.VIDEO, VideoStatus.PENDING, VideoStatus.PROCESSING),
            (JobKind.VIDEO, VideoStatus.PENDING, VideoStatus.COMPLETED),
            (JobKind.VIDEO, VideoStatus.PROCESSING, VideoStatus.COMPLETED),
            (JobKind.VIDEO, VideoStatus.PROCESSING, VideoStatus.FAILED),
        ]
        for kind, old_status, new_status in allowed:
            with self.subTest(kind=kind, old_status=old_status, new_status=new_status):
                ensure_transition(kind, "job-1", old_status, new_status)
                self.assertTrue(can_transition(kind, old_status, new_status))

    def test_backward_transitions_are_stale(self) -> None:
        backwards = [
            (JobKind.REPLICA, ReplicaStatus.TRAINING, ReplicaStatus.PENDING),
            (JobKind.VIDEO, VideoStatus.PROCESSING, VideoStatus.PENDING),
        ]
        for kind, old_status, new_status in backwards:
            with self.subTest(kind=kind, old_status=old_status):
                with self.assertRaises(StaleTransitionError) as context:
                    ensure_transition(kind, "job-1", old_status, new_status)
                self.assertEqual(context.exception.current_status, old_status)
                self.assertEqual(context.exception.attempted_status, new_status)

    def test_terminal_states_have_no_successors(self) -> None:
        terminals = [
            (JobKind.REPLICA, ReplicaStatus.READY, ReplicaStatus.ERROR),
            (JobKind.REPLICA, ReplicaStatus.ERROR, ReplicaStatus.TRAINING),
            (JobKind.VIDEO, VideoStatus.COMPLETED, VideoStatus.FAILED),
            (JobKind.VIDEO, VideoStatus.FAILED, VideoStatus.PROCESSING),
        ]
        for kind, terminal, attempted in terminals:
            with self.subTest(kind=kind, terminal=terminal):
                self.assertTrue(is_terminal(kind, terminal))
                self.assertEqual(allowed_next_statuses(kind, terminal), [])
                with self.assertRaises(StaleTransitionError):
                    ensure_transition(kind, "job-1", terminal, attempted)

    def test_non_terminal_states(self) -> None:
        self.assertFalse(is_terminal(JobKind.REPLICA, ReplicaStatus.TRAINING))
        self.assertFalse(is_terminal(JobKind.VIDEO, VideoStatus.PENDING))

    def test_terminal_statuses_lists_each_kind(self) -> None:
        self.assertEqual(terminal_statuses(JobKind.REPLICA), [ReplicaStatus.ERROR, ReplicaStatus.READY])
        self.assertEqual(terminal_statuses(JobKind.VIDEO), [VideoStatus.COMPLETED, VideoStatus.FAILED])

    def test_self_transition_is_not_a_forward_move(self) -> None:
        self.assertFalse(can_transition(JobKind.VIDEO, VideoStatus.PROCESSING, VideoStatus.PROCESSING))

    def test_coerce_status_accepts_raw_values(self) -> None:
        self.assertIs(coerce_status(JobKind.VIDEO, "COMPLETED"), VideoStatus.COMPLETED)
        self.assertIs(coerce_status(JobKind.REPLICA, ReplicaStatus.READY), ReplicaStatus.READY)
        with self.assertRaises(ValueError):
            coerce_status(JobKind.REPLICA, "PROCESSING")

    def test_allowed_next_statuses_are_sorted(self) -> None:
        self.assertEqual(
            allowed_next_statuses(JobKind.VIDEO, VideoStatus.PENDING),
            [VideoStatus.COMPLETED, VideoStatus.FAILED, VideoStatus.PROCESSING],
        )


if __name__ == "__main__":
    unittest.main()
