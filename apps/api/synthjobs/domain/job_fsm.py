"""Forward-only lifecycle rules for replica and video jobs."""

from synthjobs.schemas.job import JobKind, JobStatus, ReplicaStatus, VideoStatus

_TERMINAL_STATES: dict[JobKind, set[JobStatus]] = {
    JobKind.REPLICA: {ReplicaStatus.READY, ReplicaStatus.ERROR},
    JobKind.VIDEO: {VideoStatus.COMPLETED, VideoStatus.FAILED},
}

# A job may skip intermediate states when the vendor reports progress late.
_ALLOWED_TRANSITIONS: dict[JobKind, dict[JobStatus, set[JobStatus]]] = {
    JobKind.REPLICA: {
        ReplicaStatus.PENDING: {ReplicaStatus.TRAINING, ReplicaStatus.READY, ReplicaStatus.ERROR},
        ReplicaStatus.TRAINING: {ReplicaStatus.READY, ReplicaStatus.ERROR},
        ReplicaStatus.READY: set(),
        ReplicaStatus.ERROR: set(),
    },
    JobKind.VIDEO: {
        VideoStatus.PENDING: {VideoStatus.PROCESSING, VideoStatus.COMPLETED, VideoStatus.FAILED},
        VideoStatus.PROCESSING: {VideoStatus.COMPLETED, VideoStatus.FAILED},
        VideoStatus.COMPLETED: set(),
        VideoStatus.FAILED: set(),
    },
}

_STATUS_TYPES: dict[JobKind, type[ReplicaStatus] | type[VideoStatus]] = {
    JobKind.REPLICA: ReplicaStatus,
    JobKind.VIDEO: VideoStatus,
}


class StaleTransitionError(Exception):
    """Raised when an update would move a job backwards or out of a terminal state."""

    def __init__(
        self,
        *,
        kind: JobKind,
        vendor_id: str,
        current_status: JobStatus,
        attempted_status: JobStatus,
    ) -> None:
        self.kind = kind
        self.vendor_id = vendor_id
        self.current_status = current_status
        self.attempted_status = attempted_status
        super().__init__(
            f"{kind.value} {vendor_id}: cannot move from {current_status.value} to {attempted_status.value}"
        )


def coerce_status(kind: JobKind, value: JobStatus | str) -> JobStatus:
    """Return the status enum member of ``kind`` for a stored or supplied value."""
    status_type = _STATUS_TYPES[kind]
    if isinstance(value, status_type):
        return value
    raw = value.value if isinstance(value, (ReplicaStatus, VideoStatus)) else value
    return status_type(raw)


def is_terminal(kind: JobKind, status: JobStatus) -> bool:
    return status in _TERMINAL_STATES[kind]


def terminal_statuses(kind: JobKind) -> list[JobStatus]:
    return sorted(_TERMINAL_STATES[kind], key=lambda s: s.value)


def allowed_next_statuses(kind: JobKind, status: JobStatus) -> list[JobStatus]:
    """Return deterministically ordered allowed successors for a status."""
    return sorted(_ALLOWED_TRANSITIONS[kind].get(status, set()), key=lambda s: s.value)


def can_transition(kind: JobKind, old_status: JobStatus, new_status: JobStatus) -> bool:
    return new_status in _ALLOWED_TRANSITIONS[kind].get(old_status, set())


def ensure_transition(kind: JobKind, vendor_id: str, old_status: JobStatus, new_status: JobStatus) -> None:
    """Validate a strict forward move; equal statuses are handled by callers as no-ops."""
    if not can_transition(kind, old_status, new_status):
        raise StaleTransitionError(
            kind=kind,
            vendor_id=vendor_id,
            current_status=old_status,
            attempted_status=new_status,
        )
