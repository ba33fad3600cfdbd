"""
Error kinds raised by the backend and the member management layer.

Throttled and unknown-member scans are expected results and are reported as
scan outcomes rather than raised.
"""


class LabTrackError(Exception):
    """Base class for all lab tracker errors."""


class BackendUnavailable(LabTrackError):
    """The backend could not be reached or did not answer in time."""


class ConflictingWrite(LabTrackError):
    """
    A conditional insert found a newer log entry than the one the caller
    read. The scan must be refused and retried from a fresh read.
    """

    def __init__(self, member_id: str, expected_last_entry_id, actual_last_entry_id):
        self.member_id = member_id
        self.expected_last_entry_id = expected_last_entry_id
        self.actual_last_entry_id = actual_last_entry_id
        super().__init__(
            f"Log for member {member_id} changed concurrently "
            f"(expected last entry {expected_last_entry_id}, found {actual_last_entry_id})"
        )


class MemberNotFound(LabTrackError):
    pass


class MemberValidationError(LabTrackError):
    pass


class StationLimitReached(LabTrackError):
    """Every tracked station is busy or cooling down; no room for a new one."""
