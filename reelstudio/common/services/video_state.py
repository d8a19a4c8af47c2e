"""Lifecycle of a video generation record.

The segment "loop" lives in the persisted record: every provider callback
feeds one event into :func:`transition` and the returned status is written
back. Transport (webhook, polling, queue) does not matter here.
"""

import math
from typing import Optional

BASE_SEGMENT_SECONDS = 8

PENDING = "pending"
PROCESSING = "processing"
MERGING = "merging"
COMPLETED = "completed"
FAILED = "failed"

ACTIVE_STATUSES = (PENDING, PROCESSING, MERGING)
TERMINAL_STATUSES = (COMPLETED, FAILED)

SEGMENT_EXTENDED = "segment_extended"
LAST_SEGMENT_CAPTURED = "last_segment_captured"
ARTIFACT_STORED = "artifact_stored"
SEGMENT_FAILED = "segment_failed"
DOWNLOAD_FAILED = "download_failed"
EXTEND_FAILED = "extend_failed"
STORAGE_FAILED = "storage_failed"
TIMED_OUT = "timed_out"

FAILURE_EVENTS = (SEGMENT_FAILED, DOWNLOAD_FAILED, EXTEND_FAILED, STORAGE_FAILED, TIMED_OUT)

_TRANSITIONS = {
    (PENDING, SEGMENT_EXTENDED): PROCESSING,
    (PROCESSING, SEGMENT_EXTENDED): PROCESSING,
    (PENDING, LAST_SEGMENT_CAPTURED): MERGING,
    (PROCESSING, LAST_SEGMENT_CAPTURED): MERGING,
    (MERGING, ARTIFACT_STORED): COMPLETED,
}


class InvalidTransition(ValueError):
    def __init__(self, status: str, event: str) -> None:
        super().__init__(f"event {event!r} is not allowed in status {status!r}")
        self.status = status
        self.event = event


def segments_needed(target_duration: Optional[int]) -> int:
    """Number of provider segments for a target duration (at least one)."""
    if not target_duration or target_duration <= 0:
        return 1
    return max(1, math.ceil(target_duration / BASE_SEGMENT_SECONDS))


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def transition(status: str, event: str) -> str:
    if is_terminal(status):
        raise InvalidTransition(status, event)
    if event in FAILURE_EVENTS:
        return FAILED
    try:
        return _TRANSITIONS[(status, event)]
    except KeyError:
        raise InvalidTransition(status, event) from None
