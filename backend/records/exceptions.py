"""Typed errors for round reconstruction.

Every failure raised while turning a match's event stream into round results
is a subclass of ReconstructionError. These are fatal for the match being
reconstructed: the pipeline lets them propagate instead of persisting a
partial or guessed result.
"""

from typing import Any


class ReconstructionError(Exception):
    """Base error for a match whose event stream cannot be reconstructed.

    Attributes:
        match_id: Identifier of the match being reconstructed.
        event_type: Type tag of the offending event (e.g. ".lq.RecordHule").
        payload: Decoded payload of the offending event.
        reason: Human-readable description of what went wrong.

    """

    def __init__(self, *, match_id: str, event_type: str, payload: dict[str, Any], reason: str) -> None:
        self.match_id = match_id
        self.event_type = event_type
        self.payload = payload
        self.reason = reason
        super().__init__(f"{match_id}: {event_type}: {reason}")


class UnrecognizedEventError(ReconstructionError):
    """Event type tag is outside the known set of record kinds."""


class MalformedEventError(ReconstructionError):
    """Event payload does not have the shape its type tag requires."""


class InvariantViolation(ReconstructionError):
    """Event is well-formed but breaks a round invariant (dealer count, win attribution, liability)."""
