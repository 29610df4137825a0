"""
FamCoins Sequencer — Engine errors.

Every failure the wizard can surface derives from SequenceError and carries a
human-readable ``user_message`` that UI adapters show as-is.
"""

from __future__ import annotations


class SequenceError(Exception):
    """Base class for all sequence engine failures."""

    user_message = "Something went wrong. Please try again."


class ValidationError(SequenceError):
    """The draft breaks a submission invariant. Nothing was persisted."""

    def __init__(self, problems: list[str] | str) -> None:
        if isinstance(problems, str):
            problems = [problems]
        self.problems = list(problems)
        self.user_message = "; ".join(self.problems)
        super().__init__(self.user_message)


class ConflictError(SequenceError):
    """The child already has an active sequence."""

    def __init__(self, child_id: str, existing_sequence_id: str | None = None) -> None:
        self.child_id = child_id
        self.existing_sequence_id = existing_sequence_id
        self.user_message = (
            "This child already has an active sequence. Please complete or "
            "archive it first, or choose to edit the existing sequence."
        )
        super().__init__(
            f"Child {child_id} already has active sequence {existing_sequence_id}"
        )


class PersistenceError(SequenceError):
    """A store operation failed while materializing. ``step`` names where."""

    def __init__(self, step: str, detail: str) -> None:
        self.step = step
        self.detail = detail
        self.user_message = f"Failed to save the sequence ({step}): {detail}"
        super().__init__(f"[{step}] {detail}")


class NotFoundError(SequenceError):
    """A referenced sequence or task template no longer exists."""

    def __init__(self, resource: str, identifier) -> None:
        self.resource = resource
        self.identifier = identifier
        readable = resource.replace("_", " ")
        self.user_message = f"The {readable} could not be found. It may have been removed."
        super().__init__(f"{resource} not found: {identifier}")
