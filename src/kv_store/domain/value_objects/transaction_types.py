"""Transaction-related types and enumerations."""

from __future__ import annotations

from enum import Enum, auto


class TransactionMode(Enum):
    """Access mode of a transaction."""

    READ_ONLY = auto()
    """Snapshot reads; never blocks and never blocks writers."""

    READ_WRITE = auto()
    """Exclusive writer for the database until commit or abort."""

    @property
    def label(self) -> str:
        """Short label used for metrics and logs."""
        return "write" if self is TransactionMode.READ_WRITE else "read"


class TransactionState(Enum):
    """Transaction lifecycle states.

    State machine:

        IDLE ──begin()──> ACTIVE
                            │
                ┌───────────┴───────────┐
             commit()                 abort()
                │                       │
                v                       v
           COMMITTING               ABORTING
                │                       │
                v                       v
           COMMITTED                 ABORTED

    A failure while COMMITTING moves the transaction to ABORTING; the
    database file keeps its previous image in that case.
    """

    IDLE = auto()
    """Transaction has not started yet."""

    ACTIVE = auto()
    """Transaction is running and can execute operations."""

    COMMITTING = auto()
    """New image and meta slot are being written."""

    ABORTING = auto()
    """Working state is being discarded."""

    COMMITTED = auto()
    """Changes are durable and visible to new transactions."""

    ABORTED = auto()
    """Changes were discarded."""

    def is_terminal(self) -> bool:
        """Check if this is a terminal state (COMMITTED or ABORTED)."""
        return self in (TransactionState.COMMITTED, TransactionState.ABORTED)

    def is_active(self) -> bool:
        """Check if transaction can still perform operations."""
        return self == TransactionState.ACTIVE

    def can_commit(self) -> bool:
        """Check if transaction can begin commit process."""
        return self == TransactionState.ACTIVE

    def can_abort(self) -> bool:
        """Check if transaction can be aborted."""
        return self in (TransactionState.ACTIVE, TransactionState.COMMITTING)
